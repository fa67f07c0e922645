import enum
import uuid
from datetime import datetime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Text, Integer, Float, Boolean, ForeignKey, JSON, DateTime, UniqueConstraint, func


class Base(DeclarativeBase): pass


def _uuid() -> str:
    return str(uuid.uuid4())


class QuestionType(str, enum.Enum):
    MCQ_SINGLE = "mcq_single"
    MCQ_MULTIPLE = "mcq_multiple"
    NUMERICAL = "numerical"


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    PROCESSING = "processing"
    SUBMITTED = "submitted"


class Test(Base):
    __tablename__ = "tests"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(Text)
    duration: Mapped[int] = mapped_column(Integer, default=0)  # minutes
    total_marks: Mapped[float] = mapped_column(Float, default=0)
    status: Mapped[str] = mapped_column(String, default="draft")


class TestSection(Base):
    __tablename__ = "test_sections"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    test_id: Mapped[str] = mapped_column(String, ForeignKey("tests.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String)
    position: Mapped[int] = mapped_column(Integer, default=0)


class Question(Base):
    __tablename__ = "questions"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    content: Mapped[str] = mapped_column(Text, default="")
    type: Mapped[str] = mapped_column(String)
    # [{"id": "A", "text": "...", "isCorrect": true}, ...] for MCQ types
    options: Mapped[list | None] = mapped_column(JSON, nullable=True)
    correct_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    marks: Mapped[float] = mapped_column(Float, default=1)
    negative_marks: Mapped[float] = mapped_column(Float, default=0)
    section_id: Mapped[str | None] = mapped_column(String, ForeignKey("test_sections.id", ondelete="SET NULL"), nullable=True)


class TestQuestion(Base):
    __tablename__ = "test_questions"
    __table_args__ = (UniqueConstraint("test_id", "question_id", name="uq_test_question"),)
    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    test_id: Mapped[str] = mapped_column(String, ForeignKey("tests.id", ondelete="CASCADE"), index=True)
    question_id: Mapped[str] = mapped_column(String, ForeignKey("questions.id", ondelete="CASCADE"))
    position: Mapped[int] = mapped_column(Integer)


class TestAttempt(Base):
    __tablename__ = "test_attempts"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    test_id: Mapped[str] = mapped_column(String, ForeignKey("tests.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    status: Mapped[str] = mapped_column(String, default=AttemptStatus.IN_PROGRESS.value, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    percentile: Mapped[float | None] = mapped_column(Float, nullable=True)
    summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    time_taken: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds


class TestResponse(Base):
    __tablename__ = "test_responses"
    __table_args__ = (UniqueConstraint("attempt_id", "question_id", name="uq_test_response"),)
    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid)
    attempt_id: Mapped[str] = mapped_column(String, ForeignKey("test_attempts.id", ondelete="CASCADE"), index=True)
    question_id: Mapped[str] = mapped_column(String, ForeignKey("questions.id", ondelete="CASCADE"))
    selected_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    marks_awarded: Mapped[float] = mapped_column(Float, default=0)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, default=0)
    is_marked_for_review: Mapped[bool] = mapped_column(Boolean, default=False)
    is_visited: Mapped[bool] = mapped_column(Boolean, default=False)
