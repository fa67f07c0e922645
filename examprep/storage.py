"""
Narrow storage interface consumed by the scoring and percentile engines.

Each call opens its own short-lived session so a job never holds a
transaction (or a lock) across the whole grading pass.
"""
from typing import Any, Optional, Sequence
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from examprep.models.orm import Test, TestSection, Question, TestQuestion, TestAttempt, TestResponse

RESPONSE_FIELDS = {"is_correct", "marks_awarded"}
ATTEMPT_FIELDS = {"score", "max_score", "status", "summary", "percentile", "submitted_at", "time_taken"}


class SqlStorage:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_test(self, test_id: str) -> Optional[Test]:
        with self.session_factory() as db:
            return db.get(Test, test_id)

    def get_test_questions(self, test_id: str) -> Sequence[Question]:
        stmt = (
            select(Question)
            .join(TestQuestion, TestQuestion.question_id == Question.id)
            .where(TestQuestion.test_id == test_id)
            .order_by(TestQuestion.position)
        )
        with self.session_factory() as db:
            return db.scalars(stmt).all()

    def get_test_sections(self, test_id: str) -> Sequence[TestSection]:
        stmt = select(TestSection).where(TestSection.test_id == test_id).order_by(TestSection.position)
        with self.session_factory() as db:
            return db.scalars(stmt).all()

    def get_test_attempt_responses(self, attempt_id: str) -> Sequence[TestResponse]:
        with self.session_factory() as db:
            return db.scalars(select(TestResponse).where(TestResponse.attempt_id == attempt_id)).all()

    def get_test_attempt(self, attempt_id: str) -> Optional[TestAttempt]:
        with self.session_factory() as db:
            return db.get(TestAttempt, attempt_id)

    def get_test_attempts_by_test_id(self, test_id: str, status: Optional[str] = None) -> Sequence[TestAttempt]:
        stmt = select(TestAttempt).where(TestAttempt.test_id == test_id)
        if status:
            stmt = stmt.where(TestAttempt.status == status)
        with self.session_factory() as db:
            return db.scalars(stmt.order_by(TestAttempt.started_at.desc())).all()

    def update_test_response(self, response_id: str, data: dict[str, Any]) -> None:
        _check_fields(data, RESPONSE_FIELDS)
        with self.session_factory() as db:
            row = db.get(TestResponse, response_id)
            if row is None:
                return
            for key, value in data.items():
                setattr(row, key, value)
            db.commit()

    def update_test_attempt(self, attempt_id: str, data: dict[str, Any]) -> Optional[TestAttempt]:
        _check_fields(data, ATTEMPT_FIELDS)
        with self.session_factory() as db:
            row = db.get(TestAttempt, attempt_id)
            if row is None:
                return None
            for key, value in data.items():
                setattr(row, key, value)
            db.commit()
            return row


def _check_fields(data: dict, allowed: set) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unsupported fields in partial update: {sorted(unknown)}")
