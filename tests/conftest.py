import pytest
from examprep.core.config import Settings
from examprep.models import orm


class InMemoryStorage:
    """Dict-backed stand-in for SqlStorage."""

    def __init__(self):
        self.tests = {}
        self.sections = {}
        self.questions = {}
        self.test_questions = {}  # test_id -> [question_id, ...]
        self.attempts = {}
        self.responses = {}
        self.response_writes = []
        self.attempt_writes = []

    # seeding helpers
    def add_test(self, test_id="t1", total_marks=10):
        self.tests[test_id] = orm.Test(id=test_id, title=f"Test {test_id}", total_marks=total_marks)
        self.test_questions.setdefault(test_id, [])
        return self.tests[test_id]

    def add_section(self, section_id, test_id="t1", name=None, position=0):
        self.sections[section_id] = orm.TestSection(id=section_id, test_id=test_id, name=name or section_id, position=position)
        return self.sections[section_id]

    def add_question(self, question_id, test_id="t1", type="mcq_single", options=None, correct_answer=None,
                     marks=1, negative_marks=0, section_id=None):
        q = orm.Question(id=question_id, type=type, options=options, correct_answer=correct_answer,
                         marks=marks, negative_marks=negative_marks, section_id=section_id)
        self.questions[question_id] = q
        self.test_questions.setdefault(test_id, []).append(question_id)
        return q

    def add_attempt(self, attempt_id, test_id="t1", user_id="u1", status="in_progress", score=None):
        self.attempts[attempt_id] = orm.TestAttempt(id=attempt_id, test_id=test_id, user_id=user_id,
                                                    status=status, score=score)
        return self.attempts[attempt_id]

    def add_response(self, response_id, question_id, attempt_id="a1", selected_answer=None, is_visited=True,
                     is_marked_for_review=False, time_spent_seconds=0):
        self.responses[response_id] = orm.TestResponse(
            id=response_id, attempt_id=attempt_id, question_id=question_id, selected_answer=selected_answer,
            is_visited=is_visited, is_marked_for_review=is_marked_for_review, time_spent_seconds=time_spent_seconds)
        return self.responses[response_id]

    # storage interface
    def get_test(self, test_id):
        return self.tests.get(test_id)

    def get_test_questions(self, test_id):
        return [self.questions[qid] for qid in self.test_questions.get(test_id, [])]

    def get_test_sections(self, test_id):
        return sorted((s for s in self.sections.values() if s.test_id == test_id), key=lambda s: s.position)

    def get_test_attempt_responses(self, attempt_id):
        return [r for r in self.responses.values() if r.attempt_id == attempt_id]

    def get_test_attempt(self, attempt_id):
        return self.attempts.get(attempt_id)

    def get_test_attempts_by_test_id(self, test_id, status=None):
        return [a for a in self.attempts.values() if a.test_id == test_id and (status is None or a.status == status)]

    def update_test_response(self, response_id, data):
        self.response_writes.append((response_id, dict(data)))
        for key, value in data.items():
            setattr(self.responses[response_id], key, value)

    def update_test_attempt(self, attempt_id, data):
        self.attempt_writes.append((attempt_id, dict(data)))
        attempt = self.attempts.get(attempt_id)
        if attempt is None:
            return None
        for key, value in data.items():
            setattr(attempt, key, value)
        return attempt


class RecordingDispatcher:
    def __init__(self):
        self.calls = []

    def score_test(self, attempt_id, user_id, test_id):
        self.calls.append(("score", attempt_id, user_id, test_id))
        return "job-score"

    def calculate_percentile(self, test_id, attempt_id):
        self.calls.append(("percentile", test_id, attempt_id))
        return "job-percentile"

    def update_analytics(self, user_id, test_id):
        self.calls.append(("analytics", user_id, test_id))
        return "job-analytics"

    def job_status(self, job_id):
        return None


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def settings():
    return Settings(ENVIRONMENT="testing", REDIS_URL=None, DATABASE_URL="sqlite://", APP_SECRET="test-secret",
                    SENTRY_DSN=None, _env_file=None)


def mcq_options(*correct, labels="ABCD"):
    return [{"id": label, "text": f"Option {label}", "isCorrect": label in correct} for label in labels]
