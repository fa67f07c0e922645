"""
Grades every response of a submitted attempt and aggregates the result.

Grading is a pure function of (question, selected answer), so a job that
crashes half way can simply be re-delivered: already written responses are
rewritten with the same values.
"""
import logging
from typing import Any, Dict, Optional, Tuple
from prometheus_client import Counter
from examprep.errors import NotFoundError
from examprep.models.orm import AttemptStatus, QuestionType

logger = logging.getLogger(__name__)

ATTEMPTS_SCORED = Counter("examprep_attempts_scored_total", "Attempts graded by the scoring engine")
ORPHANED_RESPONSES = Counter(
    "examprep_orphaned_responses_total",
    "Responses skipped because their question is not part of the test",
)


GRADABLE_TYPES = {t.value for t in QuestionType}


def is_blank(answer: Optional[str]) -> bool:
    return answer is None or answer.strip() == ""


def _canonical(ids) -> str:
    return ",".join(sorted(ids))


def _correct_option_ids(question) -> list:
    return [opt.get("id") for opt in (question.options or []) if opt.get("isCorrect")]


def is_answer_correct(question, selected_answer: str) -> bool:
    """Compare a non-blank answer against the question's key."""
    if question.type == QuestionType.NUMERICAL.value:
        # exact string match, "42.0" is not "42"
        return selected_answer == question.correct_answer
    if question.type == QuestionType.MCQ_SINGLE.value:
        correct = _correct_option_ids(question)
        return len(correct) == 1 and selected_answer == correct[0]
    if question.type == QuestionType.MCQ_MULTIPLE.value:
        selected = [token for token in selected_answer.split(",") if token]
        return _canonical(selected) == _canonical(_correct_option_ids(question))
    return False


def grade_response(question, selected_answer: Optional[str]) -> Tuple[bool, float]:
    """Return (is_correct, marks_awarded) for one answer."""
    if is_blank(selected_answer) or question.type not in GRADABLE_TYPES:
        return False, 0
    if is_answer_correct(question, selected_answer):
        return True, question.marks or 0
    return False, -(question.negative_marks or 0)


def _empty_stats(total_questions: int = 0) -> Dict[str, Any]:
    return {"answered": 0, "notAnswered": 0, "notVisited": 0, "marked": 0, "visited": 0,
            "timeSpent": 0, "totalQuestions": total_questions, "score": 0}


def _accumulate(stats: Dict[str, Any], response, marks: float) -> None:
    if not is_blank(response.selected_answer):
        stats["answered"] += 1
    elif response.is_visited:
        stats["notAnswered"] += 1
    if response.is_marked_for_review:
        stats["marked"] += 1
    if response.is_visited:
        stats["visited"] += 1
    stats["timeSpent"] += response.time_spent_seconds or 0
    stats["score"] += marks


def _close(stats: Dict[str, Any]) -> Dict[str, Any]:
    # questions never opened have no response row
    stats["notVisited"] = max(stats["totalQuestions"] - stats["answered"] - stats["notAnswered"], 0)
    return stats


class ScoringEngine:
    def __init__(self, storage, dispatcher):
        self.storage = storage
        self.dispatcher = dispatcher

    def grade_attempt(self, attempt_id: str, test_id: str) -> Dict[str, Any]:
        """Grade and persist every response; returns score, max score and summary.

        The attempt row itself is not touched here.
        """
        test = self.storage.get_test(test_id)
        if test is None:
            raise NotFoundError("Test", test_id)
        questions = self.storage.get_test_questions(test_id)
        responses = self.storage.get_test_attempt_responses(attempt_id)
        sections = self.storage.get_test_sections(test_id)

        by_id = {q.id: q for q in questions}
        section_stats = {}
        for s in sections:
            members = sum(1 for q in questions if q.section_id == s.id)
            section_stats[s.id] = {"sectionId": s.id, "name": s.name, **_empty_stats(members)}
        overall = _empty_stats(len(questions))

        total = 0
        for response in responses:
            question = by_id.get(response.question_id)
            if question is None:
                ORPHANED_RESPONSES.inc()
                logger.warning(f"Response {response.id} of attempt {attempt_id} references question "
                               f"{response.question_id} which is not part of test {test_id}; skipped")
                continue
            is_correct, marks = grade_response(question, response.selected_answer)
            self.storage.update_test_response(response.id, {"is_correct": is_correct, "marks_awarded": marks})
            total += marks
            _accumulate(overall, response, marks)
            if question.section_id in section_stats:
                _accumulate(section_stats[question.section_id], response, marks)

        return {
            "score": total,
            "max_score": test.total_marks or 0,
            "summary": {"overall": _close(overall), "sections": [_close(s) for s in section_stats.values()]},
        }

    def score_attempt(self, attempt_id: str, test_id: str, user_id: str) -> Dict[str, Any]:
        logger.info(f"Scoring attempt {attempt_id} of test {test_id}")
        result = self.grade_attempt(attempt_id, test_id)
        self.storage.update_test_attempt(attempt_id, {
            "score": result["score"],
            "max_score": result["max_score"],
            "status": AttemptStatus.SUBMITTED.value,
            "summary": result["summary"],
        })
        ATTEMPTS_SCORED.inc()
        logger.info(f"Attempt {attempt_id} scored {result['score']}/{result['max_score']}")
        self.dispatcher.update_analytics(user_id, test_id)
        self.dispatcher.calculate_percentile(test_id, attempt_id)
        return {"attempt_id": attempt_id, **result}
