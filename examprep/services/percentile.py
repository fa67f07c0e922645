"""
Rank-based percentiles over the submitted attempts of a test.

percentile = 100 * |attempts scoring strictly lower| / |submitted attempts|

Ties resolve toward the lower bound. Every new submission shifts the rank of
every other attempt, so after updating the submitting attempt the whole
population is recomputed from scratch. Recomputation never reads previous
percentile values, which keeps concurrent jobs for the same test convergent:
the last job to finish writes values for the population it saw.
"""
import logging
import math
from bisect import bisect_left
from typing import Dict, Iterable, Optional
from prometheus_client import Counter
from examprep.errors import NotFoundError
from examprep.models.orm import AttemptStatus

logger = logging.getLogger(__name__)

PERCENTILE_RECALCULATIONS = Counter(
    "examprep_percentile_recalculations_total", "Full-population percentile recalculations"
)


def _score(value: Optional[float]) -> float:
    return value or 0


def round_half_up(value: float, digits: int = 2) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def percentile_of(score: Optional[float], population: Iterable[Optional[float]]) -> float:
    scores = [_score(s) for s in population]
    if not scores:
        return 0
    below = sum(1 for s in scores if s < _score(score))
    return round_half_up(below / len(scores) * 100)


def rank_percentiles(scores: Dict[str, Optional[float]]) -> Dict[str, float]:
    """Percentile for every key of an {attempt_id: score} mapping, in one sort."""
    ordered = sorted(_score(s) for s in scores.values())
    total = len(ordered)
    return {
        key: round_half_up(bisect_left(ordered, _score(s)) / total * 100)
        for key, s in scores.items()
    }


class PercentileEngine:
    def __init__(self, storage):
        self.storage = storage

    def _population(self, test_id: str):
        return self.storage.get_test_attempts_by_test_id(test_id, AttemptStatus.SUBMITTED.value)

    def calculate(self, test_id: str, attempt_id: str) -> float:
        attempt = self.storage.get_test_attempt(attempt_id)
        if attempt is None:
            raise NotFoundError("Attempt", attempt_id)
        return percentile_of(attempt.score, [a.score for a in self._population(test_id)])

    def recalculate_all(self, test_id: str) -> Dict[str, float]:
        attempts = self._population(test_id)
        if not attempts:
            return {}
        percentiles = rank_percentiles({a.id: a.score for a in attempts})
        for attempt_id, value in percentiles.items():
            self.storage.update_test_attempt(attempt_id, {"percentile": value})
        PERCENTILE_RECALCULATIONS.inc()
        return percentiles

    def run(self, test_id: str, attempt_id: str) -> float:
        logger.info(f"Calculating percentile for attempt {attempt_id}")
        percentile = self.calculate(test_id, attempt_id)
        self.storage.update_test_attempt(attempt_id, {"percentile": percentile})
        logger.info(f"Percentile {percentile} for attempt {attempt_id}")
        updated = self.recalculate_all(test_id)
        logger.info(f"Recalculated {len(updated)} percentiles for test {test_id}")
        return percentile
