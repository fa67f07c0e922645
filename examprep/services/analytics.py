import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from redis import Redis
from examprep.core.cache import cache_json, test_stats_key, user_stats_key
from examprep.models.orm import AttemptStatus

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Refreshes cached test aggregates after an attempt is scored.

    Percentiles are owned by the percentile engine; this only reads them.
    """

    def __init__(self, storage, redis: Optional[Redis], ttl: int = 300):
        self.storage = storage
        self.redis = redis
        self.ttl = ttl

    def test_stats(self, test_id: str) -> Optional[Dict[str, Any]]:
        attempts = self.storage.get_test_attempts_by_test_id(test_id, AttemptStatus.SUBMITTED.value)
        if not attempts:
            return None
        scores = [a.score or 0 for a in attempts]
        return {
            "totalAttempts": len(scores),
            "avgScore": sum(scores) / len(scores),
            "maxScore": max(scores),
            "minScore": min(scores),
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        }

    def latest_user_attempt(self, user_id: str, test_id: str):
        attempts = [a for a in self.storage.get_test_attempts_by_test_id(test_id, AttemptStatus.SUBMITTED.value)
                    if a.user_id == user_id]
        if not attempts:
            return None
        return max(attempts, key=lambda a: a.submitted_at or datetime.min)

    def update(self, user_id: str, test_id: str) -> Optional[Dict[str, Any]]:
        if self.redis is None:
            logger.info(f"No cache configured, skipping analytics for test {test_id}")
            return None
        stats = self.test_stats(test_id)
        if stats is None:
            logger.warning(f"No submitted attempts for test {test_id}")
            return None
        cache_json(self.redis, test_stats_key(test_id), stats, self.ttl)
        latest = self.latest_user_attempt(user_id, test_id)
        if latest is not None:
            cache_json(self.redis, user_stats_key(user_id, test_id),
                       {"attemptId": latest.id, "score": latest.score, "percentile": latest.percentile}, self.ttl)
        logger.info(f"Updated analytics cache for test {test_id}")
        return stats
