"""
Queue wiring for the scoring pipeline: test-scoring -> analytics-update + percentile.

The Redis connection is an explicit, optional dependency. Without one the
pipeline runs inline in the caller, in the same causal order.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from redis import Redis
from rq import Queue, Retry
from rq.exceptions import NoSuchJobError
from rq.job import Job
from examprep.core.config import Settings
from examprep.services.analytics import AnalyticsService
from examprep.services.percentile import PercentileEngine
from examprep.services.scoring import ScoringEngine

logger = logging.getLogger(__name__)

SCORING_QUEUE = "test-scoring"
PERCENTILE_QUEUE = "percentile"
ANALYTICS_QUEUE = "analytics-update"

SCORING_JOB = "examprep.jobs.tasks.score_attempt_job"
PERCENTILE_JOB = "examprep.jobs.tasks.percentile_job"
ANALYTICS_JOB = "examprep.jobs.tasks.analytics_job"


@dataclass(frozen=True)
class QueueSpec:
    name: str
    concurrency: int
    rate_limit: int  # jobs per second, 0 = unthrottled


@dataclass(frozen=True)
class QueueConfig:
    connection: Optional[Redis]
    scoring: QueueSpec
    percentile: QueueSpec
    analytics: QueueSpec

    @classmethod
    def from_settings(cls, settings: Settings, connection: Optional[Redis] = None) -> "QueueConfig":
        if connection is None and settings.REDIS_URL:
            connection = Redis.from_url(settings.REDIS_URL)
        return cls(
            connection=connection,
            scoring=QueueSpec(SCORING_QUEUE, settings.SCORING_CONCURRENCY, settings.SCORING_RATE_LIMIT),
            percentile=QueueSpec(PERCENTILE_QUEUE, settings.PERCENTILE_CONCURRENCY, settings.PERCENTILE_RATE_LIMIT),
            analytics=QueueSpec(ANALYTICS_QUEUE, settings.ANALYTICS_CONCURRENCY, settings.ANALYTICS_RATE_LIMIT),
        )

    @property
    def enabled(self) -> bool:
        return self.connection is not None

    def spec(self, queue_name: str) -> QueueSpec:
        for spec in (self.scoring, self.percentile, self.analytics):
            if spec.name == queue_name:
                return spec
        raise KeyError(queue_name)


class JobDispatcher:
    """Enqueues pipeline jobs on the durable rq queues."""

    def __init__(self, connection: Redis, settings: Settings):
        self.connection = connection
        self.settings = settings
        self.queues = {name: Queue(name, connection=connection)
                       for name in (SCORING_QUEUE, PERCENTILE_QUEUE, ANALYTICS_QUEUE)}

    def _retry(self) -> Optional[Retry]:
        if self.settings.JOB_MAX_RETRIES < 1:
            return None
        return Retry(max=self.settings.JOB_MAX_RETRIES, interval=self.settings.backoff_intervals())

    def _enqueue(self, queue_name: str, func: str, *args, description: str) -> str:
        job = self.queues[queue_name].enqueue(
            func, *args,
            retry=self._retry(),
            job_timeout=self.settings.JOB_TIMEOUT_SECONDS,
            description=description,
        )
        logger.info(f"Queued {queue_name} job {job.get_id()} ({description})")
        return job.get_id()

    def score_test(self, attempt_id: str, user_id: str, test_id: str) -> str:
        return self._enqueue(SCORING_QUEUE, SCORING_JOB, attempt_id, test_id, user_id,
                             description=f"score attempt {attempt_id}")

    def calculate_percentile(self, test_id: str, attempt_id: str) -> str:
        return self._enqueue(PERCENTILE_QUEUE, PERCENTILE_JOB, test_id, attempt_id,
                             description=f"percentile for attempt {attempt_id}")

    def update_analytics(self, user_id: str, test_id: str) -> str:
        return self._enqueue(ANALYTICS_QUEUE, ANALYTICS_JOB, user_id, test_id,
                             description=f"analytics for user {user_id} test {test_id}")

    def job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        try:
            job = Job.fetch(job_id, connection=self.connection)
        except NoSuchJobError:
            return None
        meta = job.meta or {}
        status = getattr(job.get_status(), "value", None)
        return {
            "id": job.get_id(),
            "queue": job.origin,
            "state": meta.get("state") or status,
            "status": status,
            "result": job.return_value() if status == "finished" else None,
            "error": meta.get("error"),
        }


class InlineDispatcher:
    """Runs the pipeline synchronously when no queue connection is configured."""

    def __init__(self, storage, settings: Settings, redis: Optional[Redis] = None):
        self.storage = storage
        self.settings = settings
        self.redis = redis

    def score_test(self, attempt_id: str, user_id: str, test_id: str) -> None:
        logger.warning(f"Queue not available, scoring attempt {attempt_id} inline")
        ScoringEngine(self.storage, self).score_attempt(attempt_id, test_id, user_id)

    def calculate_percentile(self, test_id: str, attempt_id: str) -> None:
        PercentileEngine(self.storage).run(test_id, attempt_id)

    def update_analytics(self, user_id: str, test_id: str) -> None:
        AnalyticsService(self.storage, self.redis, self.settings.ANALYTICS_CACHE_TTL).update(user_id, test_id)

    def job_status(self, job_id: str) -> None:
        return None


def build_dispatcher(config: QueueConfig, storage, settings: Settings):
    if config.enabled:
        return JobDispatcher(config.connection, settings)
    return InlineDispatcher(storage, settings)
