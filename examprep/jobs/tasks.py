"""
rq job entrypoints. Each runs inside a worker process, builds its own storage
and dispatcher, and lets failures propagate so rq's retry policy applies.
A missing test or attempt is permanent: retries are cancelled and the job
lands in the failed registry straight away.
"""
import logging
from rq import get_current_job
from examprep.core.cache import wait_for_slot
from examprep.core.config import get_settings
from examprep.core.database import SessionLocal
from examprep.errors import NotFoundError
from examprep.jobs.queue import JobDispatcher, QueueConfig, SCORING_QUEUE, PERCENTILE_QUEUE, ANALYTICS_QUEUE
from examprep.services.analytics import AnalyticsService
from examprep.services.percentile import PercentileEngine
from examprep.services.scoring import ScoringEngine
from examprep.storage import SqlStorage

logger = logging.getLogger(__name__)


def _storage() -> SqlStorage:
    return SqlStorage(SessionLocal)


def _set_state(job, state: str, **extra) -> None:
    job.meta.update({"state": state, **extra})
    job.save_meta()


def _start(queue_name: str):
    job = get_current_job()
    config = QueueConfig.from_settings(get_settings(), connection=job.connection)
    wait_for_slot(job.connection, queue_name, config.spec(queue_name).rate_limit)
    _set_state(job, "running")
    return job


def _run(job, label: str, fn):
    try:
        result = fn()
    except NotFoundError as e:
        logger.error(f"{label} failed permanently: {e}")
        job.retries_left = 0
        _set_state(job, "failed", error=str(e))
        raise
    except Exception as e:
        logger.error(f"{label} failed: {e}", exc_info=True)
        _set_state(job, "failed", error=str(e))
        raise
    _set_state(job, "done")
    return result


def score_attempt_job(attempt_id: str, test_id: str, user_id: str):
    job = _start(SCORING_QUEUE)
    engine = ScoringEngine(_storage(), JobDispatcher(job.connection, get_settings()))
    return _run(job, f"Scoring attempt {attempt_id}",
                lambda: engine.score_attempt(attempt_id, test_id, user_id))


def percentile_job(test_id: str, attempt_id: str):
    job = _start(PERCENTILE_QUEUE)
    engine = PercentileEngine(_storage())
    return _run(job, f"Percentile for attempt {attempt_id}",
                lambda: {"attempt_id": attempt_id, "percentile": engine.run(test_id, attempt_id)})


def analytics_job(user_id: str, test_id: str):
    job = _start(ANALYTICS_QUEUE)
    service = AnalyticsService(_storage(), job.connection, get_settings().ANALYTICS_CACHE_TTL)
    return _run(job, f"Analytics for user {user_id} test {test_id}",
                lambda: service.update(user_id, test_id))
