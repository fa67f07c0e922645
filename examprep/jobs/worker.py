import argparse
import logging
import sys
import sentry_sdk
from sentry_sdk.integrations.rq import RqIntegration
from rq import Worker
from rq.worker_pool import WorkerPool
from examprep.core.config import get_settings
from examprep.core.logs import configure_logging
from examprep.jobs.queue import QueueConfig, SCORING_QUEUE, PERCENTILE_QUEUE, ANALYTICS_QUEUE

logger = logging.getLogger(__name__)

QUEUES = {"scoring": SCORING_QUEUE, "percentile": PERCENTILE_QUEUE, "analytics": ANALYTICS_QUEUE}


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Run a scoring pipeline worker")
    ap.add_argument("queue", choices=sorted(QUEUES))
    ap.add_argument("--workers", type=int, default=None, help="worker processes (default: configured concurrency)")
    ap.add_argument("--burst", action="store_true", help="exit once the queue is empty")
    args = ap.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    config = QueueConfig.from_settings(settings)
    if not config.enabled:
        logger.error(f"REDIS_URL is not set; {args.queue} worker not started")
        return 1
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT, integrations=[RqIntegration()])

    spec = config.spec(QUEUES[args.queue])
    num_workers = args.workers or spec.concurrency
    logger.info(f"Starting {num_workers} worker(s) on queue {spec.name}")
    if num_workers <= 1:
        Worker([spec.name], connection=config.connection).work(burst=args.burst, with_scheduler=True)
    else:
        WorkerPool([spec.name], connection=config.connection, num_workers=num_workers).start(burst=args.burst)
    return 0


if __name__ == "__main__":
    sys.exit(main())
