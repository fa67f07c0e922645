"""
FastAPI entry point: accepts attempt submissions and hands them to the
scoring pipeline, and serves results, job status and cached analytics.
"""
import logging
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from examprep.api.admin import router as admin_router
from examprep.api.analytics import router as analytics_router
from examprep.api.attempts import router as attempts_router
from examprep.core.config import Settings, get_settings
from examprep.core.logs import configure_logging
from examprep.errors import NotFoundError
from examprep.jobs.queue import QueueConfig, build_dispatcher

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, storage=None, dispatcher=None,
               queue_config: Optional[QueueConfig] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    if settings.SENTRY_DSN and not settings.is_testing():
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            integrations=[FastApiIntegration(transaction_style="endpoint"), SqlalchemyIntegration()],
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        )
    if storage is None:
        from examprep.core.database import SessionLocal
        from examprep.storage import SqlStorage
        storage = SqlStorage(SessionLocal)
    queue_config = queue_config or QueueConfig.from_settings(settings)
    if dispatcher is None:
        dispatcher = build_dispatcher(queue_config, storage, settings)
    if not queue_config.enabled:
        logger.warning("REDIS_URL not set, submissions will be scored inline")

    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, debug=settings.DEBUG)
    app.state.settings = settings
    app.state.storage = storage
    app.state.dispatcher = dispatcher
    app.state.queue_config = queue_config
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
    app.include_router(attempts_router, prefix=f"{settings.API_V1_PREFIX}/attempts", tags=["attempts"])
    app.include_router(admin_router, prefix=f"{settings.API_V1_PREFIX}/admin", tags=["admin"])
    app.include_router(analytics_router, prefix=f"{settings.API_V1_PREFIX}/tests", tags=["analytics"])

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.get("/health")
    def health(): return {"status": "ok", "queue": "enabled" if queue_config.enabled else "inline"}

    return app
