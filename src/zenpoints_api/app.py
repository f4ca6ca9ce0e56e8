from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from zenpoints_api.core.settings import settings
from zenpoints_api.db.session import async_session

from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .scheduling import JobScheduler

APP_VERSION = "0.1.0"
SERVICE_NAME = "zenpoints-api"


def _session_factory():
    return async_session()


def _schedule_path() -> Path:
    path = Path(settings.job_schedule_path)
    if not path.is_absolute():
        path = Path(__file__).resolve().parent.parent.parent / path
    return path


@asynccontextmanager
async def lifespan(app: FastAPI):
    schedule_path = _schedule_path()
    job_scheduler = JobScheduler(session_factory=_session_factory, config_path=schedule_path)
    app.state.job_scheduler = job_scheduler

    if settings.job_scheduler_enabled:
        try:
            job_scheduler.start()
        except FileNotFoundError as exc:
            logger.exception("Job scheduler failed to start", error=str(exc))
        else:
            logger.info("Job scheduler enabled", schedule_path=str(schedule_path))
    else:
        logger.info("Job scheduler disabled", reason="job_scheduler_enabled is false")

    try:
        yield
    finally:
        if job_scheduler.is_running:
            await job_scheduler.stop()


def create_app() -> FastAPI:
    """Application factory for the zen points API."""

    configure_logging(
        service_name=SERVICE_NAME,
        environment=settings.environment,
        version=APP_VERSION,
    )
    if settings.environment == "production" and settings.game_signing_secret.get_secret_value() == "change-me":
        raise RuntimeError("GAME_SIGNING_SECRET must be set in production")

    app = FastAPI(
        title="Zen Points API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name=SERVICE_NAME,
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
