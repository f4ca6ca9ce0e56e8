from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from zenpoints_api.core.settings import settings
from zenpoints_api.db.session import get_session
from zenpoints_api.observability.scheduler import get_job_scheduler_store

router = APIRouter()

ComponentState = Literal["ready", "starting", "disabled", "error"]


class ComponentStatus(BaseModel):
    status: ComponentState
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


async def _database_component(session: AsyncSession) -> ComponentStatus:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Readiness database check failed", error=str(exc))
        return ComponentStatus(status="error", detail="Customer store unreachable")
    return ComponentStatus(status="ready")


def _scheduler_component(request: Request) -> ComponentStatus:
    scheduler = getattr(request.app.state, "job_scheduler", None)
    if not settings.job_scheduler_enabled or scheduler is None:
        return ComponentStatus(status="disabled", detail="Job scheduler disabled via settings")
    if not scheduler.is_running:
        return ComponentStatus(status="starting", detail="Job scheduler not running")
    failing = [
        job_id
        for job_id, job in get_job_scheduler_store().snapshot().jobs.items()
        if job["totals"].get("consecutive_failures", 0) > 0  # type: ignore[union-attr]
    ]
    if failing:
        return ComponentStatus(status="error", detail=f"Jobs failing: {', '.join(sorted(failing))}")
    return ComponentStatus(status="ready")


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components = {
        "customer_store": await _database_component(session),
        "job_scheduler": _scheduler_component(request),
    }
    status: Literal["ready", "degraded", "error"] = "ready"
    if components["customer_store"].status == "error":
        status = "error"
    elif components["job_scheduler"].status in ("error", "starting"):
        status = "degraded"
    return ReadinessPayload(status=status, components=components)
