"""Operator snapshots of in-process zen points and scheduler metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from zenpoints_api.api.dependencies.security import require_admin_api_key
from zenpoints_api.observability.loyalty import get_loyalty_store
from zenpoints_api.observability.scheduler import get_job_scheduler_store

router = APIRouter(
    prefix="/observability",
    tags=["Observability"],
    dependencies=[Depends(require_admin_api_key)],
)


@router.get("/loyalty", summary="Memory game and zen points counters")
async def loyalty_snapshot() -> dict[str, object]:
    return get_loyalty_store().snapshot().as_dict()


@router.get("/scheduler", summary="Scheduled job metrics")
async def scheduler_snapshot() -> dict[str, object]:
    return get_job_scheduler_store().snapshot().as_dict()
