"""Zen points endpoints: enrollment, summaries, order awards and admin tools."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from zenpoints_api.api.dependencies.security import require_admin_api_key
from zenpoints_api.api.dependencies.session import require_caller_identity
from zenpoints_api.api.errors import to_http_exception
from zenpoints_api.db.session import get_session
from zenpoints_api.jobs.loyalty import CycleReconciliationJob
from zenpoints_api.services.customers import CustomerRecordStore
from zenpoints_api.services.errors import ZenPointsError
from zenpoints_api.services.loyalty import LoyaltyLedgerService, TierTable

router = APIRouter(prefix="/loyalty", tags=["loyalty"])


class LoyaltySummaryResponse(BaseModel):
    current_balance: int
    lifetime_points: int
    tier: str
    discount_percent: int
    next_tier: str | None
    points_to_next_tier: int | None
    cycle_start_date: str | None
    days_until_reset: int


class OrderAwardResponse(LoyaltySummaryResponse):
    order_id: str
    points_awarded: int
    already_awarded: bool


class EnrollRequest(BaseModel):
    email: str | None = Field(None, max_length=320)


class OrderAwardRequest(BaseModel):
    customer_id: str = Field(..., min_length=1, max_length=128)
    products_total: Decimal = Field(..., ge=0, description="Order subtotal in EUR, excluding shipping")


class BalanceOverrideRequest(BaseModel):
    customer_id: str = Field(..., min_length=1, max_length=128)
    points: int = Field(..., ge=0)


class ReconciliationRunResponse(BaseModel):
    total_at_start: int
    pages: int
    processed: int
    reset: int
    skipped: int
    failed: int
    truncated: bool


async def get_ledger_service(db: AsyncSession = Depends(get_session)) -> LoyaltyLedgerService:
    return LoyaltyLedgerService(CustomerRecordStore(db))


@router.get("/tiers", summary="Zen points tier table")
async def list_tiers() -> dict[str, dict[str, Any]]:
    return TierTable.from_settings().as_api_payload()


@router.post("/enroll", response_model=LoyaltySummaryResponse, summary="Open a zen points record")
async def enroll(
    payload: EnrollRequest | None = None,
    customer_id: str = Depends(require_caller_identity),
    service: LoyaltyLedgerService = Depends(get_ledger_service),
) -> dict[str, Any]:
    try:
        summary = await service.enroll(customer_id, email=payload.email if payload else None)
    except ZenPointsError as exc:
        raise to_http_exception(exc) from exc
    return summary.as_dict()


@router.get("/me", response_model=LoyaltySummaryResponse, summary="Current zen points summary")
async def my_summary(
    customer_id: str = Depends(require_caller_identity),
    service: LoyaltyLedgerService = Depends(get_ledger_service),
) -> dict[str, Any]:
    try:
        summary = await service.get_summary(customer_id)
    except ZenPointsError as exc:
        raise to_http_exception(exc) from exc
    return summary.as_dict()


@router.post(
    "/orders/{order_id}/award",
    response_model=OrderAwardResponse,
    dependencies=[Depends(require_admin_api_key)],
    summary="Award zen points for a completed order",
)
async def award_order(
    order_id: str,
    payload: OrderAwardRequest,
    service: LoyaltyLedgerService = Depends(get_ledger_service),
) -> dict[str, Any]:
    try:
        result = await service.award_order_points(payload.customer_id, order_id, payload.products_total)
    except ZenPointsError as exc:
        raise to_http_exception(exc) from exc
    return result.as_dict()


@router.post(
    "/admin/balance",
    response_model=LoyaltySummaryResponse,
    dependencies=[Depends(require_admin_api_key)],
    summary="Override a customer's zen points balance",
)
async def override_balance(
    payload: BalanceOverrideRequest,
    service: LoyaltyLedgerService = Depends(get_ledger_service),
) -> dict[str, Any]:
    try:
        summary = await service.set_balance(payload.customer_id, payload.points)
    except ZenPointsError as exc:
        raise to_http_exception(exc) from exc
    return summary.as_dict()


@router.post(
    "/admin/reconciliation",
    response_model=ReconciliationRunResponse,
    dependencies=[Depends(require_admin_api_key)],
    summary="Run cycle reconciliation now",
)
async def run_reconciliation(db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    try:
        summary = await CycleReconciliationJob(CustomerRecordStore(db)).run()
    except ZenPointsError as exc:
        raise to_http_exception(exc) from exc
    return summary.as_dict()
