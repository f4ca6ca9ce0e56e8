"""Service layer for zen points enrollment, order awards and summaries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from loguru import logger

from zenpoints_api.core.clock import format_timestamp, utcnow
from zenpoints_api.core.logging import mask_identifier
from zenpoints_api.core.settings import Settings, settings
from zenpoints_api.observability.loyalty import get_loyalty_store
from zenpoints_api.services.customers import (
    CustomerNotFoundError,
    CustomerRecord,
    CustomerRecordStore,
    DuplicateCustomerError,
    bounded,
)
from zenpoints_api.services.errors import InvalidRequestError
from zenpoints_api.services.loyalty.records import LOYALTY_ATTRIBUTE, LoyaltyRecord
from zenpoints_api.services.loyalty.tiers import TierTable


def calculate_points_for_order(products_total: Decimal, points_per_euro: Decimal) -> int:
    """Points earned for a products total in whole euros, rounded half up."""

    if products_total <= 0:
        return 0
    points = (products_total * points_per_euro).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(points)


@dataclass
class LoyaltySummary:
    """Serializable zen points overview for a customer."""

    current_balance: int
    lifetime_points: int
    tier: str
    discount_percent: int
    next_tier: str | None
    points_to_next_tier: int | None
    cycle_start_date: datetime | None
    days_until_reset: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "current_balance": self.current_balance,
            "lifetime_points": self.lifetime_points,
            "tier": self.tier,
            "discount_percent": self.discount_percent,
            "next_tier": self.next_tier,
            "points_to_next_tier": self.points_to_next_tier,
            "cycle_start_date": format_timestamp(self.cycle_start_date) if self.cycle_start_date else None,
            "days_until_reset": self.days_until_reset,
        }


@dataclass
class OrderAwardResult:
    order_id: str
    points_awarded: int
    already_awarded: bool
    summary: LoyaltySummary

    def as_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "points_awarded": self.points_awarded,
            "already_awarded": self.already_awarded,
            **self.summary.as_dict(),
        }


class LoyaltyLedgerService:
    """Coordinates zen points writes outside of the memory game.

    Every write goes through the store's compare-and-swap update so that it
    cannot interleave with a concurrent game completion.
    """

    def __init__(
        self,
        store: CustomerRecordStore,
        *,
        tiers: TierTable | None = None,
        config: Settings | None = None,
    ) -> None:
        self._store = store
        self._config = config or settings
        self._tiers = tiers or TierTable.from_settings(self._config)
        self._timeout = self._config.customer_store_timeout_seconds
        self._observability = get_loyalty_store()

    @property
    def tiers(self) -> TierTable:
        return self._tiers

    async def _require_customer(self, external_id: str) -> CustomerRecord:
        customer = await bounded(self._store.find_by_external_id(external_id), timeout_seconds=self._timeout)
        if customer is None:
            raise CustomerNotFoundError()
        return customer

    def summarize(self, record: LoyaltyRecord, now: datetime) -> LoyaltySummary:
        assignment = record.tier(self._tiers)
        upcoming = self._tiers.next_band(record.current_balance)
        return LoyaltySummary(
            current_balance=record.current_balance,
            lifetime_points=record.lifetime_points,
            tier=assignment.tier.value,
            discount_percent=assignment.discount_percent,
            next_tier=upcoming.tier.value if upcoming else None,
            points_to_next_tier=self._tiers.points_to_next_tier(record.current_balance),
            cycle_start_date=record.cycle_start_date,
            days_until_reset=record.days_until_reset(now, self._config.loyalty_cycle_days),
        )

    async def enroll(self, external_id: str, *, email: str | None = None, now: datetime | None = None) -> LoyaltySummary:
        """Create the customer (if needed) and open a points record with the signup bonus.

        Customers that already carry a points record are returned unchanged.
        """

        now = now or utcnow()
        customer = await bounded(self._store.find_by_external_id(external_id), timeout_seconds=self._timeout)
        if customer is None:
            try:
                customer = await bounded(
                    self._store.create(external_id, email=email),
                    timeout_seconds=self._timeout,
                )
            except DuplicateCustomerError:
                customer = await self._require_customer(external_id)

        existing = LoyaltyRecord.from_attributes(customer.attributes)
        if existing is not None:
            return self.summarize(existing, now)

        bonus = self._config.loyalty_signup_bonus
        record = LoyaltyRecord.opened(now, opening_balance=bonus, signup_bonus_applied=True)
        await bounded(
            self._store.update_attributes(
                customer.id,
                {LOYALTY_ATTRIBUTE: record.to_attributes(self._tiers)},
                expected_version=customer.version,
            ),
            timeout_seconds=self._timeout,
        )
        logger.info(
            "Zen points record opened",
            customer=mask_identifier(external_id),
            signup_bonus=bonus,
        )
        return self.summarize(record, now)

    async def get_summary(self, external_id: str, *, now: datetime | None = None) -> LoyaltySummary:
        now = now or utcnow()
        customer = await self._require_customer(external_id)
        record = LoyaltyRecord.from_attributes(customer.attributes) or LoyaltyRecord.opened(now)
        return self.summarize(record, now)

    async def award_order_points(
        self,
        external_id: str,
        order_id: str,
        products_total: Decimal,
        *,
        now: datetime | None = None,
    ) -> OrderAwardResult:
        """Credit points for a completed order once per order id.

        ``products_total`` excludes shipping and is taken before discounts.
        """

        now = now or utcnow()
        customer = await self._require_customer(external_id)
        record = LoyaltyRecord.from_attributes(customer.attributes) or LoyaltyRecord.opened(now)

        if record.extras.get("last_order_id") == order_id:
            logger.info("Order points already awarded", order_id=order_id, customer=mask_identifier(external_id))
            return OrderAwardResult(
                order_id=order_id,
                points_awarded=int(record.extras.get("last_points_awarded") or 0),
                already_awarded=True,
                summary=self.summarize(record, now),
            )

        points = calculate_points_for_order(
            products_total,
            Decimal(str(self._config.loyalty_points_per_euro)),
        )
        if points <= 0:
            logger.info("Order total too low for points", order_id=order_id, products_total=str(products_total))
            return OrderAwardResult(
                order_id=order_id,
                points_awarded=0,
                already_awarded=False,
                summary=self.summarize(record, now),
            )

        updated = record.credit(
            points,
            now=now,
            last_order_id=order_id,
            last_points_awarded=points,
            last_updated=format_timestamp(now),
        )
        await bounded(
            self._store.update_attributes(
                customer.id,
                {LOYALTY_ATTRIBUTE: updated.to_attributes(self._tiers)},
                expected_version=customer.version,
            ),
            timeout_seconds=self._timeout,
        )
        self._observability.record_points_awarded("order", points)
        summary = self.summarize(updated, now)
        logger.info(
            "Order points awarded",
            order_id=order_id,
            customer=mask_identifier(external_id),
            points=points,
            balance=summary.current_balance,
            tier=summary.tier,
        )
        return OrderAwardResult(order_id=order_id, points_awarded=points, already_awarded=False, summary=summary)

    async def set_balance(self, external_id: str, points: int, *, now: datetime | None = None) -> LoyaltySummary:
        """Operator override of the cycle balance; the cycle start date is preserved."""

        if points < 0:
            raise InvalidRequestError("Points must be a non-negative number")
        now = now or utcnow()
        customer = await self._require_customer(external_id)
        record = LoyaltyRecord.from_attributes(customer.attributes) or LoyaltyRecord.opened(now)
        updated = record.with_balance(points, now=now, last_updated=format_timestamp(now))
        await bounded(
            self._store.update_attributes(
                customer.id,
                {LOYALTY_ATTRIBUTE: updated.to_attributes(self._tiers)},
                expected_version=customer.version,
            ),
            timeout_seconds=self._timeout,
        )
        logger.warning("Zen points balance overridden", customer=mask_identifier(external_id), points=points)
        return self.summarize(updated, now)


__all__ = ["LoyaltyLedgerService", "LoyaltySummary", "OrderAwardResult", "calculate_points_for_order"]
