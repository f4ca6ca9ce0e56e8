"""Daily roll-over of zen points accrual cycles."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from zenpoints_api.core.clock import utcnow
from zenpoints_api.core.logging import mask_identifier
from zenpoints_api.core.settings import settings
from zenpoints_api.observability.loyalty import get_loyalty_store
from zenpoints_api.services.customers import CustomerRecord, CustomerRecordStore, bounded
from zenpoints_api.services.errors import ZenPointsError
from zenpoints_api.services.loyalty.records import LOYALTY_ATTRIBUTE, LoyaltyRecord
from zenpoints_api.services.loyalty.tiers import TierTable

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


@dataclass
class ReconciliationSummary:
    total_at_start: int = 0
    pages: int = 0
    processed: int = 0
    reset: int = 0
    skipped: int = 0
    failed: int = 0
    truncated: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CycleReconciliationJob:
    """Roll over every loyalty record whose cycle has run its course.

    Records are visited through a keyset cursor on the customer id, so each
    record is seen at most once per run even when customers are added while
    the job runs. A reset moves ``cycle_start_date`` to ``now``; running the
    job again inside the same cycle therefore finds nothing to do.
    """

    def __init__(
        self,
        store: CustomerRecordStore,
        *,
        tiers: TierTable | None = None,
        cycle_days: int | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._store = store
        self._tiers = tiers or TierTable.from_settings()
        self._cycle_days = cycle_days if cycle_days is not None else settings.loyalty_cycle_days
        self._page_size = max(page_size or settings.reconciliation_page_size, 1)
        self._max_pages = max(max_pages or settings.reconciliation_max_pages, 1)
        self._timeout = timeout_seconds or settings.customer_store_timeout_seconds

    async def pages(self, summary: ReconciliationSummary) -> AsyncIterator[list[CustomerRecord]]:
        after: UUID | None = None
        while True:
            # Past the page limit, a single-row read tells whether anything was left behind.
            at_limit = summary.pages >= self._max_pages
            records, total = await bounded(
                self._store.list_page(limit=1 if at_limit else self._page_size, after=after),
                timeout_seconds=self._timeout,
            )
            if summary.pages == 0:
                summary.total_at_start = total
            if not records:
                return
            if at_limit:
                summary.truncated = True
                return
            summary.pages += 1
            yield records
            if len(records) < self._page_size:
                return
            after = records[-1].id

    async def run(self, *, now: datetime | None = None) -> ReconciliationSummary:
        now = now or utcnow()
        summary = ReconciliationSummary()
        async for page in self.pages(summary):
            for customer in page:
                await self._reconcile(customer, now, summary)
        if summary.truncated:
            logger.warning("Cycle reconciliation stopped at page limit", max_pages=self._max_pages)
        get_loyalty_store().record_reconciliation_run(
            processed=summary.processed,
            reset=summary.reset,
            failed=summary.failed,
        )
        return summary

    async def _reconcile(self, customer: CustomerRecord, now: datetime, summary: ReconciliationSummary) -> None:
        record = LoyaltyRecord.from_attributes(customer.attributes)
        if record is None:
            summary.skipped += 1
            return
        summary.processed += 1

        elapsed = record.elapsed_cycle_days(now)
        if elapsed is None or elapsed < self._cycle_days:
            return

        rolled = record.rolled_over(now)
        try:
            await bounded(
                self._store.update_attributes(
                    customer.id,
                    {LOYALTY_ATTRIBUTE: rolled.to_attributes(self._tiers)},
                    expected_version=customer.version,
                ),
                timeout_seconds=self._timeout,
            )
        except ZenPointsError as exc:
            summary.failed += 1
            logger.error(
                "Cycle reset failed",
                customer=mask_identifier(customer.external_id),
                code=exc.code.value,
            )
            return

        summary.reset += 1
        logger.info(
            "Zen points cycle reset",
            customer=mask_identifier(customer.external_id),
            previous_balance=record.current_balance,
            elapsed_days=elapsed,
        )


async def run_cycle_reconciliation(
    *,
    session_factory: SessionFactory,
    now: datetime | None = None,
    page_size: int | None = None,
    max_pages: int | None = None,
    cycle_days: int | None = None,
) -> Dict[str, Any]:
    """Scheduled entry point: reconcile every customer's accrual cycle."""

    maybe_session = session_factory()
    session: AsyncSession
    if isinstance(maybe_session, AsyncSession):
        session = maybe_session
    else:
        session = await maybe_session

    async with session as managed_session:
        job = CycleReconciliationJob(
            CustomerRecordStore(managed_session),
            cycle_days=cycle_days,
            page_size=page_size,
            max_pages=max_pages,
        )
        summary = (await job.run(now=now)).as_dict()

    logger.bind(summary=summary).info("Cycle reconciliation completed")
    return summary


__all__ = ["CycleReconciliationJob", "ReconciliationSummary", "run_cycle_reconciliation"]
