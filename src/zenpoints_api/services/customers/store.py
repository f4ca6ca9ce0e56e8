"""Customer record store backed by the ``customers`` table."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from typing import Any, Awaitable, Mapping, TypeVar
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from zenpoints_api.core.logging import mask_identifier
from zenpoints_api.models.customer import Customer
from zenpoints_api.services.errors import ErrorCategory, ErrorCode, ZenPointsError

T = TypeVar("T")


class CustomerStoreError(ZenPointsError):
    """Base exception for customer store failures."""

    code = ErrorCode.STORE_UNAVAILABLE
    category = ErrorCategory.INFRASTRUCTURE
    default_message = "Customer store request failed"


class CustomerNotFoundError(CustomerStoreError):
    """Raised when a customer record does not exist."""

    code = ErrorCode.CUSTOMER_NOT_FOUND
    default_message = "Customer not found. Please sync your account first."


class StaleCustomerVersionError(CustomerStoreError):
    """Raised when a compare-and-swap update loses to a concurrent writer."""

    code = ErrorCode.CONCURRENT_UPDATE
    category = ErrorCategory.CONCURRENCY
    default_message = "Customer record was modified concurrently"


class StoreUnavailableError(CustomerStoreError):
    """Raised when the store does not answer within the configured timeout."""

    default_message = "Customer store unavailable"


class DuplicateCustomerError(CustomerStoreError):
    """Raised when another writer created the same external id first."""

    code = ErrorCode.CONCURRENT_UPDATE
    category = ErrorCategory.CONCURRENCY
    default_message = "Customer was created concurrently"


@dataclass(slots=True)
class CustomerRecord:
    """Detached snapshot of a customer row."""

    id: UUID
    external_id: str
    email: str | None
    version: int
    attributes: dict[str, Any] = field(default_factory=dict)


async def bounded(awaitable: Awaitable[T], *, timeout_seconds: float) -> T:
    """Await a store call, failing closed when it exceeds ``timeout_seconds``."""

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        logger.warning("Customer store call timed out", timeout_seconds=timeout_seconds)
        raise StoreUnavailableError() from exc


_RECORD_COLUMNS = (
    Customer.id,
    Customer.external_id,
    Customer.email,
    Customer.version,
    Customer.attributes,
)


def _to_record(row: Any) -> CustomerRecord:
    return CustomerRecord(
        id=row.id,
        external_id=row.external_id,
        email=row.email,
        version=int(row.version),
        attributes=copy.deepcopy(dict(row.attributes or {})),
    )


class CustomerRecordStore:
    """Read, paginate and patch customer attribute maps.

    Rows are read column-wise so callers always see committed values rather
    than identity-map copies. ``update_attributes`` commits per call; each
    write is atomic on its own.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def list_page(self, *, limit: int, after: UUID | None = None) -> tuple[list[CustomerRecord], int]:
        """Return up to ``limit`` records ordered by id, starting after ``after``."""

        stmt = select(*_RECORD_COLUMNS).order_by(Customer.id.asc()).limit(limit)
        if after is not None:
            stmt = stmt.where(Customer.id > after)
        rows = (await self._db.execute(stmt)).all()
        total = await self._db.scalar(select(func.count()).select_from(Customer))
        return [_to_record(row) for row in rows], int(total or 0)

    async def get(self, customer_id: UUID) -> CustomerRecord | None:
        stmt = select(*_RECORD_COLUMNS).where(Customer.id == customer_id)
        row = (await self._db.execute(stmt)).one_or_none()
        return _to_record(row) if row is not None else None

    async def find_by_external_id(self, external_id: str) -> CustomerRecord | None:
        stmt = select(*_RECORD_COLUMNS).where(Customer.external_id == external_id)
        row = (await self._db.execute(stmt)).one_or_none()
        return _to_record(row) if row is not None else None

    async def create(
        self,
        external_id: str,
        *,
        email: str | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> CustomerRecord:
        customer_id = uuid4()
        snapshot = copy.deepcopy(dict(attributes or {}))
        try:
            self._db.add(
                Customer(id=customer_id, external_id=external_id, email=email, attributes=snapshot, version=1)
            )
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            logger.info("Customer already exists", customer=mask_identifier(external_id))
            raise DuplicateCustomerError() from exc
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.warning("Customer create failed", error=str(exc))
            raise CustomerStoreError() from exc
        return CustomerRecord(
            id=customer_id,
            external_id=external_id,
            email=email,
            version=1,
            attributes=copy.deepcopy(snapshot),
        )

    async def update_attributes(
        self,
        customer_id: UUID,
        patch: Mapping[str, Any],
        *,
        expected_version: int | None = None,
    ) -> CustomerRecord:
        """Merge ``patch`` into the top-level attribute map.

        With ``expected_version`` the write only applies when the stored
        version still matches; otherwise ``StaleCustomerVersionError``.
        """

        try:
            current = await self.get(customer_id)
            if current is None:
                raise CustomerNotFoundError()
            if expected_version is not None and current.version != expected_version:
                raise StaleCustomerVersionError()

            merged = {**current.attributes, **copy.deepcopy(dict(patch))}
            stmt = (
                update(Customer)
                .where(Customer.id == customer_id, Customer.version == current.version)
                .values(attributes=merged, version=current.version + 1)
                .execution_options(synchronize_session=False)
            )
            result = await self._db.execute(stmt)
            if result.rowcount != 1:
                await self._db.rollback()
                raise StaleCustomerVersionError()
            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.warning("Customer attribute update failed", error=str(exc))
            raise CustomerStoreError() from exc

        current.attributes = merged
        current.version += 1
        return current


__all__ = [
    "CustomerNotFoundError",
    "CustomerRecord",
    "CustomerRecordStore",
    "CustomerStoreError",
    "DuplicateCustomerError",
    "StaleCustomerVersionError",
    "StoreUnavailableError",
    "bounded",
]
