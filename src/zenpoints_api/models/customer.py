"""Customer record carrying opaque per-customer attribute maps."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from zenpoints_api.db.base import Base


class Customer(Base):
    """Storefront customer keyed by the identity provider's external id.

    ``attributes`` holds namespaced maps (``zen_points``, ``memory_game``) that
    the core reads and rewrites wholesale. ``version`` increments on every
    attribute write and backs compare-and-swap updates.
    """

    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    external_id = Column(String(128), nullable=False, unique=True, index=True)
    email = Column(String, nullable=True)
    attributes = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1, server_default="1")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
