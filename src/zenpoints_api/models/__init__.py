"""SQLAlchemy models package."""

from .customer import Customer  # noqa: F401

__all__ = ["Customer"]
