"""Timestamp helpers shared by the game protocol and the points ledger."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return ensure_aware(value).isoformat()


def parse_timestamp(value: object) -> datetime | None:
    """Read a stored timestamp, tolerating ``Z`` suffixes and naive values.

    Missing or unparseable values come back as ``None``.
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        return ensure_aware(datetime.fromisoformat(text))
    except ValueError:
        return None


__all__ = ["ensure_aware", "format_timestamp", "parse_timestamp", "utcnow"]
