"""Zen points record embedded in a customer's attribute map."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping

from zenpoints_api.core.clock import format_timestamp, parse_timestamp
from zenpoints_api.services.loyalty.tiers import TierAssignment, TierTable

LOYALTY_ATTRIBUTE = "zen_points"

_KNOWN_KEYS = {
    "current_balance",
    "lifetime_points",
    "tier",
    "discount_percent",
    "cycle_start_date",
    "previous_cycle_balance",
    "previous_cycle_end",
    "last_reset",
}


def _non_negative_int(value: object) -> int:
    try:
        number = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    return max(number, 0)


@dataclass(frozen=True, slots=True)
class LoyaltyRecord:
    """Points state for one accrual cycle.

    ``tier`` and ``discount_percent`` are not stored on the object; they are
    derived from ``current_balance`` whenever the record is serialized, so a
    written tier always matches the balance it accompanies. ``extras`` keeps
    keys owned by other writers (order bookkeeping, signup flags) intact.
    """

    current_balance: int = 0
    lifetime_points: int = 0
    cycle_start_date: datetime | None = None
    previous_cycle_balance: int | None = None
    previous_cycle_end: datetime | None = None
    last_reset: datetime | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_attributes(cls, attributes: Mapping[str, Any]) -> "LoyaltyRecord | None":
        raw = attributes.get(LOYALTY_ATTRIBUTE)
        if not isinstance(raw, Mapping):
            return None
        previous_balance = raw.get("previous_cycle_balance")
        return cls(
            current_balance=_non_negative_int(raw.get("current_balance")),
            lifetime_points=_non_negative_int(raw.get("lifetime_points")),
            cycle_start_date=parse_timestamp(raw.get("cycle_start_date")),
            previous_cycle_balance=_non_negative_int(previous_balance) if previous_balance is not None else None,
            previous_cycle_end=parse_timestamp(raw.get("previous_cycle_end")),
            last_reset=parse_timestamp(raw.get("last_reset")),
            extras={key: value for key, value in raw.items() if key not in _KNOWN_KEYS},
        )

    @classmethod
    def opened(cls, now: datetime, *, opening_balance: int = 0, **extras: Any) -> "LoyaltyRecord":
        opening = max(int(opening_balance), 0)
        return cls(current_balance=opening, lifetime_points=opening, cycle_start_date=now, extras=extras)

    def tier(self, tiers: TierTable) -> TierAssignment:
        return tiers.tier_of(self.current_balance)

    def credit(self, points: int, *, now: datetime | None = None, **extras: Any) -> "LoyaltyRecord":
        """Add ``points`` to both the cycle balance and the lifetime total.

        A record without a cycle start opens its cycle at ``now``.
        """

        if points < 0:
            raise ValueError("Credited points must be non-negative")
        return replace(
            self,
            cycle_start_date=self.cycle_start_date or now,
            current_balance=self.current_balance + points,
            lifetime_points=self.lifetime_points + points,
            extras={**self.extras, **extras},
        )

    def with_balance(self, balance: int, *, now: datetime | None = None, **extras: Any) -> "LoyaltyRecord":
        """Override the cycle balance; lifetime points never go down."""

        if balance < 0:
            raise ValueError("Balance must be non-negative")
        return replace(
            self,
            cycle_start_date=self.cycle_start_date or now,
            current_balance=balance,
            lifetime_points=max(self.lifetime_points, balance),
            extras={**self.extras, **extras},
        )

    def elapsed_cycle_days(self, now: datetime) -> int | None:
        if self.cycle_start_date is None:
            return None
        return math.floor((now - self.cycle_start_date).total_seconds() / 86_400)

    def days_until_reset(self, now: datetime, cycle_days: int) -> int:
        elapsed = self.elapsed_cycle_days(now)
        if elapsed is None:
            return cycle_days
        return max(0, cycle_days - elapsed)

    def rolled_over(self, now: datetime) -> "LoyaltyRecord":
        """Close the current cycle and open a fresh one starting at ``now``."""

        return replace(
            self,
            current_balance=0,
            previous_cycle_balance=self.current_balance,
            previous_cycle_end=self.cycle_start_date,
            cycle_start_date=now,
            last_reset=now,
        )

    def to_attributes(self, tiers: TierTable) -> dict[str, Any]:
        assignment = self.tier(tiers)
        payload: dict[str, Any] = {
            **self.extras,
            "current_balance": self.current_balance,
            "lifetime_points": self.lifetime_points,
            "tier": assignment.tier.value,
            "discount_percent": assignment.discount_percent,
            "cycle_start_date": format_timestamp(self.cycle_start_date) if self.cycle_start_date else None,
        }
        if self.previous_cycle_balance is not None:
            payload["previous_cycle_balance"] = self.previous_cycle_balance
        if self.previous_cycle_end is not None:
            payload["previous_cycle_end"] = format_timestamp(self.previous_cycle_end)
        if self.last_reset is not None:
            payload["last_reset"] = format_timestamp(self.last_reset)
        return payload


__all__ = ["LOYALTY_ATTRIBUTE", "LoyaltyRecord"]
