from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from zenpoints_api.core.clock import ensure_aware, format_timestamp


@dataclass(frozen=True, slots=True)
class CooldownStatus:
    can_play: bool
    cooldown_ends_at: datetime | None
    remaining_seconds: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "can_play": self.can_play,
            "cooldown_ends_at": format_timestamp(self.cooldown_ends_at) if self.cooldown_ends_at else None,
            "remaining_seconds": self.remaining_seconds,
        }


def evaluate_cooldown(cooldown_ends_at: datetime | None, now: datetime) -> CooldownStatus:
    """A customer may play when no cooldown is stored or it ended strictly before ``now``."""

    if cooldown_ends_at is None:
        return CooldownStatus(can_play=True, cooldown_ends_at=None)
    ends_at = ensure_aware(cooldown_ends_at)
    now = ensure_aware(now)
    if ends_at < now:
        return CooldownStatus(can_play=True, cooldown_ends_at=ends_at)
    return CooldownStatus(
        can_play=False,
        cooldown_ends_at=ends_at,
        remaining_seconds=(ends_at - now).total_seconds(),
    )


__all__ = ["CooldownStatus", "evaluate_cooldown"]
