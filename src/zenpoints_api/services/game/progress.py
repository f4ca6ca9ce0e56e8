"""Memory game bookkeeping embedded in a customer's attribute map."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Mapping

from zenpoints_api.core.clock import format_timestamp, parse_timestamp

GAME_ATTRIBUTE = "memory_game"

_KNOWN_KEYS = {"last_played_at", "cooldown_ends_at", "last_nonce", "total_wins", "last_win_seconds"}


@dataclass(frozen=True, slots=True)
class GameProgress:
    last_played_at: datetime | None = None
    cooldown_ends_at: datetime | None = None
    last_nonce: str | None = None
    total_wins: int = 0
    last_win_seconds: float | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_attributes(cls, attributes: Mapping[str, Any]) -> "GameProgress":
        raw = attributes.get(GAME_ATTRIBUTE)
        if not isinstance(raw, Mapping):
            return cls()
        try:
            total_wins = max(int(raw.get("total_wins") or 0), 0)
        except (TypeError, ValueError):
            total_wins = 0
        last_nonce = raw.get("last_nonce")
        last_win = raw.get("last_win_seconds")
        return cls(
            last_played_at=parse_timestamp(raw.get("last_played_at")),
            cooldown_ends_at=parse_timestamp(raw.get("cooldown_ends_at")),
            last_nonce=last_nonce if isinstance(last_nonce, str) and last_nonce else None,
            total_wins=total_wins,
            last_win_seconds=float(last_win) if isinstance(last_win, (int, float)) else None,
            extras={key: value for key, value in raw.items() if key not in _KNOWN_KEYS},
        )

    def record_win(self, *, now: datetime, nonce: str, cooldown: timedelta, elapsed_seconds: float) -> "GameProgress":
        """Consume ``nonce`` and start the cooldown; the nonce is kept for replay checks."""

        return replace(
            self,
            last_played_at=now,
            cooldown_ends_at=now + cooldown,
            last_nonce=nonce,
            total_wins=self.total_wins + 1,
            last_win_seconds=round(elapsed_seconds, 3),
        )

    def to_attributes(self) -> dict[str, Any]:
        return {
            **self.extras,
            "last_played_at": format_timestamp(self.last_played_at) if self.last_played_at else None,
            "cooldown_ends_at": format_timestamp(self.cooldown_ends_at) if self.cooldown_ends_at else None,
            "last_nonce": self.last_nonce,
            "total_wins": self.total_wins,
            "last_win_seconds": self.last_win_seconds,
        }


__all__ = ["GAME_ATTRIBUTE", "GameProgress"]
