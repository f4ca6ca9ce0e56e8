from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Dict

from zenpoints_api.core.clock import format_timestamp, utcnow


@dataclass
class LoyaltySnapshot:
    game: Dict[str, int]
    rejections: Dict[str, int]
    points: Dict[str, int]
    reconciliation: Dict[str, object]

    def as_dict(self) -> Dict[str, object]:
        return {
            "game": dict(self.game),
            "rejections": dict(self.rejections),
            "points": dict(self.points),
            "reconciliation": dict(self.reconciliation),
        }


class LoyaltyObservabilityStore:
    """Collect memory game and zen points telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._game: Dict[str, int] = defaultdict(int)
        self._rejections: Dict[str, int] = defaultdict(int)
        self._points: Dict[str, int] = defaultdict(int)
        self._reconciliation: Dict[str, int] = defaultdict(int)
        self._last_reconciliation_at: datetime | None = None

    def record_session_started(self) -> None:
        with self._lock:
            self._game["sessions_started"] += 1

    def record_completion_accepted(self) -> None:
        with self._lock:
            self._game["completions_accepted"] += 1

    def record_rejection(self, code: str) -> None:
        with self._lock:
            self._game["completions_rejected"] += 1
            self._rejections[code] += 1

    def record_points_awarded(self, source: str, points: int) -> None:
        with self._lock:
            self._points["total"] += points
            self._points[f"source:{source}"] += points

    def record_reconciliation_run(self, *, processed: int, reset: int, failed: int) -> None:
        with self._lock:
            self._reconciliation["runs"] += 1
            self._reconciliation["processed"] += processed
            self._reconciliation["reset"] += reset
            self._reconciliation["failed"] += failed
            self._last_reconciliation_at = utcnow()

    def snapshot(self) -> LoyaltySnapshot:
        with self._lock:
            reconciliation: Dict[str, object] = dict(self._reconciliation)
            reconciliation["last_run_at"] = (
                format_timestamp(self._last_reconciliation_at) if self._last_reconciliation_at else None
            )
            return LoyaltySnapshot(
                game=dict(self._game),
                rejections=dict(self._rejections),
                points=dict(self._points),
                reconciliation=reconciliation,
            )

    def reset(self) -> None:
        with self._lock:
            self._game.clear()
            self._rejections.clear()
            self._points.clear()
            self._reconciliation.clear()
            self._last_reconciliation_at = None


_STORE = LoyaltyObservabilityStore()


def get_loyalty_store() -> LoyaltyObservabilityStore:
    return _STORE


__all__ = ["get_loyalty_store", "LoyaltyObservabilityStore", "LoyaltySnapshot"]
