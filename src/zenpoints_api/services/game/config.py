"""Immutable protocol configuration for the memory game."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Literal

from zenpoints_api.core.settings import Settings, settings

AwardMode = Literal["flat", "tier_scaled"]


@dataclass(frozen=True, slots=True)
class GameProtocolConfig:
    """Everything the signer, issuer and validator need, fixed at construction.

    The signing secret is excluded from ``repr`` so the config can be logged
    or shown in tracebacks without leaking it.
    """

    signing_secret: bytes = field(repr=False)
    pairs: int = 9
    session_lifetime: timedelta = timedelta(minutes=5)
    min_seconds_per_pair: float = 1.0
    cooldown: timedelta = timedelta(hours=24)
    win_points: int = 10
    award_mode: AwardMode = "flat"
    store_timeout_seconds: float = 5.0

    def __post_init__(self) -> None:
        if not self.signing_secret:
            raise ValueError("Game signing secret must not be empty")
        if self.pairs < 1:
            raise ValueError("A deck needs at least one pair")
        if self.win_points < 0:
            raise ValueError("Win points must be non-negative")

    @property
    def min_solve_seconds(self) -> float:
        return self.pairs * self.min_seconds_per_pair

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "GameProtocolConfig":
        config = config or settings
        return cls(
            signing_secret=config.game_signing_secret.get_secret_value().encode("utf-8"),
            pairs=config.memory_game_pairs,
            session_lifetime=timedelta(seconds=config.memory_game_session_lifetime_seconds),
            min_seconds_per_pair=config.memory_game_min_seconds_per_pair,
            cooldown=timedelta(seconds=config.memory_game_cooldown_seconds),
            win_points=config.memory_game_win_points,
            award_mode=config.memory_game_award_mode,
            store_timeout_seconds=config.customer_store_timeout_seconds,
        )


__all__ = ["AwardMode", "GameProtocolConfig"]
