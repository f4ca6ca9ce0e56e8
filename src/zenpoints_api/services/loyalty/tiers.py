"""Tier engine mapping a zen points balance to its tier and discount."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from zenpoints_api.core.settings import Settings, settings


class LoyaltyTier(str, Enum):
    """Loyalty tiers in ascending order."""

    SEED = "seed"
    SPROUT = "sprout"
    BLOSSOM = "blossom"
    LOTUS = "lotus"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)


_TIER_ORDER = (LoyaltyTier.SEED, LoyaltyTier.SPROUT, LoyaltyTier.BLOSSOM, LoyaltyTier.LOTUS)


@dataclass(frozen=True, slots=True)
class TierBand:
    tier: LoyaltyTier
    min_points: int
    discount_percent: int

    @property
    def name(self) -> str:
        return self.tier.value.capitalize()


@dataclass(frozen=True, slots=True)
class TierAssignment:
    tier: LoyaltyTier
    discount_percent: int


class TierTable:
    """Ordered, immutable tier thresholds.

    Thresholds must start at zero and strictly ascend; discounts must not
    decrease. Together these keep ``tier_of`` monotonic in the balance.
    """

    def __init__(self, bands: list[TierBand] | tuple[TierBand, ...]) -> None:
        ordered = tuple(sorted(bands, key=lambda band: band.tier.rank))
        if [band.tier for band in ordered] != list(_TIER_ORDER):
            raise ValueError("Tier table must define every tier exactly once")
        if ordered[0].min_points != 0:
            raise ValueError("Lowest tier must start at zero points")
        for lower, upper in zip(ordered, ordered[1:]):
            if upper.min_points <= lower.min_points:
                raise ValueError(f"Threshold for {upper.tier.value} must exceed {lower.tier.value}")
            if upper.discount_percent < lower.discount_percent:
                raise ValueError(f"Discount for {upper.tier.value} must not be lower than {lower.tier.value}")
        self._bands = ordered

    @classmethod
    def from_mappings(cls, thresholds: Mapping[str, int], discounts: Mapping[str, int]) -> "TierTable":
        bands = []
        for tier in _TIER_ORDER:
            if tier.value not in thresholds or tier.value not in discounts:
                raise ValueError(f"Missing tier configuration for {tier.value}")
            bands.append(
                TierBand(
                    tier=tier,
                    min_points=int(thresholds[tier.value]),
                    discount_percent=int(discounts[tier.value]),
                )
            )
        return cls(bands)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "TierTable":
        config = config or settings
        return cls.from_mappings(config.loyalty_tier_thresholds, config.loyalty_tier_discounts)

    @property
    def bands(self) -> tuple[TierBand, ...]:
        return self._bands

    def band_for(self, balance: int) -> TierBand:
        selected = self._bands[0]
        for band in self._bands:
            if balance >= band.min_points:
                selected = band
        return selected

    def tier_of(self, balance: int) -> TierAssignment:
        band = self.band_for(max(int(balance), 0))
        return TierAssignment(tier=band.tier, discount_percent=band.discount_percent)

    def next_band(self, balance: int) -> TierBand | None:
        for band in self._bands:
            if band.min_points > balance:
                return band
        return None

    def points_to_next_tier(self, balance: int) -> int | None:
        upcoming = self.next_band(balance)
        if upcoming is None:
            return None
        return upcoming.min_points - max(int(balance), 0)

    def as_api_payload(self) -> dict[str, dict[str, Any]]:
        """Describe the table for clients; the open-ended top tier has ``max = None``."""

        payload: dict[str, dict[str, Any]] = {}
        for index, band in enumerate(self._bands):
            following = self._bands[index + 1] if index + 1 < len(self._bands) else None
            payload[band.tier.value] = {
                "min": band.min_points,
                "max": following.min_points - 1 if following else None,
                "discount": band.discount_percent,
                "name": band.name,
            }
        return payload


__all__ = ["LoyaltyTier", "TierAssignment", "TierBand", "TierTable"]
