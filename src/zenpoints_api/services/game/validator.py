"""Completion validation: the only path that turns a game into points."""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from loguru import logger

from zenpoints_api.core.clock import format_timestamp, utcnow
from zenpoints_api.core.logging import mask_identifier, nonce_prefix
from zenpoints_api.services.customers import CustomerNotFoundError, CustomerRecordStore, bounded
from zenpoints_api.services.loyalty.records import LOYALTY_ATTRIBUTE, LoyaltyRecord
from zenpoints_api.services.loyalty.tiers import TierAssignment, TierTable

from .config import GameProtocolConfig
from .cooldown import evaluate_cooldown
from .deck import solution_fingerprint
from .errors import (
    CooldownActiveError,
    IdentityMismatchError,
    ImplausibleTimingError,
    InvalidSignatureError,
    ReplayRejectedError,
    TokenExpiredError,
    WrongSolutionError,
)
from .issuer import SessionToken
from .progress import GAME_ATTRIBUTE, GameProgress
from .signer import SessionSigner


def compute_award(config: GameProtocolConfig, assignment: TierAssignment) -> int:
    """Points for a win.

    ``flat`` always pays ``win_points``; ``tier_scaled`` adds the customer's
    current discount percentage on top, rounded half up.
    """

    if config.award_mode == "tier_scaled":
        scaled = Decimal(config.win_points) * (Decimal(100) + Decimal(assignment.discount_percent)) / Decimal(100)
        return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return config.win_points


@dataclass(frozen=True, slots=True)
class CompletionOutcome:
    awarded_points: int
    new_balance: int
    lifetime_points: int
    tier: str
    discount_percent: int
    total_wins: int
    cooldown_ends_at: datetime

    def as_dict(self) -> dict[str, Any]:
        return {
            "awarded_points": self.awarded_points,
            "new_balance": self.new_balance,
            "lifetime_points": self.lifetime_points,
            "tier": self.tier,
            "discount_percent": self.discount_percent,
            "total_wins": self.total_wins,
            "cooldown_ends_at": format_timestamp(self.cooldown_ends_at),
        }


class CompletionValidator:
    """Checks a claimed win against its token and persists the award.

    Checks run in a fixed order: signature, identity, replay, lifetime,
    timing, cooldown, solution. The write is a compare-and-swap on the
    customer version read at the start, so of two concurrent completions at
    most one persists.
    """

    def __init__(
        self,
        store: CustomerRecordStore,
        config: GameProtocolConfig,
        tiers: TierTable,
        *,
        signer: SessionSigner | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._tiers = tiers
        self._signer = signer or SessionSigner(config)

    async def complete(
        self,
        customer_id: str,
        claimed_result: Any,
        token: SessionToken,
        *,
        now: datetime | None = None,
    ) -> CompletionOutcome:
        now = now or utcnow()

        if not self._signer.verify(token.claims(), token.signature):
            raise InvalidSignatureError()
        if not hmac.compare_digest(token.customer_id.encode("utf-8"), customer_id.encode("utf-8")):
            raise IdentityMismatchError()
        issued_at = token.issued_at_time
        if issued_at is None:
            raise InvalidSignatureError()

        customer = await bounded(
            self._store.find_by_external_id(customer_id),
            timeout_seconds=self._config.store_timeout_seconds,
        )
        if customer is None:
            raise CustomerNotFoundError()

        progress = GameProgress.from_attributes(customer.attributes)
        record = LoyaltyRecord.from_attributes(customer.attributes) or LoyaltyRecord.opened(now)

        if progress.last_nonce is not None and hmac.compare_digest(progress.last_nonce, token.nonce):
            raise ReplayRejectedError(already_awarded=True, current_balance=record.current_balance)

        elapsed = (now - issued_at).total_seconds()
        if elapsed > self._config.session_lifetime.total_seconds():
            raise TokenExpiredError()
        if elapsed < 0 or elapsed < self._config.min_solve_seconds:
            raise ImplausibleTimingError()

        status = evaluate_cooldown(progress.cooldown_ends_at, now)
        if not status.can_play:
            raise CooldownActiveError(status.cooldown_ends_at)  # type: ignore[arg-type]

        try:
            claimed_fingerprint = solution_fingerprint(
                token.nonce,
                claimed_result,
                expected_pairs=self._config.pairs,
            )
        except ValueError as exc:
            raise WrongSolutionError() from exc
        if not hmac.compare_digest(claimed_fingerprint, token.solution_fingerprint):
            raise WrongSolutionError()

        award = compute_award(self._config, record.tier(self._tiers))
        updated_record = record.credit(award, now=now, last_game_award=award, last_updated=format_timestamp(now))
        updated_progress = progress.record_win(
            now=now,
            nonce=token.nonce,
            cooldown=self._config.cooldown,
            elapsed_seconds=elapsed,
        )
        await bounded(
            self._store.update_attributes(
                customer.id,
                {
                    LOYALTY_ATTRIBUTE: updated_record.to_attributes(self._tiers),
                    GAME_ATTRIBUTE: updated_progress.to_attributes(),
                },
                expected_version=customer.version,
            ),
            timeout_seconds=self._config.store_timeout_seconds,
        )

        assignment = updated_record.tier(self._tiers)
        logger.info(
            "Memory game completed",
            customer=mask_identifier(customer_id),
            nonce=nonce_prefix(token.nonce),
            points=award,
            balance=updated_record.current_balance,
            tier=assignment.tier.value,
            elapsed_seconds=round(elapsed, 3),
        )
        return CompletionOutcome(
            awarded_points=award,
            new_balance=updated_record.current_balance,
            lifetime_points=updated_record.lifetime_points,
            tier=assignment.tier.value,
            discount_percent=assignment.discount_percent,
            total_wins=updated_progress.total_wins,
            cooldown_ends_at=updated_progress.cooldown_ends_at or now,
        )


__all__ = ["CompletionOutcome", "CompletionValidator", "compute_award"]
