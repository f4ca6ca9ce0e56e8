"""Memory game facade used by the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from zenpoints_api.core.clock import format_timestamp, utcnow
from zenpoints_api.core.logging import mask_identifier, nonce_prefix
from zenpoints_api.observability.loyalty import get_loyalty_store
from zenpoints_api.services.customers import CustomerNotFoundError, CustomerRecordStore, bounded
from zenpoints_api.services.errors import ErrorCategory, ZenPointsError
from zenpoints_api.services.loyalty.tiers import TierTable

from .config import GameProtocolConfig
from .cooldown import evaluate_cooldown
from .deck import DeckGenerator
from .issuer import IssuedSession, SessionIssuer, SessionToken
from .progress import GameProgress
from .signer import SessionSigner
from .validator import CompletionOutcome, CompletionValidator


@dataclass(frozen=True, slots=True)
class GameStatus:
    can_play: bool
    cooldown_ends_at: datetime | None
    last_played_at: datetime | None
    total_wins: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "can_play": self.can_play,
            "cooldown_ends_at": format_timestamp(self.cooldown_ends_at) if self.cooldown_ends_at else None,
            "last_played_at": format_timestamp(self.last_played_at) if self.last_played_at else None,
            "total_wins": self.total_wins,
        }


class MemoryGameService:
    """Wire the issuer and validator to one store and record telemetry."""

    def __init__(
        self,
        store: CustomerRecordStore,
        *,
        config: GameProtocolConfig | None = None,
        tiers: TierTable | None = None,
        deck_generator: DeckGenerator | None = None,
    ) -> None:
        self._store = store
        self._config = config or GameProtocolConfig.from_settings()
        self._tiers = tiers or TierTable.from_settings()
        signer = SessionSigner(self._config)
        self._issuer = SessionIssuer(store, self._config, signer=signer, deck_generator=deck_generator)
        self._validator = CompletionValidator(store, self._config, self._tiers, signer=signer)
        self._observability = get_loyalty_store()

    async def start_session(self, customer_id: str, *, now: datetime | None = None) -> IssuedSession:
        try:
            session = await self._issuer.start(customer_id, now=now)
        except ZenPointsError as exc:
            self._observability.record_rejection(exc.code.value)
            logger.info("Memory game start denied", customer=mask_identifier(customer_id), code=exc.code.value)
            raise
        self._observability.record_session_started()
        return session

    async def complete_session(
        self,
        customer_id: str,
        token: SessionToken,
        claimed_result: Any,
        *,
        now: datetime | None = None,
    ) -> CompletionOutcome:
        try:
            outcome = await self._validator.complete(customer_id, claimed_result, token, now=now)
        except ZenPointsError as exc:
            self._observability.record_rejection(exc.code.value)
            log = logger.warning if exc.category is ErrorCategory.PROTOCOL else logger.info
            log(
                "Memory game completion rejected",
                customer=mask_identifier(customer_id),
                nonce=nonce_prefix(token.nonce),
                code=exc.code.value,
                category=exc.category.value,
            )
            raise
        self._observability.record_completion_accepted()
        self._observability.record_points_awarded("memory_game", outcome.awarded_points)
        return outcome

    async def get_status(self, customer_id: str, *, now: datetime | None = None) -> GameStatus:
        now = now or utcnow()
        customer = await bounded(
            self._store.find_by_external_id(customer_id),
            timeout_seconds=self._config.store_timeout_seconds,
        )
        if customer is None:
            raise CustomerNotFoundError()
        progress = GameProgress.from_attributes(customer.attributes)
        status = evaluate_cooldown(progress.cooldown_ends_at, now)
        return GameStatus(
            can_play=status.can_play,
            cooldown_ends_at=None if status.can_play else status.cooldown_ends_at,
            last_played_at=progress.last_played_at,
            total_wins=progress.total_wins,
        )


__all__ = ["GameStatus", "MemoryGameService"]
