"""Session issuance: cooldown check, deck, nonce and signed token."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from loguru import logger

from zenpoints_api.core.clock import format_timestamp, parse_timestamp, utcnow
from zenpoints_api.core.logging import mask_identifier, nonce_prefix
from zenpoints_api.services.customers import CustomerNotFoundError, CustomerRecordStore, bounded

from .config import GameProtocolConfig
from .cooldown import evaluate_cooldown
from .deck import Deck, DeckGenerator, solution_fingerprint
from .errors import CooldownActiveError
from .progress import GameProgress
from .signer import SessionSigner

TOKEN_VERSION = 1


@dataclass(frozen=True, slots=True)
class SessionToken:
    """Signed session claims as handed to and returned by the caller.

    ``issued_at`` stays the exact string that was signed; it is only parsed
    after the signature has been checked.
    """

    nonce: str
    issued_at: str
    solution_fingerprint: str
    customer_id: str
    signature: str = ""

    def claims(self) -> dict[str, Any]:
        return {
            "v": TOKEN_VERSION,
            "nonce": self.nonce,
            "issued_at": self.issued_at,
            "fingerprint": self.solution_fingerprint,
            "customer_id": self.customer_id,
        }

    @property
    def issued_at_time(self) -> datetime | None:
        return parse_timestamp(self.issued_at)

    def as_dict(self) -> dict[str, str]:
        return {
            "nonce": self.nonce,
            "issued_at": self.issued_at,
            "solution_fingerprint": self.solution_fingerprint,
            "customer_id": self.customer_id,
            "signature": self.signature,
        }


@dataclass(frozen=True, slots=True)
class IssuedSession:
    deck: Deck
    token: SessionToken
    expires_at: datetime

    def as_dict(self) -> dict[str, Any]:
        return {
            "deck": self.deck.as_payload(),
            "pairs": len(self.deck.solution),
            **self.token.as_dict(),
            "expires_at": format_timestamp(self.expires_at),
        }


def generate_nonce() -> str:
    return secrets.token_hex(16)


class SessionIssuer:
    """Hands out playable sessions without writing anything to the store."""

    def __init__(
        self,
        store: CustomerRecordStore,
        config: GameProtocolConfig,
        *,
        signer: SessionSigner | None = None,
        deck_generator: DeckGenerator | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._signer = signer or SessionSigner(config)
        self._decks = deck_generator or DeckGenerator()

    async def start(self, customer_id: str, *, now: datetime | None = None) -> IssuedSession:
        now = now or utcnow()
        customer = await bounded(
            self._store.find_by_external_id(customer_id),
            timeout_seconds=self._config.store_timeout_seconds,
        )
        if customer is None:
            raise CustomerNotFoundError()

        progress = GameProgress.from_attributes(customer.attributes)
        status = evaluate_cooldown(progress.cooldown_ends_at, now)
        if not status.can_play:
            raise CooldownActiveError(status.cooldown_ends_at)  # type: ignore[arg-type]

        nonce = generate_nonce()
        deck = self._decks.generate(self._config.pairs)
        unsigned = SessionToken(
            nonce=nonce,
            issued_at=format_timestamp(now),
            solution_fingerprint=solution_fingerprint(nonce, deck.solution),
            customer_id=customer_id,
        )
        token = replace(unsigned, signature=self._signer.sign(unsigned.claims()))

        logger.info(
            "Memory game session issued",
            customer=mask_identifier(customer_id),
            nonce=nonce_prefix(nonce),
            pairs=self._config.pairs,
        )
        return IssuedSession(deck=deck, token=token, expires_at=now + self._config.session_lifetime)


__all__ = ["IssuedSession", "SessionIssuer", "SessionToken", "TOKEN_VERSION", "generate_nonce"]
