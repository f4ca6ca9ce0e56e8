"""Memory game session protocol."""

from .config import GameProtocolConfig
from .cooldown import CooldownStatus, evaluate_cooldown
from .deck import ZEN_CARD_TYPES, Deck, DeckGenerator, GameCard, normalize_pairs, solution_fingerprint
from .errors import (
    CooldownActiveError,
    GameplayError,
    GameProtocolError,
    IdentityMismatchError,
    ImplausibleTimingError,
    InvalidSignatureError,
    ReplayRejectedError,
    TokenExpiredError,
    WrongSolutionError,
)
from .issuer import IssuedSession, SessionIssuer, SessionToken
from .progress import GAME_ATTRIBUTE, GameProgress
from .service import GameStatus, MemoryGameService
from .signer import SessionSigner
from .validator import CompletionOutcome, CompletionValidator, compute_award

__all__ = [
    "GAME_ATTRIBUTE",
    "ZEN_CARD_TYPES",
    "CompletionOutcome",
    "CompletionValidator",
    "CooldownActiveError",
    "CooldownStatus",
    "Deck",
    "DeckGenerator",
    "GameCard",
    "GameProgress",
    "GameProtocolConfig",
    "GameProtocolError",
    "GameStatus",
    "GameplayError",
    "IdentityMismatchError",
    "ImplausibleTimingError",
    "InvalidSignatureError",
    "IssuedSession",
    "MemoryGameService",
    "ReplayRejectedError",
    "SessionIssuer",
    "SessionSigner",
    "SessionToken",
    "TokenExpiredError",
    "WrongSolutionError",
    "compute_award",
    "evaluate_cooldown",
    "normalize_pairs",
    "solution_fingerprint",
]
