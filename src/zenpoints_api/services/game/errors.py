from __future__ import annotations

from datetime import datetime

from zenpoints_api.core.clock import format_timestamp
from zenpoints_api.services.errors import ErrorCategory, ErrorCode, ZenPointsError


class GameProtocolError(ZenPointsError):
    """Token integrity failures. Always rejected, never retried."""

    category = ErrorCategory.PROTOCOL


class InvalidSignatureError(GameProtocolError):
    code = ErrorCode.INVALID_SIGNATURE
    default_message = "Game session signature is invalid"


class IdentityMismatchError(GameProtocolError):
    code = ErrorCode.IDENTITY_MISMATCH
    default_message = "Game session belongs to a different customer"


class ReplayRejectedError(GameProtocolError):
    code = ErrorCode.REPLAY_REJECTED
    default_message = "Game session was already redeemed"


class TokenExpiredError(GameProtocolError):
    code = ErrorCode.TOKEN_EXPIRED
    default_message = "Game session expired. Please start a new game."


class GameplayError(ZenPointsError):
    """Policy denials the caller can be told about."""

    category = ErrorCategory.GAMEPLAY


class CooldownActiveError(GameplayError):
    code = ErrorCode.COOLDOWN_ACTIVE
    default_message = "You can only play once every 24 hours"

    def __init__(self, cooldown_ends_at: datetime, message: str | None = None) -> None:
        super().__init__(message, cooldown_ends_at=format_timestamp(cooldown_ends_at))
        self.cooldown_ends_at = cooldown_ends_at


class WrongSolutionError(GameplayError):
    code = ErrorCode.WRONG_SOLUTION
    default_message = "Claimed result does not solve this game"


class ImplausibleTimingError(GameplayError):
    code = ErrorCode.IMPLAUSIBLE_TIMING
    default_message = "Game was completed faster than possible"


__all__ = [
    "CooldownActiveError",
    "GameProtocolError",
    "GameplayError",
    "IdentityMismatchError",
    "ImplausibleTimingError",
    "InvalidSignatureError",
    "ReplayRejectedError",
    "TokenExpiredError",
    "WrongSolutionError",
]
