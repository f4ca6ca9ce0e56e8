"""Error taxonomy shared by the game protocol, the points ledger and the store."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    IDENTITY_MISMATCH = "IDENTITY_MISMATCH"
    REPLAY_REJECTED = "REPLAY_REJECTED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
    WRONG_SOLUTION = "WRONG_SOLUTION"
    IMPLAUSIBLE_TIMING = "IMPLAUSIBLE_TIMING"
    CONCURRENT_UPDATE = "CONCURRENT_UPDATE"
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INVALID_REQUEST = "INVALID_REQUEST"


class ErrorCategory(str, Enum):
    PROTOCOL = "protocol"
    GAMEPLAY = "gameplay"
    CONCURRENCY = "concurrency"
    INFRASTRUCTURE = "infrastructure"
    REQUEST = "request"


class ZenPointsError(RuntimeError):
    """Base exception for rejections surfaced to callers.

    ``details`` holds caller-safe context (for example ``cooldown_ends_at``);
    it must never contain secrets, signatures or full tokens.
    """

    code: ErrorCode = ErrorCode.INVALID_REQUEST
    category: ErrorCategory = ErrorCategory.REQUEST
    default_message: str = "Request rejected"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def as_detail(self) -> dict[str, Any]:
        return {"error": self.code.value, "message": self.message, **self.details}


class InvalidRequestError(ZenPointsError):
    """Raised when a ledger operation receives values it cannot apply."""


__all__ = ["ErrorCategory", "ErrorCode", "InvalidRequestError", "ZenPointsError"]
