"""HMAC signing of session token claims."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Mapping

from .config import GameProtocolConfig

SIGNATURE_LENGTH = 64
_HEX_DIGITS = frozenset("0123456789abcdef")


def canonical_payload(payload: Mapping[str, Any]) -> bytes:
    """Serialize claims deterministically: sorted keys, no whitespace."""

    return json.dumps(dict(payload), sort_keys=True, separators=(",", ":"), ensure_ascii=True).encode("ascii")


class SessionSigner:
    """Sign and verify session claims with HMAC-SHA256.

    Signatures are lowercase hex. Verification compares in constant time and
    rejects anything that is not a well-formed signature outright.
    """

    def __init__(self, config: GameProtocolConfig) -> None:
        self._key = config.signing_secret

    def sign(self, payload: Mapping[str, Any]) -> str:
        return hmac.new(self._key, canonical_payload(payload), hashlib.sha256).hexdigest()

    def verify(self, payload: Mapping[str, Any], signature: object) -> bool:
        if not isinstance(signature, str) or len(signature) != SIGNATURE_LENGTH:
            return False
        if not set(signature) <= _HEX_DIGITS:
            return False
        try:
            expected = self.sign(payload)
        except (TypeError, ValueError):
            return False
        return hmac.compare_digest(expected.encode("ascii"), signature.encode("ascii"))


__all__ = ["SIGNATURE_LENGTH", "SessionSigner", "canonical_payload"]
