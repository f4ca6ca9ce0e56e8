"""Caller identity forwarded by the upstream authentication layer."""

from __future__ import annotations

from fastapi import Header, HTTPException, status


async def require_caller_identity(
    session_user: str | None = Header(None, alias="X-Session-User"),
) -> str:
    """Return the already-verified external customer id for the request."""

    caller = (session_user or "").strip()
    if not caller:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing session user context",
        )
    if len(caller) > 128:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        )
    return caller
