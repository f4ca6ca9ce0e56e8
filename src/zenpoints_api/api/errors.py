"""Translate domain rejections into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from zenpoints_api.services.errors import ErrorCategory, ErrorCode, ZenPointsError

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.REPLAY_REJECTED: status.HTTP_409_CONFLICT,
    ErrorCode.COOLDOWN_ACTIVE: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.WRONG_SOLUTION: 422,
    ErrorCode.IMPLAUSIBLE_TIMING: 422,
    ErrorCode.CONCURRENT_UPDATE: status.HTTP_409_CONFLICT,
    ErrorCode.CUSTOMER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
}


def status_for(exc: ZenPointsError) -> int:
    if exc.code in _STATUS_BY_CODE:
        return _STATUS_BY_CODE[exc.code]
    if exc.category is ErrorCategory.PROTOCOL:
        return status.HTTP_403_FORBIDDEN
    return status.HTTP_400_BAD_REQUEST


def to_http_exception(exc: ZenPointsError) -> HTTPException:
    headers = None
    if exc.code is ErrorCode.STORE_UNAVAILABLE:
        headers = {"Retry-After": "5"}
    return HTTPException(status_code=status_for(exc), detail=exc.as_detail(), headers=headers)


__all__ = ["status_for", "to_http_exception"]
