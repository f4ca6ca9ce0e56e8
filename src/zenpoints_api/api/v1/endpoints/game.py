"""Memory game endpoints for signed-in storefront customers."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from zenpoints_api.api.dependencies.session import require_caller_identity
from zenpoints_api.api.errors import to_http_exception
from zenpoints_api.db.session import get_session
from zenpoints_api.services.customers import CustomerRecordStore
from zenpoints_api.services.errors import ZenPointsError
from zenpoints_api.services.game import MemoryGameService, SessionToken

router = APIRouter(prefix="/game/memory", tags=["game"])


class GameCardResponse(BaseModel):
    id: str
    type: str


class GameStartResponse(BaseModel):
    deck: list[GameCardResponse]
    pairs: int
    nonce: str
    issued_at: str
    solution_fingerprint: str
    customer_id: str
    signature: str
    expires_at: str


class GameCompleteRequest(BaseModel):
    nonce: str = Field(..., max_length=128)
    issued_at: str = Field(..., max_length=64)
    solution_fingerprint: str = Field(..., max_length=128)
    customer_id: str = Field(..., max_length=128)
    signature: str = Field(..., max_length=128)
    claimed_result: Any = Field(..., description="List of matched card id pairs")

    def to_token(self) -> SessionToken:
        return SessionToken(
            nonce=self.nonce,
            issued_at=self.issued_at,
            solution_fingerprint=self.solution_fingerprint,
            customer_id=self.customer_id,
            signature=self.signature,
        )


class GameCompleteResponse(BaseModel):
    awarded_points: int
    new_balance: int
    lifetime_points: int
    tier: str
    discount_percent: int
    total_wins: int
    cooldown_ends_at: str


class GameStatusResponse(BaseModel):
    can_play: bool
    cooldown_ends_at: str | None
    last_played_at: str | None
    total_wins: int


async def get_game_service(db: AsyncSession = Depends(get_session)) -> MemoryGameService:
    return MemoryGameService(CustomerRecordStore(db))


@router.post("/start", response_model=GameStartResponse, summary="Start a memory game session")
async def start_game(
    customer_id: str = Depends(require_caller_identity),
    service: MemoryGameService = Depends(get_game_service),
) -> dict[str, Any]:
    try:
        session = await service.start_session(customer_id)
    except ZenPointsError as exc:
        raise to_http_exception(exc) from exc
    return session.as_dict()


@router.post("/complete", response_model=GameCompleteResponse, summary="Redeem a solved memory game")
async def complete_game(
    payload: GameCompleteRequest,
    customer_id: str = Depends(require_caller_identity),
    service: MemoryGameService = Depends(get_game_service),
) -> dict[str, Any]:
    try:
        outcome = await service.complete_session(customer_id, payload.to_token(), payload.claimed_result)
    except ZenPointsError as exc:
        raise to_http_exception(exc) from exc
    return outcome.as_dict()


@router.get("/status", response_model=GameStatusResponse, summary="Memory game availability")
async def game_status(
    customer_id: str = Depends(require_caller_identity),
    service: MemoryGameService = Depends(get_game_service),
) -> dict[str, Any]:
    try:
        game_status = await service.get_status(customer_id)
    except ZenPointsError as exc:
        raise to_http_exception(exc) from exc
    return game_status.as_dict()
