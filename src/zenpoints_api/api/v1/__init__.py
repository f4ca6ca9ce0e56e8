from fastapi import APIRouter

from .endpoints import game, health, loyalty, observability

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(game.router)
router.include_router(loyalty.router)
router.include_router(observability.router)
