from collections import defaultdict
from dataclasses import replace
from datetime import datetime

import pytest
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from zenpoints_api.api.errors import to_http_exception
from zenpoints_api.api.v1.endpoints.game import get_game_service
from zenpoints_api.core.settings import settings
from zenpoints_api.db.session import get_session
from zenpoints_api.services.customers import (
    CustomerNotFoundError,
    CustomerRecordStore,
    StaleCustomerVersionError,
    StoreUnavailableError,
)
from zenpoints_api.services.game import (
    CooldownActiveError,
    IdentityMismatchError,
    ImplausibleTimingError,
    InvalidSignatureError,
    MemoryGameService,
    ReplayRejectedError,
    TokenExpiredError,
    WrongSolutionError,
)

CUSTOMER = "user_2endpoint42"
ADMIN_KEY = "test-admin-key"


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _headers(customer_id: str = CUSTOMER) -> dict[str, str]:
    return {"X-Session-User": customer_id}


def _solve(deck: list[dict[str, str]]) -> list[list[str]]:
    by_type: dict[str, list[str]] = defaultdict(list)
    for card in deck:
        by_type[card["type"]].append(card["id"])
    return [ids for ids in by_type.values()]


def _completion(started: dict, claimed_result) -> dict:
    return {
        "nonce": started["nonce"],
        "issued_at": started["issued_at"],
        "solution_fingerprint": started["solution_fingerprint"],
        "customer_id": started["customer_id"],
        "signature": started["signature"],
        "claimed_result": claimed_result,
    }


@pytest.fixture
def fast_game(app_with_db, game_config, tier_table):
    app, _ = app_with_db
    config = replace(game_config, min_seconds_per_pair=0.0)

    async def override_game_service(db: AsyncSession = Depends(get_session)) -> MemoryGameService:
        return MemoryGameService(CustomerRecordStore(db), config=config, tiers=tier_table)

    app.dependency_overrides[get_game_service] = override_game_service
    return app


@pytest.mark.asyncio
async def test_game_requires_session_user(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        missing = await client.post("/api/v1/game/memory/start")
        too_long = await client.post("/api/v1/game/memory/start", headers=_headers("u" * 200))

    assert missing.status_code == 401
    assert too_long.status_code == 400


@pytest.mark.asyncio
async def test_unknown_customer_cannot_start(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post("/api/v1/game/memory/start", headers=_headers("user_unknown"))

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "CUSTOMER_NOT_FOUND"


@pytest.mark.asyncio
async def test_start_hands_out_deck_without_solution(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        enrolled = await client.post("/api/v1/loyalty/enroll", headers=_headers(), json={"email": "zen@example.com"})
        response = await client.post("/api/v1/game/memory/start", headers=_headers())

    assert enrolled.status_code == 200
    assert enrolled.json()["current_balance"] == 50
    assert response.status_code == 200
    payload = response.json()
    assert payload["pairs"] == 9
    assert len(payload["deck"]) == 18
    assert len({card["id"] for card in payload["deck"]}) == 18
    assert payload["customer_id"] == CUSTOMER
    assert "solution" not in payload
    assert len(payload["signature"]) == 64


@pytest.mark.asyncio
async def test_instant_completion_is_rejected(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        await client.post("/api/v1/loyalty/enroll", headers=_headers())
        started = (await client.post("/api/v1/game/memory/start", headers=_headers())).json()
        response = await client.post(
            "/api/v1/game/memory/complete",
            headers=_headers(),
            json=_completion(started, _solve(started["deck"])),
        )

    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "IMPLAUSIBLE_TIMING"


@pytest.mark.asyncio
async def test_full_game_round_trip(fast_game) -> None:
    async with _client(fast_game) as client:
        await client.post("/api/v1/loyalty/enroll", headers=_headers())
        started = (await client.post("/api/v1/game/memory/start", headers=_headers())).json()
        body = _completion(started, _solve(started["deck"]))

        completed = await client.post("/api/v1/game/memory/complete", headers=_headers(), json=body)
        replayed = await client.post("/api/v1/game/memory/complete", headers=_headers(), json=body)
        restarted = await client.post("/api/v1/game/memory/start", headers=_headers())
        game_status = await client.get("/api/v1/game/memory/status", headers=_headers())
        summary = await client.get("/api/v1/loyalty/me", headers=_headers())

    assert completed.status_code == 200
    outcome = completed.json()
    assert outcome["awarded_points"] == 10
    assert outcome["new_balance"] == 60
    assert outcome["total_wins"] == 1

    assert replayed.status_code == 409
    assert replayed.json()["detail"]["error"] == "REPLAY_REJECTED"
    assert replayed.json()["detail"]["current_balance"] == 60

    assert restarted.status_code == 429
    assert restarted.json()["detail"]["cooldown_ends_at"] == outcome["cooldown_ends_at"]

    assert game_status.status_code == 200
    assert game_status.json()["can_play"] is False
    assert game_status.json()["total_wins"] == 1

    assert summary.json()["current_balance"] == 60
    assert summary.json()["lifetime_points"] == 60


@pytest.mark.asyncio
async def test_completion_with_foreign_token_is_forbidden(fast_game) -> None:
    async with _client(fast_game) as client:
        await client.post("/api/v1/loyalty/enroll", headers=_headers())
        await client.post("/api/v1/loyalty/enroll", headers=_headers("user_2intruder"))
        started = (await client.post("/api/v1/game/memory/start", headers=_headers())).json()
        stolen = await client.post(
            "/api/v1/game/memory/complete",
            headers=_headers("user_2intruder"),
            json=_completion(started, _solve(started["deck"])),
        )
        wrong = await client.post(
            "/api/v1/game/memory/complete",
            headers=_headers(),
            json=_completion(started, [[card["id"] for card in started["deck"][:2]]]),
        )

    assert stolen.status_code == 403
    assert stolen.json()["detail"]["error"] == "IDENTITY_MISMATCH"
    assert wrong.status_code == 422
    assert wrong.json()["detail"]["error"] == "WRONG_SOLUTION"


@pytest.mark.asyncio
async def test_tier_table_is_public(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.get("/api/v1/loyalty/tiers")

    assert response.status_code == 200
    tiers = response.json()
    assert tiers["seed"] == {"min": 0, "max": 99, "discount": 0, "name": "Seed"}
    assert tiers["lotus"]["max"] is None


@pytest.mark.asyncio
async def test_admin_routes_require_configured_key(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    body = {"customer_id": CUSTOMER, "products_total": "125.00"}

    async with _client(app) as client:
        monkeypatch.setattr(settings, "admin_api_key", "")
        unconfigured = await client.post("/api/v1/loyalty/orders/order_1/award", json=body)

        monkeypatch.setattr(settings, "admin_api_key", ADMIN_KEY)
        wrong_key = await client.post(
            "/api/v1/loyalty/orders/order_1/award",
            json=body,
            headers={"X-API-Key": "nope"},
        )

    assert unconfigured.status_code == 503
    assert wrong_key.status_code == 401


@pytest.mark.asyncio
async def test_admin_order_award_and_balance_override(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "admin_api_key", ADMIN_KEY)
    admin = {"X-API-Key": ADMIN_KEY}

    async with _client(app) as client:
        await client.post("/api/v1/loyalty/enroll", headers=_headers())
        awarded = await client.post(
            "/api/v1/loyalty/orders/order_9/award",
            json={"customer_id": CUSTOMER, "products_total": "125.00"},
            headers=admin,
        )
        repeated = await client.post(
            "/api/v1/loyalty/orders/order_9/award",
            json={"customer_id": CUSTOMER, "products_total": "125.00"},
            headers=admin,
        )
        overridden = await client.post(
            "/api/v1/loyalty/admin/balance",
            json={"customer_id": CUSTOMER, "points": 510},
            headers=admin,
        )
        negative = await client.post(
            "/api/v1/loyalty/admin/balance",
            json={"customer_id": CUSTOMER, "points": -5},
            headers=admin,
        )
        reconciled = await client.post("/api/v1/loyalty/admin/reconciliation", headers=admin)
        metrics = await client.get("/api/v1/observability/loyalty", headers=admin)

    assert awarded.status_code == 200
    assert awarded.json()["points_awarded"] == 13
    assert awarded.json()["current_balance"] == 63
    assert repeated.json()["already_awarded"] is True
    assert repeated.json()["current_balance"] == 63

    assert overridden.status_code == 200
    assert overridden.json()["tier"] == "lotus"
    assert overridden.json()["discount_percent"] == 15
    assert negative.status_code == 422

    assert reconciled.status_code == 200
    assert reconciled.json()["processed"] == 1
    assert reconciled.json()["reset"] == 0

    assert metrics.status_code == 200
    assert metrics.json()["points"]["source:order"] == 13
    assert metrics.json()["reconciliation"]["runs"] == 1


@pytest.mark.asyncio
async def test_health_and_readiness(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        health = await client.get("/healthz")
        ready = await client.get("/api/v1/readyz")

    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert ready.status_code == 200
    payload = ready.json()
    assert payload["status"] == "ready"
    assert payload["components"]["customer_store"]["status"] == "ready"
    assert payload["components"]["job_scheduler"]["status"] == "disabled"


@pytest.mark.parametrize(
    ("exc", "status_code"),
    [
        (InvalidSignatureError(), 403),
        (IdentityMismatchError(), 403),
        (TokenExpiredError(), 403),
        (ReplayRejectedError(already_awarded=True, current_balance=5), 409),
        (CooldownActiveError(datetime(2026, 10, 19)), 429),
        (WrongSolutionError(), 422),
        (ImplausibleTimingError(), 422),
        (StaleCustomerVersionError(), 409),
        (CustomerNotFoundError(), 404),
        (StoreUnavailableError(), 503),
    ],
)
def test_rejections_map_to_http_status(exc, status_code) -> None:
    http_exc = to_http_exception(exc)
    assert http_exc.status_code == status_code
    assert http_exc.detail["error"] == exc.code.value
    if status_code == 503:
        assert http_exc.headers == {"Retry-After": "5"}
