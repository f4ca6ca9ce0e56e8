import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from zenpoints_api.observability.loyalty import get_loyalty_store
from zenpoints_api.services.customers import (
    CustomerNotFoundError,
    CustomerRecordStore,
    StaleCustomerVersionError,
    StoreUnavailableError,
)
from zenpoints_api.services.errors import ErrorCode
from zenpoints_api.services.game import (
    GAME_ATTRIBUTE,
    CooldownActiveError,
    IdentityMismatchError,
    ImplausibleTimingError,
    InvalidSignatureError,
    MemoryGameService,
    ReplayRejectedError,
    TokenExpiredError,
    WrongSolutionError,
    compute_award,
)
from zenpoints_api.services.loyalty import LOYALTY_ATTRIBUTE, TierTable

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
CUSTOMER = "user_2abc123xyz789"


def _zen_points(balance: int, lifetime: int | None = None) -> dict:
    return {
        "current_balance": balance,
        "lifetime_points": balance if lifetime is None else lifetime,
        "tier": "seed",
        "discount_percent": 0,
        "cycle_start_date": (T0 - timedelta(days=3)).isoformat(),
    }


class RacingStore(CustomerRecordStore):
    """Another writer commits between the validator's read and its write."""

    async def find_by_external_id(self, external_id):
        record = await super().find_by_external_id(external_id)
        if record is not None:
            await super().update_attributes(record.id, {"profile": {"touched": True}})
        return record


class SlowStore(CustomerRecordStore):
    async def find_by_external_id(self, external_id):
        await asyncio.sleep(0.5)
        return await super().find_by_external_id(external_id)


@pytest.mark.asyncio
async def test_successful_completion_awards_points(session_factory, seed_customer, load_customer, game_config, tier_table):
    await seed_customer(CUSTOMER, {LOYALTY_ATTRIBUTE: _zen_points(95)})

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        issued = await service.start_session(CUSTOMER, now=T0)
        outcome = await service.complete_session(
            CUSTOMER,
            issued.token,
            [list(pair) for pair in issued.deck.solution],
            now=T0 + timedelta(seconds=42),
        )

    assert outcome.awarded_points == 10
    assert outcome.new_balance == 105
    assert outcome.tier == "sprout"
    assert outcome.discount_percent == 5
    assert outcome.total_wins == 1
    assert outcome.cooldown_ends_at == T0 + timedelta(seconds=42) + timedelta(hours=24)

    customer = await load_customer(CUSTOMER)
    zen_points = customer.attributes[LOYALTY_ATTRIBUTE]
    assert zen_points["current_balance"] == 105
    assert zen_points["lifetime_points"] == 105
    assert zen_points["tier"] == "sprout"
    assert zen_points["last_game_award"] == 10
    game = customer.attributes[GAME_ATTRIBUTE]
    assert game["last_nonce"] == issued.token.nonce
    assert game["total_wins"] == 1
    assert game["last_win_seconds"] == 42.0

    snapshot = get_loyalty_store().snapshot().as_dict()
    assert snapshot["game"]["sessions_started"] == 1
    assert snapshot["game"]["completions_accepted"] == 1
    assert snapshot["points"]["source:memory_game"] == 10


@pytest.mark.asyncio
async def test_start_does_not_touch_the_record(session_factory, seed_customer, load_customer, game_config, tier_table):
    seeded = await seed_customer(CUSTOMER)

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        first = await service.start_session(CUSTOMER, now=T0)
        second = await service.start_session(CUSTOMER, now=T0)

    assert first.token.nonce != second.token.nonce
    assert len(first.token.nonce) == 32
    assert first.expires_at == T0 + timedelta(minutes=5)
    customer = await load_customer(CUSTOMER)
    assert customer.version == seeded.version
    assert customer.attributes == {}


@pytest.mark.asyncio
async def test_start_during_cooldown_is_refused(session_factory, seed_customer, game_config, tier_table):
    ends_at = T0 + timedelta(hours=3)
    await seed_customer(CUSTOMER, {GAME_ATTRIBUTE: {"cooldown_ends_at": ends_at.isoformat(), "total_wins": 4}})

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        with pytest.raises(CooldownActiveError) as excinfo:
            await service.start_session(CUSTOMER, now=T0)

    assert excinfo.value.code is ErrorCode.COOLDOWN_ACTIVE
    assert excinfo.value.as_detail()["cooldown_ends_at"] == ends_at.isoformat()
    assert get_loyalty_store().snapshot().rejections == {"COOLDOWN_ACTIVE": 1}


@pytest.mark.asyncio
async def test_start_for_unknown_customer(session_factory, game_config, tier_table):
    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        with pytest.raises(CustomerNotFoundError):
            await service.start_session("user_missing", now=T0)


@pytest.mark.asyncio
async def test_token_for_another_customer_is_rejected(session_factory, seed_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)
    await seed_customer("user_intruder")

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        issued = await service.start_session(CUSTOMER, now=T0)
        with pytest.raises(IdentityMismatchError):
            await service.complete_session(
                "user_intruder",
                issued.token,
                list(issued.deck.solution),
                now=T0 + timedelta(seconds=30),
            )


@pytest.mark.asyncio
async def test_forged_customer_claim_breaks_signature(session_factory, seed_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)
    await seed_customer("user_intruder")

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        issued = await service.start_session(CUSTOMER, now=T0)
        with pytest.raises(InvalidSignatureError):
            await service.complete_session(
                "user_intruder",
                replace(issued.token, customer_id="user_intruder"),
                list(issued.deck.solution),
                now=T0 + timedelta(seconds=30),
            )


@pytest.mark.asyncio
async def test_backdated_issue_time_breaks_signature(session_factory, seed_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        issued = await service.start_session(CUSTOMER, now=T0)
        forged = replace(issued.token, issued_at=(T0 - timedelta(minutes=1)).isoformat())
        with pytest.raises(InvalidSignatureError):
            await service.complete_session(CUSTOMER, forged, list(issued.deck.solution), now=T0 + timedelta(seconds=2))


@pytest.mark.asyncio
async def test_second_redemption_is_a_replay(session_factory, seed_customer, load_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        issued = await service.start_session(CUSTOMER, now=T0)
        solution = list(issued.deck.solution)
        await service.complete_session(CUSTOMER, issued.token, solution, now=T0 + timedelta(seconds=30))
        with pytest.raises(ReplayRejectedError) as excinfo:
            await service.complete_session(CUSTOMER, issued.token, solution, now=T0 + timedelta(seconds=31))

    detail = excinfo.value.as_detail()
    assert detail["error"] == "REPLAY_REJECTED"
    assert detail["already_awarded"] is True
    assert detail["current_balance"] == 10
    customer = await load_customer(CUSTOMER)
    assert customer.attributes[GAME_ATTRIBUTE]["total_wins"] == 1


@pytest.mark.asyncio
async def test_completion_after_lifetime_expires(session_factory, seed_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        issued = await service.start_session(CUSTOMER, now=T0)
        with pytest.raises(TokenExpiredError):
            await service.complete_session(
                CUSTOMER,
                issued.token,
                list(issued.deck.solution),
                now=T0 + timedelta(minutes=5, seconds=1),
            )


@pytest.mark.asyncio
@pytest.mark.parametrize("elapsed", [timedelta(seconds=3), timedelta(seconds=-10)])
async def test_too_fast_completion_is_implausible(session_factory, seed_customer, game_config, tier_table, elapsed):
    await seed_customer(CUSTOMER)

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        issued = await service.start_session(CUSTOMER, now=T0)
        with pytest.raises(ImplausibleTimingError):
            await service.complete_session(CUSTOMER, issued.token, list(issued.deck.solution), now=T0 + elapsed)


@pytest.mark.asyncio
async def test_tampered_result_is_a_wrong_solution(session_factory, seed_customer, load_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        issued = await service.start_session(CUSTOMER, now=T0)
        (a1, a2), (b1, b2), *rest = issued.deck.solution
        tampered = [(a1, b1), (a2, b2), *rest]
        with pytest.raises(WrongSolutionError):
            await service.complete_session(CUSTOMER, issued.token, tampered, now=T0 + timedelta(seconds=30))
        with pytest.raises(WrongSolutionError):
            await service.complete_session(CUSTOMER, issued.token, "not-a-solution", now=T0 + timedelta(seconds=30))

    customer = await load_customer(CUSTOMER)
    assert GAME_ATTRIBUTE not in customer.attributes
    assert get_loyalty_store().snapshot().rejections == {"WRONG_SOLUTION": 2}


@pytest.mark.asyncio
async def test_cooldown_started_by_a_concurrent_win(session_factory, seed_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        first = await service.start_session(CUSTOMER, now=T0)
        second = await service.start_session(CUSTOMER, now=T0)
        await service.complete_session(CUSTOMER, first.token, list(first.deck.solution), now=T0 + timedelta(seconds=30))
        with pytest.raises(CooldownActiveError):
            await service.complete_session(
                CUSTOMER,
                second.token,
                list(second.deck.solution),
                now=T0 + timedelta(seconds=40),
            )


@pytest.mark.asyncio
async def test_concurrent_writer_makes_completion_lose(session_factory, seed_customer, load_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)

    async with session_factory() as session:
        issuer = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        issued = await issuer.start_session(CUSTOMER, now=T0)
        racing = MemoryGameService(RacingStore(session), config=game_config, tiers=tier_table)
        with pytest.raises(StaleCustomerVersionError) as excinfo:
            await racing.complete_session(CUSTOMER, issued.token, list(issued.deck.solution), now=T0 + timedelta(seconds=30))

    assert excinfo.value.code is ErrorCode.CONCURRENT_UPDATE
    customer = await load_customer(CUSTOMER)
    assert LOYALTY_ATTRIBUTE not in customer.attributes
    assert customer.attributes["profile"] == {"touched": True}


@pytest.mark.asyncio
async def test_slow_store_fails_closed(session_factory, seed_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)
    config = replace(game_config, store_timeout_seconds=0.05)

    async with session_factory() as session:
        service = MemoryGameService(SlowStore(session), config=config, tiers=tier_table)
        with pytest.raises(StoreUnavailableError):
            await service.start_session(CUSTOMER, now=T0)


@pytest.mark.asyncio
async def test_status_reports_cooldown_and_wins(session_factory, seed_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        before = await service.get_status(CUSTOMER, now=T0)
        issued = await service.start_session(CUSTOMER, now=T0)
        await service.complete_session(CUSTOMER, issued.token, list(issued.deck.solution), now=T0 + timedelta(seconds=20))
        during = await service.get_status(CUSTOMER, now=T0 + timedelta(hours=1))
        after = await service.get_status(CUSTOMER, now=T0 + timedelta(hours=25))

    assert before.as_dict() == {"can_play": True, "cooldown_ends_at": None, "last_played_at": None, "total_wins": 0}
    assert during.can_play is False
    assert during.cooldown_ends_at == T0 + timedelta(seconds=20) + timedelta(hours=24)
    assert during.total_wins == 1
    assert after.can_play is True
    assert after.last_played_at == T0 + timedelta(seconds=20)


def test_tier_scaled_award_adds_discount(game_config, tier_table: TierTable):
    scaled = replace(game_config, award_mode="tier_scaled", win_points=10)
    assert compute_award(scaled, tier_table.tier_of(0)) == 10
    assert compute_award(scaled, tier_table.tier_of(300)) == 11
    assert compute_award(replace(scaled, win_points=7), tier_table.tier_of(120)) == 7
    assert compute_award(game_config, tier_table.tier_of(600)) == 10


@pytest.mark.asyncio
async def test_claim_with_extra_pairs_is_a_wrong_solution(session_factory, seed_customer, game_config, tier_table):
    await seed_customer(CUSTOMER)

    async with session_factory() as session:
        service = MemoryGameService(CustomerRecordStore(session), config=game_config, tiers=tier_table)
        issued = await service.start_session(CUSTOMER, now=T0)
        padded = [*issued.deck.solution, *[(f"x{index}", f"y{index}") for index in range(500)]]
        with pytest.raises(WrongSolutionError):
            await service.complete_session(CUSTOMER, issued.token, padded, now=T0 + timedelta(seconds=30))
