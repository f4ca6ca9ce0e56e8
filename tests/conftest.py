import sys
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from zenpoints_api.app import create_app  # noqa: E402
from zenpoints_api.db.base import Base  # noqa: E402
from zenpoints_api.db.session import get_session  # noqa: E402
from zenpoints_api.models import Customer  # noqa: E402,F401
from zenpoints_api.observability.loyalty import get_loyalty_store  # noqa: E402
from zenpoints_api.observability.scheduler import get_job_scheduler_store  # noqa: E402
from zenpoints_api.services.customers import CustomerRecord, CustomerRecordStore  # noqa: E402
from zenpoints_api.services.game import GameProtocolConfig  # noqa: E402
from zenpoints_api.services.loyalty import TierTable  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_observability():
    get_loyalty_store().reset()
    get_job_scheduler_store().reset()
    yield
    get_loyalty_store().reset()
    get_job_scheduler_store().reset()


@pytest.fixture
def game_config() -> GameProtocolConfig:
    return GameProtocolConfig(
        signing_secret=b"test-signing-secret",
        pairs=9,
        session_lifetime=timedelta(minutes=5),
        min_seconds_per_pair=1.0,
        cooldown=timedelta(hours=24),
        win_points=10,
        store_timeout_seconds=1.0,
    )


@pytest.fixture
def tier_table() -> TierTable:
    return TierTable.from_mappings(
        {"seed": 0, "sprout": 100, "blossom": 250, "lotus": 500},
        {"seed": 0, "sprout": 5, "blossom": 10, "lotus": 15},
    )


@pytest.fixture
def seed_customer(session_factory):
    async def _seed(external_id: str, attributes: dict[str, Any] | None = None) -> CustomerRecord:
        async with session_factory() as session:
            return await CustomerRecordStore(session).create(
                external_id,
                email=f"{external_id}@example.com",
                attributes=attributes,
            )

    return _seed


@pytest.fixture
def load_customer(session_factory):
    async def _load(external_id: str) -> CustomerRecord:
        async with session_factory() as session:
            record = await CustomerRecordStore(session).find_by_external_id(external_id)
        assert record is not None
        return record

    return _load
