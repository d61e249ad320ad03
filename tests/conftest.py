"""Shared fixtures: a fresh SQLite database per test."""
from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from refillguard.app.db.async_session import init_async_db
from refillguard.app.db.crud import build_default_config
from refillguard.app.services.guarantee import OrderSnapshot
from refillguard.app.services.guarantee.regex_utils import clear_pattern_cache

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'refillguard.db'}")
    await init_async_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
def reset_pattern_cache():
    clear_pattern_cache()
    yield
    clear_pattern_cache()


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def default_config():
    """Unsaved config with the defaults a new user gets."""
    return build_default_config("user-1")


@pytest.fixture
def make_order():
    def _make(
        service_name="Instagram Followers 30 Days ♻️",
        status="COMPLETED",
        completed_at=None,
        updated_at=None,
        can_refill=None,
        panel_id=None,
        external_order_id="1001",
    ):
        return OrderSnapshot(
            external_order_id=external_order_id,
            service_name=service_name,
            status=status,
            completed_at=completed_at,
            updated_at=updated_at,
            can_refill=can_refill,
            panel_id=panel_id,
        )

    return _make
