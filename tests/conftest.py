"""Shared test fixtures."""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from crossroads.config import Settings
from crossroads.db.engine import create_engine, create_tables, get_session
from crossroads.db.repository import Repository


@pytest.fixture
def settings() -> Settings:
    """Test settings with defaults."""
    return Settings(crossroads_env="development", database_url="sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    eng = create_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
async def repo(engine: AsyncEngine) -> AsyncGenerator[Repository, None]:
    async with get_session(engine) as session:
        yield Repository(session)


@pytest.fixture
def training_date() -> datetime:
    return datetime(2026, 11, 7, 19, 0)


@pytest.fixture
def minutes():
    """Timestamps one minute apart, for ordering signups explicitly."""
    base = datetime(2026, 11, 1, 12, 0)

    def at(n: int) -> datetime:
        return base + timedelta(minutes=n)

    return at
