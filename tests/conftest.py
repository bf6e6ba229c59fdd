"""Shared test fixtures."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.infrastructure.database import Base
from booking_engine.infrastructure.locks import LocalLockRegistry
from tests.factories import RecordingNotifier, SqliteSessionFactory, sqlite_engine


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield a session, then drop everything."""
    async with sqlite_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SqliteSessionFactory() as session:
        yield session

    async with sqlite_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def locks() -> LocalLockRegistry:
    return LocalLockRegistry()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
