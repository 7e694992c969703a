"""Shared fixtures.

Hey future me - the persistence-backed tests run against a REAL aiosqlite file DB in
tmp_path (one per test). The ordering guarantees live in SQL, mocking the session
would test nothing. Rate limiting is switched off (interval 0) so tests are fast.
"""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from helpers import FakeRemoteApi
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playmirror.config import (
    DatabaseSettings,
    ImporterSettings,
    Settings,
    SyncSettings,
)
from playmirror.infrastructure.persistence import Database


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"),
        sync=SyncSettings(call_interval_ms=0),
        importer=ImporterSettings(search_interval_ms=0),
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    db = Database(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def session_factory(database: Database) -> async_sessionmaker[AsyncSession]:
    return database.get_session_factory()


@pytest.fixture
def remote_api() -> FakeRemoteApi:
    return FakeRemoteApi()
