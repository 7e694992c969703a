"""Local store: one SQLite file behind an async engine.

Hey future me - the outbox's crash guarantees rest on SQLite doing a real commit per
status transition, so every connection gets foreign keys ON and a busy timeout. Two
sessions writing at once (drain + UI edit) then wait for each other instead of
failing with "database is locked".
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from playmirror.config import Settings
from playmirror.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 30


class Database:
    """Engine + session factory for the local SQLite store."""

    def __init__(self, settings: Settings) -> None:
        url = settings.database.url
        if not url.startswith("sqlite"):
            raise ConfigurationError(f"Only SQLite databases are supported, got '{url}'")

        self.settings = settings
        settings.ensure_directories()
        self._engine = create_async_engine(
            url,
            echo=settings.database.echo,
            connect_args={"timeout": BUSY_TIMEOUT_SECONDS},
        )
        event.listen(self._engine.sync_engine, "connect", _on_connect)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    def get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Session factory handed to workers and services.

        Workers open one short session per status transition so every transition
        commits on its own.
        """
        return self._session_factory

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """One session, committed on success and rolled back on any error."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create all tables (tests only, real stores are migrated with Alembic)."""
        from playmirror.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        from playmirror.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)


def _on_connect(dbapi_conn: Any, _connection_record: Any) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    logger.debug("SQLite connection opened with foreign keys enabled")
