"""One-time migration from integer positions to fractional sort keys.

Hey future me - older databases ordered playlist_tracks by an integer position.
Inserting in the middle meant renumbering every row after it. Now every row has a
sort_key and legacy_position is only read HERE.

Per playlist, in its own transaction:
    prev = largest existing sort key (rows added after the upgrade already have one)
    for row in legacy rows ordered by legacy_position:
        prev = key_between(prev, None); row.sort_key = prev

The flag 'ordering.sort_key_migrated' is set only after every playlist went
through, so a crash halfway just resumes on the next start (migrated rows already
have a key and are skipped).
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playmirror.domain.value_objects import key_between
from playmirror.infrastructure.persistence.repositories import (
    AppSettingsRepository,
    PlaylistRepository,
)

logger = logging.getLogger(__name__)

SORT_KEY_MIGRATION_FLAG = "ordering.sort_key_migrated"


class SortKeyMigration:
    """Assigns sort keys to legacy playlist rows, once."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def is_done(self) -> bool:
        async with self._session_factory() as session:
            return await AppSettingsRepository(session).get_bool(SORT_KEY_MIGRATION_FLAG)

    async def run(self, force: bool = False) -> int:
        """Migrate all legacy rows. Returns the number of rows that got a key.

        Skips the scan entirely when the flag is already set (unless force=True).
        """
        if not force and await self.is_done():
            logger.debug("Sort key migration already done, skipping")
            return 0

        async with self._session_factory() as session:
            playlist_ids = await PlaylistRepository(session).playlists_with_legacy_rows()

        migrated = 0
        for playlist_id in playlist_ids:
            migrated += await self._migrate_playlist(playlist_id)

        async with self._session_factory.begin() as session:
            await AppSettingsRepository(session).set_bool(
                SORT_KEY_MIGRATION_FLAG, True, category="ordering"
            )

        if migrated:
            logger.info(
                f"Sort key migration finished: {migrated} rows in {len(playlist_ids)} playlists"
            )
        return migrated

    async def _migrate_playlist(self, playlist_id: int) -> int:
        async with self._session_factory.begin() as session:
            repo = PlaylistRepository(session)
            rows = await repo.legacy_rows(playlist_id)
            prev = await repo.max_sort_key(playlist_id)
            for row in rows:
                prev = key_between(prev, None)
                row.sort_key = prev
            await session.flush()
        logger.debug(f"Migrated {len(rows)} legacy rows of playlist {playlist_id}")
        return len(rows)
