"""Playlist service - local playlist edits plus their outbox entries."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playmirror.application.services.mirror_differ import diff, ordered_diff
from playmirror.domain.entities import (
    MatchResult,
    MirrorDiff,
    Playlist,
    PlaylistType,
    RemoteCollection,
    SyncOperation,
    TrackRef,
)
from playmirror.domain.exceptions import (
    EntityNotFoundException,
    InvalidStateException,
    ValidationError,
)
from playmirror.domain.ports import IRemotePlaylistApi
from playmirror.domain.value_objects import key_between
from playmirror.infrastructure.persistence.repositories import (
    PlaylistRepository,
    SyncQueueRepository,
)

logger = logging.getLogger(__name__)


# Hey future me - this is THE write path for playlists! Every edit changes the local
# rows AND enqueues the outbox entry in the SAME transaction. Either both happen or
# neither - no "local edited but remote never hears about it" after a crash.
# Local-only playlists skip the enqueue; they have nothing to mirror to.
class PlaylistService:
    """Local playlist editing surface."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_playlist(
        self,
        title: str,
        type: PlaylistType = PlaylistType.LOCAL,
        remote_sync_id: str | None = None,
        description: str | None = None,
        cover_url: str | None = None,
    ) -> int:
        """Create a playlist and return its id."""
        if type == PlaylistType.MIRROR and not remote_sync_id:
            raise ValidationError("Mirror playlists need a remote_sync_id")
        async with self._session_factory.begin() as session:
            return await PlaylistRepository(session).create(
                title=title,
                type=type,
                remote_sync_id=remote_sync_id,
                description=description,
                cover_url=cover_url,
            )

    async def get_playlist(self, playlist_id: int) -> Playlist:
        async with self._session_factory() as session:
            playlist = await PlaylistRepository(session).get_by_id(playlist_id)
        if playlist is None:
            raise EntityNotFoundException("Playlist", playlist_id)
        return playlist

    @staticmethod
    async def _require_playlist(repo: PlaylistRepository, playlist_id: int) -> Playlist:
        playlist = await repo.get_by_id(playlist_id)
        if playlist is None:
            raise EntityNotFoundException("Playlist", playlist_id)
        return playlist

    async def add_tracks(self, playlist_id: int, tracks: list[TrackRef]) -> list[str]:
        """Append tracks (already present ones are skipped).

        Returns:
            External ids actually added, in order
        """
        async with self._session_factory.begin() as session:
            repo = PlaylistRepository(session)
            playlist = await self._require_playlist(repo, playlist_id)
            added = await repo.add_tracks(playlist_id, tracks)
            if added and playlist.is_mirrored:
                await SyncQueueRepository(session).enqueue(
                    playlist_id, SyncOperation.ADD_TRACKS, {"track_ids": added}
                )

        logger.info(f"Added {len(added)} tracks to playlist {playlist_id}")
        return added

    async def remove_tracks(self, playlist_id: int, external_ids: list[str]) -> list[str]:
        """Remove tracks. Returns the ids that were actually in the playlist."""
        async with self._session_factory.begin() as session:
            repo = PlaylistRepository(session)
            playlist = await self._require_playlist(repo, playlist_id)
            removed = await repo.remove_tracks(playlist_id, external_ids)
            if removed and playlist.is_mirrored:
                await SyncQueueRepository(session).enqueue(
                    playlist_id, SyncOperation.REMOVE_TRACKS, {"track_ids": removed}
                )

        logger.info(f"Removed {len(removed)} tracks from playlist {playlist_id}")
        return removed

    async def reorder_track(
        self,
        playlist_id: int,
        external_id: str,
        prev_key: str | None,
        next_key: str | None,
    ) -> str:
        """Move one track between two neighbours (None = list edge).

        Only this track's row changes. The remote position is worked out by the
        worker at drain time from the local order.

        Returns:
            The new sort key
        """
        new_key = key_between(prev_key, next_key)
        async with self._session_factory.begin() as session:
            repo = PlaylistRepository(session)
            playlist = await self._require_playlist(repo, playlist_id)
            if not await repo.set_sort_key(playlist_id, external_id, new_key):
                raise EntityNotFoundException("PlaylistTrack", external_id)
            if playlist.is_mirrored:
                await SyncQueueRepository(session).enqueue(
                    playlist_id, SyncOperation.REORDER_TRACK, {"track_id": external_id}
                )
        return new_key

    async def update_metadata(
        self,
        playlist_id: int,
        title: str | None = None,
        description: str | None = None,
        cover_url: str | None = None,
    ) -> None:
        """Update title/description/cover. None means unchanged."""
        payload = {
            key: value
            for key, value in (
                ("title", title),
                ("description", description),
                ("cover_url", cover_url),
            )
            if value is not None
        }
        if not payload:
            raise ValidationError("Nothing to update")

        async with self._session_factory.begin() as session:
            repo = PlaylistRepository(session)
            playlist = await self._require_playlist(repo, playlist_id)
            await repo.update_metadata(playlist_id, **payload)
            if playlist.is_mirrored:
                await SyncQueueRepository(session).enqueue(
                    playlist_id, SyncOperation.UPDATE_METADATA, payload
                )

    # Hey future me - binding is step zero of mirroring a local playlist. An existing
    # remote collection with the SAME (trimmed) title is reused, a new one is created
    # only when there is none. Nothing is enqueued here, run plan_mirror_sync()
    # afterwards to push the tracks.
    async def bind_remote_collection(
        self,
        playlist_id: int,
        remote_api: IRemotePlaylistApi,
        create_if_missing: bool = True,
    ) -> RemoteCollection:
        """Find (or create) the remote collection named like the playlist and bind to it.

        Raises:
            InvalidStateException: playlist is already bound
            EntityNotFoundException: no collection with that title and create_if_missing=False
        """
        playlist = await self.get_playlist(playlist_id)
        if playlist.is_mirrored:
            raise InvalidStateException(
                f"Playlist {playlist_id} is already bound to {playlist.remote_sync_id}"
            )

        collection = await remote_api.find_collection(playlist.title.strip())
        if collection is None:
            if not create_if_missing:
                raise EntityNotFoundException("RemoteCollection", playlist.title)
            collection = await remote_api.create_collection(
                playlist.title.strip(), playlist.description
            )
            logger.info(f"Created remote collection {collection.id} for playlist {playlist_id}")

        async with self._session_factory.begin() as session:
            await PlaylistRepository(session).bind_remote(playlist_id, collection.id)

        logger.info(f"Bound playlist {playlist_id} to remote collection {collection.id}")
        return collection

    # Listen up future me, this is the "make remote look like local" planner. It only
    # ENQUEUES - the worker does the actual remote calls later. Additions are enqueued
    # in local order so remote insertion order follows ours.
    async def plan_mirror_sync(
        self, playlist_id: int, remote_api: IRemotePlaylistApi
    ) -> MirrorDiff:
        """List the remote collection, diff against local, enqueue the difference."""
        playlist = await self.get_playlist(playlist_id)
        if not playlist.is_mirrored or playlist.remote_sync_id is None:
            raise ValidationError(f"Playlist {playlist_id} is not bound to a remote collection")

        remote_ids = await remote_api.list_tracks(playlist.remote_sync_id)
        local_ids = playlist.external_ids()
        to_add, to_remove = ordered_diff(remote_ids, local_ids)

        async with self._session_factory.begin() as session:
            queue = SyncQueueRepository(session)
            if to_remove:
                await queue.enqueue(
                    playlist_id, SyncOperation.REMOVE_TRACKS, {"track_ids": to_remove}
                )
            if to_add:
                await queue.enqueue(playlist_id, SyncOperation.ADD_TRACKS, {"track_ids": to_add})

        logger.info(
            f"Planned mirror sync for playlist {playlist_id}: "
            f"+{len(to_add)} / -{len(to_remove)}"
        )
        return diff(remote_ids, local_ids)

    async def save_import(self, playlist_id: int, results: list[MatchResult]) -> list[str]:
        """Add the usable match results (matched or manually picked) in source order."""
        tracks = [
            TrackRef(
                external_id=result.best_candidate.id,
                title=result.best_candidate.title,
                artist=result.best_candidate.artist,
                duration=result.best_candidate.duration,
            )
            for result in results
            if result.is_usable and result.best_candidate is not None
        ]
        if not tracks:
            return []
        return await self.add_tracks(playlist_id, tracks)
