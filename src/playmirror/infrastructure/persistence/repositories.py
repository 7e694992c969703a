"""Repository implementations for PlayMirror."""

import json
import logging
from collections import defaultdict
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from playmirror.domain.entities import (
    Playlist,
    PlaylistType,
    SyncOperation,
    SyncQueueEntry,
    SyncStatus,
    TrackRef,
    validate_payload,
)
from playmirror.domain.exceptions import EntityNotFoundException, ValidationError
from playmirror.domain.ports import IPlaylistRepository, ISyncQueueRepository
from playmirror.domain.value_objects import keys_between
from playmirror.infrastructure.persistence.models import (
    AppSettingsModel,
    PlaylistModel,
    PlaylistTrackModel,
    SyncQueueModel,
    TrackModel,
    epoch_ms,
)

logger = logging.getLogger(__name__)

_OPEN_STATUSES = (SyncStatus.PENDING.value, SyncStatus.PROCESSING.value)


# Hey future me, this is the OUTBOX! Every method runs on the session you hand in and
# never commits - the caller owns the transaction (async with session_factory.begin()).
# That's what makes status transitions atomic: one transition = one short transaction.
class SyncQueueRepository(ISyncQueueRepository):
    """SQLAlchemy implementation of the sync queue."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def _newest_open_created_at(self, playlist_id: int) -> int | None:
        stmt = select(func.max(SyncQueueModel.created_at)).where(
            SyncQueueModel.playlist_id == playlist_id,
            SyncQueueModel.status.in_(_OPEN_STATUSES),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def enqueue(
        self,
        playlist_id: int,
        operation: SyncOperation | str,
        payload: dict[str, Any],
    ) -> int:
        """Persist a new pending entry and return its id.

        Raises:
            ValidationError: unknown operation or malformed payload
        """
        try:
            op = SyncOperation(operation)
        except ValueError as e:
            raise ValidationError(f"Unknown sync operation: {operation!r}") from e
        validate_payload(op, payload)

        # created_at never goes backwards within a playlist, even if the clock does
        # or a requeue pushed an entry slightly into the future.
        created_at = epoch_ms()
        newest = await self._newest_open_created_at(playlist_id)
        if newest is not None and newest > created_at:
            created_at = newest

        model = SyncQueueModel(
            playlist_id=playlist_id,
            operation=op.value,
            payload=json.dumps(payload),
            status=SyncStatus.PENDING.value,
            created_at=created_at,
            attempts=0,
        )
        self.session.add(model)
        await self.session.flush()

        logger.debug(
            "Enqueued sync entry %s (%s) for playlist %s", model.id, op.value, playlist_id
        )
        return model.id

    async def get(self, entry_id: int) -> SyncQueueEntry | None:
        """Get an entry by id."""
        model = await self.session.get(SyncQueueModel, entry_id)
        return self._to_entity(model) if model else None

    async def list_pending(self, playlist_id: int) -> list[SyncQueueEntry]:
        """Pending entries of one playlist in drain order (created_at, id)."""
        stmt = (
            select(SyncQueueModel)
            .where(
                SyncQueueModel.playlist_id == playlist_id,
                SyncQueueModel.status == SyncStatus.PENDING.value,
            )
            .order_by(SyncQueueModel.created_at, SyncQueueModel.id)
        )
        result = await self.session.execute(stmt)
        entries: list[SyncQueueEntry] = []
        for model in result.scalars().all():
            try:
                entries.append(self._to_entity(model))
            except ValidationError as e:
                # Row written by something other than enqueue() - park it as failed
                model.status = SyncStatus.FAILED.value
                model.last_error = e.message
                logger.error("Failing unreadable sync entry %s: %s", model.id, e.message)
        await self.session.flush()
        return entries

    async def list_failed(self, playlist_id: int | None = None) -> list[SyncQueueEntry]:
        """Failed entries, optionally for one playlist."""
        stmt = select(SyncQueueModel).where(
            SyncQueueModel.status == SyncStatus.FAILED.value
        )
        if playlist_id is not None:
            stmt = stmt.where(SyncQueueModel.playlist_id == playlist_id)
        stmt = stmt.order_by(
            SyncQueueModel.playlist_id, SyncQueueModel.created_at, SyncQueueModel.id
        )
        result = await self.session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars().all()]

    async def pending_playlist_ids(self) -> list[int]:
        """Playlists with pending work, oldest work first."""
        stmt = (
            select(SyncQueueModel.playlist_id)
            .where(SyncQueueModel.status == SyncStatus.PENDING.value)
            .group_by(SyncQueueModel.playlist_id)
            .order_by(func.min(SyncQueueModel.created_at))
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_processing(self, entry_id: int) -> bool:
        """pending → processing. Returns False if the entry was not pending."""
        result = await self.session.execute(
            update(SyncQueueModel)
            .where(
                SyncQueueModel.id == entry_id,
                SyncQueueModel.status == SyncStatus.PENDING.value,
            )
            .values(
                status=SyncStatus.PROCESSING.value,
                attempts=SyncQueueModel.attempts + 1,
            )
        )
        return (result.rowcount or 0) == 1

    async def mark_completed(self, entry_id: int) -> None:
        """Open entry → completed."""
        await self.session.execute(
            update(SyncQueueModel)
            .where(
                SyncQueueModel.id == entry_id,
                SyncQueueModel.status.in_(_OPEN_STATUSES),
            )
            .values(status=SyncStatus.COMPLETED.value, last_error=None)
        )

    async def mark_failed(self, entry_id: int, error: str) -> None:
        """Open entry → failed."""
        await self.mark_many_failed([entry_id], error)

    async def mark_many_failed(self, entry_ids: list[int], error: str) -> int:
        """Bulk open → failed. Returns the number of rows changed."""
        if not entry_ids:
            return 0
        result = await self.session.execute(
            update(SyncQueueModel)
            .where(
                SyncQueueModel.id.in_(entry_ids),
                SyncQueueModel.status.in_(_OPEN_STATUSES),
            )
            .values(status=SyncStatus.FAILED.value, last_error=error)
        )
        return result.rowcount or 0

    # Listen up future me, requeue APPENDS. A retried entry goes to the back of its
    # playlist's line: created_at is rewritten to just after the newest open entry
    # (or now, whichever is later), keeping the relative order of the retried entries.
    # Anything that is not FAILED is left completely alone.
    async def requeue(self, entry_ids: list[int]) -> int:
        """Move the given failed entries back to pending. Returns how many moved."""
        if not entry_ids:
            return 0

        stmt = (
            select(SyncQueueModel)
            .where(
                SyncQueueModel.id.in_(entry_ids),
                SyncQueueModel.status == SyncStatus.FAILED.value,
            )
            .order_by(
                SyncQueueModel.playlist_id, SyncQueueModel.created_at, SyncQueueModel.id
            )
        )
        result = await self.session.execute(stmt)
        models = list(result.scalars().all())

        by_playlist: dict[int, list[SyncQueueModel]] = defaultdict(list)
        for model in models:
            by_playlist[model.playlist_id].append(model)

        now = epoch_ms()
        for playlist_id, rows in by_playlist.items():
            newest = await self._newest_open_created_at(playlist_id)
            base = now if newest is None else max(now, newest + 1)
            for offset, model in enumerate(rows):
                model.status = SyncStatus.PENDING.value
                model.created_at = base + offset
                model.last_error = None

        await self.session.flush()
        if models:
            logger.info("Requeued %d failed sync entries", len(models))
        return len(models)

    async def recover_stuck(self) -> int:
        """processing → pending for entries whose drain died with the process."""
        result = await self.session.execute(
            update(SyncQueueModel)
            .where(SyncQueueModel.status == SyncStatus.PROCESSING.value)
            .values(status=SyncStatus.PENDING.value)
        )
        count = result.rowcount or 0
        if count:
            logger.warning("Recovered %d sync entries stuck in processing", count)
        return count

    async def release(self, entry_ids: list[int]) -> int:
        """processing → pending for entries claimed but never attempted.

        Undoes the pickup count too. created_at is untouched, so they keep their place.
        """
        if not entry_ids:
            return 0
        result = await self.session.execute(
            update(SyncQueueModel)
            .where(
                SyncQueueModel.id.in_(entry_ids),
                SyncQueueModel.status == SyncStatus.PROCESSING.value,
            )
            .values(
                status=SyncStatus.PENDING.value,
                attempts=SyncQueueModel.attempts - 1,
            )
        )
        return result.rowcount or 0

    async def purge_completed(self, older_than_ms: int) -> int:
        """Delete completed entries created before the cutoff."""
        result = await self.session.execute(
            delete(SyncQueueModel).where(
                SyncQueueModel.status == SyncStatus.COMPLETED.value,
                SyncQueueModel.created_at < older_than_ms,
            )
        )
        return result.rowcount or 0

    async def stats(self, playlist_id: int | None = None) -> dict[str, int]:
        """Entry counts per status."""
        stmt = select(SyncQueueModel.status, func.count()).group_by(
            SyncQueueModel.status
        )
        if playlist_id is not None:
            stmt = stmt.where(SyncQueueModel.playlist_id == playlist_id)
        result = await self.session.execute(stmt)
        counts = {status.value: 0 for status in SyncStatus}
        for status, count in result.all():
            counts[status] = count
        return counts

    def _to_entity(self, model: SyncQueueModel) -> SyncQueueEntry:
        # Hey future me - a broken payload must not break the whole listing. We hand
        # back an empty dict and the worker's payload validation fails that ONE entry.
        try:
            payload = json.loads(model.payload)
        except (TypeError, ValueError):
            logger.error("Unreadable payload on sync entry %s", model.id)
            payload = {}

        try:
            operation = SyncOperation(model.operation)
        except ValueError as e:
            raise ValidationError(
                f"Unknown sync operation '{model.operation}' on entry {model.id}"
            ) from e

        return SyncQueueEntry(
            id=model.id,
            playlist_id=model.playlist_id,
            operation=operation,
            payload=payload,
            status=SyncStatus(model.status),
            created_at=model.created_at,
            attempts=model.attempts,
            last_error=model.last_error,
        )


class PlaylistRepository(IPlaylistRepository):
    """SQLAlchemy implementation of Playlist repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def create(
        self,
        title: str,
        type: PlaylistType = PlaylistType.LOCAL,
        remote_sync_id: str | None = None,
        description: str | None = None,
        cover_url: str | None = None,
    ) -> int:
        """Create a playlist and return its id."""
        if not title or not title.strip():
            raise ValidationError("Playlist title cannot be empty")
        model = PlaylistModel(
            title=title,
            type=type.value,
            remote_sync_id=remote_sync_id,
            description=description,
            cover_url=cover_url,
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def get_by_id(self, playlist_id: int) -> Playlist | None:
        """Get a playlist with tracks in sort key order."""
        model = await self.session.get(PlaylistModel, playlist_id)
        if model is None:
            return None

        # Legacy rows (sort_key NULL) go last in their old order until migrated
        stmt = (
            select(TrackModel, PlaylistTrackModel.sort_key)
            .join(PlaylistTrackModel, PlaylistTrackModel.track_id == TrackModel.id)
            .where(PlaylistTrackModel.playlist_id == playlist_id)
            .order_by(
                PlaylistTrackModel.sort_key.is_(None),
                PlaylistTrackModel.sort_key,
                PlaylistTrackModel.legacy_position,
            )
        )
        result = await self.session.execute(stmt)
        tracks = [self._track_to_entity(track) for track, _ in result.all()]

        try:
            playlist_type = PlaylistType(model.type.lower())
        except ValueError as e:
            raise ValidationError(
                f"Invalid playlist type '{model.type}' for playlist {model.id}"
            ) from e

        return Playlist(
            id=model.id,
            title=model.title,
            type=playlist_type,
            remote_sync_id=model.remote_sync_id,
            description=model.description,
            cover_url=model.cover_url,
            tracks=tracks,
        )

    async def update_metadata(
        self,
        playlist_id: int,
        title: str | None = None,
        description: str | None = None,
        cover_url: str | None = None,
    ) -> None:
        """Update playlist header fields. None means unchanged."""
        model = await self.session.get(PlaylistModel, playlist_id)
        if model is None:
            raise EntityNotFoundException("Playlist", playlist_id)
        if title is not None:
            if not title.strip():
                raise ValidationError("Playlist title cannot be empty")
            model.title = title
        if description is not None:
            model.description = description
        if cover_url is not None:
            model.cover_url = cover_url
        await self.session.flush()

    async def bind_remote(self, playlist_id: int, remote_sync_id: str) -> None:
        """Turn a playlist into a mirror of the given remote collection."""
        model = await self.session.get(PlaylistModel, playlist_id)
        if model is None:
            raise EntityNotFoundException("Playlist", playlist_id)
        model.type = PlaylistType.MIRROR.value
        model.remote_sync_id = remote_sync_id
        await self.session.flush()

    async def upsert_tracks(self, tracks: list[TrackRef]) -> dict[str, int]:
        """Insert missing tracks by external_id. Returns external_id → row id.

        Existing rows are never rewritten - track references are immutable.
        """
        if not tracks:
            return {}
        external_ids = list(dict.fromkeys(track.external_id for track in tracks))
        stmt = select(TrackModel).where(TrackModel.external_id.in_(external_ids))
        result = await self.session.execute(stmt)
        existing = {model.external_id: model.id for model in result.scalars().all()}

        new_models: list[TrackModel] = []
        for track in tracks:
            if track.external_id in existing or any(
                m.external_id == track.external_id for m in new_models
            ):
                continue
            new_models.append(
                TrackModel(
                    external_id=track.external_id,
                    title=track.title,
                    artist=track.artist,
                    duration=track.duration,
                )
            )
        if new_models:
            self.session.add_all(new_models)
            await self.session.flush()
            existing.update({model.external_id: model.id for model in new_models})
        return existing

    async def max_sort_key(self, playlist_id: int) -> str | None:
        """Largest sort key in the playlist (None if empty or all legacy)."""
        stmt = select(func.max(PlaylistTrackModel.sort_key)).where(
            PlaylistTrackModel.playlist_id == playlist_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_tracks(self, playlist_id: int, tracks: list[TrackRef]) -> list[str]:
        """Append tracks after the current last key.

        Tracks already in the playlist (or repeated in the input) are skipped.

        Returns:
            External ids actually added, in input order
        """
        if await self.session.get(PlaylistModel, playlist_id) is None:
            raise EntityNotFoundException("Playlist", playlist_id)

        ids = await self.upsert_tracks(tracks)
        stmt = select(PlaylistTrackModel.track_id).where(
            PlaylistTrackModel.playlist_id == playlist_id
        )
        result = await self.session.execute(stmt)
        member_ids = set(result.scalars().all())

        to_add: list[str] = []
        for track in tracks:
            row_id = ids[track.external_id]
            if row_id in member_ids or track.external_id in to_add:
                continue
            to_add.append(track.external_id)

        if not to_add:
            return []

        keys = keys_between(await self.max_sort_key(playlist_id), None, len(to_add))
        for external_id, sort_key in zip(to_add, keys, strict=True):
            self.session.add(
                PlaylistTrackModel(
                    playlist_id=playlist_id,
                    track_id=ids[external_id],
                    sort_key=sort_key,
                )
            )
        await self.session.flush()
        return to_add

    async def remove_tracks(self, playlist_id: int, external_ids: list[str]) -> list[str]:
        """Remove membership rows. Returns the external ids that were present."""
        if not external_ids:
            return []
        stmt = (
            select(PlaylistTrackModel, TrackModel.external_id)
            .join(TrackModel, PlaylistTrackModel.track_id == TrackModel.id)
            .where(
                PlaylistTrackModel.playlist_id == playlist_id,
                TrackModel.external_id.in_(external_ids),
            )
        )
        result = await self.session.execute(stmt)
        removed: list[str] = []
        for membership, external_id in result.all():
            await self.session.delete(membership)
            removed.append(external_id)
        await self.session.flush()
        # Keep the caller's order
        return [external_id for external_id in external_ids if external_id in removed]

    async def _membership(
        self, playlist_id: int, external_id: str
    ) -> PlaylistTrackModel | None:
        stmt = (
            select(PlaylistTrackModel)
            .join(TrackModel, PlaylistTrackModel.track_id == TrackModel.id)
            .where(
                PlaylistTrackModel.playlist_id == playlist_id,
                TrackModel.external_id == external_id,
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_sort_key(self, playlist_id: int, external_id: str) -> str | None:
        membership = await self._membership(playlist_id, external_id)
        return membership.sort_key if membership else None

    async def set_sort_key(self, playlist_id: int, external_id: str, sort_key: str) -> bool:
        """Rewrite ONE row's key (explicit reorder). False if the track is absent."""
        membership = await self._membership(playlist_id, external_id)
        if membership is None:
            return False
        membership.sort_key = sort_key
        membership.legacy_position = None
        await self.session.flush()
        return True

    async def playlists_with_legacy_rows(self) -> list[int]:
        """Playlists that still have rows without a sort key."""
        stmt = (
            select(PlaylistTrackModel.playlist_id)
            .where(PlaylistTrackModel.sort_key.is_(None))
            .distinct()
            .order_by(PlaylistTrackModel.playlist_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def legacy_rows(self, playlist_id: int) -> list[PlaylistTrackModel]:
        """Unmigrated rows of a playlist in ascending legacy order."""
        stmt = (
            select(PlaylistTrackModel)
            .where(
                PlaylistTrackModel.playlist_id == playlist_id,
                PlaylistTrackModel.sort_key.is_(None),
            )
            .order_by(PlaylistTrackModel.legacy_position, PlaylistTrackModel.track_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def _track_to_entity(model: TrackModel) -> TrackRef:
        return TrackRef(
            id=model.id,
            external_id=model.external_id,
            title=model.title,
            artist=model.artist,
            duration=model.duration,
        )


class AppSettingsRepository:
    """Persisted runtime flags (app_settings table)."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def get_bool(self, key: str, default: bool = False) -> bool:
        model = await self.session.get(AppSettingsModel, key)
        if model is None or model.value is None:
            return default
        return model.value.lower() in ("1", "true", "yes")

    async def set_bool(self, key: str, value: bool, category: str = "general") -> None:
        model = await self.session.get(AppSettingsModel, key)
        if model is None:
            model = AppSettingsModel(
                key=key, value_type="boolean", category=category
            )
            self.session.add(model)
        model.value = "true" if value else "false"
        await self.session.flush()
