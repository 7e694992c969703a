"""Playlist sync worker - drains the outbox against the remote platform.

Hey future me - this is where local edits finally reach the remote side!

FLOW (per playlist):
1. Claim the playlist lock (one drain per playlist at a time)
2. Load pending entries in (created_at, id) order
3. For each entry: pending → processing → call remote → completed | failed
   Every transition is its OWN committed transaction, so a crash leaves at most
   one entry in "processing" (recover() puts it back to pending).
4. Report every finished entry on the progress channel

RULES:
- No automatic retries. A failed call marks the entry failed, full stop. The user
  retries from the failure list (retry_failed()).
- AuthExpiredError poisons the whole scope: later entries fail WITHOUT any remote call.
- Every remote call goes through the rate limiter (300 ms spacing by default).
- Cancellation (channel.close()) is checked BETWEEN entries, never mid-call.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playmirror.application.workers.progress import (
    DrainStatus,
    DrainSummary,
    ProgressStage,
    SyncProgress,
    SyncProgressChannel,
)
from playmirror.config import SyncSettings
from playmirror.domain.entities import (
    METADATA_FIELDS,
    Playlist,
    SyncOperation,
    SyncQueueEntry,
    validate_payload,
)
from playmirror.domain.exceptions import (
    AuthExpiredError,
    InvalidStateException,
    TransientRemoteError,
    ValidationError,
)
from playmirror.domain.ports import IRemotePlaylistApi
from playmirror.infrastructure.observability import log_operation, set_sync_run_id
from playmirror.infrastructure.persistence.models import epoch_ms
from playmirror.infrastructure.persistence.repositories import (
    PlaylistRepository,
    SyncQueueRepository,
)
from playmirror.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

ALL_PLAYLISTS = "all"

AUTH_SHORT_CIRCUIT_ERROR = "Skipped: remote credential expired earlier in this sync"


class TriggerStatus(str, Enum):
    STARTED = "started"
    ALREADY_RUNNING = "already_running"


@dataclass(frozen=True)
class TriggerResult:
    """Outcome of trigger_sync(). channel is the running drain's channel either way."""

    status: TriggerStatus
    channel: SyncProgressChannel


@dataclass
class _DrainTally:
    """Mutable counters shared by all playlists of one scope."""

    total: int = 0
    current: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    auth_expired: bool = False
    crashed: bool = False

    def summary(self) -> DrainSummary:
        if self.cancelled:
            status = DrainStatus.CANCELLED
        elif self.failed or self.crashed:
            status = DrainStatus.PARTIAL_FAILURE
        else:
            status = DrainStatus.COMPLETED
        return DrainSummary(
            succeeded=self.succeeded,
            failed=self.failed,
            skipped=self.skipped,
            status=status,
        )


@dataclass(frozen=True)
class _EntryOutcome:
    """What happened to one entry. error is None on success."""

    claimed: bool
    error: str | None = None


_NOT_CLAIMED = _EntryOutcome(claimed=False)


@dataclass
class _ActiveDrain:
    channel: SyncProgressChannel
    task: asyncio.Task[None]
    started_at: float = field(default_factory=time.time)


def _chunks(ids: Sequence[str], size: int) -> list[list[str]]:
    return [list(ids[start : start + size]) for start in range(0, len(ids), size)]


class PlaylistSyncWorker:
    """Drains the sync_queue outbox with bounded concurrency and rate limiting.

    One instance per app, created where sync gets triggered:

        worker = PlaylistSyncWorker(db.get_session_factory(), remote_api, settings.sync)
        await worker.recover()
        result = worker.trigger_sync(playlist_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        remote_api: IRemotePlaylistApi,
        settings: SyncSettings | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._remote_api = remote_api
        self._settings = settings or SyncSettings()
        self._rate_limiter = rate_limiter or RateLimiter.for_interval(
            self._settings.call_interval_ms, name="remote"
        )
        self._semaphore = asyncio.Semaphore(self._settings.max_concurrent_drains)
        self._playlist_locks: dict[int, asyncio.Lock] = {}
        self._active: dict[int | str, _ActiveDrain] = {}

    # =========================================================================
    # Triggers
    # =========================================================================

    def trigger_sync(self, scope: int | str = ALL_PLAYLISTS) -> TriggerResult:
        """Start draining a playlist id or ALL_PLAYLISTS.

        Single-flight per scope: while a drain for the same scope is running this
        returns ALREADY_RUNNING with the running drain's channel and starts nothing.
        Must be called from inside a running event loop.
        """
        if scope != ALL_PLAYLISTS and not isinstance(scope, int):
            raise ValidationError(f"Invalid sync scope: {scope!r}")

        active = self._active.get(scope)
        # A finished channel means the task is only unwinding; start a fresh drain
        if active is not None and not active.channel.is_finished:
            logger.debug(f"Sync for scope {scope} already running")
            return TriggerResult(status=TriggerStatus.ALREADY_RUNNING, channel=active.channel)

        channel = SyncProgressChannel(scope)
        task = asyncio.create_task(self._run_scope(scope, channel))
        active = _ActiveDrain(channel=channel, task=task)
        self._active[scope] = active

        def _forget(_task: asyncio.Task[None]) -> None:
            if self._active.get(scope) is active:
                del self._active[scope]

        task.add_done_callback(_forget)
        return TriggerResult(status=TriggerStatus.STARTED, channel=channel)

    def drain(self, playlist_id: int) -> SyncProgressChannel:
        """Drain one playlist and return its progress channel."""
        return self.trigger_sync(playlist_id).channel

    async def recover(self, trigger: bool = True) -> int:
        """Reset entries stuck in processing (process died mid-drain).

        Call at startup, before any drain. Optionally kicks off a full drain when
        something was recovered.
        """
        if self._active:
            raise InvalidStateException("Cannot recover while a sync is running")

        async with self._session_factory.begin() as session:
            recovered = await SyncQueueRepository(session).recover_stuck()

        if recovered and trigger:
            self.trigger_sync(ALL_PLAYLISTS)
        return recovered

    async def retry_failed(self, entry_ids: list[int]) -> dict[int, TriggerResult]:
        """Requeue failed entries and trigger their playlists.

        Returns:
            playlist_id → TriggerResult for every playlist that got entries back
        """
        async with self._session_factory.begin() as session:
            queue = SyncQueueRepository(session)
            playlist_ids: set[int] = set()
            for entry_id in entry_ids:
                entry = await queue.get(entry_id)
                if entry is not None:
                    playlist_ids.add(entry.playlist_id)
            requeued = await queue.requeue(entry_ids)

        if not requeued:
            return {}
        return {playlist_id: self.trigger_sync(playlist_id) for playlist_id in sorted(playlist_ids)}

    async def purge_completed(self) -> int:
        """Delete completed entries older than completed_retention_hours."""
        cutoff = epoch_ms() - self._settings.completed_retention_hours * 3600 * 1000
        async with self._session_factory.begin() as session:
            purged = await SyncQueueRepository(session).purge_completed(cutoff)
        if purged:
            logger.info(f"Purged {purged} completed sync entries")
        return purged

    async def wait_idle(self) -> None:
        """Wait until every running drain has finished."""
        while self._active:
            await asyncio.gather(
                *(active.task for active in list(self._active.values())),
                return_exceptions=True,
            )

    def get_status(self) -> dict[str, Any]:
        """Get worker status for monitoring."""
        now = time.time()
        return {
            "name": "Playlist Sync Worker",
            "running": bool(self._active),
            "active_scopes": [
                {
                    "scope": scope,
                    "running_seconds": round(now - active.started_at, 1),
                    "cancel_requested": active.channel.cancel_requested,
                }
                for scope, active in self._active.items()
            ],
            "max_concurrent_drains": self._settings.max_concurrent_drains,
            "call_interval_ms": self._settings.call_interval_ms,
            "batch_size": self._settings.batch_size,
        }

    # =========================================================================
    # Drain
    # =========================================================================

    def _lock_for(self, playlist_id: int) -> asyncio.Lock:
        lock = self._playlist_locks.get(playlist_id)
        if lock is None:
            lock = asyncio.Lock()
            self._playlist_locks[playlist_id] = lock
        return lock

    async def _run_scope(self, scope: int | str, channel: SyncProgressChannel) -> None:
        run_id = set_sync_run_id()
        tally = _DrainTally()
        try:
            async with log_operation(logger, "sync_drain", scope=str(scope), sync_run=run_id):
                async with self._session_factory() as session:
                    queue = SyncQueueRepository(session)
                    if scope == ALL_PLAYLISTS:
                        playlist_ids = await queue.pending_playlist_ids()
                    else:
                        playlist_ids = [int(scope)]
                    counts = {
                        playlist_id: (await queue.stats(playlist_id))["pending"]
                        for playlist_id in playlist_ids
                    }
                tally.total = sum(counts.values())
                channel.publish(
                    SyncProgress(
                        current=0,
                        total=tally.total,
                        stage=ProgressStage.STARTED,
                        message=f"Syncing {len(playlist_ids)} playlist(s)",
                    )
                )

                results = await asyncio.gather(
                    *(
                        self._drain_playlist(playlist_id, counts[playlist_id], channel, tally)
                        for playlist_id in playlist_ids
                    ),
                    return_exceptions=True,
                )
                for playlist_id, result in zip(playlist_ids, results, strict=True):
                    if isinstance(result, Exception):
                        tally.crashed = True
                        logger.error(
                            f"Drain of playlist {playlist_id} aborted: {result}",
                            exc_info=result,
                        )
        except Exception:
            # log_operation already logged it with the traceback
            tally.crashed = True
        finally:
            summary = tally.summary()
            channel.finish(
                current=tally.current,
                total=tally.total,
                summary=summary,
                message=(
                    f"Sync {summary.status.value}: {summary.succeeded} succeeded, "
                    f"{summary.failed} failed, {summary.skipped} skipped"
                ),
            )

    async def _drain_playlist(
        self,
        playlist_id: int,
        expected: int,
        channel: SyncProgressChannel,
        tally: _DrainTally,
    ) -> None:
        # Lock before slot: a playlist queued behind its own lock must not hold a slot
        async with self._lock_for(playlist_id), self._semaphore:
            if channel.cancel_requested:
                tally.cancelled = True
                return

            async with self._session_factory.begin() as session:
                entries = await SyncQueueRepository(session).list_pending(playlist_id)
                playlist = await PlaylistRepository(session).get_by_id(playlist_id)
            # Another drain may have taken some of them while we waited for the lock
            tally.total += len(entries) - expected

            if not entries:
                return

            if playlist is None or not playlist.is_mirrored:
                reason = (
                    f"Playlist {playlist_id} not found"
                    if playlist is None
                    else f"Playlist {playlist_id} is not bound to a remote collection"
                )
                await self._fail_remaining(entries, reason, channel, tally)
                return

            index = 0
            while index < len(entries):
                if channel.cancel_requested:
                    tally.cancelled = True
                    logger.info(
                        f"Sync of playlist {playlist_id} cancelled, "
                        f"{len(entries) - index} entries left pending"
                    )
                    return

                if tally.auth_expired:
                    await self._fail_remaining(
                        entries[index:], AUTH_SHORT_CIRCUIT_ERROR, channel, tally
                    )
                    return

                entry = entries[index]
                if entry.operation == SyncOperation.UPDATE_METADATA:
                    run = self._metadata_run(entries, index)
                    index += len(run)
                    await self._process_metadata_run(playlist, run, channel, tally)
                else:
                    index += 1
                    await self._process_entry(playlist, entry, channel, tally)

    @staticmethod
    def _metadata_run(entries: list[SyncQueueEntry], start: int) -> list[SyncQueueEntry]:
        end = start
        while end < len(entries) and entries[end].operation == SyncOperation.UPDATE_METADATA:
            end += 1
        return entries[start:end]

    # Listen up, consecutive metadata edits collapse into ONE remote call. The newest
    # entry carries the merged payload (newer fields win), the older ones share its
    # outcome: completed as superseded when the call worked, failed with the same error
    # when it didn't. A retry requeues them together and they collapse again. If the
    # newest entry can't be claimed, the older ones go back to pending untouched.
    async def _process_metadata_run(
        self,
        playlist: Playlist,
        run: list[SyncQueueEntry],
        channel: SyncProgressChannel,
        tally: _DrainTally,
    ) -> None:
        newest = run[-1]
        superseded: list[SyncQueueEntry] = []
        if len(run) > 1:
            merged: dict[str, Any] = {}
            for entry in run:
                merged.update(
                    {key: entry.payload[key] for key in METADATA_FIELDS if key in entry.payload}
                )
            newest = replace(newest, payload=merged or newest.payload)

            async with self._session_factory.begin() as session:
                queue = SyncQueueRepository(session)
                for entry in run[:-1]:
                    if await queue.mark_processing(entry.id):
                        superseded.append(entry)

        outcome = await self._process_entry(playlist, newest, channel, tally)

        # Entries someone else claimed in the meantime
        tally.current += len(run) - 1 - len(superseded)
        tally.skipped += len(run) - 1 - len(superseded)
        if not superseded:
            return

        if not outcome.claimed:
            async with self._session_factory.begin() as session:
                await SyncQueueRepository(session).release([entry.id for entry in superseded])
            tally.total -= len(superseded)
            logger.info(
                f"Entry {newest.id} was claimed elsewhere, "
                f"{len(superseded)} older metadata entries left pending"
            )
            return

        error = outcome.error
        async with self._session_factory.begin() as session:
            queue = SyncQueueRepository(session)
            if error is None:
                for entry in superseded:
                    await queue.mark_completed(entry.id)
            else:
                await queue.mark_many_failed([entry.id for entry in superseded], error)

        for entry in superseded:
            tally.current += 1
            if error is None:
                tally.skipped += 1
                self._publish(channel, tally, entry, f"superseded by #{newest.id}")
            else:
                tally.failed += 1
                self._publish(channel, tally, entry, f"failed with #{newest.id}: {error}")

    async def _process_entry(
        self,
        playlist: Playlist,
        entry: SyncQueueEntry,
        channel: SyncProgressChannel,
        tally: _DrainTally,
    ) -> _EntryOutcome:
        """Claim, apply and settle one entry."""
        async with self._session_factory.begin() as session:
            claimed = await SyncQueueRepository(session).mark_processing(entry.id)
        if not claimed:
            tally.current += 1
            tally.skipped += 1
            self._publish(channel, tally, entry, "skipped (no longer pending)")
            return _NOT_CLAIMED

        error: str | None = None
        try:
            await self._apply(playlist, entry)
        except AuthExpiredError as e:
            tally.auth_expired = True
            error = e.message
            logger.warning(f"Remote credential expired while processing entry {entry.id}")
        except TransientRemoteError as e:
            error = e.message
            logger.warning(f"Entry {entry.id} ({entry.operation.value}) failed: {e.message}")
        except ValidationError as e:
            error = e.message
            logger.warning(f"Entry {entry.id} ({entry.operation.value}) is invalid: {e.message}")
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.exception(f"Unexpected error processing sync entry {entry.id}")

        async with self._session_factory.begin() as session:
            queue = SyncQueueRepository(session)
            if error is None:
                await queue.mark_completed(entry.id)
            else:
                await queue.mark_failed(entry.id, error)

        tally.current += 1
        if error is None:
            tally.succeeded += 1
            self._publish(channel, tally, entry, "completed")
        else:
            tally.failed += 1
            self._publish(channel, tally, entry, f"failed: {error}")
        return _EntryOutcome(claimed=True, error=error)

    async def _fail_remaining(
        self,
        entries: list[SyncQueueEntry],
        reason: str,
        channel: SyncProgressChannel,
        tally: _DrainTally,
    ) -> None:
        async with self._session_factory.begin() as session:
            failed = await SyncQueueRepository(session).mark_many_failed(
                [entry.id for entry in entries], reason
            )
        tally.current += len(entries)
        tally.failed += failed
        tally.skipped += len(entries) - failed
        logger.warning(f"Failed {failed} sync entries without remote call: {reason}")
        channel.publish(
            SyncProgress(
                current=tally.current,
                total=tally.total,
                stage=ProgressStage.PROCESSING,
                message=f"{failed} entries failed: {reason}",
            )
        )

    @staticmethod
    def _publish(
        channel: SyncProgressChannel, tally: _DrainTally, entry: SyncQueueEntry, outcome: str
    ) -> None:
        channel.publish(
            SyncProgress(
                current=tally.current,
                total=tally.total,
                stage=ProgressStage.PROCESSING,
                message=(
                    f"{entry.operation.value} #{entry.id} "
                    f"(playlist {entry.playlist_id}): {outcome}"
                ),
            )
        )

    # =========================================================================
    # Remote calls
    # =========================================================================

    async def _apply(self, playlist: Playlist, entry: SyncQueueEntry) -> None:
        payload = validate_payload(entry.operation, entry.payload)
        collection_id = playlist.remote_sync_id
        if collection_id is None:
            raise ValidationError(f"Playlist {playlist.id} is not bound to a remote collection")

        if entry.operation == SyncOperation.ADD_TRACKS:
            for chunk in _chunks(payload["track_ids"], self._settings.batch_size):
                async with self._rate_limiter:
                    await self._remote_api.add_tracks(collection_id, chunk)

        elif entry.operation == SyncOperation.REMOVE_TRACKS:
            for chunk in _chunks(payload["track_ids"], self._settings.batch_size):
                async with self._rate_limiter:
                    await self._remote_api.remove_tracks(collection_id, chunk)

        elif entry.operation == SyncOperation.REORDER_TRACK:
            track_id = payload["track_id"]
            position = await self._current_position(playlist.id, track_id)
            async with self._rate_limiter:
                await self._remote_api.reorder(collection_id, track_id, position)

        elif entry.operation == SyncOperation.UPDATE_METADATA:
            async with self._rate_limiter:
                await self._remote_api.update_metadata(
                    collection_id,
                    title=payload.get("title"),
                    description=payload.get("description"),
                    cover_url=payload.get("cover_url"),
                )

    async def _current_position(self, playlist_id: int, track_id: str) -> int:
        # Position comes from the local order NOW, not when the reorder was queued
        async with self._session_factory() as session:
            playlist = await PlaylistRepository(session).get_by_id(playlist_id)
        position = playlist.position_of(track_id) if playlist is not None else None
        if position is None:
            raise ValidationError(f"Track {track_id} is no longer in playlist {playlist_id}")
        return position
