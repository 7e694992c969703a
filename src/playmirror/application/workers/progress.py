"""Progress channel for sync drains.

Hey future me - the channel is how a drain talks back to whoever triggered it:
ordered SyncProgress records, then exactly ONE terminal record carrying the
DrainSummary. It's also the cancel button: channel.close() asks the drain to stop
after the entry it is currently working on.

Every `async for` is its own subscription and replays from the first record, so
the caller that started the drain and a caller that got ALREADY_RUNNING can both
follow it to the end.

USAGE:
    result = worker.trigger_sync(playlist_id)
    async for progress in result.channel:
        print(progress.current, progress.total, progress.message)
    print(result.channel.summary)
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import cast


class ProgressStage(str, Enum):
    """Where a drain currently is."""

    STARTED = "started"
    PROCESSING = "processing"
    FINISHED = "finished"


class DrainStatus(str, Enum):
    """Terminal state of a drain."""

    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DrainSummary:
    """Counts for one drain scope.

    skipped = entries finished without a remote call of their own (superseded
    metadata updates, entries another drain already claimed).
    """

    succeeded: int
    failed: int
    skipped: int
    status: DrainStatus


@dataclass(frozen=True)
class SyncProgress:
    """One progress record. summary is set on the terminal record only."""

    current: int
    total: int
    stage: ProgressStage
    message: str = ""
    summary: DrainSummary | None = None

    @property
    def is_terminal(self) -> bool:
        return self.summary is not None


class SyncProgressChannel:
    """Ordered, cancellable, multi-reader stream of SyncProgress records for one drain scope."""

    def __init__(self, scope: int | str) -> None:
        self.scope = scope
        self._records: list[SyncProgress] = []
        self._updated = asyncio.Event()
        self._cancel_requested = False
        self._finished = asyncio.Event()
        self._summary: DrainSummary | None = None

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    @property
    def is_finished(self) -> bool:
        return self._finished.is_set()

    @property
    def summary(self) -> DrainSummary | None:
        """Terminal summary, None while the drain is still running."""
        return self._summary

    @property
    def records(self) -> list[SyncProgress]:
        """Snapshot of everything published so far."""
        return list(self._records)

    def close(self) -> None:
        """Ask the drain to stop after its in-flight entry.

        Entries not started yet stay pending for the next trigger.
        """
        self._cancel_requested = True

    def publish(self, progress: SyncProgress) -> None:
        """Push a non-terminal record (ignored after the terminal one)."""
        if self.is_finished:
            return
        self._append(progress)

    def finish(self, current: int, total: int, summary: DrainSummary, message: str = "") -> None:
        """Push the terminal record. Only the first call counts."""
        if self.is_finished:
            return
        self._summary = summary
        self._finished.set()
        self._append(
            SyncProgress(
                current=current,
                total=total,
                stage=ProgressStage.FINISHED,
                message=message or f"Sync {summary.status.value}",
                summary=summary,
            )
        )

    def _append(self, progress: SyncProgress) -> None:
        self._records.append(progress)
        # Wake every reader parked on the old event; later waits use the fresh one
        updated, self._updated = self._updated, asyncio.Event()
        updated.set()

    async def wait(self) -> DrainSummary:
        """Wait for the terminal record without reading the stream."""
        await self._finished.wait()
        return cast(DrainSummary, self._summary)

    def __aiter__(self) -> AsyncIterator[SyncProgress]:
        return self._follow()

    async def _follow(self) -> AsyncIterator[SyncProgress]:
        index = 0
        while True:
            while index < len(self._records):
                record = self._records[index]
                index += 1
                yield record
            if self.is_finished:
                return
            await self._updated.wait()
