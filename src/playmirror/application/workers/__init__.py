"""Background workers."""

from playmirror.application.workers.playlist_sync_worker import (
    ALL_PLAYLISTS,
    PlaylistSyncWorker,
    TriggerResult,
    TriggerStatus,
)
from playmirror.application.workers.progress import (
    DrainStatus,
    DrainSummary,
    ProgressStage,
    SyncProgress,
    SyncProgressChannel,
)

__all__ = [
    "ALL_PLAYLISTS",
    "DrainStatus",
    "DrainSummary",
    "PlaylistSyncWorker",
    "ProgressStage",
    "SyncProgress",
    "SyncProgressChannel",
    "TriggerResult",
    "TriggerStatus",
]
