"""Infrastructure persistence layer."""

from .database import Database
from .models import (
    AppSettingsModel,
    Base,
    PlaylistModel,
    PlaylistTrackModel,
    SyncQueueModel,
    TrackModel,
)
from .repositories import (
    AppSettingsRepository,
    PlaylistRepository,
    SyncQueueRepository,
)

__all__ = [
    "AppSettingsModel",
    "AppSettingsRepository",
    "Base",
    "Database",
    "PlaylistModel",
    "PlaylistRepository",
    "PlaylistTrackModel",
    "SyncQueueModel",
    "SyncQueueRepository",
    "TrackModel",
]
