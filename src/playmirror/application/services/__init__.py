"""Application services."""

from playmirror.application.services.external_playlist_importer import (
    ExternalPlaylistImporter,
    ImportProgress,
)
from playmirror.application.services.mirror_differ import diff, ordered_diff
from playmirror.application.services.playlist_service import PlaylistService
from playmirror.application.services.sort_key_migration import (
    SORT_KEY_MIGRATION_FLAG,
    SortKeyMigration,
)
from playmirror.application.services.track_matcher import TrackMatcher, clean_title

__all__ = [
    "SORT_KEY_MIGRATION_FLAG",
    "ExternalPlaylistImporter",
    "ImportProgress",
    "PlaylistService",
    "SortKeyMigration",
    "TrackMatcher",
    "clean_title",
    "diff",
    "ordered_diff",
]
