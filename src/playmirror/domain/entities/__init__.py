"""Domain entities."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from playmirror.domain.entities.matching import (
    MANUAL_MATCH_SCORE,
    ExternalPlaylist,
    ExternalTrack,
    MatchCandidate,
    MatchResult,
    MatchStatus,
    RemoteCandidate,
)
from playmirror.domain.exceptions import ValidationError


# Hey future me, PlaylistType decides whether a playlist takes part in sync at all!
# LOCAL playlists live only on this device. MIRROR playlists are bound to a remote
# collection via remote_sync_id, and the remote side is overwritten to match us.
class PlaylistType(str, Enum):
    """Kind of local playlist."""

    LOCAL = "local"
    MIRROR = "mirror"


@dataclass(frozen=True)
class TrackRef:
    """Reference to a track on the remote platform.

    external_id is the remote platform's opaque id - it's what goes into outbox
    payloads and remote API calls. id is the local row id (None until persisted).
    Immutable once persisted; this subsystem never deletes tracks.
    """

    external_id: str
    title: str
    artist: str | None = None
    duration: float | None = None  # seconds
    id: int | None = None

    def __post_init__(self) -> None:
        if not self.external_id or not self.external_id.strip():
            raise ValidationError("TrackRef.external_id cannot be empty")


# Listen, Playlist is a READ model here - membership is ordered by sort key and the
# sync engine never edits it in place. Changes go through PlaylistService which
# writes the local rows AND enqueues the matching outbox entry in one transaction.
@dataclass
class Playlist:
    """Local playlist with ordered membership."""

    id: int
    title: str
    type: PlaylistType = PlaylistType.LOCAL
    remote_sync_id: str | None = None
    description: str | None = None
    cover_url: str | None = None
    tracks: list[TrackRef] = field(default_factory=list)

    @property
    def is_mirrored(self) -> bool:
        """True when the playlist is bound to a remote collection."""
        return self.type == PlaylistType.MIRROR and bool(self.remote_sync_id)

    def external_ids(self) -> list[str]:
        """External ids in playlist order."""
        return [track.external_id for track in self.tracks]

    def position_of(self, external_id: str) -> int | None:
        """Zero-based position of a track, or None if absent."""
        for index, track in enumerate(self.tracks):
            if track.external_id == external_id:
                return index
        return None


@dataclass(frozen=True)
class RemoteCollection:
    """A collection (favourites folder) on the remote platform."""

    id: str
    title: str
    track_count: int = 0


class SyncOperation(str, Enum):
    """Remote mutation kinds stored in the outbox."""

    ADD_TRACKS = "add_tracks"
    REMOVE_TRACKS = "remove_tracks"
    REORDER_TRACK = "reorder_track"
    UPDATE_METADATA = "update_metadata"


# Yo, SyncStatus is the STATE MACHINE for outbox entries:
#   PENDING → PROCESSING → COMPLETED | FAILED
# FAILED is terminal for the worker. Only an explicit user retry moves it back to
# PENDING (SyncQueueRepository.requeue). No automatic retries, ever.
class SyncStatus(str, Enum):
    """Status of an outbox entry."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncStatus.COMPLETED, SyncStatus.FAILED)


METADATA_FIELDS = ("title", "description", "cover_url")


def _require_id_list(payload: dict[str, Any], key: str, operation: str) -> list[str]:
    ids = payload.get(key)
    if not isinstance(ids, list) or not ids:
        raise ValidationError(f"{operation} payload needs a non-empty '{key}' list")
    for track_id in ids:
        if not isinstance(track_id, str) or not track_id:
            raise ValidationError(f"{operation} payload has an invalid track id: {track_id!r}")
    return ids


def validate_payload(operation: SyncOperation, payload: Any) -> dict[str, Any]:
    """Check that a payload has the shape its operation needs.

    Returns the payload unchanged so callers can validate inline.

    Raises:
        ValidationError: payload is not a dict or misses required keys
    """
    if not isinstance(payload, dict):
        raise ValidationError(f"{operation.value} payload must be an object")

    if operation in (SyncOperation.ADD_TRACKS, SyncOperation.REMOVE_TRACKS):
        _require_id_list(payload, "track_ids", operation.value)
    elif operation == SyncOperation.REORDER_TRACK:
        track_id = payload.get("track_id")
        if not isinstance(track_id, str) or not track_id:
            raise ValidationError("reorder_track payload needs a 'track_id' string")
    elif operation == SyncOperation.UPDATE_METADATA:
        if not any(key in payload for key in METADATA_FIELDS):
            raise ValidationError(
                f"update_metadata payload needs one of {', '.join(METADATA_FIELDS)}"
            )
    return payload


@dataclass
class SyncQueueEntry:
    """One persisted remote mutation.

    created_at is epoch milliseconds. attempts is informational only - it counts
    how often the worker picked the entry up and never drives a retry.
    """

    id: int
    playlist_id: int
    operation: SyncOperation
    payload: dict[str, Any]
    status: SyncStatus = SyncStatus.PENDING
    created_at: int = 0
    attempts: int = 0
    last_error: str | None = None

    @property
    def track_ids(self) -> list[str]:
        """Track ids carried by add/remove payloads (empty for other operations)."""
        ids = self.payload.get("track_ids")
        return list(ids) if isinstance(ids, list) else []


@dataclass(frozen=True)
class MirrorDiff:
    """Result of comparing local and remote membership."""

    to_add: frozenset[str]
    to_remove: frozenset[str]

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove

    def apply(self, remote_ids: set[str] | frozenset[str]) -> frozenset[str]:
        """Remote membership after this diff has been applied."""
        return (frozenset(remote_ids) - self.to_remove) | self.to_add


__all__ = [
    "MANUAL_MATCH_SCORE",
    "METADATA_FIELDS",
    "ExternalPlaylist",
    "ExternalTrack",
    "MatchCandidate",
    "MatchResult",
    "MatchStatus",
    "MirrorDiff",
    "Playlist",
    "PlaylistType",
    "RemoteCandidate",
    "RemoteCollection",
    "SyncOperation",
    "SyncQueueEntry",
    "SyncStatus",
    "TrackRef",
    "validate_payload",
]
