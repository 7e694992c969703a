"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod

from playmirror.domain.entities import (
    ExternalPlaylist,
    Playlist,
    RemoteCandidate,
    RemoteCollection,
    SyncOperation,
    SyncQueueEntry,
    TrackRef,
)


# Hey future me, IRemotePlaylistApi is the remote platform as seen by the sync engine!
# The concrete client (HTTP, cookies, signing) lives outside this package - we only
# need these calls. Implementations MUST translate failures into domain exceptions:
#   - network / timeout / 429 / 5xx → TransientRemoteError
#   - expired or revoked credential  → AuthExpiredError
# Anything else escaping from here is treated as an unexpected per-entry failure.
class IRemotePlaylistApi(ABC):
    """Remote platform operations consumed by the sync worker and importer."""

    @abstractmethod
    async def add_tracks(self, collection_id: str, ids: list[str]) -> None:
        """Add tracks to a remote collection (at most one batch per call)."""
        pass

    @abstractmethod
    async def remove_tracks(self, collection_id: str, ids: list[str]) -> None:
        """Remove tracks from a remote collection (caller chunks to batch size)."""
        pass

    @abstractmethod
    async def reorder(self, collection_id: str, track_id: str, position: int) -> None:
        """Move one track to a zero-based position."""
        pass

    @abstractmethod
    async def update_metadata(
        self,
        collection_id: str,
        title: str | None = None,
        description: str | None = None,
        cover_url: str | None = None,
    ) -> None:
        """Update collection title/description/cover. None means unchanged."""
        pass

    @abstractmethod
    async def list_tracks(self, collection_id: str) -> list[str]:
        """All track ids currently in the remote collection."""
        pass

    @abstractmethod
    async def search(self, query: str) -> list[RemoteCandidate]:
        """Search remote tracks, in upstream ranking order."""
        pass

    @abstractmethod
    async def find_collection(self, title: str) -> RemoteCollection | None:
        """The account's collection with this title (whitespace-trimmed, exact), if any."""
        pass

    @abstractmethod
    async def create_collection(
        self, title: str, description: str | None = None
    ) -> RemoteCollection:
        """Create an empty collection on the account."""
        pass


class IExternalPlaylistSource(ABC):
    """Third-party catalog that can export a playlist (NetEase, QQ Music)."""

    platform: str

    @abstractmethod
    async def fetch_playlist(self, playlist_id: str) -> ExternalPlaylist:
        """Fetch playlist header and tracks."""
        pass


# Yo, these two repository ports are what the SQLAlchemy repositories implement.
# Tests can swap in doubles, but the provided tests use a real aiosqlite file DB
# because the ordering guarantees live in SQL (ORDER BY created_at, id).
class ISyncQueueRepository(ABC):
    """Persisted outbox of remote mutations."""

    @abstractmethod
    async def enqueue(
        self, playlist_id: int, operation: SyncOperation, payload: dict
    ) -> int:
        pass

    @abstractmethod
    async def get(self, entry_id: int) -> SyncQueueEntry | None:
        pass

    @abstractmethod
    async def list_pending(self, playlist_id: int) -> list[SyncQueueEntry]:
        pass

    @abstractmethod
    async def list_failed(self, playlist_id: int | None = None) -> list[SyncQueueEntry]:
        pass

    @abstractmethod
    async def pending_playlist_ids(self) -> list[int]:
        pass

    @abstractmethod
    async def mark_processing(self, entry_id: int) -> bool:
        pass

    @abstractmethod
    async def mark_completed(self, entry_id: int) -> None:
        pass

    @abstractmethod
    async def mark_failed(self, entry_id: int, error: str) -> None:
        pass

    @abstractmethod
    async def mark_many_failed(self, entry_ids: list[int], error: str) -> int:
        pass

    @abstractmethod
    async def requeue(self, entry_ids: list[int]) -> int:
        pass

    @abstractmethod
    async def release(self, entry_ids: list[int]) -> int:
        pass

    @abstractmethod
    async def recover_stuck(self) -> int:
        pass


class IPlaylistRepository(ABC):
    """Local playlists and their ordered membership."""

    @abstractmethod
    async def get_by_id(self, playlist_id: int) -> Playlist | None:
        pass

    @abstractmethod
    async def add_tracks(self, playlist_id: int, tracks: list[TrackRef]) -> list[str]:
        pass

    @abstractmethod
    async def remove_tracks(self, playlist_id: int, external_ids: list[str]) -> list[str]:
        pass

    @abstractmethod
    async def set_sort_key(self, playlist_id: int, external_id: str, sort_key: str) -> bool:
        pass


__all__ = [
    "IExternalPlaylistSource",
    "IPlaylistRepository",
    "IRemotePlaylistApi",
    "ISyncQueueRepository",
]
