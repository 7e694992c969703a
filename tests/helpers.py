"""Test doubles and seeding helpers shared by the test modules."""

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playmirror.domain.entities import PlaylistType, RemoteCandidate, RemoteCollection, TrackRef
from playmirror.domain.ports import IRemotePlaylistApi
from playmirror.infrastructure.persistence import PlaylistRepository


class FakeRemoteApi(IRemotePlaylistApi):
    """In-memory remote platform that records every call.

    failures["add_tracks"] = [None, TransientRemoteError(...)] lets the first
    add_tracks call through and makes the second one raise (consumed front to back).
    Set `gate` to an unset asyncio.Event to block every call until the test sets it.
    """

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.collections: dict[str, list[str]] = {}
        self.metadata: dict[str, dict] = {}
        self.search_results: dict[str, list[RemoteCandidate]] = {}
        self.failures: dict[str, list[Exception | None]] = {}
        self.gate: asyncio.Event | None = None
        # collection id → title, for find_collection / create_collection
        self.titles: dict[str, str] = {}

    async def _enter(self, name: str, *args: object) -> None:
        self.calls.append((name, *args))
        if self.gate is not None:
            await self.gate.wait()
        pending = self.failures.get(name)
        if pending:
            error = pending.pop(0)
            if error is not None:
                raise error

    def calls_to(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def add_tracks(self, collection_id: str, ids: list[str]) -> None:
        await self._enter("add_tracks", collection_id, list(ids))
        tracks = self.collections.setdefault(collection_id, [])
        tracks.extend(track_id for track_id in ids if track_id not in tracks)

    async def remove_tracks(self, collection_id: str, ids: list[str]) -> None:
        await self._enter("remove_tracks", collection_id, list(ids))
        tracks = self.collections.setdefault(collection_id, [])
        self.collections[collection_id] = [t for t in tracks if t not in ids]

    async def reorder(self, collection_id: str, track_id: str, position: int) -> None:
        await self._enter("reorder", collection_id, track_id, position)

    async def update_metadata(
        self,
        collection_id: str,
        title: str | None = None,
        description: str | None = None,
        cover_url: str | None = None,
    ) -> None:
        await self._enter("update_metadata", collection_id, title, description, cover_url)
        values = {"title": title, "description": description, "cover_url": cover_url}
        self.metadata.setdefault(collection_id, {}).update(
            {key: value for key, value in values.items() if value is not None}
        )

    async def list_tracks(self, collection_id: str) -> list[str]:
        await self._enter("list_tracks", collection_id)
        return list(self.collections.get(collection_id, []))

    async def search(self, query: str) -> list[RemoteCandidate]:
        await self._enter("search", query)
        return list(self.search_results.get(query, []))

    async def find_collection(self, title: str) -> RemoteCollection | None:
        await self._enter("find_collection", title)
        for collection_id, existing in self.titles.items():
            if existing.strip() == title.strip():
                return RemoteCollection(
                    id=collection_id,
                    title=existing,
                    track_count=len(self.collections.get(collection_id, [])),
                )
        return None

    async def create_collection(
        self, title: str, description: str | None = None
    ) -> RemoteCollection:
        await self._enter("create_collection", title, description)
        collection_id = f"created-{len(self.titles) + 1}"
        self.titles[collection_id] = title
        self.collections[collection_id] = []
        return RemoteCollection(id=collection_id, title=title)


def make_tracks(*external_ids: str) -> list[TrackRef]:
    return [
        TrackRef(external_id=external_id, title=f"Track {external_id}", duration=200.0)
        for external_id in external_ids
    ]


async def create_playlist(
    session_factory: async_sessionmaker[AsyncSession],
    title: str = "Road trip",
    remote_sync_id: str | None = "remote-1",
    track_ids: tuple[str, ...] = (),
) -> int:
    """Create a playlist directly through the repository (no outbox entries)."""
    async with session_factory.begin() as session:
        repo = PlaylistRepository(session)
        playlist_id = await repo.create(
            title=title,
            type=PlaylistType.MIRROR if remote_sync_id else PlaylistType.LOCAL,
            remote_sync_id=remote_sync_id,
        )
        if track_ids:
            await repo.add_tracks(playlist_id, make_tracks(*track_ids))
    return playlist_id
