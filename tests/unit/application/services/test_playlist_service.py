"""Tests for PlaylistService - local edits and the outbox entries they enqueue."""

import pytest
from helpers import FakeRemoteApi, create_playlist, make_tracks
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playmirror.application.services import PlaylistService
from playmirror.domain.entities import (
    ExternalTrack,
    MatchResult,
    MatchStatus,
    PlaylistType,
    RemoteCandidate,
    SyncOperation,
    SyncQueueEntry,
)
from playmirror.domain.exceptions import (
    EntityNotFoundException,
    InvalidStateException,
    ValidationError,
)
from playmirror.infrastructure.persistence import PlaylistRepository, SyncQueueRepository


@pytest.fixture
def service(session_factory: async_sessionmaker[AsyncSession]) -> PlaylistService:
    return PlaylistService(session_factory)


async def pending(
    session_factory: async_sessionmaker[AsyncSession], playlist_id: int
) -> list[SyncQueueEntry]:
    async with session_factory() as session:
        return await SyncQueueRepository(session).list_pending(playlist_id)


class TestCreatePlaylist:
    """Test playlist creation."""

    async def test_mirror_needs_remote_id(self, service: PlaylistService) -> None:
        with pytest.raises(ValidationError):
            await service.create_playlist("Mirror", type=PlaylistType.MIRROR)

    async def test_created_playlist_is_readable(self, service: PlaylistService) -> None:
        playlist_id = await service.create_playlist(
            "Mirror", type=PlaylistType.MIRROR, remote_sync_id="r-9", description="hi"
        )
        playlist = await service.get_playlist(playlist_id)
        assert playlist.title == "Mirror"
        assert playlist.is_mirrored
        assert playlist.description == "hi"
        assert playlist.tracks == []

    async def test_unknown_playlist(self, service: PlaylistService) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.get_playlist(999)


class TestMembershipEdits:
    """Test add/remove and their outbox entries."""

    async def test_add_enqueues_on_mirror_playlist(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory)

        added = await service.add_tracks(playlist_id, make_tracks("a", "b", "a"))

        assert added == ["a", "b"]
        entries = await pending(session_factory, playlist_id)
        assert [(e.operation, e.payload) for e in entries] == [
            (SyncOperation.ADD_TRACKS, {"track_ids": ["a", "b"]})
        ]
        playlist = await service.get_playlist(playlist_id)
        assert playlist.external_ids() == ["a", "b"]

    async def test_adding_only_existing_tracks_enqueues_nothing(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory, track_ids=("a",))
        assert await service.add_tracks(playlist_id, make_tracks("a")) == []
        assert await pending(session_factory, playlist_id) == []

    async def test_local_playlist_never_enqueues(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory, remote_sync_id=None)

        await service.add_tracks(playlist_id, make_tracks("a", "b"))
        await service.remove_tracks(playlist_id, ["a"])
        await service.update_metadata(playlist_id, title="Renamed")

        assert await pending(session_factory, playlist_id) == []
        assert (await service.get_playlist(playlist_id)).external_ids() == ["b"]

    async def test_remove_enqueues_present_ids_only(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory, track_ids=("a", "b", "c"))

        removed = await service.remove_tracks(playlist_id, ["c", "zzz", "a"])

        assert removed == ["c", "a"]
        entries = await pending(session_factory, playlist_id)
        assert entries[0].operation == SyncOperation.REMOVE_TRACKS
        assert entries[0].track_ids == ["c", "a"]

    async def test_add_to_missing_playlist(self, service: PlaylistService) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.add_tracks(404, make_tracks("a"))


class TestReorderAndMetadata:
    """Test reorder and metadata edits."""

    async def test_reorder_moves_only_that_track(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory, track_ids=("a", "b", "c"))
        async with session_factory() as session:
            repo = PlaylistRepository(session)
            key_a = await repo.get_sort_key(playlist_id, "a")
            key_b = await repo.get_sort_key(playlist_id, "b")
            key_c_before = await repo.get_sort_key(playlist_id, "c")

        new_key = await service.reorder_track(playlist_id, "c", key_a, key_b)

        assert key_a is not None and key_b is not None
        assert key_a < new_key < key_b
        playlist = await service.get_playlist(playlist_id)
        assert playlist.external_ids() == ["a", "c", "b"]
        async with session_factory() as session:
            repo = PlaylistRepository(session)
            assert await repo.get_sort_key(playlist_id, "a") == key_a
            assert await repo.get_sort_key(playlist_id, "b") == key_b
            assert await repo.get_sort_key(playlist_id, "c") != key_c_before

        entries = await pending(session_factory, playlist_id)
        assert [(e.operation, e.payload) for e in entries] == [
            (SyncOperation.REORDER_TRACK, {"track_id": "c"})
        ]

    async def test_reorder_to_front(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory, track_ids=("a", "b"))
        async with session_factory() as session:
            key_a = await PlaylistRepository(session).get_sort_key(playlist_id, "a")

        await service.reorder_track(playlist_id, "b", None, key_a)

        assert (await service.get_playlist(playlist_id)).external_ids() == ["b", "a"]

    async def test_reorder_missing_track(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory, track_ids=("a",))
        with pytest.raises(EntityNotFoundException):
            await service.reorder_track(playlist_id, "nope", None, None)
        assert await pending(session_factory, playlist_id) == []

    async def test_update_metadata_enqueues_changed_fields(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory)

        await service.update_metadata(playlist_id, title="New", cover_url="http://img/1.jpg")

        playlist = await service.get_playlist(playlist_id)
        assert playlist.title == "New"
        assert playlist.cover_url == "http://img/1.jpg"
        entries = await pending(session_factory, playlist_id)
        assert entries[0].operation == SyncOperation.UPDATE_METADATA
        assert entries[0].payload == {"title": "New", "cover_url": "http://img/1.jpg"}

    async def test_update_metadata_needs_a_field(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory)
        with pytest.raises(ValidationError):
            await service.update_metadata(playlist_id)


class TestPlanMirrorSync:
    """Test the local-vs-remote planner."""

    async def test_enqueues_remove_then_add(
        self,
        service: PlaylistService,
        session_factory: async_sessionmaker[AsyncSession],
        remote_api: FakeRemoteApi,
    ) -> None:
        playlist_id = await create_playlist(session_factory, track_ids=("a", "b", "c"))
        remote_api.collections["remote-1"] = ["b", "c", "d"]

        result = await service.plan_mirror_sync(playlist_id, remote_api)

        assert result.to_add == frozenset({"a"})
        assert result.to_remove == frozenset({"d"})
        entries = await pending(session_factory, playlist_id)
        assert [(e.operation, e.track_ids) for e in entries] == [
            (SyncOperation.REMOVE_TRACKS, ["d"]),
            (SyncOperation.ADD_TRACKS, ["a"]),
        ]

    async def test_in_sync_playlist_enqueues_nothing(
        self,
        service: PlaylistService,
        session_factory: async_sessionmaker[AsyncSession],
        remote_api: FakeRemoteApi,
    ) -> None:
        playlist_id = await create_playlist(session_factory, track_ids=("a", "b"))
        remote_api.collections["remote-1"] = ["b", "a"]

        result = await service.plan_mirror_sync(playlist_id, remote_api)

        assert result.is_empty
        assert await pending(session_factory, playlist_id) == []

    async def test_local_playlist_cannot_be_planned(
        self,
        service: PlaylistService,
        session_factory: async_sessionmaker[AsyncSession],
        remote_api: FakeRemoteApi,
    ) -> None:
        playlist_id = await create_playlist(session_factory, remote_sync_id=None)
        with pytest.raises(ValidationError):
            await service.plan_mirror_sync(playlist_id, remote_api)
        assert remote_api.calls == []


class TestBindRemoteCollection:
    """Test binding a local playlist to a remote collection."""

    async def test_reuses_collection_with_same_title(
        self,
        service: PlaylistService,
        session_factory: async_sessionmaker[AsyncSession],
        remote_api: FakeRemoteApi,
    ) -> None:
        playlist_id = await create_playlist(
            session_factory, title=" Road trip ", remote_sync_id=None
        )
        remote_api.titles["fav-7"] = "Road trip"
        remote_api.collections["fav-7"] = ["x"]

        collection = await service.bind_remote_collection(playlist_id, remote_api)

        assert (collection.id, collection.track_count) == ("fav-7", 1)
        assert remote_api.calls_to("create_collection") == []
        playlist = await service.get_playlist(playlist_id)
        assert playlist.type == PlaylistType.MIRROR
        assert playlist.remote_sync_id == "fav-7"
        assert await pending(session_factory, playlist_id) == []

    async def test_creates_collection_when_missing(
        self,
        service: PlaylistService,
        session_factory: async_sessionmaker[AsyncSession],
        remote_api: FakeRemoteApi,
    ) -> None:
        playlist_id = await create_playlist(session_factory, remote_sync_id=None, track_ids=("a",))

        collection = await service.bind_remote_collection(playlist_id, remote_api)

        assert remote_api.calls_to("create_collection") == [
            ("create_collection", "Road trip", None)
        ]
        assert (await service.get_playlist(playlist_id)).remote_sync_id == collection.id

        # Binding makes the playlist plannable
        result = await service.plan_mirror_sync(playlist_id, remote_api)
        assert result.to_add == frozenset({"a"})

    async def test_missing_collection_without_create(
        self,
        service: PlaylistService,
        session_factory: async_sessionmaker[AsyncSession],
        remote_api: FakeRemoteApi,
    ) -> None:
        playlist_id = await create_playlist(session_factory, remote_sync_id=None)

        with pytest.raises(EntityNotFoundException):
            await service.bind_remote_collection(playlist_id, remote_api, create_if_missing=False)

        assert not (await service.get_playlist(playlist_id)).is_mirrored

    async def test_already_bound_playlist(
        self,
        service: PlaylistService,
        session_factory: async_sessionmaker[AsyncSession],
        remote_api: FakeRemoteApi,
    ) -> None:
        playlist_id = await create_playlist(session_factory)
        with pytest.raises(InvalidStateException):
            await service.bind_remote_collection(playlist_id, remote_api)
        assert remote_api.calls == []


class TestSaveImport:
    """Test persisting import results."""

    async def test_only_usable_results_are_added_in_order(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory)
        source = ExternalTrack(title="Song")

        def result(candidate_id: str | None, status: MatchStatus) -> MatchResult:
            candidate = (
                RemoteCandidate(id=candidate_id, title=f"T{candidate_id}", duration=200)
                if candidate_id
                else None
            )
            return MatchResult(
                source_track=source, best_candidate=candidate, score=0.9, status=status
            )

        added = await service.save_import(
            playlist_id,
            [
                result("x", MatchStatus.MATCHED),
                result("y", MatchStatus.AMBIGUOUS),
                result(None, MatchStatus.UNMATCHED),
                result("z", MatchStatus.MATCHED),
            ],
        )

        assert added == ["x", "z"]
        entries = await pending(session_factory, playlist_id)
        assert entries[0].track_ids == ["x", "z"]

    async def test_nothing_usable(
        self, service: PlaylistService, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        playlist_id = await create_playlist(session_factory)
        assert await service.save_import(playlist_id, []) == []
        assert await pending(session_factory, playlist_id) == []
