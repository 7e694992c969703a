"""SQLAlchemy ORM models for PlayMirror."""

import time
from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import (
    BigInteger,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Hey future me, utc_now() ensures ALL datetime columns are UTC! Never use naive datetimes.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# The outbox stores created_at as epoch MILLISECONDS (integer), not a datetime.
# Ordering ties are broken by the autoincrement id, so two entries created in the
# same millisecond still drain in insertion order.
def epoch_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class TrackModel(Base):
    """Remote-platform track reference.

    Rows are immutable once written - we upsert by external_id and never delete.
    """

    __tablename__ = "tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True
    )
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    artist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)


# Listen up, PlaylistModel.type is "local" or "mirror". Only mirror playlists with a
# remote_sync_id take part in sync - the worker fails entries for anything else.
class PlaylistModel(Base):
    """SQLAlchemy model for Playlist entity."""

    __tablename__ = "playlists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="local")
    remote_sync_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    cover_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    playlist_tracks: Mapped[list["PlaylistTrackModel"]] = relationship(
        "PlaylistTrackModel",
        back_populates="playlist",
        cascade="all, delete-orphan",
    )


# Hey future me - sort_key replaced the old integer position! legacy_position is only
# read by the one-time SortKeyMigration; rows written after that have sort_key set
# and legacy_position NULL. sort_key NULL means "legacy row, not migrated yet".
class PlaylistTrackModel(Base):
    """Ordered membership of a track in a playlist."""

    __tablename__ = "playlist_tracks"

    playlist_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("playlists.id", ondelete="CASCADE"), primary_key=True
    )
    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), primary_key=True
    )
    sort_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    legacy_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    added_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    playlist: Mapped["PlaylistModel"] = relationship(
        "PlaylistModel", back_populates="playlist_tracks"
    )
    track: Mapped["TrackModel"] = relationship("TrackModel")

    __table_args__ = (
        UniqueConstraint("playlist_id", "sort_key", name="uq_playlist_tracks_sort_key"),
        Index("ix_playlist_tracks_sort_key", "playlist_id", "sort_key"),
    )


class SyncQueueModel(Base):
    """Persistent outbox of remote playlist mutations.

    Survives restarts - pending rows are drained on the next trigger, rows stuck in
    processing (process died mid-call) are reset by SyncQueueRepository.recover_stuck().
    """

    __tablename__ = "sync_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    playlist_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # add_tracks, remove_tracks, reorder_track, update_metadata
    operation: Mapped[str] = mapped_column(String(32), nullable=False)
    # JSON text
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    # pending, processing, completed, failed
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=epoch_ms)
    # Informational only - never used to schedule a retry
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        # Fast "pending entries of playlist X in order" query
        Index("ix_sync_queue_drain", "playlist_id", "status", "created_at", "id"),
    )


class AppSettingsModel(Base):
    """Key-value store for persisted runtime flags.

    Example keys:
    - 'ordering.sort_key_migrated' (boolean)
    """

    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    # 'string', 'boolean', 'integer', 'json'
    value_type: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="string", default="string"
    )
    category: Mapped[str] = mapped_column(
        String(50), nullable=False, server_default="general", default="general"
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
