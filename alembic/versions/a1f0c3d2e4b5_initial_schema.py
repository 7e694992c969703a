"""initial schema

Revision ID: a1f0c3d2e4b5
Revises:
Create Date: 2025-11-03 10:00:00.000000

Tracks, playlists, integer-ordered membership and the app_settings key/value table.
playlist_tracks.position is the OLD ordering - b7e2d9c41a06 replaces it with sort keys.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'a1f0c3d2e4b5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'tracks',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.String(64), nullable=False),
        sa.Column('title', sa.String(512), nullable=False),
        sa.Column('artist', sa.String(255), nullable=True),
        sa.Column('duration', sa.Float, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_tracks_external_id', 'tracks', ['external_id'], unique=True)

    op.create_table(
        'playlists',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('type', sa.String(20), nullable=False, server_default='local'),
        sa.Column('remote_sync_id', sa.String(64), nullable=True),
        sa.Column('cover_url', sa.String(512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_playlists_title', 'playlists', ['title'])
    op.create_index('ix_playlists_remote_sync_id', 'playlists', ['remote_sync_id'])

    op.create_table(
        'playlist_tracks',
        sa.Column('playlist_id', sa.Integer, sa.ForeignKey('playlists.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('track_id', sa.Integer, sa.ForeignKey('tracks.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('position', sa.Integer, nullable=False),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'app_settings',
        sa.Column('key', sa.String(100), primary_key=True),
        sa.Column('value', sa.Text, nullable=True),
        sa.Column('value_type', sa.String(20), nullable=False, server_default='string'),
        sa.Column('category', sa.String(50), nullable=False, server_default='general'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('app_settings')
    op.drop_table('playlist_tracks')
    op.drop_index('ix_playlists_remote_sync_id', table_name='playlists')
    op.drop_index('ix_playlists_title', table_name='playlists')
    op.drop_table('playlists')
    op.drop_index('ix_tracks_external_id', table_name='tracks')
    op.drop_table('tracks')
