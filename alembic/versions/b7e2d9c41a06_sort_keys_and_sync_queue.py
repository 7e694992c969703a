"""sort keys and sync queue

Revision ID: b7e2d9c41a06
Revises: a1f0c3d2e4b5
Create Date: 2025-11-17 09:30:00.000000

Hey future me - two things happen here:

1. ORDERING: playlist_tracks.position becomes legacy_position (nullable) and gets a
   sort_key next to it. Existing rows keep sort_key NULL - the SortKeyMigration
   service fills them in on first start (it needs key_between(), which lives in
   Python, not SQL). New rows only ever get a sort_key.

2. OUTBOX: the sync_queue table. created_at is epoch MILLISECONDS (BigInteger),
   ties broken by id. ix_sync_queue_drain covers the worker's main query
   "pending entries of playlist X in order".
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'b7e2d9c41a06'
down_revision = 'a1f0c3d2e4b5'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # === Ordering: integer position → fractional sort key ===
    with op.batch_alter_table('playlist_tracks') as batch_op:
        batch_op.alter_column(
            'position',
            new_column_name='legacy_position',
            existing_type=sa.Integer,
            nullable=True,
        )
        batch_op.add_column(sa.Column('sort_key', sa.String(64), nullable=True))
        batch_op.create_unique_constraint('uq_playlist_tracks_sort_key', ['playlist_id', 'sort_key'])
        batch_op.create_index('ix_playlist_tracks_sort_key', ['playlist_id', 'sort_key'])

    # === Outbox ===
    op.create_table(
        'sync_queue',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('playlist_id', sa.Integer, nullable=False),
        sa.Column('operation', sa.String(32), nullable=False),
        sa.Column('payload', sa.Text, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('created_at', sa.BigInteger, nullable=False),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_sync_queue_playlist_id', 'sync_queue', ['playlist_id'])
    op.create_index('ix_sync_queue_status', 'sync_queue', ['status'])
    op.create_index(
        'ix_sync_queue_drain',
        'sync_queue',
        ['playlist_id', 'status', 'created_at', 'id'],
    )


def downgrade() -> None:
    op.drop_index('ix_sync_queue_drain', table_name='sync_queue')
    op.drop_index('ix_sync_queue_status', table_name='sync_queue')
    op.drop_index('ix_sync_queue_playlist_id', table_name='sync_queue')
    op.drop_table('sync_queue')

    # Rows inserted after the upgrade have no legacy position - fall back to 0
    op.execute('UPDATE playlist_tracks SET legacy_position = 0 WHERE legacy_position IS NULL')
    with op.batch_alter_table('playlist_tracks') as batch_op:
        batch_op.drop_index('ix_playlist_tracks_sort_key')
        batch_op.drop_constraint('uq_playlist_tracks_sort_key', type_='unique')
        batch_op.drop_column('sort_key')
        batch_op.alter_column(
            'legacy_position',
            new_column_name='position',
            existing_type=sa.Integer,
            nullable=False,
        )
