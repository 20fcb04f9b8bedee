"""create_schedule_tables

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates channels, library_items and schedule_blocks.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'channels',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('item_ids', sa.JSON(), nullable=False),
        sa.Column('content_version', sa.Integer(), server_default=sa.text('1'), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("kind IN ('auto', 'preset', 'custom')", name=op.f('ck_channels_channel_kind')),
        sa.CheckConstraint('content_version >= 1', name=op.f('ck_channels_content_version_positive')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_channels')),
    )
    op.create_index('ix_channels_number', 'channels', ['number'], unique=False)

    op.create_table(
        'library_items',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('item_type', sa.String(length=16), nullable=False),
        sa.Column('series_name', sa.Text(), nullable=True),
        sa.Column('season_number', sa.Integer(), nullable=True),
        sa.Column('episode_number', sa.Integer(), nullable=True),
        sa.Column('runtime_ms', sa.BigInteger(), nullable=True),
        sa.Column('production_year', sa.Integer(), nullable=True),
        sa.Column('rating', sa.String(length=32), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_library_items')),
    )

    op.create_table(
        'schedule_blocks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('channel_id', sa.Integer(), nullable=False),
        sa.Column('block_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('block_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('entries', sa.JSON(), nullable=False),
        sa.Column('seed', sa.JSON(), nullable=False),
        sa.Column('next_seed', sa.JSON(), nullable=False),
        sa.Column('content_version', sa.Integer(), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('block_end > block_start', name=op.f('ck_schedule_blocks_block_bounds')),
        sa.ForeignKeyConstraint(
            ['channel_id'], ['channels.id'],
            name=op.f('fk_schedule_blocks_channel_id_channels'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_schedule_blocks')),
        sa.UniqueConstraint('channel_id', 'block_start', name='uq_schedule_blocks_channel_start'),
    )
    op.create_index('ix_schedule_blocks_channel_start', 'schedule_blocks', ['channel_id', 'block_start'], unique=False)
    op.create_index('ix_schedule_blocks_block_end', 'schedule_blocks', ['block_end'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_schedule_blocks_block_end', table_name='schedule_blocks')
    op.drop_index('ix_schedule_blocks_channel_start', table_name='schedule_blocks')
    op.drop_table('schedule_blocks')
    op.drop_table('library_items')
    op.drop_index('ix_channels_number', table_name='channels')
    op.drop_table('channels')
