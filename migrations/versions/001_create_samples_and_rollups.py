"""Create samples and rollups tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
  # Raw samples: append-only, read by channel and time range
  op.create_table(
    'samples',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('channel_id', sa.Integer(), nullable=False),
    sa.Column('timestamp', sa.BigInteger(), nullable=False),
    sa.Column('value', sa.Float(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
  )
  op.create_index('ix_samples_channel_timestamp', 'samples', ['channel_id', 'timestamp'])

  # Rollups: one row per (channel, level, bucket), timestamp = max sample timestamp
  op.create_table(
    'rollups',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('channel_id', sa.Integer(), nullable=False),
    sa.Column('level', sa.SmallInteger(), nullable=False),
    sa.Column('timestamp', sa.BigInteger(), nullable=False),
    sa.Column('value', sa.Float(), nullable=False),
    sa.Column('count', sa.Integer(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('channel_id', 'level', 'timestamp', name='uq_rollups_channel_level_timestamp'),
  )
  op.create_index('ix_rollups_channel_level', 'rollups', ['channel_id', 'level'])


def downgrade():
  op.drop_index('ix_rollups_channel_level', table_name='rollups')
  op.drop_table('rollups')
  op.drop_index('ix_samples_channel_timestamp', table_name='samples')
  op.drop_table('samples')
