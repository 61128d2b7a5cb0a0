"""create users, reminders, trigger ledger and push tables

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = 'a1c2e3f4b5d6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'reminders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False, index=True),
        sa.Column('doc_id', sa.String(512), nullable=False),
        sa.Column('event_key', sa.Text(), nullable=False),
        sa.Column('series_key', sa.Text(), nullable=True),
        sa.Column('series_id', sa.String(128), nullable=True, index=True),
        sa.Column('event_source', sa.String(64), nullable=False, server_default='unknown'),
        sa.Column('scope', sa.String(10), nullable=False, server_default='event'),
        sa.Column('event_epoch_ms', sa.BigInteger(), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('impact', sa.String(32), nullable=False, server_default='unknown'),
        sa.Column('timezone', sa.String(64), nullable=False),
        sa.Column('reminders', JSONB(), nullable=False, server_default='[]'),
        sa.Column('channels', JSONB(), nullable=False, server_default='{}'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('metadata', JSONB(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'doc_id', name='uq_reminders_user_doc'),
    )

    op.create_table(
        'notification_triggers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False, index=True),
        sa.Column('trigger_id', sa.String(512), nullable=False),
        sa.Column('event_key', sa.Text(), nullable=True),
        sa.Column('channel', sa.String(16), nullable=False),
        sa.Column('occurrence_epoch_ms', sa.BigInteger(), nullable=True),
        sa.Column('minutes_before', sa.Integer(), nullable=True),
        sa.Column('sent_at_ms', sa.BigInteger(), nullable=True),
        sa.Column('payload', JSONB(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'trigger_id', name='uq_notification_triggers_user_trigger'),
    )

    op.create_table(
        'notification_stats',
        sa.Column('user_id', sa.Integer(), primary_key=True),
        sa.Column('day_key', sa.String(10), primary_key=True),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'user_notification_settings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False, unique=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('timezone', sa.String(64), nullable=True),
        sa.Column('quiet_start_hour', sa.SmallInteger(), nullable=True),
        sa.Column('quiet_end_hour', sa.SmallInteger(), nullable=True),
    )

    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False, index=True),
        sa.Column('endpoint', sa.Text(), nullable=False, unique=True),
        sa.Column('p256dh', sa.Text(), nullable=False),
        sa.Column('auth', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('push_subscriptions')
    op.drop_table('user_notification_settings')
    op.drop_table('notification_stats')
    op.drop_table('notification_triggers')
    op.drop_table('reminders')
    op.drop_table('users')
