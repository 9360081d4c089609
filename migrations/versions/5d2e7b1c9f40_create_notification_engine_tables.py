"""create_notification_engine_tables

Revision ID: 5d2e7b1c9f40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '5d2e7b1c9f40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create notifications, delivery profile and statistics tables."""

    # --- notifications (scheduled deliveries) ---
    op.create_table('notifications',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('task_id', sa.UUID(), nullable=False),
        sa.Column('type', sa.String(length=40), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False,
                  server_default='pending'),
        sa.Column('channel', sa.String(length=20), nullable=False,
                  server_default='both'),
        sa.Column('payload', postgresql.JSONB(), nullable=False,
                  server_default='{}'),
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claim_token', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('NOW()')),
        sa.CheckConstraint(
            "status IN ('pending', 'claimed', 'sent', 'read', 'failed')",
            name='ck_notifications_status',
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_claim_token', 'notifications', ['claim_token'])
    op.create_index('ix_notifications_status_scheduled_for',
                    'notifications', ['status', 'scheduled_for'])

    # --- delivery_configs (one row per user) ---
    op.create_table('delivery_configs',
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('preferred_channel', sa.String(length=20), nullable=False,
                  server_default='both'),
        sa.Column('quiet_hours_start', sa.Integer(), nullable=True),
        sa.Column('quiet_hours_end', sa.Integer(), nullable=True),
        sa.Column('desktop_available', sa.Boolean(), nullable=False,
                  server_default='true'),
        sa.Column('mobile_available', sa.Boolean(), nullable=False,
                  server_default='true'),
        sa.Column('channels', postgresql.JSONB(), nullable=False,
                  server_default='{}'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('NOW()')),
        sa.CheckConstraint("preferred_channel IN ('email', 'push', 'both')"),
        sa.PrimaryKeyConstraint('user_id'),
    )

    # --- user_activity_patterns ---
    op.create_table('user_activity_patterns',
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('active_hours', postgresql.JSONB(), nullable=False,
                  server_default='[]'),
        sa.Column('preferred_devices', postgresql.JSONB(), nullable=False,
                  server_default='[]'),
        sa.Column('time_zone', sa.String(length=64), nullable=False,
                  server_default='UTC'),
        sa.Column('quiet_hours_start', sa.Integer(), nullable=True),
        sa.Column('quiet_hours_end', sa.Integer(), nullable=True),
        sa.Column('device_usage', postgresql.JSONB(), nullable=False,
                  server_default='{}'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('user_id'),
    )

    # --- notification_metrics (fixed-decay aggregates) ---
    op.create_table('notification_metrics',
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('read_rate', sa.Float(), nullable=False, server_default='1'),
        sa.Column('response_time_ms', sa.Float(), nullable=False, server_default='0'),
        sa.Column('email_effectiveness', sa.Float(), nullable=False, server_default='1'),
        sa.Column('push_effectiveness', sa.Float(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('user_id'),
    )

    # --- delivery_stats (windowed aggregates per channel) ---
    op.create_table('delivery_stats',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('channel', sa.String(length=20), nullable=False),
        sa.Column('delivery_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('response_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('engagement_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('failure_count', sa.Float(), nullable=False, server_default='0'),
        sa.Column('avg_response_time_ms', sa.Float(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'channel'),
    )
    op.create_index('ix_delivery_stats_user_id', 'delivery_stats', ['user_id'])


def downgrade() -> None:
    """Drop engine tables."""
    op.drop_index('ix_delivery_stats_user_id', table_name='delivery_stats')
    op.drop_table('delivery_stats')
    op.drop_table('notification_metrics')
    op.drop_table('user_activity_patterns')
    op.drop_table('delivery_configs')
    op.drop_index('ix_notifications_status_scheduled_for', table_name='notifications')
    op.drop_index('ix_notifications_claim_token', table_name='notifications')
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')
