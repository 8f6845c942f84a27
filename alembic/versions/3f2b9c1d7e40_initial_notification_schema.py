"""initial_notification_schema

Revision ID: 3f2b9c1d7e40
Revises:
Create Date: 2026-10-18 09:12:44.503211

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f2b9c1d7e40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade() -> None:
    """Create the tour, change log, preference and delivery tables."""

    # Helper for JSON type
    JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB, "postgresql")

    # 1. People and tours
    # -------------------
    op.create_table('users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    op.create_table('tours',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='ACTIVE', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('tour_members',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=20), server_default='CREW', nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tour_id', 'user_id', name='uq_tour_members_tour_user')
    )

    op.create_table('schedule_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('venue', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=255), nullable=True),
        sa.Column('event_date', sa.Date(), nullable=True),
        sa.Column('load_in', sa.DateTime(timezone=True), nullable=True),
        sa.Column('soundcheck', sa.DateTime(timezone=True), nullable=True),
        sa.Column('doors', sa.DateTime(timezone=True), nullable=True),
        sa.Column('show_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_schedule_events_tour_date', 'schedule_events', ['tour_id', 'event_date'])

    # 2. Change log
    # -------------
    op.create_table('change_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('author_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('detail', JSON_TYPE, nullable=True),
        sa.Column('affects_safety', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('affects_time', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('affects_money', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('severity', sa.String(length=20), server_default='INFO', nullable=False),
        sa.Column('associated_date', sa.Date(), nullable=True),
        sa.Column('processed', sa.Boolean(), server_default='false', nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id']),
        sa.ForeignKeyConstraint(['author_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'idx_change_events_tour_processed_created', 'change_events', ['tour_id', 'processed', 'created_at']
    )

    # 3. Preferences
    # --------------
    op.create_table('tour_notification_defaults',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('min_severity', sa.String(length=20), server_default='CRITICAL', nullable=False),
        sa.Column('day_window', sa.Integer(), server_default='3', nullable=False),
        sa.Column('notify_schedule_changes', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('notify_contact_changes', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('notify_venue_changes', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('notify_finance_changes', sa.Boolean(), server_default='false', nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tour_id')
    )

    op.create_table('notification_preferences',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('min_severity', sa.String(length=20), server_default='CRITICAL', nullable=False),
        sa.Column('safety_always', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('time_always', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('money_always', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('day_window', sa.Integer(), server_default='3', nullable=False),
        sa.Column('notify_schedule_changes', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('notify_contact_changes', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('notify_venue_changes', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('notify_finance_changes', sa.Boolean(), server_default='false', nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'tour_id', name='uq_notification_preferences_user_tour')
    )

    # 4. Delivery
    # -----------
    op.create_table('direct_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=True),
        sa.Column('recipient_id', sa.Integer(), nullable=False),
        sa.Column('change_event_id', sa.Integer(), nullable=True),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), server_default='false', nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id']),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id']),
        sa.ForeignKeyConstraint(['recipient_id'], ['users.id']),
        sa.ForeignKeyConstraint(['change_event_id'], ['change_events.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('change_event_id', 'recipient_id', name='uq_direct_messages_change_recipient')
    )
    op.create_index('idx_direct_messages_recipient_created', 'direct_messages', ['recipient_id', 'created_at'])

    op.create_table('event_reminders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('enabled', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('remind_type', sa.String(length=20), server_default='load_in', nullable=False),
        sa.Column('lead_minutes', sa.Integer(), server_default='120', nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['event_id'], ['schedule_events.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id', 'user_id', name='uq_event_reminders_event_user')
    )
    op.create_index('idx_event_reminders_enabled', 'event_reminders', ['enabled'])

    op.create_table('scheduled_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=False),
        sa.Column('to_phone', sa.String(length=32), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('send_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sent', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('is_self', sa.Boolean(), server_default='true', nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('idx_scheduled_messages_sent_send_at', 'scheduled_messages', ['sent', 'send_at'])

    op.create_table('delivery_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('source_kind', sa.String(length=30), nullable=False),
        sa.Column('source_id', sa.Integer(), nullable=False),
        sa.Column('reminder_id', sa.Integer(), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('remind_type', sa.String(length=20), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['reminder_id'], ['event_reminders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_kind', 'source_id', 'phone', 'remind_type', name='uq_delivery_log_source_phone_type')
    )

    op.create_table('sms_outbound',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tour_id', sa.Integer(), nullable=True),
        sa.Column('to_phone', sa.String(length=32), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='sent', nullable=False),
        sa.Column('provider_ref', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tour_id'], ['tours.id']),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    op.drop_table('sms_outbound')
    op.drop_table('delivery_log')
    op.drop_index('idx_scheduled_messages_sent_send_at', table_name='scheduled_messages')
    op.drop_table('scheduled_messages')
    op.drop_index('idx_event_reminders_enabled', table_name='event_reminders')
    op.drop_table('event_reminders')
    op.drop_index('idx_direct_messages_recipient_created', table_name='direct_messages')
    op.drop_table('direct_messages')
    op.drop_table('notification_preferences')
    op.drop_table('tour_notification_defaults')
    op.drop_index('idx_change_events_tour_processed_created', table_name='change_events')
    op.drop_table('change_events')
    op.drop_index('idx_schedule_events_tour_date', table_name='schedule_events')
    op.drop_table('schedule_events')
    op.drop_table('tour_members')
    op.drop_table('tours')
    op.drop_table('users')
