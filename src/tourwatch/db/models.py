"""ORM models for the tour knowledge base notification engine."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    JSON,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tourwatch.db.base import Base, TimestampMixin

# Utility for cross-dialect JSON support (JSONB on Postgres, JSON on SQLite)
JSON_VARIANT = JSON().with_variant(JSONB, "postgresql")

ADMIN_ROLES = ("TA", "MGMT")


class User(TimestampMixin, Base):
    """A human crew member / operator."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Relationships
    memberships: Mapped[List["TourMember"]] = relationship(back_populates="user")


class Tour(TimestampMixin, Base):
    """A touring production sharing one knowledge base."""

    __tablename__ = "tours"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="ACTIVE", nullable=False)

    # Relationships
    members: Mapped[List["TourMember"]] = relationship(back_populates="tour")
    schedule_events: Mapped[List["ScheduleEvent"]] = relationship(back_populates="tour")


class TourMember(TimestampMixin, Base):
    """Membership of a user in a tour. Role is one of TA, MGMT, CREW, DEMO."""

    __tablename__ = "tour_members"

    __table_args__ = (
        UniqueConstraint("tour_id", "user_id", name="uq_tour_members_tour_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(ForeignKey("tours.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="CREW", nullable=False)

    # Relationships
    tour: Mapped["Tour"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship(back_populates="memberships")

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


class ScheduleEvent(TimestampMixin, Base):
    """A show day. Timestamp columns are the reminder targets."""

    __tablename__ = "schedule_events"

    __table_args__ = (
        Index("idx_schedule_events_tour_date", "tour_id", "event_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(ForeignKey("tours.id"), nullable=False)

    venue: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    event_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    load_in: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    soundcheck: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    doors: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    show_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    tour: Mapped["Tour"] = relationship(back_populates="schedule_events")
    reminders: Mapped[List["ReminderSubscription"]] = relationship(back_populates="event")


class ChangeEvent(TimestampMixin, Base):
    """One signed-off mutation to the knowledge base. Append-only audit row."""

    __tablename__ = "change_events"

    __table_args__ = (
        Index("idx_change_events_tour_processed_created", "tour_id", "processed", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(ForeignKey("tours.id"), nullable=False)
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)

    summary: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    detail: Mapped[Optional[dict]] = mapped_column(JSON_VARIANT, nullable=True)

    affects_safety: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    affects_time: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    affects_money: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), default="INFO", nullable=False)

    associated_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class TourNotificationDefault(TimestampMixin, Base):
    """Tour-wide notification defaults. Carries no override flags."""

    __tablename__ = "tour_notification_defaults"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(ForeignKey("tours.id"), unique=True, nullable=False)

    min_severity: Mapped[str] = mapped_column(String(20), default="CRITICAL", nullable=False)
    day_window: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    notify_schedule_changes: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notify_contact_changes: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notify_venue_changes: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notify_finance_changes: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class NotificationPreference(TimestampMixin, Base):
    """Per (user, tour) notification preferences."""

    __tablename__ = "notification_preferences"

    __table_args__ = (
        UniqueConstraint("user_id", "tour_id", name="uq_notification_preferences_user_tour"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    tour_id: Mapped[int] = mapped_column(ForeignKey("tours.id"), nullable=False)

    min_severity: Mapped[str] = mapped_column(String(20), default="CRITICAL", nullable=False)
    safety_always: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    time_always: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    money_always: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    day_window: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    notify_schedule_changes: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notify_contact_changes: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notify_venue_changes: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notify_finance_changes: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class DirectMessage(TimestampMixin, Base):
    """Durable in-app message. One per (change event, recipient) when fanned out."""

    __tablename__ = "direct_messages"

    __table_args__ = (
        UniqueConstraint("change_event_id", "recipient_id", name="uq_direct_messages_change_recipient"),
        Index("idx_direct_messages_recipient_created", "recipient_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(ForeignKey("tours.id"), nullable=False)
    sender_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    recipient_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    change_event_id: Mapped[Optional[int]] = mapped_column(ForeignKey("change_events.id"), nullable=True)

    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class ReminderSubscription(TimestampMixin, Base):
    """SMS reminder for one timestamp of a schedule event. One per (event, user)."""

    __tablename__ = "event_reminders"

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_reminders_event_user"),
        Index("idx_event_reminders_enabled", "enabled"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("schedule_events.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    tour_id: Mapped[int] = mapped_column(ForeignKey("tours.id"), nullable=False)

    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    remind_type: Mapped[str] = mapped_column(String(20), default="load_in", nullable=False)
    lead_minutes: Mapped[int] = mapped_column(Integer, default=120, nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)

    # Relationships
    event: Mapped["ScheduleEvent"] = relationship(back_populates="reminders")


class ScheduledMessage(TimestampMixin, Base):
    """Ad hoc one-shot SMS: a personal reminder (is_self) or a text to someone else."""

    __tablename__ = "scheduled_messages"

    __table_args__ = (
        Index("idx_scheduled_messages_sent_send_at", "sent", "send_at"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    tour_id: Mapped[int] = mapped_column(ForeignKey("tours.id"), nullable=False)

    to_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    send_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_self: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class DeliveryLogEntry(Base):
    """Idempotency record for timed SMS sends. Existence means already sent."""

    __tablename__ = "delivery_log"

    __table_args__ = (
        UniqueConstraint(
            "source_kind", "source_id", "phone", "remind_type",
            name="uq_delivery_log_source_phone_type",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_kind: Mapped[str] = mapped_column(String(30), nullable=False)  # event_reminder, scheduled_message
    source_id: Mapped[int] = mapped_column(Integer, nullable=False)
    reminder_id: Mapped[Optional[int]] = mapped_column(ForeignKey("event_reminders.id"), nullable=True)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    remind_type: Mapped[str] = mapped_column(String(20), nullable=False)

    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class SmsOutbound(TimestampMixin, Base):
    """Audit row for every SMS handed to the gateway successfully."""

    __tablename__ = "sms_outbound"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tours.id"), nullable=True)
    to_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="sent", nullable=False)
    provider_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
