from datetime import datetime, timedelta, timezone
from typing import List, Optional

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from tourwatch.db.models import DeliveryLogEntry, ReminderSubscription, ScheduledMessage, ScheduleEvent
from tourwatch.errors import PermissionDeniedError, ValidationError
from tourwatch.phone import is_e164, normalize_phone
from tourwatch.services.delivery_log import SCHEDULED_MESSAGE

REMIND_TYPES = ("load_in", "soundcheck", "doors", "show_time")
LEAD_TIME_OPTIONS = (30, 60, 120, 1440)
DEFAULT_LEAD_MINUTES = 120
MAX_MESSAGE_LENGTH = 1500


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _valid_phone(raw: str) -> str:
    phone = normalize_phone(raw)
    if not is_e164(phone):
        raise ValidationError(f"Invalid phone number: {raw!r}", code="INVALID_PHONE")
    return phone


class ReminderService:
    """Event reminder subscriptions (one per event and user)."""

    @staticmethod
    def save_subscription(
        session: Session,
        *,
        event_id: int,
        user_id: int,
        phone: str,
        remind_type: str = "load_in",
        lead_minutes: int = DEFAULT_LEAD_MINUTES,
        enabled: bool = True,
    ) -> ReminderSubscription:
        if remind_type not in REMIND_TYPES:
            raise ValidationError(f"Unknown remind type {remind_type!r}", code="INVALID_REMIND_TYPE")
        if not isinstance(lead_minutes, int) or isinstance(lead_minutes, bool) or lead_minutes <= 0:
            raise ValidationError("lead_minutes must be a positive integer", code="INVALID_LEAD")
        normalized = _valid_phone(phone)

        event = session.get(ScheduleEvent, event_id)
        if event is None:
            raise ValidationError(f"Schedule event {event_id} not found", code="EVENT_NOT_FOUND")

        row = session.execute(
            select(ReminderSubscription).where(
                ReminderSubscription.event_id == event_id,
                ReminderSubscription.user_id == user_id,
            )
        ).scalar_one_or_none()

        if row is None:
            row = ReminderSubscription(event_id=event_id, user_id=user_id, tour_id=event.tour_id)
            session.add(row)

        row.remind_type = remind_type
        row.lead_minutes = lead_minutes
        row.phone = normalized
        row.enabled = enabled
        session.commit()
        logger.info(f"Saved {remind_type} reminder ({lead_minutes} min) for user {user_id} on event {event_id}")
        return row

    @staticmethod
    def list_enabled(session: Session) -> List[ReminderSubscription]:
        return list(
            session.execute(
                select(ReminderSubscription).where(ReminderSubscription.enabled.is_(True))
            ).scalars()
        )


class ScheduledMessageService:
    """Ad hoc one-shot texts and personal reminders."""

    @staticmethod
    def schedule(
        session: Session,
        *,
        user_id: int,
        tour_id: int,
        to_phone: str,
        body: str,
        send_at: datetime,
        is_self: bool = True,
        now: Optional[datetime] = None,
    ) -> ScheduledMessage:
        text = (body or "").strip()
        if not text:
            raise ValidationError("Message body is required", code="EMPTY_BODY")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message body exceeds {MAX_MESSAGE_LENGTH} characters", code="BODY_TOO_LONG"
            )
        phone = _valid_phone(to_phone)

        send_at = as_utc(send_at)
        now = as_utc(now) or datetime.now(timezone.utc)
        if send_at <= now:
            raise ValidationError("send_at must be in the future", code="SEND_AT_IN_PAST")

        row = ScheduledMessage(
            user_id=user_id,
            tour_id=tour_id,
            to_phone=phone,
            body=text,
            send_at=send_at,
            is_self=is_self,
            sent=False,
        )
        session.add(row)
        session.commit()
        logger.info(f"Scheduled message {row.id} to {phone} at {send_at.isoformat()}")
        return row

    @staticmethod
    def cancel(session: Session, caller_id: int, message_id: int) -> bool:
        """Delete a pending message owned by the caller. Returns False if it no longer exists."""
        row = session.get(ScheduledMessage, message_id)
        if row is None:
            return False
        if row.user_id != caller_id:
            raise PermissionDeniedError(
                f"User {caller_id} cannot cancel message {message_id}", code="NOT_OWNER"
            )
        if row.sent:
            raise ValidationError(f"Message {message_id} was already sent", code="ALREADY_SENT")
        session.delete(row)
        session.commit()
        return True

    @staticmethod
    def list_due(session: Session, cutoff: datetime) -> List[ScheduledMessage]:
        return list(
            session.execute(
                select(ScheduledMessage)
                .where(ScheduledMessage.sent.is_(False), ScheduledMessage.send_at <= cutoff)
                .order_by(ScheduledMessage.send_at.asc(), ScheduledMessage.id.asc())
            ).scalars()
        )

    @staticmethod
    def mark_sent(session: Session, message_id: int) -> None:
        session.execute(
            update(ScheduledMessage).where(ScheduledMessage.id == message_id).values(sent=True)
        )
        session.commit()

    @staticmethod
    def sweep_sent(session: Session, now: datetime, retention_days: int) -> int:
        """Delete sent messages created more than `retention_days` ago, with their delivery log rows."""
        cutoff = now - timedelta(days=retention_days)
        ids = list(
            session.execute(
                select(ScheduledMessage.id).where(
                    ScheduledMessage.sent.is_(True),
                    ScheduledMessage.created_at < cutoff,
                )
            ).scalars()
        )
        if not ids:
            return 0

        # A leftover log row would block a later message that reuses the id
        session.execute(
            delete(DeliveryLogEntry)
            .where(DeliveryLogEntry.source_kind == SCHEDULED_MESSAGE, DeliveryLogEntry.source_id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        session.execute(
            delete(ScheduledMessage)
            .where(ScheduledMessage.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        session.commit()
        return len(ids)
