from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tourwatch.db.models import DeliveryLogEntry

EVENT_REMINDER = "event_reminder"
SCHEDULED_MESSAGE = "scheduled_message"


class DeliveryLogService:
    """
    Idempotency ledger for timed SMS sends.

    A row is claimed before sending; the unique constraint makes the claim
    atomic across concurrent ticks. A failed send releases the claim so a
    later tick can retry.
    """

    @staticmethod
    def already_sent(session: Session, source_kind: str, source_id: int, phone: str, remind_type: str) -> bool:
        return session.execute(
            select(DeliveryLogEntry.id).where(
                DeliveryLogEntry.source_kind == source_kind,
                DeliveryLogEntry.source_id == source_id,
                DeliveryLogEntry.phone == phone,
                DeliveryLogEntry.remind_type == remind_type,
            )
        ).first() is not None

    @staticmethod
    def claim(
        session: Session,
        source_kind: str,
        source_id: int,
        phone: str,
        remind_type: str,
        reminder_id: Optional[int] = None,
    ) -> Optional[DeliveryLogEntry]:
        """Insert the log row. Returns None when another run already holds it."""
        entry = DeliveryLogEntry(
            source_kind=source_kind,
            source_id=source_id,
            reminder_id=reminder_id,
            phone=phone,
            remind_type=remind_type,
            sent_at=datetime.now(timezone.utc),
        )
        try:
            session.add(entry)
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.debug(f"[REMINDERS] {source_kind} {source_id}/{remind_type} to {phone} already logged")
            return None
        return entry

    @staticmethod
    def release(session: Session, entry_id: int) -> None:
        session.execute(delete(DeliveryLogEntry).where(DeliveryLogEntry.id == entry_id))
        session.commit()
