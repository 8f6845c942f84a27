"""Timer job: event reminders, scheduled messages and sent-message cleanup."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

# Load env immediately to ensure DATABASE_URL is set for DB base
load_dotenv()

from tourwatch.channels.base import ChannelSender
from tourwatch.channels.sms import SmsSender
from tourwatch.config import Settings, load_settings
from tourwatch.db.base import SessionLocal
from tourwatch.db.models import ScheduledMessage, SmsOutbound
from tourwatch.phone import is_e164
from tourwatch.services.delivery_log import EVENT_REMINDER, SCHEDULED_MESSAGE, DeliveryLogService
from tourwatch.services.reminders import ReminderService, ScheduledMessageService, as_utc

REMIND_TYPE_LABELS = {
    "load_in": "Load-in",
    "show_time": "Showtime",
    "doors": "Doors",
    "soundcheck": "Soundcheck",
}


def lead_label(lead_minutes: int) -> str:
    if lead_minutes >= 1440:
        return "tomorrow"
    if lead_minutes >= 60:
        hours = int(lead_minutes / 60 + 0.5)
        return f"in {hours} hour{'s' if hours != 1 else ''}"
    return f"in {lead_minutes} min"


def format_clock(value: datetime) -> str:
    """h:MM AM/PM in UTC."""
    value = as_utc(value)
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def reminder_text(remind_type: str, venue: Optional[str], city: Optional[str], lead_minutes: int, target: datetime) -> str:
    label = REMIND_TYPE_LABELS.get(remind_type, remind_type)
    where = venue or "TBD"
    if city:
        where = f"{where} ({city})"
    return f"REMINDER: {label} at {where} {lead_label(lead_minutes)} — {format_clock(target)}"


class ReminderDispatchJob:
    """One tick sends due reminders and scheduled texts exactly once each, then sweeps old rows."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        settings: Optional[Settings] = None,
        sms_sender: Optional[ChannelSender] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or load_settings()
        self.sms_sender = sms_sender or SmsSender(self.settings)

    def _full_body(self, text: str) -> str:
        formatter = getattr(self.sms_sender, "format_body", None)
        return formatter(text) if formatter else text

    def _record_outbound(self, session: Session, tour_id: Optional[int], to_phone: str, text: str, ref: Optional[str]) -> None:
        try:
            session.add(SmsOutbound(
                tour_id=tour_id,
                to_phone=to_phone,
                body=self._full_body(text),
                status="sent",
                provider_ref=ref,
            ))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception(f"[REMINDERS] Sent to {to_phone} but failed to write audit row: {e}")

    def dispatch_event_reminders(self, session: Session, now: datetime) -> int:
        tolerance = self.settings.reminders.tolerance_minutes
        sent = 0

        for reminder in ReminderService.list_enabled(session):
            event = reminder.event
            if event is None:
                continue
            target = as_utc(getattr(event, reminder.remind_type, None))
            if target is None:
                continue

            diff_minutes = (target - now).total_seconds() / 60
            if abs(diff_minutes - reminder.lead_minutes) > tolerance:
                continue

            entry = DeliveryLogService.claim(
                session,
                EVENT_REMINDER,
                event.id,
                reminder.phone,
                reminder.remind_type,
                reminder_id=reminder.id,
            )
            if entry is None:
                continue

            text = reminder_text(reminder.remind_type, event.venue, event.city, reminder.lead_minutes, target)
            result = self.sms_sender.deliver(reminder.phone, text, trace_id=f"reminder-{reminder.id}")
            if not result.ok:
                logger.warning(f"[REMINDERS] Reminder {reminder.id} to {reminder.phone} failed ({result.reason}); will retry")
                DeliveryLogService.release(session, entry.id)
                continue

            self._record_outbound(session, event.tour_id, reminder.phone, text, result.ref)
            sent += 1
            logger.info(f"[REMINDERS] Sent {reminder.remind_type} reminder for event {event.id} to {reminder.phone}")

        return sent

    def dispatch_scheduled_messages(self, session: Session, now: datetime) -> int:
        cutoff = now + timedelta(minutes=self.settings.reminders.lookahead_minutes)
        sent = 0

        for message in ScheduledMessageService.list_due(session, cutoff):
            message_id = message.id
            if not is_e164(message.to_phone):
                logger.warning(f"[REMINDERS] Skipping scheduled message {message_id}: invalid phone {message.to_phone!r}")
                continue

            entry = DeliveryLogService.claim(session, SCHEDULED_MESSAGE, message_id, message.to_phone, "scheduled")
            if entry is None:
                continue

            msg = session.get(ScheduledMessage, message_id)
            tour_id, to_phone, body, is_self = msg.tour_id, msg.to_phone, msg.body, msg.is_self
            result = self.sms_sender.deliver(to_phone, body, trace_id=f"scheduled-{message_id}")
            if not result.ok:
                logger.warning(f"[REMINDERS] Scheduled message {message_id} failed ({result.reason}); left pending")
                DeliveryLogService.release(session, entry.id)
                continue

            try:
                ScheduledMessageService.mark_sent(session, message_id)
            except SQLAlchemyError as e:
                session.rollback()
                # Without the sent flag the claim would hide the message forever
                logger.exception(f"[REMINDERS] Scheduled message {message_id} sent but not marked: {e}")
                DeliveryLogService.release(session, entry.id)
                continue

            self._record_outbound(session, tour_id, to_phone, body, result.ref)
            sent += 1
            kind = "reminder" if is_self else "text"
            logger.info(f"[REMINDERS] Sent scheduled {kind} {message_id} to {to_phone}")

        return sent

    def sweep_sent_messages(self, session: Session, now: datetime) -> int:
        removed = ScheduledMessageService.sweep_sent(session, now, self.settings.reminders.retention_days)
        if removed:
            logger.info(f"[REMINDERS] Removed {removed} sent messages older than {self.settings.reminders.retention_days} days")
        return removed

    def run_tick(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = as_utc(now) or datetime.now(timezone.utc)
        stats = {"sent": 0, "scheduled_sent": 0, "swept": 0}
        session = self.session_factory()
        try:
            stats["sent"] = self.dispatch_event_reminders(session, now)
            try:
                stats["scheduled_sent"] = self.dispatch_scheduled_messages(session, now)
            except SQLAlchemyError as e:
                session.rollback()
                logger.exception(f"[REMINDERS] Scheduled message pass failed: {e}")
            stats["swept"] = self.sweep_sent_messages(session, now)
        finally:
            session.close()
        logger.info(f"[REMINDERS] Tick complete: {stats}")
        return stats
