"""Job that fans unprocessed knowledge base changes out as durable in-app messages."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from dotenv import load_dotenv
from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

# Load env immediately to ensure DATABASE_URL is set for DB base
load_dotenv()

from tourwatch.channels.durable_message import DurableMessageSender
from tourwatch.classification import SEVERITY_ICONS, classify, impact_tags
from tourwatch.config import Settings, load_settings
from tourwatch.db.base import SessionLocal
from tourwatch.db.models import ChangeEvent, TourMember
from tourwatch.errors import PermissionDeniedError
from tourwatch.preferences import days_until, should_notify, utc_today
from tourwatch.services.change_events import ChangeEventService
from tourwatch.services.preferences import PreferenceService


@dataclass
class FanoutResult:
    sent_count: int = 0
    processed_count: int = 0
    duplicate_count: int = 0
    failed_count: int = 0


def urgency_label(days_out: Optional[int], urgency_days: int = 3) -> Optional[str]:
    if days_out is None or days_out < 0 or days_out > urgency_days:
        return None
    if days_out == 0:
        return "TODAY"
    if days_out == 1:
        return "TOMORROW"
    return f"in {days_out} days"


def compose_message(event: ChangeEvent, today: date, urgency_days: int = 3) -> str:
    tags = impact_tags(event)
    if tags:
        message = f"⚠️ {' '.join(tags)} — {event.summary}"
    else:
        severity = classify(event.affects_safety, event.affects_time, event.affects_money, event.severity)
        message = f"{SEVERITY_ICONS[severity]} {event.summary}"

    label = urgency_label(days_until(event.associated_date, today), urgency_days)
    if label:
        message = f"[{label}] {message}"
    return message


class ChangeFanoutJob:
    """Delivers each unprocessed change to every eligible tour member, then marks it processed."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, settings: Optional[Settings] = None):
        self.session_factory = session_factory
        self.settings = settings or load_settings()

    @staticmethod
    def _require_admin(session: Session, tour_id: int, caller_id: int) -> None:
        member = session.execute(
            select(TourMember).where(TourMember.tour_id == tour_id, TourMember.user_id == caller_id)
        ).scalar_one_or_none()
        if member is None or not member.is_admin:
            raise PermissionDeniedError(
                f"User {caller_id} may not run fanout for tour {tour_id}", code="FORBIDDEN"
            )

    def fanout(self, tour_id: int, caller_id: int, today: Optional[date] = None) -> FanoutResult:
        today = today or utc_today()
        result = FanoutResult()
        session = self.session_factory()
        try:
            self._require_admin(session, tour_id, caller_id)

            events = ChangeEventService.list_unprocessed(session, tour_id)
            if not events:
                logger.info(f"[FANOUT] No unprocessed changes for tour {tour_id}")
                return result

            members = list(session.execute(select(TourMember).where(TourMember.tour_id == tour_id)).scalars())
            prefs_by_user = PreferenceService.resolve_for_members(session, tour_id, members)
            member_ids = [m.user_id for m in members]
            event_ids = [e.id for e in events]
            logger.info(f"[FANOUT] Tour {tour_id}: {len(event_ids)} changes, {len(member_ids)} members")

            sender = DurableMessageSender(session)
            for event_id in event_ids:
                event = session.get(ChangeEvent, event_id)
                message = compose_message(event, today, self.settings.fanout.urgency_days)
                author_id = event.author_id

                for user_id in member_ids:
                    if user_id == author_id:
                        continue
                    if not should_notify(event, prefs_by_user[user_id], today=today):
                        continue

                    delivery = sender.deliver(
                        user_id,
                        message,
                        trace_id=f"change-{event_id}",
                        extra={"tour_id": tour_id, "sender_id": author_id, "change_event_id": event_id},
                    )
                    if not delivery.ok:
                        result.failed_count += 1
                        logger.warning(f"[FANOUT] Change {event_id} not delivered to user {user_id}: {delivery.reason}")
                    elif delivery.duplicate:
                        result.duplicate_count += 1
                    else:
                        result.sent_count += 1

                ChangeEventService.mark_processed(session, event_id)
                result.processed_count += 1

            logger.info(f"[FANOUT] Tour {tour_id} complete: {result}")
            return result
        finally:
            session.close()
