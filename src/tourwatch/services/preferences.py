from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from tourwatch.classification import Severity
from tourwatch.db.models import NotificationPreference, TourMember, TourNotificationDefault
from tourwatch.errors import PermissionDeniedError, ValidationError
from tourwatch.preferences import RecipientPreferences, resolve_preferences

EDITABLE_FIELDS = (
    "min_severity",
    "safety_always",
    "time_always",
    "money_always",
    "day_window",
    "notify_schedule_changes",
    "notify_venue_changes",
    "notify_contact_changes",
    "notify_finance_changes",
)


class PreferenceService:
    """Loads and saves notification preferences, applying the fallback chain."""

    @staticmethod
    def get_tour_default(session: Session, tour_id: int) -> Optional[TourNotificationDefault]:
        return session.execute(
            select(TourNotificationDefault).where(TourNotificationDefault.tour_id == tour_id)
        ).scalar_one_or_none()

    @staticmethod
    def resolve_for_user(session: Session, user_id: int, tour_id: int) -> RecipientPreferences:
        user_row = session.execute(
            select(NotificationPreference).where(
                NotificationPreference.user_id == user_id,
                NotificationPreference.tour_id == tour_id,
            )
        ).scalar_one_or_none()
        tour_default = None if user_row else PreferenceService.get_tour_default(session, tour_id)
        return resolve_preferences(user_row, tour_default)

    @staticmethod
    def resolve_for_members(session: Session, tour_id: int, members: List[TourMember]) -> Dict[int, RecipientPreferences]:
        """Resolved preferences keyed by user id, in two queries."""
        rows = session.execute(
            select(NotificationPreference).where(NotificationPreference.tour_id == tour_id)
        ).scalars()
        by_user = {row.user_id: row for row in rows}
        tour_default = PreferenceService.get_tour_default(session, tour_id)
        return {
            m.user_id: resolve_preferences(by_user.get(m.user_id), tour_default)
            for m in members
        }

    @staticmethod
    def snapshot_for_user(session: Session, user_id: int) -> Dict[int, RecipientPreferences]:
        """Preference snapshot for every tour the user belongs to (live alert context)."""
        tour_ids = session.execute(
            select(TourMember.tour_id).where(TourMember.user_id == user_id)
        ).scalars().all()
        return {tid: PreferenceService.resolve_for_user(session, user_id, tid) for tid in tour_ids}

    @staticmethod
    def save_preferences(
        session: Session,
        caller_id: int,
        user_id: int,
        tour_id: int,
        values: Dict[str, Any],
    ) -> NotificationPreference:
        """Upsert the user's preference row. Only the owning user may do this."""
        if caller_id != user_id:
            raise PermissionDeniedError(
                f"User {caller_id} cannot edit preferences of user {user_id}", code="NOT_OWNER"
            )

        unknown = set(values) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown preference fields: {sorted(unknown)}", code="UNKNOWN_FIELD")

        if "min_severity" in values:
            severity = Severity.parse(values["min_severity"])
            if severity is None:
                raise ValidationError(f"Invalid severity {values['min_severity']!r}", code="INVALID_SEVERITY")
            values = {**values, "min_severity": severity.value}

        if "day_window" in values:
            try:
                values = {**values, "day_window": int(values["day_window"])}
            except (TypeError, ValueError) as e:
                raise ValidationError("day_window must be an integer", code="INVALID_DAY_WINDOW") from e

        row = session.execute(
            select(NotificationPreference).where(
                NotificationPreference.user_id == user_id,
                NotificationPreference.tour_id == tour_id,
            )
        ).scalar_one_or_none()

        if row is None:
            # Seed from the currently effective preferences
            current = PreferenceService.resolve_for_user(session, user_id, tour_id)
            seed = {name: getattr(current, name) for name in EDITABLE_FIELDS}
            seed["min_severity"] = current.min_severity.value
            row = NotificationPreference(user_id=user_id, tour_id=tour_id, **seed)
            session.add(row)

        for name, value in values.items():
            setattr(row, name, value)

        session.commit()
        logger.info(f"Saved notification preferences for user {user_id} on tour {tour_id}")
        return row
