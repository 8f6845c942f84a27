"""Per-recipient preference evaluation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from tourwatch.classification import Severity, classify

CATEGORY_BY_ENTITY_TYPE = {
    "schedule_event": "schedule",
    "contact": "contact",
    "venue_note": "venue",
    "venue_tech_spec": "venue",
    "venue_advance_note": "venue",
    "finance_line": "finance",
}


@dataclass(frozen=True)
class RecipientPreferences:
    min_severity: Severity = Severity.CRITICAL
    safety_always: bool = True
    time_always: bool = True
    money_always: bool = True
    day_window: int = 3
    notify_schedule_changes: bool = True
    notify_venue_changes: bool = True
    notify_contact_changes: bool = False
    notify_finance_changes: bool = False

    def category_enabled(self, category: Optional[str]) -> bool:
        # Uncategorised entity types have no toggle to switch on
        if category is None:
            return False
        return bool(getattr(self, f"notify_{category}_changes", False))


DEFAULT_PREFERENCES = RecipientPreferences()


def category_for(entity_type: str) -> Optional[str]:
    return CATEGORY_BY_ENTITY_TYPE.get(entity_type)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def days_until(target: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Calendar days from today to target (negative when in the past)."""
    if target is None:
        return None
    if isinstance(target, datetime):
        target = target.date()
    return (target - (today or utc_today())).days


def should_notify(event: Any, prefs: RecipientPreferences, today: Optional[date] = None) -> bool:
    """
    Decide whether a recipient with `prefs` should hear about `event`.

    `event` is a ChangeEvent row or a change payload. Override flags bypass the
    category and severity checks but never the day window.
    """
    safety = bool(event.affects_safety)
    time_ = bool(event.affects_time)
    money = bool(event.affects_money)

    override = (
        (safety and prefs.safety_always)
        or (time_ and prefs.time_always)
        or (money and prefs.money_always)
    )

    if not override:
        if not prefs.category_enabled(category_for(event.entity_type)):
            return False
        severity = classify(safety, time_, money, getattr(event, "severity", None))
        if severity.rank < prefs.min_severity.rank:
            return False

    if event.associated_date is not None and prefs.day_window > 0:
        days_out = days_until(event.associated_date, today)
        if days_out > prefs.day_window:
            return False

    return True


def _severity_or_default(value: Any) -> Severity:
    return Severity.parse(value) or DEFAULT_PREFERENCES.min_severity


def resolve_preferences(user_row: Any = None, tour_default_row: Any = None) -> RecipientPreferences:
    """
    Fallback chain: the user's own row, then the tour defaults, then hard-coded
    defaults. Tour defaults carry no override flags so those stay on.
    """
    if user_row is not None:
        return RecipientPreferences(
            min_severity=_severity_or_default(user_row.min_severity),
            safety_always=bool(user_row.safety_always),
            time_always=bool(user_row.time_always),
            money_always=bool(user_row.money_always),
            day_window=int(user_row.day_window),
            notify_schedule_changes=bool(user_row.notify_schedule_changes),
            notify_venue_changes=bool(user_row.notify_venue_changes),
            notify_contact_changes=bool(user_row.notify_contact_changes),
            notify_finance_changes=bool(user_row.notify_finance_changes),
        )

    if tour_default_row is not None:
        return RecipientPreferences(
            min_severity=_severity_or_default(tour_default_row.min_severity),
            day_window=int(tour_default_row.day_window),
            notify_schedule_changes=bool(tour_default_row.notify_schedule_changes),
            notify_venue_changes=bool(tour_default_row.notify_venue_changes),
            notify_contact_changes=bool(tour_default_row.notify_contact_changes),
            notify_finance_changes=bool(tour_default_row.notify_finance_changes),
        )

    return DEFAULT_PREFERENCES
