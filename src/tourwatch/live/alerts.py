"""Per-session live alert subscription."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, FrozenSet, Iterable, Mapping, Optional

from loguru import logger
from pydantic import ValidationError as PayloadValidationError

from tourwatch.channels.base import ChannelSender
from tourwatch.channels.visual_alert import VisualAlert
from tourwatch.classification import Severity, classify, impact_tags
from tourwatch.config import Settings, load_settings
from tourwatch.events import parse_change
from tourwatch.live.stream import ChangeStream
from tourwatch.preferences import DEFAULT_PREFERENCES, RecipientPreferences, should_notify


class SubscriptionState(str, Enum):
    IDLE = "IDLE"
    SUBSCRIBED = "SUBSCRIBED"
    UNSUBSCRIBED = "UNSUBSCRIBED"


class AlertOutcome(str, Enum):
    DISPLAYED = "DISPLAYED"
    SUPPRESSED = "SUPPRESSED"


@dataclass(frozen=True)
class AlertContext:
    """Who is listening, which tours they belong to, and their preference snapshot."""

    user_id: int
    tour_ids: FrozenSet[int]
    preferences: Mapping[int, RecipientPreferences] = field(default_factory=dict)

    def preferences_for(self, tour_id: int) -> RecipientPreferences:
        return self.preferences.get(tour_id, DEFAULT_PREFERENCES)


class LiveAlertSubscription:
    """
    Evaluates each change pushed on the stream for one client session and
    shows a visual alert when the recipient's preferences accept it.

    Payloads are handled one at a time in arrival order. Closing is terminal.
    """

    def __init__(
        self,
        context: AlertContext,
        sender: ChannelSender,
        settings: Optional[Settings] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.context = context
        self.sender = sender
        self.settings = settings or load_settings()
        self._today = today
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.state = SubscriptionState.IDLE

    def open(self, stream: ChangeStream) -> None:
        with self._lock:
            if self.state == SubscriptionState.UNSUBSCRIBED:
                raise RuntimeError("Subscription was closed and cannot be reopened")
            if self.state == SubscriptionState.SUBSCRIBED:
                return
            self._unsubscribe = stream.subscribe(self.handle)
            self.state = SubscriptionState.SUBSCRIBED
        logger.info(f"[LIVE] User {self.context.user_id} subscribed for tours {sorted(self.context.tour_ids)}")

    def close(self) -> None:
        with self._lock:
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            self.state = SubscriptionState.UNSUBSCRIBED

    def tours_changed(
        self,
        tour_ids: Iterable[int],
        preferences: Optional[Mapping[int, RecipientPreferences]] = None,
    ) -> None:
        """Swap in a new membership and preference snapshot."""
        new_context = AlertContext(
            user_id=self.context.user_id,
            tour_ids=frozenset(tour_ids),
            preferences=dict(preferences or {}),
        )
        with self._lock:
            self.context = new_context

    def build_alert(self, event: Any, severity: Severity) -> VisualAlert:
        tags = impact_tags(event)
        description = event.summary or "A change was made"
        if tags:
            description = f"{description} — {', '.join(tags)}"
        critical = severity == Severity.CRITICAL
        return VisualAlert(
            title=f"🚨 {severity.value} Change",
            description=description,
            severity=severity,
            tags=tags,
            duration_ms=self.settings.alerts.critical_duration_ms if critical else self.settings.alerts.default_duration_ms,
            variant="destructive" if critical else "default",
            change_event_id=event.id,
        )

    def handle(self, payload: Any) -> AlertOutcome:
        with self._lock:
            if self.state != SubscriptionState.SUBSCRIBED:
                return AlertOutcome.SUPPRESSED
            context = self.context

            try:
                event = parse_change(payload) if isinstance(payload, Mapping) else payload
            except PayloadValidationError as e:
                logger.warning(f"[LIVE] Dropping malformed change payload: {e}")
                return AlertOutcome.SUPPRESSED

            if event.tour_id not in context.tour_ids:
                return AlertOutcome.SUPPRESSED
            if event.author_id == context.user_id:
                return AlertOutcome.SUPPRESSED

            prefs = context.preferences_for(event.tour_id)
            today = self._today() if self._today else None
            if not should_notify(event, prefs, today=today):
                return AlertOutcome.SUPPRESSED

            severity = classify(event.affects_safety, event.affects_time, event.affects_money, event.severity)
            alert = self.build_alert(event, severity)

        # The sink may call back into tours_changed or close
        self.sender.deliver(context.user_id, alert)
        return AlertOutcome.DISPLAYED
