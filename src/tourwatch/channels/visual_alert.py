"""Transient in-session alert (toast). Nothing is persisted."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, List, Mapping, Optional

from loguru import logger

from tourwatch.channels.base import DeliveryResult
from tourwatch.classification import Severity


@dataclass
class VisualAlert:
    title: str
    description: str
    severity: Severity
    tags: List[str] = field(default_factory=list)
    duration_ms: int = 5000
    variant: str = "default"    # "destructive" for critical alerts
    change_event_id: Optional[int] = None


class VisualAlertSender:
    code = "VISUAL"

    def __init__(self, sink: Optional[Callable[[VisualAlert], Any]] = None, max_kept: int = 50):
        self.sink = sink
        # Most recent alerts only
        self.shown: Deque[VisualAlert] = deque(maxlen=max_kept)

    def deliver(
        self,
        destination: Any,
        body: VisualAlert,
        *,
        trace_id: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> DeliveryResult:
        self.shown.append(body)
        if self.sink is not None:
            self.sink(body)
        logger.debug(f"[LIVE] Alert for user {destination}: {body.title}")
        return DeliveryResult.success(self.code)
