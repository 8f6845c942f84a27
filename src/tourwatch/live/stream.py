"""Change stream: broadcasts newly created change events to live subscribers."""

from __future__ import annotations

import threading
from typing import Any, Callable, List, Protocol

from loguru import logger

Subscriber = Callable[[Any], None]


class ChangeStream(Protocol):
    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for every published payload. Returns an unsubscribe function."""
        ...

    def publish(self, payload: Any) -> None:
        ...


class InMemoryChangeStream:
    """Process-local broadcaster. Each subscriber is isolated from the others' failures."""

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, payload: Any) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(payload)
            except Exception as e:
                logger.exception(f"[LIVE] Subscriber failed on change payload: {e}")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
