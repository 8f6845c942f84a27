from __future__ import annotations

from typing import Optional


class TourwatchError(Exception):
    def __init__(self, msg: str, code: Optional[str] = None):
        super().__init__(msg)
        self.code = code


class ValidationError(TourwatchError):
    """Input rejected before anything was persisted."""


class PermissionDeniedError(TourwatchError, PermissionError):
    """Caller lacks the role or ownership needed for the operation."""


class DeliveryError(TourwatchError):
    """A channel could not hand a message off. Converted to a failed DeliveryResult."""

    def __init__(self, msg: str, code: Optional[str] = None, channel: Optional[str] = None):
        super().__init__(msg, code=code)
        self.channel = channel
