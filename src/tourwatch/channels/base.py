from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol


@dataclass
class DeliveryResult:
    channel_code: str               # "VISUAL", "DURABLE" or "SMS"
    ok: bool
    reason: Optional[str] = None    # machine code on failure, e.g. "INVALID_PHONE"
    duplicate: bool = False         # recipient already had this message
    ref: Optional[str] = None       # provider / row reference on success

    @classmethod
    def success(cls, channel_code: str, ref: Optional[str] = None, duplicate: bool = False) -> "DeliveryResult":
        return cls(channel_code=channel_code, ok=True, ref=ref, duplicate=duplicate)

    @classmethod
    def failure(cls, channel_code: str, reason: str) -> "DeliveryResult":
        return cls(channel_code=channel_code, ok=False, reason=reason)


class ChannelSender(Protocol):
    code: str  # e.g. "VISUAL" / "DURABLE" / "SMS"

    def deliver(
        self,
        destination: Any,   # user id for in-app channels, phone number for SMS
        body: Any,
        *,
        trace_id: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> DeliveryResult:
        """Hand one message to the channel. Never raises for delivery problems."""
        ...
