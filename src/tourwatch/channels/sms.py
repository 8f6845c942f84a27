"""SMS channel over the Twilio Messages REST API."""

from __future__ import annotations

from typing import Any, Mapping, Optional

import requests
from loguru import logger
from requests import RequestException

from tourwatch.channels.base import DeliveryResult
from tourwatch.config import Settings, load_settings
from tourwatch.errors import DeliveryError
from tourwatch.phone import is_e164


class SmsSender:
    code = "SMS"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or load_settings()

    def format_body(self, text: str) -> str:
        return f"{text}. {self.settings.sms_signature}"

    def _post(self, to_phone: str, body: str, trace_id: Optional[str]) -> str:
        twilio = self.settings.twilio
        if twilio is None:
            raise DeliveryError("Twilio credentials are not configured", code="SMS_NOT_CONFIGURED", channel=self.code)

        try:
            resp = requests.post(
                twilio.messages_url,
                auth=(twilio.account_sid, twilio.auth_token),
                data={"To": to_phone, "From": twilio.from_number, "Body": body},
                timeout=twilio.timeout_seconds,
            )
        except RequestException as e:
            raise DeliveryError(f"Transport error: {e}", code="TRANSPORT_ERROR", channel=self.code) from e

        if not 200 <= resp.status_code < 300:
            logger.error(f"[SMS] Gateway rejected message to {to_phone} (trace={trace_id}): {resp.status_code} {resp.text}")
            raise DeliveryError(f"Gateway returned {resp.status_code}", code=f"HTTP_{resp.status_code}", channel=self.code)

        try:
            return resp.json().get("sid") or ""
        except ValueError:
            return ""

    def deliver(
        self,
        destination: str,
        body: str,
        *,
        trace_id: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> DeliveryResult:
        """Send `body` (signature appended) to an E.164 number. One attempt, no retry."""
        if not is_e164(destination):
            logger.warning(f"[SMS] Invalid destination {destination!r} (trace={trace_id})")
            return DeliveryResult.failure(self.code, "INVALID_PHONE")

        full_body = self.format_body(body)
        if len(full_body) > self.settings.sms_max_length:
            logger.warning(f"[SMS] Body too long for {destination}: {len(full_body)} chars")
            return DeliveryResult.failure(self.code, "BODY_TOO_LONG")

        try:
            sid = self._post(destination, full_body, trace_id)
        except DeliveryError as e:
            logger.error(f"[SMS] Send to {destination} failed: {e} ({e.code})")
            return DeliveryResult.failure(self.code, e.code or "SMS_ERROR")

        logger.info(f"[SMS] Sent to {destination} (sid={sid or 'n/a'})")
        return DeliveryResult.success(self.code, ref=sid or None)
