"""Configuration models for the tour notification engine."""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env automatically on import (local dev)
load_dotenv()


class TwilioConfig(BaseModel):
    """Credentials and transport settings for the Twilio Messages API."""

    account_sid: str
    auth_token: str
    from_number: str
    api_base: str = "https://api.twilio.com/2010-04-01"
    timeout_seconds: float = 10.0

    @property
    def messages_url(self) -> str:
        return f"{self.api_base.rstrip('/')}/Accounts/{self.account_sid}/Messages.json"


class ReminderConfig(BaseModel):
    """Timing knobs for the reminder dispatch job."""

    tolerance_minutes: float = 7.5
    lookahead_minutes: float = 7.5
    retention_days: int = 7
    tick_seconds: int = 300


class FanoutConfig(BaseModel):
    urgency_days: int = 3


class AlertConfig(BaseModel):
    critical_duration_ms: int = 10000
    default_duration_ms: int = 5000


class Settings(BaseModel):
    """Global settings for tourwatch."""

    twilio: Optional[TwilioConfig] = None
    sms_signature: str = "-TELA"
    sms_max_length: int = 1600
    reminders: ReminderConfig = ReminderConfig()
    fanout: FanoutConfig = FanoutConfig()
    alerts: AlertConfig = AlertConfig()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() == "true"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    return int(value)


def load_settings() -> Settings:
    """Build Settings from environment variables (.env for local dev)."""
    twilio = None
    sid = os.getenv("TWILIO_ACCOUNT_SID")
    token = os.getenv("TWILIO_AUTH_TOKEN")
    from_number = os.getenv("TWILIO_PHONE_NUMBER")
    if sid and token and from_number:
        twilio = TwilioConfig(
            account_sid=sid,
            auth_token=token,
            from_number=from_number,
            api_base=os.getenv("TWILIO_API_BASE", "https://api.twilio.com/2010-04-01"),
            timeout_seconds=_env_float("SMS_TIMEOUT_SECONDS", 10.0),
        )

    reminders = ReminderConfig(
        tolerance_minutes=_env_float("REMINDER_TOLERANCE_MINUTES", 7.5),
        lookahead_minutes=_env_float("SCHEDULED_LOOKAHEAD_MINUTES", 7.5),
        retention_days=_env_int("SENT_MESSAGE_RETENTION_DAYS", 7),
        tick_seconds=_env_int("REMINDER_TICK_SECONDS", 300),
    )

    settings = Settings(
        twilio=twilio,
        sms_signature=os.getenv("SMS_SIGNATURE", "-TELA"),
        reminders=reminders,
        fanout=FanoutConfig(urgency_days=_env_int("FANOUT_URGENCY_DAYS", 3)),
        alerts=AlertConfig(
            critical_duration_ms=_env_int("ALERT_CRITICAL_DURATION_MS", 10000),
            default_duration_ms=_env_int("ALERT_DEFAULT_DURATION_MS", 5000),
        ),
    )
    return settings
