"""Severity / impact classification shared by every pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from loguru import logger


class Severity(str, Enum):
    INFO = "INFO"
    IMPORTANT = "IMPORTANT"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @classmethod
    def parse(cls, value: Union["Severity", str, None]) -> Optional["Severity"]:
        """Coerce a stored or user-supplied value. Unknown strings return None."""
        if value is None or isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


_RANKS = {Severity.INFO: 0, Severity.IMPORTANT: 1, Severity.CRITICAL: 2}

IMPACT_TAGS = (
    ("affects_safety", "🛡️ SAFETY"),
    ("affects_time", "⏰ TIME"),
    ("affects_money", "💰 MONEY"),
)

SEVERITY_ICONS = {
    Severity.CRITICAL: "🔴",
    Severity.IMPORTANT: "🟡",
    Severity.INFO: "ℹ️",
}


def classify(
    affects_safety: bool,
    affects_time: bool,
    affects_money: bool,
    explicit_override: Union[Severity, str, None] = None,
) -> Severity:
    """
    Derive the severity of a change from its impact flags.

    Safety or money impact is CRITICAL, time impact alone is IMPORTANT,
    anything else is INFO. A valid explicit override always wins.
    """
    if explicit_override is not None:
        override = Severity.parse(explicit_override)
        if override is not None:
            return override
        logger.warning(f"Ignoring unknown severity override {explicit_override!r}")

    if affects_safety or affects_money:
        return Severity.CRITICAL
    if affects_time:
        return Severity.IMPORTANT
    return Severity.INFO


def impact_tags(event) -> list[str]:
    """Labels for the impact flags set on a change event (row or payload)."""
    return [label for attr, label in IMPACT_TAGS if getattr(event, attr, False)]
