"""Phone number normalisation to E.164."""

from __future__ import annotations

import re
from typing import Optional

E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")
_NON_DIGITS = re.compile(r"\D")


def is_e164(value: Optional[str]) -> bool:
    return bool(value) and E164_RE.match(value) is not None


def normalize_phone(raw: Optional[str]) -> str:
    """
    Best-effort conversion of a user-typed number to E.164.

    Ten digits are taken as North American and get +1. The result is not
    validated here; pair with is_e164.
    """
    if not raw:
        return ""
    text = raw.strip()
    digits = _NON_DIGITS.sub("", text)
    if text.startswith("+"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    # 11 digits with a leading 1 already carry the country code
    return f"+{digits}"
