"""
phone.py — Contact phone normalization.

Contacts store whatever the user typed ("98765 43210", "+1 (555) 010-9999",
"09876543210"). Numbers are normalized to ``+<digits>`` at send time and
never stored normalized, so a change of default country code applies to
every existing contact.

Rules, applied in order:

    1. Keep digits (and a leading ``+``); drop everything else.
    2. Leading ``+``          → accepted as-is if ≥ 7 digits remain.
    3. Exactly 10 digits      → ``+<country code><digits>``.
    4. ``<code><10 digits>``  → ``+<digits>``.
    5. Anything else          → ``+<digits>``.

Normalizing an already normalized number returns it unchanged.
"""

from __future__ import annotations

import re
from typing import Optional

from backend.app.core.config import settings

MIN_INTERNATIONAL_DIGITS = 7
NATIONAL_NUMBER_LENGTH = 10
WHATSAPP_PREFIX = "whatsapp:"

_NON_DIGITS = re.compile(r"\D")


class InvalidPhoneNumber(ValueError):
    """Raised when a raw phone string contains no usable number."""


def normalize_phone(raw: Optional[str], default_country_code: Optional[str] = None) -> str:
    """
    Normalize ``raw`` to ``+<digits>``.

    >>> normalize_phone("9876543210")
    '+919876543210'
    >>> normalize_phone("+1 (555) 010-9999")
    '+15550109999'
    """
    code = default_country_code or settings.DEFAULT_COUNTRY_CODE
    text = (raw or "").strip()
    has_plus = text.startswith("+")
    digits = _NON_DIGITS.sub("", text)

    if not digits:
        raise InvalidPhoneNumber(f"No digits in phone number {raw!r}")

    if has_plus:
        if len(digits) < MIN_INTERNATIONAL_DIGITS:
            raise InvalidPhoneNumber(f"Too few digits in phone number {raw!r}")
        return f"+{digits}"

    if len(digits) == NATIONAL_NUMBER_LENGTH:
        return f"+{code}{digits}"

    if len(digits) == len(code) + NATIONAL_NUMBER_LENGTH and digits.startswith(code):
        return f"+{digits}"

    return f"+{digits}"


def try_normalize_phone(raw: Optional[str], default_country_code: Optional[str] = None) -> Optional[str]:
    """Like normalize_phone, but None instead of raising."""
    try:
        return normalize_phone(raw, default_country_code)
    except InvalidPhoneNumber:
        return None


def whatsapp_address(phone: str) -> str:
    """Chat-channel address for a normalized number."""
    if phone.startswith(WHATSAPP_PREFIX):
        return phone
    return f"{WHATSAPP_PREFIX}{phone}"
