"""
messages.py — Alert message templates.

═══════════════════════════════════════════════════════════════════════════
MESSAGE TEMPLATING
═══════════════════════════════════════════════════════════════════════════

    SMS (≤160 chars, single GSM segment):
        "EMERGENCY: {name} needs help! Location: {location}.
         Call immediately or contact emergency services."

    The fixed text is ~100 chars; when name + location would push the
    body past one segment the name is shortened, never the location.

    Chat (WhatsApp, no length limit):
        "🚨 EMERGENCY ALERT

         From: {name}
         Message: {english text}

         Location: https://maps.google.com/?q={location}"
"""

from __future__ import annotations

from typing import Optional

SMS_MAX_GSM7 = 160
UNKNOWN_LOCATION = "Not available"
ELLIPSIS = "..."

_SMS_TEMPLATE = (
    "EMERGENCY: {name} needs help! Location: {location}. "
    "Call immediately or contact emergency services."
)
_CHAT_TEMPLATE = (
    "🚨 EMERGENCY ALERT\n\n"
    "From: {name}\n"
    "Message: {message}"
)
_MAPS_URL = "https://maps.google.com/?q={location}"


def build_sms_body(user_name: str, location: Optional[str]) -> str:
    """
    Render the single-segment SMS alert.

    >>> len(build_sms_body("A" * 200, "12.97,77.64")) <= 160
    True
    """
    loc = location or UNKNOWN_LOCATION
    body = _SMS_TEMPLATE.format(name=user_name, location=loc)
    overflow = len(body) - SMS_MAX_GSM7
    if overflow <= 0:
        return body

    keep = len(user_name) - overflow - len(ELLIPSIS)
    name = user_name[:keep] + ELLIPSIS if keep > 0 else user_name[:1]
    body = _SMS_TEMPLATE.format(name=name, location=loc)
    # Location alone can still exceed the segment; hard-truncate as last resort
    return body[:SMS_MAX_GSM7]


def build_chat_message(
    user_name: str,
    message: str,
    location: Optional[str] = None,
) -> str:
    """Render the richer chat-channel alert (English text + maps link)."""
    body = _CHAT_TEMPLATE.format(name=user_name, message=message)
    if location:
        body += "\n\nLocation: " + _MAPS_URL.format(location=location)
    return body
