"""
twilio_whatsapp.py — WhatsApp delivery via Twilio.

Same REST call as SMS; both sender and recipient carry the ``whatsapp:``
address prefix. WhatsApp has no 160-char limit, so this channel receives
the richer chat body (translated transcript + maps link).
"""

from __future__ import annotations

from backend.app.emergency.channels.twilio_sms import TwilioSMSProvider
from backend.app.emergency.models import ChannelType
from backend.app.emergency.phone import whatsapp_address


class TwilioWhatsAppProvider(TwilioSMSProvider):
    """Chat-style channel through the Twilio WhatsApp sender."""

    name = "twilio_whatsapp"
    channel = ChannelType.WHATSAPP

    @property
    def not_initialized_reason(self) -> str:
        if self._client is None:
            return "Twilio not initialized"
        return "TWILIO_WHATSAPP_NUMBER not set"

    def address(self, phone: str) -> str:
        return whatsapp_address(phone)

    def _sender(self) -> str:
        return whatsapp_address(self._from or "")
