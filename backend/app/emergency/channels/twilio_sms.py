"""
twilio_sms.py — SMS delivery via Twilio Programmable Messaging.

    App  →  twilio.rest.Client.messages.create(body, from_, to)  →  Carrier

The Twilio helper library is synchronous, so every call runs in a worker
thread; the dispatcher bounds it with a timeout.

Trial accounts can only reach verified numbers; Twilio reports that as
error 21608, which surfaces here as a ProviderRejected with that code.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from backend.app.core.errors import ProviderRejected
from backend.app.core.logging_config import mask_phone
from backend.app.emergency.channels.base import MessagingProvider
from backend.app.emergency.models import ChannelType

logger = logging.getLogger(__name__)


def build_twilio_client(account_sid: Optional[str], auth_token: Optional[str]) -> Optional[Client]:
    """Twilio REST client, or None when credentials are missing."""
    if not account_sid or not auth_token:
        logger.warning("Twilio credentials not provided — Twilio channels disabled")
        return None
    logger.info("Twilio initialised (account %s...)", account_sid[:4])
    return Client(account_sid, auth_token)


class TwilioSMSProvider(MessagingProvider):
    """Plain SMS through Twilio."""

    name = "twilio"
    channel = ChannelType.SMS

    def __init__(self, client: Optional[Any], from_number: Optional[str]):
        self._client = client
        self._from = from_number

    @property
    def is_initialized(self) -> bool:
        return self._client is not None and bool(self._from)

    @property
    def not_initialized_reason(self) -> str:
        if self._client is None:
            return "Twilio not initialized"
        return "TWILIO_PHONE_NUMBER not set"

    def _sender(self) -> str:
        return self._from or ""

    def _create(self, destination: str, body: str) -> str:
        try:
            message = self._client.messages.create(
                body=body, from_=self._sender(), to=destination,
            )
        except TwilioRestException as e:
            raise ProviderRejected(self.name, str(e.code or e.status), e.msg)

        if getattr(message, "error_code", None):
            raise ProviderRejected(
                self.name, str(message.error_code), message.error_message or "",
            )
        return message.sid

    async def _send(self, destination: str, body: str) -> str:
        sid = await asyncio.to_thread(self._create, destination, body)
        logger.info(
            "[%s] Sent to %s (sid=%s, %d chars)",
            self.name, mask_phone(destination), sid, len(body),
            extra={"provider": self.name, "channel": self.channel.value},
        )
        return sid
