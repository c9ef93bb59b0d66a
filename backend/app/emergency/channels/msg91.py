"""
msg91.py — SMS delivery via the MSG91 legacy HTTP endpoint.

    GET https://api.msg91.com/api/sendhttp.php
        ?authkey=…&mobiles=91XXXXXXXXXX&message=…&sender=…&route=…&country=91

The endpoint answers with plain text: ``success`` or ``success:<id>`` on
acceptance, an error string otherwise (reported as code ``MSG91_ERROR``).
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from backend.app.core.errors import ProviderRejected
from backend.app.core.logging_config import mask_phone
from backend.app.emergency.channels.base import MessagingProvider
from backend.app.emergency.models import ChannelType

logger = logging.getLogger(__name__)

MSG91_COUNTRY = "91"


class MSG91SMSProvider(MessagingProvider):
    """SMS through MSG91 using a shared httpx.AsyncClient."""

    name = "msg91"
    channel = ChannelType.SMS

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        auth_key: Optional[str],
        route: Optional[str],
        sender_id: Optional[str],
        api_url: str,
        timeout: float = 15.0,
    ):
        self._http = http
        self._auth_key = auth_key
        self._route = route
        self._sender_id = sender_id
        self._api_url = api_url
        self._timeout = timeout

    @property
    def is_initialized(self) -> bool:
        return bool(self._auth_key and self._route and self._sender_id)

    @property
    def not_initialized_reason(self) -> str:
        return "MSG91 not initialized"

    def address(self, phone: str) -> str:
        # MSG91 wants bare digits with country code, no "+"
        digits = "".join(ch for ch in phone if ch.isdigit()).lstrip("0")
        if len(digits) == 10:
            digits = MSG91_COUNTRY + digits
        return digits

    async def _send(self, destination: str, body: str) -> str:
        params = {
            "authkey": self._auth_key,
            "mobiles": destination,
            "message": body,
            "sender": self._sender_id,
            "route": self._route,
            "country": MSG91_COUNTRY,
        }
        resp = await self._http.get(self._api_url, params=params, timeout=self._timeout)
        resp.raise_for_status()

        text = resp.text.strip()
        if not text.startswith("success"):
            raise ProviderRejected(self.name, "MSG91_ERROR", text or "empty response")

        _, _, message_id = text.partition(":")
        logger.info(
            "[%s] Sent to %s (id=%s)",
            self.name, mask_phone(destination), message_id or "-",
            extra={"provider": self.name, "channel": self.channel.value},
        )
        return message_id
