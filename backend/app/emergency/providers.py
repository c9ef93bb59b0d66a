"""
providers.py — External clients built once at startup.

The FastAPI lifespan calls ``build_provider_clients()`` and stores the
result on ``app.state``. Requests only read it; nothing here is mutated
after construction. ``aclose()`` releases the shared HTTP pool at shutdown.

    ProviderClients
        http           shared httpx.AsyncClient (MSG91, speech, translation)
        channels       {"sms": provider, "whatsapp": provider} in dispatch order
        transcription  TranscriptionChain
        translation    TranslationGate
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

import httpx

from backend.app.core.config import settings
from backend.app.emergency.channels import (
    MessagingProvider,
    MSG91SMSProvider,
    SimulatedProvider,
    TwilioSMSProvider,
    TwilioWhatsAppProvider,
)
from backend.app.emergency.channels.twilio_sms import build_twilio_client
from backend.app.emergency.models import ChannelType
from backend.app.emergency.transcription.chain import TranscriptionChain, build_chain
from backend.app.emergency.translation import TranslationGate, build_translation_gate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderClients:
    http: Optional[httpx.AsyncClient]
    channels: Mapping[str, MessagingProvider]
    transcription: TranscriptionChain
    translation: TranslationGate
    _owns_http: bool = field(default=True, repr=False)

    async def aclose(self) -> None:
        for provider in self.channels.values():
            await provider.aclose()
        if self.http is not None and self._owns_http:
            await self.http.aclose()
            logger.info("Provider HTTP client closed")

    def status(self) -> Mapping[str, bool]:
        """Channel name → initialized (for health checks)."""
        return {name: p.is_initialized for name, p in self.channels.items()}


def _sms_provider(http: httpx.AsyncClient, twilio_client) -> MessagingProvider:
    choice = settings.SMS_PROVIDER
    if choice == "twilio":
        return TwilioSMSProvider(twilio_client, settings.TWILIO_PHONE_NUMBER)
    if choice == "msg91":
        return MSG91SMSProvider(
            http,
            auth_key=settings.MSG91_AUTH_KEY,
            route=settings.MSG91_ROUTE,
            sender_id=settings.MSG91_SENDER_ID,
            api_url=settings.MSG91_API_URL,
            timeout=settings.PROVIDER_SEND_TIMEOUT,
        )
    if choice != "simulation":
        logger.warning("Unknown SMS_PROVIDER %r — using simulation", choice)
    return SimulatedProvider(ChannelType.SMS)


def build_provider_clients(http: Optional[httpx.AsyncClient] = None) -> ProviderClients:
    """Construct every provider from settings."""
    owns_http = http is None
    if http is None:
        http = httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))

    needs_twilio = (
        settings.SMS_PROVIDER == "twilio"
        or "whatsapp" in settings.NOTIFICATION_CHANNELS
    )
    twilio_client = (
        build_twilio_client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        if needs_twilio else None
    )

    channels = {}
    for name in settings.NOTIFICATION_CHANNELS:
        if name == "sms":
            channels[name] = _sms_provider(http, twilio_client)
        elif name == "whatsapp":
            channels[name] = TwilioWhatsAppProvider(twilio_client, settings.TWILIO_WHATSAPP_NUMBER)
        else:
            logger.warning("Unknown notification channel %r ignored", name)

    for name, provider in channels.items():
        logger.info("Channel %s → %r", name, provider)

    return ProviderClients(
        http=http,
        channels=MappingProxyType(channels),
        transcription=build_chain(http),
        translation=build_translation_gate(http),
        _owns_http=owns_http,
    )
