"""
test_channels.py — Messaging providers and provider wiring.

Covers:
    • Twilio SMS / WhatsApp addressing and error mapping (fake REST client)
    • MSG91 request shape and response parsing (httpx.MockTransport)
    • Simulation provider
    • build_provider_clients with default settings

Run with:
    pytest tests/test_channels.py -v
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import httpx
import pytest
from twilio.base.exceptions import TwilioRestException

from backend.app.core.errors import ProviderRejected
from backend.app.emergency.channels import (
    MSG91SMSProvider,
    SimulatedProvider,
    TwilioSMSProvider,
    TwilioWhatsAppProvider,
)
from backend.app.emergency.channels.twilio_sms import build_twilio_client
from backend.app.emergency.models import ChannelType
from backend.app.emergency.providers import build_provider_clients

PHONE = "+919876543210"
MSG91_URL = "https://api.msg91.com/api/sendhttp.php"


def _run(coro):
    return asyncio.run(coro)


class FakeTwilioMessages:
    """Stands in for ``Client.messages``."""

    def __init__(self, error=None, error_code=None):
        self.error = error
        self.error_code = error_code
        self.created = []

    def create(self, body, from_, to):
        self.created.append({"body": body, "from_": from_, "to": to})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            sid=f"SM{len(self.created):032d}",
            error_code=self.error_code,
            error_message="Carrier violation" if self.error_code else None,
        )


def _twilio_client(messages: FakeTwilioMessages):
    return SimpleNamespace(messages=messages)


# ═══════════════════════════════════════════════════════════════════════════
# Twilio
# ═══════════════════════════════════════════════════════════════════════════

class TestTwilioSMS:

    def test_send(self):
        messages = FakeTwilioMessages()
        provider = TwilioSMSProvider(_twilio_client(messages), "+15550001111")
        sid = _run(provider.send(PHONE, "EMERGENCY"))
        assert sid.startswith("SM")
        assert messages.created == [{"body": "EMERGENCY", "from_": "+15550001111", "to": PHONE}]

    def test_rest_exception_mapped(self):
        messages = FakeTwilioMessages(
            error=TwilioRestException(400, "/Messages", msg="Unverified number", code=21608),
        )
        provider = TwilioSMSProvider(_twilio_client(messages), "+15550001111")
        with pytest.raises(ProviderRejected) as exc:
            _run(provider.send(PHONE, "x"))
        assert exc.value.provider_code == "21608"
        assert exc.value.provider_message == "Unverified number"

    def test_message_error_code_mapped(self):
        messages = FakeTwilioMessages(error_code=30007)
        provider = TwilioSMSProvider(_twilio_client(messages), "+15550001111")
        with pytest.raises(ProviderRejected) as exc:
            _run(provider.send(PHONE, "x"))
        assert exc.value.provider_code == "30007"

    def test_not_initialized_without_client(self):
        provider = TwilioSMSProvider(None, "+15550001111")
        assert provider.is_initialized is False
        assert provider.not_initialized_reason == "Twilio not initialized"

    def test_not_initialized_without_sender(self):
        provider = TwilioSMSProvider(_twilio_client(FakeTwilioMessages()), None)
        assert provider.is_initialized is False
        assert provider.not_initialized_reason == "TWILIO_PHONE_NUMBER not set"

    def test_no_credentials_no_client(self):
        assert build_twilio_client(None, "token") is None
        assert build_twilio_client("AC123", "") is None


class TestTwilioWhatsApp:

    def test_both_ends_prefixed(self):
        messages = FakeTwilioMessages()
        provider = TwilioWhatsAppProvider(_twilio_client(messages), "+14155238886")
        _run(provider.send(PHONE, "🚨 EMERGENCY ALERT"))
        sent = messages.created[0]
        assert sent["to"] == f"whatsapp:{PHONE}"
        assert sent["from_"] == "whatsapp:+14155238886"

    def test_channel(self):
        provider = TwilioWhatsAppProvider(None, None)
        assert provider.channel == ChannelType.WHATSAPP
        assert provider.name == "twilio_whatsapp"


# ═══════════════════════════════════════════════════════════════════════════
# MSG91
# ═══════════════════════════════════════════════════════════════════════════

def _msg91(handler, **overrides) -> MSG91SMSProvider:
    kwargs = dict(auth_key="key", route="4", sender_id="SOSAPP", api_url=MSG91_URL)
    kwargs.update(overrides)
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MSG91SMSProvider(http, **kwargs)


class TestMSG91:

    def test_send(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(dict(request.url.params))
            return httpx.Response(200, text="success:3a5f0c")

        provider = _msg91(handler)
        assert _run(provider.send(PHONE, "EMERGENCY: help")) == "3a5f0c"
        assert seen["mobiles"] == "919876543210"
        assert seen["message"] == "EMERGENCY: help"
        assert seen["sender"] == "SOSAPP"
        assert seen["route"] == "4"
        assert seen["country"] == "91"
        assert seen["authkey"] == "key"

    def test_error_text_rejected(self):
        provider = _msg91(lambda request: httpx.Response(200, text="Invalid authkey"))
        with pytest.raises(ProviderRejected) as exc:
            _run(provider.send(PHONE, "x"))
        assert exc.value.provider_code == "MSG91_ERROR"
        assert exc.value.provider_message == "Invalid authkey"

    def test_http_error_raises(self):
        provider = _msg91(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(httpx.HTTPStatusError):
            _run(provider.send(PHONE, "x"))

    def test_not_initialized_without_route(self):
        provider = _msg91(lambda request: httpx.Response(200), route=None)
        assert provider.is_initialized is False
        assert provider.not_initialized_reason == "MSG91 not initialized"

    def test_address_adds_country_code(self):
        provider = _msg91(lambda request: httpx.Response(200))
        assert provider.address("9876543210") == "919876543210"
        assert provider.address("+919876543210") == "919876543210"


# ═══════════════════════════════════════════════════════════════════════════
# Simulation & wiring
# ═══════════════════════════════════════════════════════════════════════════

class TestSimulation:

    def test_always_succeeds(self):
        provider = SimulatedProvider(ChannelType.WHATSAPP)
        assert provider.is_initialized
        assert _run(provider.send(PHONE, "x")).startswith("SIM-")


class TestBuildProviderClients:

    def test_default_settings(self):
        async def scenario():
            http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
            clients = build_provider_clients(http)
            try:
                return dict(clients.status()), clients.translation.enabled
            finally:
                await clients.aclose()
                assert not http.is_closed  # caller-owned client stays open
                await http.aclose()

        status, translation = _run(scenario())
        # Simulated SMS; WhatsApp needs Twilio credentials
        assert status == {"sms": True, "whatsapp": False}
        assert translation is True
