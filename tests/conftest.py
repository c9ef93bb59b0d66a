"""
Shared fixtures for the emergency alert engine tests.

Every external collaborator is replaced by an in-process fake:

    • FakeProvider       — messaging provider recording each send
    • FakeSpeech         — transcription chain entry with a canned answer
    • CountingTranslator — translator recording each call

Fakes are mutable so a test can flip one behaviour (fail a phone, drop
credentials, slow down a send) without building its own class.
"""

from __future__ import annotations

import asyncio
from types import MappingProxyType
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest
from fastapi.testclient import TestClient

from backend.app.core.errors import ProviderRejected
from backend.app.core.security import create_access_token
from backend.app.emergency.channels.base import MessagingProvider
from backend.app.emergency.dispatcher import NotificationDispatcher
from backend.app.emergency.models import ChannelType
from backend.app.emergency.orchestrator import AlertOrchestrator
from backend.app.emergency.providers import ProviderClients
from backend.app.emergency.seed import sample_hospitals
from backend.app.emergency.stores import (
    InMemoryAlertSink,
    InMemoryContactStore,
    InMemoryHospitalStore,
    InMemoryMedicalInfoStore,
    VoiceStorage,
)
from backend.app.emergency.transcription.audio import AudioClip
from backend.app.emergency.transcription.backends import BackendTranscript
from backend.app.emergency.transcription.chain import ChainEntry, TranscriptionChain
from backend.app.emergency.translation import TranslationGate

# Indiranagar, Bangalore: three sample hospitals lie within 5 km
BLR_LOCATION = "12.97,77.64"
USER_ID = "user-1"


# ═══════════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════════

class FakeProvider(MessagingProvider):
    """Records (destination, body) per send; configurable failures."""

    def __init__(self, name: str = "fake_sms", channel: ChannelType = ChannelType.SMS):
        self.name = name
        self.channel = channel
        self.initialized = True
        self.fail_on: Set[str] = set()
        self.reject_on: Set[str] = set()
        self.delay = 0.0
        self.calls: List[Tuple[str, str]] = []
        self.delivered: List[str] = []

    @property
    def is_initialized(self) -> bool:
        return self.initialized

    async def _send(self, destination: str, body: str) -> str:
        self.calls.append((destination, body))
        if self.delay:
            await asyncio.sleep(self.delay)
        if destination in self.fail_on:
            raise RuntimeError("connection reset")
        if destination in self.reject_on:
            raise ProviderRejected(self.name, "21608", "Unverified number")
        self.delivered.append(destination)
        return f"{self.name}-{len(self.calls)}"


class FakeSpeech:
    """Chain entry callable; answers with ``text`` or raises ``error``."""

    def __init__(self, text: str = "help me", language: Optional[str] = "en", confidence: float = 0.9):
        self.text = text
        self.language = language
        self.confidence = confidence
        self.error: Optional[Exception] = None
        self.calls: List[Tuple[AudioClip, Optional[str]]] = []

    async def __call__(self, clip: AudioClip, language: Optional[str]) -> BackendTranscript:
        self.calls.append((clip, language))
        if self.error is not None:
            raise self.error
        return BackendTranscript(text=self.text, language=self.language, confidence=self.confidence)

    def entry(self, name: str = "fake_asr", timeout: float = 1.0) -> ChainEntry:
        return ChainEntry(name=name, invoke=self, timeout_seconds=timeout)


class CountingTranslator:
    name = "counting"

    def __init__(self, prefix: str = "[en] "):
        self.prefix = prefix
        self.error: Optional[Exception] = None
        self.calls: List[Tuple[str, str, str]] = []

    async def translate(self, text: str, source_language: str, target_language: str) -> str:
        self.calls.append((text, source_language, target_language))
        if self.error is not None:
            raise self.error
        return f"{self.prefix}{text}"


def make_clients(
    providers: Sequence[MessagingProvider],
    entries: Sequence[ChainEntry] = (),
    translator: Optional[CountingTranslator] = None,
) -> ProviderClients:
    channels: Dict[str, MessagingProvider] = {p.channel.value: p for p in providers}
    return ProviderClients(
        http=None,
        channels=MappingProxyType(channels),
        transcription=TranscriptionChain(list(entries)),
        translation=TranslationGate(translator),
        _owns_http=False,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def sms_provider() -> FakeProvider:
    return FakeProvider("fake_sms", ChannelType.SMS)


@pytest.fixture
def whatsapp_provider() -> FakeProvider:
    return FakeProvider("fake_whatsapp", ChannelType.WHATSAPP)


@pytest.fixture
def speech() -> FakeSpeech:
    return FakeSpeech()


@pytest.fixture
def translator() -> CountingTranslator:
    return CountingTranslator()


@pytest.fixture
def contact_store() -> InMemoryContactStore:
    return InMemoryContactStore()


@pytest.fixture
def medical_store() -> InMemoryMedicalInfoStore:
    return InMemoryMedicalInfoStore()


@pytest.fixture
def hospital_store() -> InMemoryHospitalStore:
    return InMemoryHospitalStore(sample_hospitals())


@pytest.fixture
def alert_sink() -> InMemoryAlertSink:
    return InMemoryAlertSink()


@pytest.fixture
def clients(sms_provider, whatsapp_provider, speech, translator) -> ProviderClients:
    return make_clients([sms_provider, whatsapp_provider], [speech.entry()], translator)


@pytest.fixture
def orchestrator(
    contact_store, medical_store, hospital_store, alert_sink, clients, tmp_path,
) -> AlertOrchestrator:
    return AlertOrchestrator(
        contacts=contact_store,
        medical=medical_store,
        hospitals=hospital_store,
        alerts=alert_sink,
        clients=clients,
        dispatcher=NotificationDispatcher(send_timeout=1.0),
        voice_storage=VoiceStorage(str(tmp_path)),
        radius_km=5.0,
        max_contacts=20,
    )


@pytest.fixture
def api(orchestrator, hospital_store, alert_sink, contact_store, medical_store, clients):
    """TestClient wired to the fakes; the app lifespan is not run."""
    from backend.app.main import app

    names = ("orchestrator", "hospital_store", "alert_sink", "contact_store", "medical_store", "clients")
    app.state.orchestrator = orchestrator
    app.state.hospital_store = hospital_store
    app.state.alert_sink = alert_sink
    app.state.contact_store = contact_store
    app.state.medical_store = medical_store
    app.state.clients = clients
    yield TestClient(app, raise_server_exceptions=False)
    for name in names:
        delattr(app.state, name)


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = USER_ID, email: Optional[str] = "asha@example.com") -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, email=email)}"}
    return _headers
