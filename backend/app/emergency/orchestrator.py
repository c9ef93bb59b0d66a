"""
orchestrator.py — Emergency alert state machine.

This is the central coordinator that:
    1. Loads the user's contacts and medical profile (in parallel)
    2. Rejects the alert when no contact has a usable phone number
    3. Obtains a transcript (client text, speech chain, or typed message)
    4. Translates it to English when needed
    5. Ranks nearby hospitals when a location was sent
    6. Fans the alert out to every contact on every configured channel
    7. Writes one immutable AlertRecord

═══════════════════════════════════════════════════════════════════════════
STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    received
       │── no contacts ───────────► rejected_no_contacts   (400, no side effect)
       │── no usable phone ───────► rejected_no_phones     (400, no side effect)
       ▼
    contacts_validated
       │
       ├─(voice, no client text)─► transcribing
       ├─(non-English text)──────► translating
       ▼
    location_resolved          hospital lookup only when coordinates parse
       ▼
    dispatching                every channel, every contact, concurrently
       ▼
    recorded                   always reached once phones exist, even at 0 sent

Steps whose precondition does not hold are skipped, never failed.

═══════════════════════════════════════════════════════════════════════════
FAILURE POLICY
═══════════════════════════════════════════════════════════════════════════

    Failure                       Effect
    ──────────────────────────    ────────────────────────────────────────
    no contacts / no phones       NoContactsError / NoPhonesError raised
    medical profile read fails    patient info falls back to defaults
    voice clip cannot be saved    record has no voice_reference
    every ASR backend fails       canned placeholder transcript
    translation fails             original text kept
    hospital lookup fails         empty hospital list
    provider missing credentials  channel skipped, its contacts count failed
    single send fails             failed ProviderOutcome for that contact
    record write fails            logged; response returned, persisted=False

Dispatch and the record write run in one shielded task: a client that
hangs up mid-request does not stop messages already on their way, and
their outcomes are still recorded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from backend.app.core.config import settings
from backend.app.core.errors import NoContactsError, NoPhonesError, PersistenceFailure
from backend.app.emergency.dispatcher import NotificationDispatcher, tally_contacts
from backend.app.emergency.messages import build_chat_message, build_sms_body
from backend.app.emergency.models import (
    AlertRecord,
    AlertStatus,
    ChannelType,
    Contact,
    DispatchResult,
    MedicalSnapshot,
    TranscriptResult,
    new_alert_id,
)
from backend.app.emergency.phone import try_normalize_phone
from backend.app.emergency.providers import ProviderClients
from backend.app.emergency.stores import (
    AlertSink,
    ContactStore,
    HospitalStore,
    MedicalInfoStore,
    VoiceStorage,
)
from backend.app.emergency.transcription.audio import AudioClip
from backend.app.emergency.transcription.backends import short_language
from backend.app.emergency.transcription.chain import (
    DEFAULT_LANGUAGE,
    client_transcript,
    extract_client_transcript,
)
from backend.app.spatial.proximity import (
    Coordinate,
    HospitalMatch,
    find_nearby_hospitals,
    parse_location,
)

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Emergency! Please help."
DEFAULT_USER_NAME = "Unknown User"
MESSAGE_BACKEND = "message"


class OrchestrationState(str, Enum):
    RECEIVED = "received"
    CONTACTS_VALIDATED = "contacts_validated"
    TRANSCRIBING = "transcribing"
    TRANSLATING = "translating"
    LOCATION_RESOLVED = "location_resolved"
    DISPATCHING = "dispatching"
    RECORDED = "recorded"
    REJECTED_NO_CONTACTS = "rejected_no_contacts"
    REJECTED_NO_PHONES = "rejected_no_phones"


@dataclass(frozen=True)
class AlertRequest:
    """One SOS press, as received from the client."""
    user_id: str
    message: str = DEFAULT_MESSAGE
    location: Optional[str] = None
    user_name: str = DEFAULT_USER_NAME
    language: str = DEFAULT_LANGUAGE
    voice: Optional[AudioClip] = None
    user_email: Optional[str] = None


@dataclass
class AlertOutcome:
    """What happened, for the HTTP response."""
    record: AlertRecord
    record_id: Optional[str]
    persisted: bool
    contacts: List[Contact]
    nearby_hospitals: List[HospitalMatch]
    patient_info: Dict[str, Any]
    transcript: Optional[TranscriptResult] = None
    state_history: List[OrchestrationState] = field(default_factory=list)


@dataclass(frozen=True)
class _Recipient:
    contact: Contact
    phone: str


class AlertOrchestrator:
    """Runs one alert request through the state machine."""

    def __init__(
        self,
        *,
        contacts: ContactStore,
        medical: MedicalInfoStore,
        hospitals: HospitalStore,
        alerts: AlertSink,
        clients: ProviderClients,
        dispatcher: Optional[NotificationDispatcher] = None,
        voice_storage: Optional[VoiceStorage] = None,
        radius_km: Optional[float] = None,
        max_contacts: Optional[int] = None,
    ):
        self.contacts = contacts
        self.medical = medical
        self.hospitals = hospitals
        self.alerts = alerts
        self.clients = clients
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.voice_storage = voice_storage
        self.radius_km = radius_km or settings.NEARBY_RADIUS_KM
        self.max_contacts = max_contacts or settings.MAX_CONTACTS
        self._in_flight: Set[asyncio.Future] = set()

    async def drain(self) -> None:
        """
        Wait for dispatch + record tasks still running after their request
        was cancelled. Called at shutdown before provider clients close.
        """
        pending = list(self._in_flight)
        if pending:
            logger.info("Waiting for %d in-flight alerts", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
        await self.dispatcher.drain()

    # ───────────────────────────────────────────────────────────────────
    # Entry point
    # ───────────────────────────────────────────────────────────────────

    async def create_alert(self, request: AlertRequest) -> AlertOutcome:
        alert_id = new_alert_id()
        history: List[OrchestrationState] = [OrchestrationState.RECEIVED]
        log_extra = {"alert_id": alert_id, "user_id": request.user_id}
        start = time.perf_counter()

        logger.info(
            "Emergency received from %s (voice=%s, location=%s, language=%s)",
            request.user_name, request.voice is not None,
            bool(request.location), request.language,
            extra=log_extra,
        )

        contacts, medical = await asyncio.gather(
            self.contacts.list(request.user_id),
            self._load_medical(request.user_id),
        )
        contacts = list(contacts)[: self.max_contacts]

        # ── Validation (no side effects before this point) ──
        if not contacts:
            history.append(OrchestrationState.REJECTED_NO_CONTACTS)
            logger.warning("No emergency contacts — alert rejected", extra=log_extra)
            raise NoContactsError(user_id=request.user_id)

        recipients = self._recipients(contacts)
        if not recipients:
            history.append(OrchestrationState.REJECTED_NO_PHONES)
            logger.warning(
                "%d contacts but no usable phone — alert rejected", len(contacts),
                extra=log_extra,
            )
            raise NoPhonesError(user_id=request.user_id, contact_count=len(contacts))

        history.append(OrchestrationState.CONTACTS_VALIDATED)
        log_extra["contact_count"] = len(recipients)

        # ── Voice + transcript ──
        voice_reference = await self._store_voice(request)
        transcript = await self._resolve_transcript(request, history, log_extra)

        # ── Location ──
        coordinates = parse_location(request.location)
        nearby = await self._nearby_hospitals(coordinates, log_extra)
        history.append(OrchestrationState.LOCATION_RESOLVED)

        # ── Dispatch + record (shielded) ──
        history.append(OrchestrationState.DISPATCHING)
        task = asyncio.ensure_future(self._dispatch_and_record(
            alert_id=alert_id,
            request=request,
            recipients=recipients,
            transcript=transcript,
            coordinates=coordinates,
            medical=medical,
            voice_reference=voice_reference,
            log_extra=log_extra,
        ))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        record, record_id, persisted = await asyncio.shield(task)
        history.append(OrchestrationState.RECORDED)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Alert %s %s: %d/%d contacts reached (%.0fms)",
            alert_id, record.status.value, record.sent_count,
            record.contacts_notified, duration_ms,
            extra={**log_extra, "duration_ms": duration_ms},
        )

        return AlertOutcome(
            record=record,
            record_id=record_id,
            persisted=persisted,
            contacts=[r.contact for r in recipients],
            nearby_hospitals=nearby,
            patient_info=self._patient_info(request, medical),
            transcript=transcript,
            state_history=history,
        )

    # ───────────────────────────────────────────────────────────────────
    # Steps
    # ───────────────────────────────────────────────────────────────────

    async def _load_medical(self, user_id: str) -> Optional[MedicalSnapshot]:
        try:
            return await self.medical.get(user_id)
        except Exception as e:
            logger.warning("Could not fetch medical info for %s: %s", user_id, e)
            return None

    @staticmethod
    def _recipients(contacts: Sequence[Contact]) -> List[_Recipient]:
        """Contacts with a usable phone; duplicates keep the first (highest priority)."""
        seen: Set[str] = set()
        recipients: List[_Recipient] = []
        for contact in contacts:
            phone = try_normalize_phone(contact.phone)
            if phone is None or phone in seen:
                continue
            seen.add(phone)
            recipients.append(_Recipient(contact=contact, phone=phone))
        return recipients

    async def _store_voice(self, request: AlertRequest) -> Optional[str]:
        if request.voice is None or self.voice_storage is None:
            return None
        try:
            return await self.voice_storage.save(request.voice, request.user_id)
        except Exception as e:
            logger.error("Could not store voice clip: %s", e)
            return None

    async def _resolve_transcript(
        self,
        request: AlertRequest,
        history: List[OrchestrationState],
        log_extra: Dict[str, Any],
    ) -> TranscriptResult:
        language = short_language(request.language) or DEFAULT_LANGUAGE
        embedded = extract_client_transcript(request.message)

        if embedded is not None:
            logger.info("Using client-side transcript", extra=log_extra)
            result = client_transcript(embedded, language)
        elif request.voice is not None:
            history.append(OrchestrationState.TRANSCRIBING)
            result = await self.clients.transcription.transcribe(request.voice, language)
        else:
            result = TranscriptResult(
                original_text=request.message,
                english_text=request.message,
                detected_language=language,
                confidence=1.0,
                backend=MESSAGE_BACKEND,
            )

        # Placeholders already carry English text
        if (
            not result.is_placeholder
            and result.original_text
            and result.detected_language != DEFAULT_LANGUAGE
        ):
            history.append(OrchestrationState.TRANSLATING)
            english = await self.clients.translation.translate(
                result.original_text, result.detected_language,
            )
            result = TranscriptResult(
                original_text=result.original_text,
                english_text=english,
                detected_language=result.detected_language,
                confidence=result.confidence,
                backend=result.backend,
                is_placeholder=result.is_placeholder,
            )
        return result

    async def _nearby_hospitals(
        self,
        coordinates: Optional[Coordinate],
        log_extra: Dict[str, Any],
    ) -> List[HospitalMatch]:
        if coordinates is None:
            return []
        try:
            hospitals = await self.hospitals.list_active()
        except Exception as e:
            logger.warning("Hospital lookup failed: %s", e, extra=log_extra)
            return []
        matches = find_nearby_hospitals(coordinates, hospitals, self.radius_km)
        logger.info(
            "%d hospitals within %.1fkm of %s", len(matches), self.radius_km, coordinates,
            extra=log_extra,
        )
        return matches

    def _message_for(
        self,
        channel: ChannelType,
        request: AlertRequest,
        transcript: TranscriptResult,
    ) -> str:
        if channel == ChannelType.WHATSAPP:
            return build_chat_message(request.user_name, transcript.english_text, request.location)
        return build_sms_body(request.user_name, request.location)

    async def _dispatch_and_record(
        self,
        *,
        alert_id: str,
        request: AlertRequest,
        recipients: Sequence[_Recipient],
        transcript: TranscriptResult,
        coordinates: Optional[Coordinate],
        medical: Optional[MedicalSnapshot],
        voice_reference: Optional[str],
        log_extra: Dict[str, Any],
    ) -> Tuple[AlertRecord, Optional[str], bool]:
        phones = [r.phone for r in recipients]
        providers = list(self.clients.channels.values())

        results: List[DispatchResult] = list(await asyncio.gather(*(
            self.dispatcher.dispatch(
                phones, self._message_for(p.channel, request, transcript), p,
            )
            for p in providers
        )))

        sent, failed = tally_contacts(phones, results)
        record = AlertRecord(
            alert_id=alert_id,
            user_id=request.user_id,
            message_text=request.message,
            raw_location=request.location,
            coordinates=coordinates,
            contacts_notified=len(phones),
            sent_count=sent,
            failed_count=failed,
            status=AlertStatus.from_counts(sent, len(phones)),
            voice_reference=voice_reference,
            transcript=transcript.original_text,
            translated_transcript=transcript.english_text,
            detected_language=transcript.detected_language,
            medical_snapshot=medical,
            provider_outcomes=tuple(o for r in results for o in r.outcomes),
            channel_summaries=tuple(results),
        )

        try:
            record_id = await self.alerts.create(record)
        except Exception as e:
            failure = PersistenceFailure(str(e), alert_id=alert_id)
            logger.error("%s", failure.message, extra=log_extra)
            return record, None, False
        return record, record_id, True

    @staticmethod
    def _patient_info(request: AlertRequest, medical: Optional[MedicalSnapshot]) -> Dict[str, Any]:
        return {
            "name": request.user_name,
            "email": request.user_email or "",
            "medicalDetails": (medical or MedicalSnapshot()).to_dict(),
        }
