"""
models.py — Shared data structures for the emergency alert engine.

Defines:
    • Contact          — a user's emergency contact (raw phone)
    • Hospital         — read-only hospital directory entry
    • MedicalSnapshot  — medical profile frozen at alert time
    • TranscriptResult — outcome of the transcription chain
    • ProviderOutcome  — one (contact, provider) send attempt
    • DispatchResult   — per-channel fan-out summary
    • AlertRecord      — immutable record of what was sent, to whom

═══════════════════════════════════════════════════════════════════════════
ALERT STATUS
═══════════════════════════════════════════════════════════════════════════

    Status     Meaning
    ───────    ──────────────────────────────────────────────
    sent       every contact reached by at least one channel
    partial    some contacts reached
    failed     no contact reached

A contact counts as reached when ANY channel delivered to it, so
sent_count + failed_count == contacts_notified regardless of how many
channels were configured.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from backend.app.spatial.proximity import Coordinate


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class ChannelType(str, Enum):
    """Addressing style of a messaging provider."""
    SMS      = "sms"        # plain phone number destination
    WHATSAPP = "whatsapp"   # chat-style "whatsapp:+<digits>" destination


class AlertStatus(str, Enum):
    SENT    = "sent"
    PARTIAL = "partial"
    FAILED  = "failed"

    @classmethod
    def from_counts(cls, sent: int, total: int) -> "AlertStatus":
        if total > 0 and sent == total:
            return cls.SENT
        if sent > 0:
            return cls.PARTIAL
        return cls.FAILED


def new_alert_id() -> str:
    return f"SOS-{uuid.uuid4().hex[:12].upper()}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# Directory entities
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Contact:
    """
    An emergency contact as saved by the user.

    Attributes
    ----------
    name : str
        Display name.
    phone : str
        Raw phone string; normalized only at send time.
    relation : str
        Free text ("mother", "neighbour").
    priority : int
        Higher values are notified first.
    """
    name: str
    phone: str
    relation: str = ""
    priority: int = 0
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "phone": self.phone,
            "relation": self.relation,
            "priority": self.priority,
        }


@dataclass
class Hospital:
    """A hospital directory entry. Read-only to the alert engine."""
    hospital_id: str
    name: str
    phone: str
    coordinates: Coordinate
    specialties: List[str] = field(default_factory=list)
    beds_available: int = 0
    ambulances_available: int = 0
    is_active: bool = True
    address: str = ""
    email: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.hospital_id,
            "name": self.name,
            "phone": self.phone,
            "location": {
                "latitude": self.coordinates.latitude,
                "longitude": self.coordinates.longitude,
            },
            "specialties": list(self.specialties),
            "bedsAvailable": self.beds_available,
            "ambulancesAvailable": self.ambulances_available,
            "address": self.address,
            "email": self.email,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Hospital":
        loc = data["location"]
        return cls(
            hospital_id=data["id"],
            name=data["name"],
            phone=data.get("phone", ""),
            coordinates=Coordinate(loc["latitude"], loc["longitude"]),
            specialties=list(data.get("specialties") or []),
            beds_available=data.get("bedsAvailable", 0),
            ambulances_available=data.get("ambulancesAvailable", 0),
            is_active=data.get("isActive", True),
            address=data.get("address", ""),
            email=data.get("email", ""),
        )


@dataclass(frozen=True)
class MedicalSnapshot:
    """Medical profile copied at alert creation; later edits cannot leak in."""
    blood_type: str = "Unknown"
    allergies: Tuple[str, ...] = ()
    medications: Tuple[str, ...] = ()
    medical_conditions: Tuple[str, ...] = ()
    emergency_notes: str = ""
    organ_donor: bool = False
    height: Optional[str] = None
    weight: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "MedicalSnapshot":
        """Build from a stored profile dict (camelCase or snake_case keys)."""
        if not data:
            return cls()

        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        return cls(
            blood_type=pick("blood_type", "bloodType") or "Unknown",
            allergies=tuple(pick("allergies", "allergies") or ()),
            medications=tuple(pick("medications", "medications") or ()),
            medical_conditions=tuple(pick("medical_conditions", "medicalConditions") or ()),
            emergency_notes=pick("emergency_notes", "emergencyNotes") or "",
            organ_donor=bool(pick("organ_donor", "organDonor", False)),
            height=pick("height", "height"),
            weight=pick("weight", "weight"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "bloodType": self.blood_type,
            "allergies": list(self.allergies),
            "medications": list(self.medications),
            "medicalConditions": list(self.medical_conditions),
            "emergencyNotes": self.emergency_notes,
            "organDonor": self.organ_donor,
        }
        if self.height is not None:
            data["height"] = self.height
        if self.weight is not None:
            data["weight"] = self.weight
        return data


# ═══════════════════════════════════════════════════════════════════════════
# Pipeline results
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TranscriptResult:
    """
    Transcript of a voice clip.

    ``confidence == 0`` together with ``is_placeholder`` marks canned text
    produced when no backend could transcribe the clip.
    """
    original_text: str
    english_text: str
    detected_language: str
    confidence: float
    backend: str
    is_placeholder: bool = False

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"Confidence must be in [0, 1], got {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_text": self.original_text,
            "english_text": self.english_text,
            "detected_language": self.detected_language,
            "confidence": round(self.confidence, 3),
            "backend": self.backend,
            "is_placeholder": self.is_placeholder,
        }


@dataclass(frozen=True)
class ProviderOutcome:
    """Result of sending to one contact through one provider."""
    contact_phone: str
    provider: str
    channel: ChannelType
    success: bool
    provider_message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contact_phone": self.contact_phone,
            "provider": self.provider,
            "channel": self.channel.value,
            "success": self.success,
            "provider_message_id": self.provider_message_id,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProviderOutcome":
        return cls(
            contact_phone=data["contact_phone"],
            provider=data["provider"],
            channel=ChannelType(data["channel"]),
            success=data["success"],
            provider_message_id=data.get("provider_message_id"),
            error_code=data.get("error_code"),
            error_message=data.get("error_message"),
        )


@dataclass
class DispatchResult:
    """Fan-out summary for one provider/channel."""
    provider: str
    channel: ChannelType
    sent_count: int = 0
    failed_count: int = 0
    outcomes: List[ProviderOutcome] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "channel": self.channel.value,
            "sent_count": self.sent_count,
            "failed_count": self.failed_count,
            "skipped_reason": self.skipped_reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DispatchResult":
        return cls(
            provider=data["provider"],
            channel=ChannelType(data["channel"]),
            sent_count=data.get("sent_count", 0),
            failed_count=data.get("failed_count", 0),
            skipped_reason=data.get("skipped_reason"),
        )


# ═══════════════════════════════════════════════════════════════════════════
# Alert record
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AlertRecord:
    """Terminal, immutable record of one emergency alert."""
    user_id: str
    message_text: str
    contacts_notified: int
    sent_count: int
    failed_count: int
    status: AlertStatus
    raw_location: Optional[str] = None
    coordinates: Optional[Coordinate] = None
    voice_reference: Optional[str] = None
    transcript: Optional[str] = None
    translated_transcript: Optional[str] = None
    detected_language: Optional[str] = None
    medical_snapshot: Optional[MedicalSnapshot] = None
    provider_outcomes: Tuple[ProviderOutcome, ...] = ()
    channel_summaries: Tuple[DispatchResult, ...] = ()
    alert_id: str = field(default_factory=new_alert_id)
    created_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        if self.sent_count + self.failed_count != self.contacts_notified:
            raise ValueError(
                "sent_count + failed_count must equal contacts_notified "
                f"({self.sent_count} + {self.failed_count} != {self.contacts_notified})"
            )
        if self.transcript is not None and self.translated_transcript is None:
            raise ValueError("translated_transcript is required when transcript is set")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "message_text": self.message_text,
            "raw_location": self.raw_location,
            "coordinates": (
                {
                    "latitude": self.coordinates.latitude,
                    "longitude": self.coordinates.longitude,
                }
                if self.coordinates else None
            ),
            "contacts_notified": self.contacts_notified,
            "sent_count": self.sent_count,
            "failed_count": self.failed_count,
            "status": self.status.value,
            "voice_reference": self.voice_reference,
            "transcript": self.transcript,
            "translated_transcript": self.translated_transcript,
            "detected_language": self.detected_language,
            "medical_snapshot": (
                self.medical_snapshot.to_dict() if self.medical_snapshot else None
            ),
            "provider_outcomes": [o.to_dict() for o in self.provider_outcomes],
            "channel_summaries": [c.to_dict() for c in self.channel_summaries],
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlertRecord":
        coords = data.get("coordinates")
        medical = data.get("medical_snapshot")
        return cls(
            alert_id=data["alert_id"],
            user_id=data["user_id"],
            message_text=data["message_text"],
            raw_location=data.get("raw_location"),
            coordinates=(
                Coordinate(coords["latitude"], coords["longitude"]) if coords else None
            ),
            contacts_notified=data["contacts_notified"],
            sent_count=data["sent_count"],
            failed_count=data["failed_count"],
            status=AlertStatus(data["status"]),
            voice_reference=data.get("voice_reference"),
            transcript=data.get("transcript"),
            translated_transcript=data.get("translated_transcript"),
            detected_language=data.get("detected_language"),
            medical_snapshot=(
                MedicalSnapshot.from_mapping(medical) if medical else None
            ),
            provider_outcomes=tuple(
                ProviderOutcome.from_dict(o) for o in data.get("provider_outcomes") or ()
            ),
            channel_summaries=tuple(
                DispatchResult.from_dict(c) for c in data.get("channel_summaries") or ()
            ),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
