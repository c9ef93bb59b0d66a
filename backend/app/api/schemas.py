"""
Pydantic schemas for the emergency API.

Field names are camelCase: they are the wire contract of the existing
mobile/web client.

Separated from the route handlers so they are reusable across the
codebase (history endpoints, tests).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from backend.app.emergency.models import AlertRecord, DispatchResult, Hospital
from backend.app.emergency.orchestrator import AlertOutcome
from backend.app.spatial.proximity import HospitalMatch


# ---------------------------------------------------------------------------
# Shared pieces
# ---------------------------------------------------------------------------

class ContactOut(BaseModel):
    name: str
    phone: str


class NearbyHospitalOut(BaseModel):
    """A hospital annotated with its distance from the caller."""
    id: str
    name: str
    phone: str
    distance: str = Field(..., description="Kilometers, 2 decimals", examples=["4.40"])
    specialties: List[str] = Field(default_factory=list)
    bedsAvailable: int = 0
    ambulancesAvailable: int = 0

    @classmethod
    def from_match(cls, match: HospitalMatch) -> "NearbyHospitalOut":
        h = match.hospital
        return cls(
            id=h.hospital_id,
            name=h.name,
            phone=h.phone,
            distance=f"{match.distance_km:.2f}",
            specialties=list(h.specialties),
            bedsAvailable=h.beds_available,
            ambulancesAvailable=h.ambulances_available,
        )


class HospitalOut(BaseModel):
    id: str
    name: str
    phone: str
    email: str = ""
    address: str = ""
    latitude: float
    longitude: float
    specialties: List[str] = Field(default_factory=list)
    bedsAvailable: int = 0
    ambulancesAvailable: int = 0

    @classmethod
    def from_hospital(cls, h: Hospital) -> "HospitalOut":
        return cls(
            id=h.hospital_id,
            name=h.name,
            phone=h.phone,
            email=h.email,
            address=h.address,
            latitude=h.coordinates.latitude,
            longitude=h.coordinates.longitude,
            specialties=list(h.specialties),
            bedsAvailable=h.beds_available,
            ambulancesAvailable=h.ambulances_available,
        )


class ChannelDeliveryOut(BaseModel):
    provider: str
    channel: str
    sentCount: int
    failedCount: int
    skippedReason: Optional[str] = None

    @classmethod
    def from_result(cls, r: DispatchResult) -> "ChannelDeliveryOut":
        return cls(
            provider=r.provider,
            channel=r.channel.value,
            sentCount=r.sent_count,
            failedCount=r.failed_count,
            skippedReason=r.skipped_reason,
        )


class DeliveryOut(BaseModel):
    sentCount: int
    failedCount: int
    contactsNotified: int
    status: str
    channels: List[ChannelDeliveryOut] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# POST /emergency
# ---------------------------------------------------------------------------

class EmergencyOut(BaseModel):
    message: str
    alertId: Optional[str] = None
    persisted: bool = True
    voice: Optional[str] = None
    transcript: Optional[str] = None
    translatedTranscript: Optional[str] = None
    detectedLanguage: Optional[str] = None
    location: Optional[str] = None
    contacts: List[ContactOut] = Field(default_factory=list)
    nearbyHospitals: List[NearbyHospitalOut] = Field(default_factory=list)
    patientInfo: Dict[str, Any] = Field(default_factory=dict)
    delivery: DeliveryOut


class EmergencyResponse(BaseModel):
    ok: bool = True
    emergency: EmergencyOut

    @classmethod
    def from_outcome(cls, outcome: AlertOutcome) -> "EmergencyResponse":
        record = outcome.record
        return cls(
            emergency=EmergencyOut(
                message="Emergency alert received with transcription!",
                alertId=outcome.record_id,
                persisted=outcome.persisted,
                voice=record.voice_reference,
                transcript=record.transcript,
                translatedTranscript=record.translated_transcript,
                detectedLanguage=record.detected_language,
                location=record.raw_location,
                contacts=[ContactOut(name=c.name, phone=c.phone) for c in outcome.contacts],
                nearbyHospitals=[NearbyHospitalOut.from_match(m) for m in outcome.nearby_hospitals],
                patientInfo=outcome.patient_info,
                delivery=_delivery(record),
            )
        )


def _delivery(record: AlertRecord) -> DeliveryOut:
    return DeliveryOut(
        sentCount=record.sent_count,
        failedCount=record.failed_count,
        contactsNotified=record.contacts_notified,
        status=record.status.value,
        channels=[ChannelDeliveryOut.from_result(r) for r in record.channel_summaries],
    )


# ---------------------------------------------------------------------------
# Hospitals
# ---------------------------------------------------------------------------

class NearbyHospitalsResponse(BaseModel):
    latitude: float
    longitude: float
    radius: float
    count: int
    hospitals: List[NearbyHospitalOut]


class HospitalListResponse(BaseModel):
    count: int
    hospitals: List[HospitalOut]


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

class AlertHistoryItem(BaseModel):
    alertId: str
    message: str
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    transcript: Optional[str] = None
    translatedTranscript: Optional[str] = None
    detectedLanguage: Optional[str] = None
    voice: Optional[str] = None
    delivery: DeliveryOut
    createdAt: str

    @classmethod
    def from_record(cls, record: AlertRecord) -> "AlertHistoryItem":
        coords = record.coordinates
        return cls(
            alertId=record.alert_id,
            message=record.message_text,
            location=record.raw_location,
            latitude=coords.latitude if coords else None,
            longitude=coords.longitude if coords else None,
            transcript=record.transcript,
            translatedTranscript=record.translated_transcript,
            detectedLanguage=record.detected_language,
            voice=record.voice_reference,
            delivery=_delivery(record),
            createdAt=record.created_at.isoformat(),
        )


class AlertHistoryDetail(AlertHistoryItem):
    medicalSnapshot: Optional[Dict[str, Any]] = None
    outcomes: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: AlertRecord) -> "AlertHistoryDetail":
        base = AlertHistoryItem.from_record(record)
        return cls(
            **base.model_dump(),
            medicalSnapshot=(
                record.medical_snapshot.to_dict() if record.medical_snapshot else None
            ),
            outcomes=[o.to_dict() for o in record.provider_outcomes],
        )


class AlertHistoryResponse(BaseModel):
    count: int
    alerts: List[AlertHistoryItem]
