"""
stores.py — Storage collaborators of the alert engine.

═══════════════════════════════════════════════════════════════════════════
CONTRACTS
═══════════════════════════════════════════════════════════════════════════

    ContactStore      list(user_id)           → [Contact]  priority desc, then insertion
    MedicalInfoStore  get(user_id)            → MedicalSnapshot | None
    HospitalStore     list_active()           → [Hospital] (is_active only)
                      get(hospital_id)        → Hospital | None
    AlertSink         create(record)          → alert id
                      list_for_user(user_id)  → [AlertRecord] newest first
                      get(alert_id)           → AlertRecord | None
    VoiceStorage      save(clip, user_id)     → voice reference

Two implementations of each store:

    memory    — dict-backed, default, seeded with sample hospitals
    database  — SQLAlchemy async (PostgreSQL / asyncpg), see orm.py

Active hospitals may additionally be served from Redis (CachedHospitalStore)
with a short TTL; a cache miss or cache error falls through to the store.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.cache import cache_delete, cache_get, cache_set
from backend.app.core.config import settings
from backend.app.emergency.models import AlertRecord, Contact, Hospital, MedicalSnapshot
from backend.app.emergency.orm import AlertRow, ContactRow, HospitalRow, MedicalInfoRow
from backend.app.emergency.transcription.audio import AudioClip, detect_format
from backend.app.spatial.proximity import Coordinate

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9_-]")
ACTIVE_HOSPITALS_CACHE_KEY = "hospitals:active"


# ═══════════════════════════════════════════════════════════════════════════
# Protocols
# ═══════════════════════════════════════════════════════════════════════════

class ContactStore(Protocol):
    async def list(self, user_id: str) -> List[Contact]: ...


class MedicalInfoStore(Protocol):
    async def get(self, user_id: str) -> Optional[MedicalSnapshot]: ...


class HospitalStore(Protocol):
    async def list_active(self) -> List[Hospital]: ...

    async def get(self, hospital_id: str) -> Optional[Hospital]: ...


class AlertSink(Protocol):
    async def create(self, record: AlertRecord) -> str: ...

    async def list_for_user(self, user_id: str, limit: int = HISTORY_LIMIT) -> List[AlertRecord]: ...

    async def get(self, alert_id: str) -> Optional[AlertRecord]: ...


def sort_contacts(contacts: Sequence[Contact]) -> List[Contact]:
    """Priority descending; stable, so equal priorities keep insertion order."""
    return sorted(contacts, key=lambda c: -c.priority)


# ═══════════════════════════════════════════════════════════════════════════
# In-memory implementations
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryContactStore:

    def __init__(self, contacts: Optional[Mapping[str, Sequence[Contact]]] = None):
        self._contacts: Dict[str, List[Contact]] = {
            user: list(items) for user, items in (contacts or {}).items()
        }

    def add(self, user_id: str, contact: Contact) -> None:
        self._contacts.setdefault(user_id, []).append(contact)

    async def list(self, user_id: str) -> List[Contact]:
        return sort_contacts(self._contacts.get(user_id, []))


class InMemoryMedicalInfoStore:

    def __init__(self, profiles: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._profiles: Dict[str, Dict[str, Any]] = {
            user: dict(p) for user, p in (profiles or {}).items()
        }

    def put(self, user_id: str, profile: Mapping[str, Any]) -> None:
        self._profiles[user_id] = dict(profile)

    async def get(self, user_id: str) -> Optional[MedicalSnapshot]:
        profile = self._profiles.get(user_id)
        if profile is None:
            return None
        return MedicalSnapshot.from_mapping(profile)


class InMemoryHospitalStore:

    def __init__(self, hospitals: Optional[Sequence[Hospital]] = None):
        self._hospitals: Dict[str, Hospital] = {h.hospital_id: h for h in hospitals or []}

    def add(self, hospital: Hospital) -> None:
        self._hospitals[hospital.hospital_id] = hospital

    async def list_active(self) -> List[Hospital]:
        return [h for h in self._hospitals.values() if h.is_active]

    async def get(self, hospital_id: str) -> Optional[Hospital]:
        hospital = self._hospitals.get(hospital_id)
        if hospital is None or not hospital.is_active:
            return None
        return hospital


class InMemoryAlertSink:

    def __init__(self) -> None:
        self._records: Dict[str, AlertRecord] = {}

    async def create(self, record: AlertRecord) -> str:
        self._records[record.alert_id] = record
        return record.alert_id

    async def list_for_user(self, user_id: str, limit: int = HISTORY_LIMIT) -> List[AlertRecord]:
        records = [r for r in self._records.values() if r.user_id == user_id]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]

    async def get(self, alert_id: str) -> Optional[AlertRecord]:
        return self._records.get(alert_id)


# ═══════════════════════════════════════════════════════════════════════════
# SQLAlchemy implementations
# ═══════════════════════════════════════════════════════════════════════════

SessionFactory = async_sessionmaker[AsyncSession]


def _hospital_from_row(row: HospitalRow) -> Hospital:
    return Hospital(
        hospital_id=row.id,
        name=row.name,
        phone=row.phone or "",
        coordinates=Coordinate(row.latitude, row.longitude),
        specialties=list(row.specialties or []),
        beds_available=row.beds_available or 0,
        ambulances_available=row.ambulances_available or 0,
        is_active=row.is_active,
        address=row.address or "",
        email=row.email or "",
    )


class SQLContactStore:

    def __init__(self, session_factory: SessionFactory):
        self._sessions = session_factory

    async def list(self, user_id: str) -> List[Contact]:
        async with self._sessions() as session:
            rows = (await session.execute(
                select(ContactRow)
                .where(ContactRow.user_id == user_id)
                .order_by(ContactRow.priority.desc(), ContactRow.created_at, ContactRow.id)
            )).scalars().all()
        return [
            Contact(
                name=r.name, phone=r.phone, relation=r.relation or "",
                priority=r.priority or 0, created_at=r.created_at,
            )
            for r in rows
        ]


class SQLMedicalInfoStore:

    def __init__(self, session_factory: SessionFactory):
        self._sessions = session_factory

    async def get(self, user_id: str) -> Optional[MedicalSnapshot]:
        async with self._sessions() as session:
            row = await session.get(MedicalInfoRow, user_id)
        if row is None:
            return None
        return MedicalSnapshot.from_mapping(row.profile)


class SQLHospitalStore:

    def __init__(self, session_factory: SessionFactory):
        self._sessions = session_factory

    async def list_active(self) -> List[Hospital]:
        async with self._sessions() as session:
            rows = (await session.execute(
                select(HospitalRow).where(HospitalRow.is_active.is_(True))
            )).scalars().all()
        return [_hospital_from_row(r) for r in rows]

    async def get(self, hospital_id: str) -> Optional[Hospital]:
        async with self._sessions() as session:
            row = await session.get(HospitalRow, hospital_id)
        if row is None or not row.is_active:
            return None
        return _hospital_from_row(row)

    async def seed(self, hospitals: Sequence[Hospital]) -> int:
        """Insert ``hospitals`` when the table is empty. Returns rows added."""
        async with self._sessions() as session:
            existing = (await session.execute(select(HospitalRow.id).limit(1))).first()
            if existing is not None:
                return 0
            session.add_all([
                HospitalRow(
                    id=h.hospital_id, name=h.name, phone=h.phone, email=h.email,
                    address=h.address, latitude=h.coordinates.latitude,
                    longitude=h.coordinates.longitude, specialties=list(h.specialties),
                    beds_available=h.beds_available,
                    ambulances_available=h.ambulances_available, is_active=h.is_active,
                )
                for h in hospitals
            ])
            await session.commit()
        logger.info("Seeded %d hospitals", len(hospitals))
        return len(hospitals)


class SQLAlertSink:

    def __init__(self, session_factory: SessionFactory):
        self._sessions = session_factory

    async def create(self, record: AlertRecord) -> str:
        async with self._sessions() as session:
            session.add(AlertRow(
                alert_id=record.alert_id,
                user_id=record.user_id,
                status=record.status.value,
                contacts_notified=record.contacts_notified,
                created_at=record.created_at,
                voice_reference=record.voice_reference,
                record=record.to_dict(),
            ))
            await session.commit()
        return record.alert_id

    async def list_for_user(self, user_id: str, limit: int = HISTORY_LIMIT) -> List[AlertRecord]:
        async with self._sessions() as session:
            rows = (await session.execute(
                select(AlertRow)
                .where(AlertRow.user_id == user_id)
                .order_by(AlertRow.created_at.desc())
                .limit(limit)
            )).scalars().all()
        return [AlertRecord.from_dict(r.record) for r in rows]

    async def get(self, alert_id: str) -> Optional[AlertRecord]:
        async with self._sessions() as session:
            row = await session.get(AlertRow, alert_id)
        return AlertRecord.from_dict(row.record) if row else None


# ═══════════════════════════════════════════════════════════════════════════
# Redis-cached hospital snapshot
# ═══════════════════════════════════════════════════════════════════════════

class CachedHospitalStore:
    """Serves list_active() from Redis for up to ``ttl`` seconds."""

    def __init__(self, inner: HospitalStore, ttl: Optional[int] = None):
        self._inner = inner
        self._ttl = ttl or settings.HOSPITAL_CACHE_TTL

    async def list_active(self) -> List[Hospital]:
        cached = await cache_get(ACTIVE_HOSPITALS_CACHE_KEY)
        if cached is not None:
            try:
                return [Hospital.from_dict(item) for item in cached]
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Discarding malformed hospital cache entry: %s", e)
                await cache_delete(ACTIVE_HOSPITALS_CACHE_KEY)

        hospitals = await self._inner.list_active()
        await cache_set(
            ACTIVE_HOSPITALS_CACHE_KEY, [h.to_dict() for h in hospitals], ttl=self._ttl,
        )
        return hospitals

    async def get(self, hospital_id: str) -> Optional[Hospital]:
        return await self._inner.get(hospital_id)


# ═══════════════════════════════════════════════════════════════════════════
# Voice clip storage
# ═══════════════════════════════════════════════════════════════════════════

class VoiceStorage:
    """Writes uploaded voice clips under UPLOAD_DIR and returns their path."""

    def __init__(self, upload_dir: Optional[str] = None):
        self.upload_dir = upload_dir or settings.UPLOAD_DIR

    def _write(self, path: str, data: bytes) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as fh:
            fh.write(data)

    async def save(self, clip: AudioClip, user_id: str) -> str:
        fmt = detect_format(clip)
        ext = os.path.splitext(clip.filename or "")[1] or (f".{fmt}" if fmt != "unknown" else ".bin")
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        name = f"{stamp}-{uuid.uuid4().hex[:8]}{ext}"
        owner = _UNSAFE_PATH_CHARS.sub("_", user_id) or "anonymous"
        path = os.path.join(self.upload_dir, "voice", owner, name)
        await asyncio.to_thread(self._write, path, clip.data)
        logger.info("Stored voice clip %s (%.1fKB)", path, clip.size / 1024)
        return path
