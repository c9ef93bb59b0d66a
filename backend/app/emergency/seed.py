"""
seed.py — Sample hospital directory (Bangalore + Mysore) and seed contacts.

Hospitals are loaded into the in-memory hospital store when SEED_HOSPITALS is
on, and into the database through ``SQLHospitalStore.seed``. Phone numbers are
placeholders. Contacts come from the SEED_CONTACTS setting (memory store only).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from backend.app.emergency.models import Contact, Hospital
from backend.app.spatial.proximity import Coordinate

logger = logging.getLogger(__name__)

SAMPLE_HOSPITALS: List[Dict[str, Any]] = [
    {
        "id": "hosp-blr-emergency",
        "name": "Bangalore Emergency Hospital",
        "email": "emergency@bgram.hospital.com",
        "phone": "+91-9876543210",
        "address": "Indiranagar, Bangalore, Karnataka",
        "latitude": 12.9716, "longitude": 77.6412,
        "specialties": ["Emergency", "Trauma", "Cardiology"],
        "beds": 25, "ambulances": 5,
    },
    {
        "id": "hosp-blr-apollo",
        "name": "Apollo Hospital Bangalore",
        "email": "apollo@bangalore.hospital.com",
        "phone": "+91-9876543211",
        "address": "Koramangala, Bangalore, Karnataka",
        "latitude": 12.9352, "longitude": 77.6245,
        "specialties": ["Cardiology", "Neurology", "Emergency"],
        "beds": 40, "ambulances": 8,
    },
    {
        "id": "hosp-blr-max",
        "name": "Max Healthcare Bangalore",
        "email": "max@bangalore.hospital.com",
        "phone": "+91-9876543212",
        "address": "Whitefield, Bangalore, Karnataka",
        "latitude": 12.9698, "longitude": 77.7499,
        "specialties": ["Emergency", "Trauma", "Orthopedics"],
        "beds": 35, "ambulances": 6,
    },
    {
        "id": "hosp-blr-fortis",
        "name": "Fortis Hospital Bangalore",
        "email": "fortis@bangalore.hospital.com",
        "phone": "+91-9876543213",
        "address": "Cunningham Road, Bangalore, Karnataka",
        "latitude": 13.0011, "longitude": 77.5946,
        "specialties": ["Cardiology", "Neurology", "Emergency"],
        "beds": 30, "ambulances": 7,
    },
    {
        "id": "hosp-blr-manipal",
        "name": "Manipal Hospital Bangalore",
        "email": "manipal@bangalore.hospital.com",
        "phone": "+91-9876543214",
        "address": "Domlur, Bangalore, Karnataka",
        "latitude": 12.9689, "longitude": 77.6499,
        "specialties": ["Emergency", "Trauma", "General Surgery"],
        "beds": 28, "ambulances": 5,
    },
    {
        "id": "hosp-mys-medical",
        "name": "Mysore Medical Center",
        "email": "contact@mysoremedicl.hospital.com",
        "phone": "+91-9876543215",
        "address": "Sayyaji Rao Road, Mysore, Karnataka",
        "latitude": 12.2958, "longitude": 76.6394,
        "specialties": ["Emergency", "Trauma", "General Medicine"],
        "beds": 20, "ambulances": 4,
    },
    {
        "id": "hosp-mys-apollo",
        "name": "Apollo Hospital Mysore",
        "email": "apollo@mysore.hospital.com",
        "phone": "+91-9876543216",
        "address": "Hebbal, Mysore, Karnataka",
        "latitude": 12.3019, "longitude": 76.6551,
        "specialties": ["Cardiology", "Emergency", "Neurology"],
        "beds": 32, "ambulances": 6,
    },
    {
        "id": "hosp-mys-fortis",
        "name": "Fortis Hospital Mysore",
        "email": "fortis@mysore.hospital.com",
        "phone": "+91-9876543217",
        "address": "Gokulam, Mysore, Karnataka",
        "latitude": 12.3105, "longitude": 76.6874,
        "specialties": ["Emergency", "Trauma", "Orthopedics"],
        "beds": 28, "ambulances": 5,
    },
]


def sample_hospitals() -> List[Hospital]:
    """Fresh Hospital objects for the sample directory."""
    return [
        Hospital(
            hospital_id=row["id"],
            name=row["name"],
            phone=row["phone"],
            coordinates=Coordinate(row["latitude"], row["longitude"]),
            specialties=list(row["specialties"]),
            beds_available=row["beds"],
            ambulances_available=row["ambulances"],
            address=row["address"],
            email=row["email"],
        )
        for row in SAMPLE_HOSPITALS
    ]


def parse_seed_contacts(entries: Sequence[str]) -> Dict[str, List[Contact]]:
    """
    ``"user_id:name:phone[:relation]"`` entries grouped by user.

    Earlier entries get higher priority so each user's contacts are notified
    in the configured order. Malformed entries are logged and skipped.

    >>> parse_seed_contacts(["u1:Ravi:9876543210:brother"])["u1"][0].relation
    'brother'
    """
    contacts: Dict[str, List[Contact]] = {}
    for entry in entries:
        parts = [p.strip() for p in entry.split(":")]
        if len(parts) not in (3, 4) or not all(parts[:3]):
            logger.warning("Ignoring malformed SEED_CONTACTS entry %r", entry)
            continue
        user_id, name, phone = parts[:3]
        contacts.setdefault(user_id, []).append(
            Contact(name=name, phone=phone, relation=parts[3] if len(parts) == 4 else "")
        )

    for items in contacts.values():
        for rank, contact in enumerate(items):
            contact.priority = len(items) - rank
    return contacts
