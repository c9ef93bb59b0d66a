"""
FastAPI route: Hospital directory.

Provides endpoints to:
    GET /hospitals/nearby   — active hospitals within a radius, nearest first
    GET /hospitals          — all active hospitals
    GET /hospitals/{id}     — one hospital
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from backend.app.api.deps import get_hospital_store
from backend.app.api.schemas import (
    HospitalListResponse,
    HospitalOut,
    NearbyHospitalOut,
    NearbyHospitalsResponse,
)
from backend.app.core.config import settings
from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.emergency.stores import HospitalStore
from backend.app.spatial.proximity import Coordinate, find_nearby_hospitals

router = APIRouter(prefix="/hospitals", tags=["hospitals"])


def _parse_coordinate(latitude: Optional[str], longitude: Optional[str]) -> Coordinate:
    if not latitude or not longitude:
        raise ValidationError("Latitude and longitude are required")
    try:
        return Coordinate(float(latitude), float(longitude))
    except ValueError as e:
        raise ValidationError(f"Invalid coordinates: {e}", field="latitude,longitude")


@router.get(
    "/nearby",
    response_model=NearbyHospitalsResponse,
    summary="Hospitals near a point",
)
async def nearby_hospitals(
    latitude: Optional[str] = Query(None, examples=["12.9716"]),
    longitude: Optional[str] = Query(None, examples=["77.6412"]),
    radius: float = Query(settings.NEARBY_RADIUS_KM, gt=0, le=500),
    store: HospitalStore = Depends(get_hospital_store),
):
    point = _parse_coordinate(latitude, longitude)
    matches = find_nearby_hospitals(point, await store.list_active(), radius)
    return NearbyHospitalsResponse(
        latitude=point.latitude,
        longitude=point.longitude,
        radius=radius,
        count=len(matches),
        hospitals=[NearbyHospitalOut.from_match(m) for m in matches],
    )


@router.get("", response_model=HospitalListResponse, summary="All active hospitals")
async def list_hospitals(store: HospitalStore = Depends(get_hospital_store)):
    hospitals = sorted(await store.list_active(), key=lambda h: h.name)
    return HospitalListResponse(
        count=len(hospitals),
        hospitals=[HospitalOut.from_hospital(h) for h in hospitals],
    )


@router.get("/{hospital_id}", response_model=HospitalOut, summary="One hospital")
async def get_hospital(hospital_id: str, store: HospitalStore = Depends(get_hospital_store)):
    hospital = await store.get(hospital_id)
    if hospital is None:
        raise NotFoundError("Hospital", hospital_id=hospital_id)
    return HospitalOut.from_hospital(hospital)
