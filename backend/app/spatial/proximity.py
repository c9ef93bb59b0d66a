"""
proximity.py — Hospital proximity ranking for emergency alerts.

Provides:
    - Haversine distance calculation between two (lat, lon) points
    - "lat,lon" location string parsing
    - Radius-based hospital filtering, nearest first
    - Bounding-box pre-filter for performance at scale

All distances are in **kilometers**. Coordinates are in **decimal degrees**.

Mathematical Foundation — Haversine Formula
============================================
The Haversine formula computes the great-circle distance between two points
on a sphere given their latitudes and longitudes.

Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

Where:
    φ  = latitude in radians
    λ  = longitude in radians
    R  = Earth's mean radius = 6,371 km

Distances are returned unrounded; rounding is a presentation concern
(the API reports 2 decimals).

Every function here is pure: hospital lists are never mutated, so the
index may be queried from any number of concurrent requests.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from backend.app.emergency.models import Hospital


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_KM: float = 6_371.0
DEFAULT_RADIUS_KM: float = 5.0

# Float slack so a point exactly on the radius survives the box check
_BBOX_SLACK_DEG: float = 1e-9


# ---------------------------------------------------------------------------
# Core data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coordinate:
    """A geographic point in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(
                f"Latitude must be in [-90, 90], got {self.latitude}"
            )
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(
                f"Longitude must be in [-180, 180], got {self.longitude}"
            )

    @property
    def lat_rad(self) -> float:
        """Latitude in radians."""
        return math.radians(self.latitude)

    @property
    def lon_rad(self) -> float:
        """Longitude in radians."""
        return math.radians(self.longitude)

    def __str__(self) -> str:
        return f"{self.latitude},{self.longitude}"


@dataclass(frozen=True)
class HospitalMatch:
    """A hospital inside the search radius with its distance from the caller."""
    hospital: "Hospital"
    distance_km: float


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_location(raw: Optional[str]) -> Optional[Coordinate]:
    """
    Parse a ``"lat,lon"`` string.

    Returns None for empty, malformed or out-of-range input; a bad location
    never blocks an alert, it only disables the hospital lookup.

    >>> parse_location("12.97,77.64")
    Coordinate(latitude=12.97, longitude=77.64)
    >>> parse_location("somewhere") is None
    True
    """
    if not raw:
        return None
    parts = raw.split(",")
    if len(parts) != 2:
        return None
    try:
        return Coordinate(float(parts[0].strip()), float(parts[1].strip()))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Haversine implementation
# ---------------------------------------------------------------------------

def haversine(point1: Coordinate, point2: Coordinate) -> float:
    """
    Great-circle distance between two points in kilometers.

    >>> haversine(Coordinate(0, 0), Coordinate(0, 0))
    0.0
    """
    d_lat = point2.lat_rad - point1.lat_rad
    d_lon = point2.lon_rad - point1.lon_rad

    a = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(point1.lat_rad)
        * math.cos(point2.lat_rad)
        * math.sin(d_lon / 2.0) ** 2
    )

    # Rounding can push a just past 1.0 near the antipode
    a = min(1.0, max(0.0, a))
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_KM * c


# ---------------------------------------------------------------------------
# Bounding-box pre-filter (fast rejection before Haversine)
# ---------------------------------------------------------------------------

def _bounding_box(center: Coordinate, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Lat/lon box fully containing the circle (center, radius_km).

    Returns (min_lat, max_lat, min_lon, max_lon) in degrees.
    """
    angular = radius_km / EARTH_RADIUS_KM
    delta_lat = math.degrees(angular) + _BBOX_SLACK_DEG

    min_lat = center.latitude - delta_lat
    max_lat = center.latitude + delta_lat

    # Longitude delta widens toward the poles
    lat_rad = math.radians(center.latitude)
    if math.cos(lat_rad) > 1e-10:
        delta_lon = math.degrees(angular / math.cos(lat_rad)) + _BBOX_SLACK_DEG
    else:
        delta_lon = 180.0

    min_lon = center.longitude - delta_lon
    max_lon = center.longitude + delta_lon
    if min_lon < -180.0 or max_lon > 180.0 or min_lat < -90.0 or max_lat > 90.0:
        # Box crosses the antimeridian or a pole: longitude cannot reject anything
        min_lon, max_lon = -180.0, 180.0

    return (
        max(min_lat, -90.0),
        min(max_lat, 90.0),
        min_lon,
        max_lon,
    )


def _inside_bbox(
    lat: float, lon: float,
    min_lat: float, max_lat: float,
    min_lon: float, max_lon: float,
) -> bool:
    return min_lat <= lat <= max_lat and min_lon <= lon <= max_lon


# ---------------------------------------------------------------------------
# Radius filtering
# ---------------------------------------------------------------------------

def find_nearby_hospitals(
    point: Coordinate,
    hospitals: Sequence["Hospital"],
    radius_km: float = DEFAULT_RADIUS_KM,
) -> List[HospitalMatch]:
    """
    Active hospitals within ``radius_km`` of ``point``, nearest first.

    Parameters
    ----------
    point : Coordinate
        Caller position.
    hospitals : Sequence[Hospital]
        Candidate hospitals; inactive ones are always dropped.
    radius_km : float
        Inclusive search radius in km (distance == radius is kept).

    Returns
    -------
    List[HospitalMatch]
        Sorted ascending by distance, ties broken by hospital name.
    """
    if radius_km <= 0:
        raise ValueError(f"Radius must be positive, got {radius_km}")

    bbox = _bounding_box(point, radius_km)
    matched: List[HospitalMatch] = []

    for hospital in hospitals:
        if not hospital.is_active:
            continue

        loc = hospital.coordinates
        if not _inside_bbox(loc.latitude, loc.longitude, *bbox):
            continue

        dist = haversine(point, loc)
        if dist <= radius_km:
            matched.append(HospitalMatch(hospital=hospital, distance_km=dist))

    matched.sort(key=lambda m: (m.distance_km, m.hospital.name))
    return matched


# ---------------------------------------------------------------------------
# Utility: Human-readable distance
# ---------------------------------------------------------------------------

def format_distance(km: float) -> str:
    """
    Format a distance for display.

    >>> format_distance(0.45)
    '450 m'
    >>> format_distance(4.3991)
    '4.40 km'
    """
    if km < 1.0:
        return f"{int(km * 1000)} m"
    return f"{km:.2f} km"
