"""
test_proximity.py — Haversine distance, location parsing and hospital ranking.

Covers:
    • Haversine against known city distances
    • "lat,lon" parsing and rejection of malformed input
    • Radius filtering: inclusive boundary, inactive hospitals, ordering
    • Bounding-box pre-filter never drops an in-radius hospital

Run with:
    pytest tests/test_proximity.py -v
"""

from __future__ import annotations

import math

import pytest

from backend.app.emergency.models import Hospital
from backend.app.emergency.seed import sample_hospitals
from backend.app.spatial.proximity import (
    Coordinate,
    find_nearby_hospitals,
    format_distance,
    haversine,
    parse_location,
)

INDIRANAGAR = Coordinate(12.97, 77.64)


def _hospital(hid: str, name: str, lat: float, lon: float, active: bool = True) -> Hospital:
    return Hospital(
        hospital_id=hid,
        name=name,
        phone="+910000000000",
        coordinates=Coordinate(lat, lon),
        is_active=active,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Haversine
# ═══════════════════════════════════════════════════════════════════════════

class TestHaversine:

    def test_zero_distance(self):
        assert haversine(INDIRANAGAR, INDIRANAGAR) == 0.0

    def test_symmetric(self):
        a, b = Coordinate(12.9716, 77.5946), Coordinate(12.2958, 76.6394)
        assert math.isclose(haversine(a, b), haversine(b, a))

    def test_bangalore_to_mysore(self):
        # ~126 km as the crow flies
        d = haversine(Coordinate(12.9716, 77.5946), Coordinate(12.2958, 76.6394))
        assert 120 < d < 135

    def test_indiranagar_to_koramangala(self):
        d = haversine(Coordinate(12.9716, 77.6412), Coordinate(12.9352, 77.6245))
        assert 4.3 <= d <= 4.5

    def test_one_degree_latitude(self):
        d = haversine(Coordinate(0, 0), Coordinate(1, 0))
        assert math.isclose(d, 111.19, rel_tol=1e-3)

    def test_antipodal(self):
        d = haversine(Coordinate(0, 0), Coordinate(0, 180))
        assert math.isclose(d, math.pi * 6371.0, rel_tol=1e-9)

    def test_near_antipodal_rounding(self):
        half_circumference = math.pi * 6371.0
        for lat in (-53.877, -12.34, 0.3, 33.3, 71.1):
            for lon in (-178.544, -90.123, -0.777, 45.5, 179.9):
                a = Coordinate(lat, lon)
                b = Coordinate(-lat, lon + 180.0 if lon <= 0 else lon - 180.0)
                assert math.isclose(haversine(a, b), half_circumference, rel_tol=1e-6)


class TestCoordinate:

    def test_latitude_out_of_range(self):
        with pytest.raises(ValueError):
            Coordinate(91, 0)

    def test_longitude_out_of_range(self):
        with pytest.raises(ValueError):
            Coordinate(0, -181)

    def test_str(self):
        assert str(Coordinate(12.97, 77.64)) == "12.97,77.64"


# ═══════════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestParseLocation:

    def test_valid(self):
        assert parse_location("12.97,77.64") == Coordinate(12.97, 77.64)

    def test_whitespace_tolerated(self):
        assert parse_location(" 12.97 , 77.64 ") == Coordinate(12.97, 77.64)

    @pytest.mark.parametrize("raw", [None, "", "somewhere", "12.97", "1,2,3", "a,b", "95,10"])
    def test_invalid_returns_none(self, raw):
        assert parse_location(raw) is None


# ═══════════════════════════════════════════════════════════════════════════
# Hospital ranking
# ═══════════════════════════════════════════════════════════════════════════

class TestFindNearbyHospitals:

    def test_sample_directory_near_indiranagar(self):
        matches = find_nearby_hospitals(INDIRANAGAR, sample_hospitals(), 5.0)
        ids = [m.hospital.hospital_id for m in matches]
        assert ids == ["hosp-blr-emergency", "hosp-blr-manipal", "hosp-blr-apollo"]

    def test_sorted_by_distance(self):
        matches = find_nearby_hospitals(INDIRANAGAR, sample_hospitals(), 50.0)
        distances = [m.distance_km for m in matches]
        assert distances == sorted(distances)

    def test_all_within_radius(self):
        for m in find_nearby_hospitals(INDIRANAGAR, sample_hospitals(), 5.0):
            assert m.distance_km <= 5.0

    def test_inactive_hospital_excluded(self):
        hospitals = sample_hospitals()
        hospitals[0].is_active = False  # hosp-blr-emergency, the closest
        ids = [m.hospital.hospital_id for m in find_nearby_hospitals(INDIRANAGAR, hospitals, 5.0)]
        assert "hosp-blr-emergency" not in ids
        assert ids[0] == "hosp-blr-manipal"

    def test_inactive_excluded_around_emergency_hospital(self):
        hospitals = sample_hospitals()
        manipal = next(h for h in hospitals if h.hospital_id == "hosp-blr-manipal")
        manipal.is_active = False
        center = Coordinate(12.9716, 77.6412)
        ids = [m.hospital.hospital_id for m in find_nearby_hospitals(center, hospitals, 5.0)]
        assert ids == ["hosp-blr-emergency", "hosp-blr-apollo"]

    def test_input_not_mutated(self):
        hospitals = sample_hospitals()
        before = [h.hospital_id for h in hospitals]
        find_nearby_hospitals(INDIRANAGAR, hospitals, 5.0)
        assert [h.hospital_id for h in hospitals] == before

    def test_boundary_inclusive(self):
        far = _hospital("edge", "Edge", 13.0, 77.64)
        exact = haversine(INDIRANAGAR, far.coordinates)
        matches = find_nearby_hospitals(INDIRANAGAR, [far], exact)
        assert len(matches) == 1

    def test_just_outside_excluded(self):
        far = _hospital("edge", "Edge", 13.0, 77.64)
        exact = haversine(INDIRANAGAR, far.coordinates)
        assert find_nearby_hospitals(INDIRANAGAR, [far], exact * 0.999) == []

    def test_equal_distance_ties_broken_by_name(self):
        zeta = _hospital("z", "Zeta Clinic", 12.98, 77.64)
        alpha = _hospital("a", "Alpha Clinic", 12.98, 77.64)
        names = [m.hospital.name for m in find_nearby_hospitals(INDIRANAGAR, [zeta, alpha], 5.0)]
        assert names == ["Alpha Clinic", "Zeta Clinic"]

    def test_across_antimeridian(self):
        fiji = Coordinate(-17.0, 179.99)
        across = _hospital("x", "Across", -17.0, -179.99)
        matches = find_nearby_hospitals(fiji, [across], 5.0)
        assert len(matches) == 1
        assert matches[0].distance_km < 3.0

    def test_whole_globe_radius(self):
        far_side = _hospital("far", "Far Side", -53.877, 1.456)
        matches = find_nearby_hospitals(Coordinate(53.877, -178.544), [far_side], 20040.0)
        assert len(matches) == 1

    def test_across_pole(self):
        north = Coordinate(89.0, 0.0)
        over_pole = _hospital("p", "Over Pole", 89.0, 180.0)
        matches = find_nearby_hospitals(north, [over_pole], 300.0)
        assert len(matches) == 1
        assert 200 < matches[0].distance_km < 250

    def test_empty_directory(self):
        assert find_nearby_hospitals(INDIRANAGAR, [], 5.0) == []

    def test_non_positive_radius_rejected(self):
        with pytest.raises(ValueError):
            find_nearby_hospitals(INDIRANAGAR, sample_hospitals(), 0)

    def test_matches_brute_force(self):
        hospitals = sample_hospitals()
        for radius in (1.0, 5.0, 10.0, 150.0):
            expected = {
                h.hospital_id for h in hospitals
                if haversine(INDIRANAGAR, h.coordinates) <= radius
            }
            got = {m.hospital.hospital_id for m in find_nearby_hospitals(INDIRANAGAR, hospitals, radius)}
            assert got == expected


class TestFormatDistance:

    def test_meters(self):
        assert format_distance(0.45) == "450 m"

    def test_kilometers(self):
        assert format_distance(4.3991) == "4.40 km"
