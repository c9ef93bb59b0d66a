"""
test_api.py — HTTP surface of the alert engine (FastAPI TestClient).

Covers:
    • Auth: missing / invalid bearer token → 401
    • POST /emergency: success payload, 400 on no contacts, voice upload, 500 body
    • GET /hospitals/nearby, /hospitals, /hospitals/{id}
    • GET /emergency-history list + detail, ownership
    • Health endpoints
    • Request logging: caller + alert id, X-Request-ID echo

Run with:
    pytest tests/test_api.py -v
"""

from __future__ import annotations

import logging
import re

import pytest

from backend.app.core.config import settings
from backend.app.core.security import create_access_token, peek_user_id
from backend.app.emergency.models import Contact

from conftest import BLR_LOCATION, USER_ID


def _add_contacts(store, *phones, user_id=USER_ID):
    for i, phone in enumerate(phones):
        store.add(user_id, Contact(name=f"Contact {i}", phone=phone))


def _form(**overrides):
    data = {"message": "help", "location": BLR_LOCATION, "userName": "Asha", "language": "en"}
    data.update(overrides)
    return data


# ═══════════════════════════════════════════════════════════════════════════
# Auth
# ═══════════════════════════════════════════════════════════════════════════

class TestAuth:

    def test_missing_token(self, api, sms_provider):
        resp = api.post("/emergency", data=_form())
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHORIZED"
        assert sms_provider.calls == []

    def test_invalid_token(self, api):
        resp = api.post("/emergency", data=_form(), headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_history_requires_token(self, api):
        assert api.get("/emergency-history").status_code == 401


# ═══════════════════════════════════════════════════════════════════════════
# POST /emergency
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateEmergency:

    def test_success(self, api, auth_headers, contact_store, sms_provider, whatsapp_provider):
        _add_contacts(contact_store, "9876543210", "9876543211")

        resp = api.post("/emergency", data=_form(), headers=auth_headers())
        assert resp.status_code == 200
        body = resp.json()
        assert body["ok"] is True

        em = body["emergency"]
        assert em["message"] == "Emergency alert received with transcription!"
        assert em["alertId"].startswith("SOS-")
        assert em["persisted"] is True
        assert em["location"] == BLR_LOCATION
        assert em["transcript"] == "help"
        assert em["translatedTranscript"] == "help"
        assert [c["phone"] for c in em["contacts"]] == ["9876543210", "9876543211"]
        assert em["delivery"]["sentCount"] == 2
        assert em["delivery"]["status"] == "sent"
        assert {c["channel"] for c in em["delivery"]["channels"]} == {"sms", "whatsapp"}

        hospitals = em["nearbyHospitals"]
        assert [h["id"] for h in hospitals] == ["hosp-blr-emergency", "hosp-blr-manipal", "hosp-blr-apollo"]
        assert all(re.fullmatch(r"\d+\.\d{2}", h["distance"]) for h in hospitals)

        patient = em["patientInfo"]
        assert patient["name"] == "Asha"
        assert patient["email"] == "asha@example.com"
        assert patient["medicalDetails"]["bloodType"] == "Unknown"

        assert len(sms_provider.calls) == 2
        assert len(whatsapp_provider.calls) == 2

    def test_no_contacts_is_400(self, api, auth_headers, sms_provider, speech):
        resp = api.post("/emergency", data=_form(), headers=auth_headers())
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "NO_CONTACTS"
        assert error["message"] == "No emergency contacts found"
        assert sms_provider.calls == []
        assert speech.calls == []

    def test_no_valid_phones_is_400(self, api, auth_headers, contact_store):
        _add_contacts(contact_store, "unknown")
        resp = api.post("/emergency", data=_form(), headers=auth_headers())
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "NO_PHONES"

    def test_defaults_when_fields_missing(self, api, auth_headers, contact_store, sms_provider):
        _add_contacts(contact_store, "9876543210")
        resp = api.post("/emergency", data={}, headers=auth_headers())
        assert resp.status_code == 200
        em = resp.json()["emergency"]
        assert em["transcript"] == "Emergency! Please help."
        assert em["nearbyHospitals"] == []
        assert em["patientInfo"]["name"] == "Unknown User"
        assert "Unknown User needs help" in sms_provider.calls[0][1]

    def test_voice_upload(self, api, auth_headers, contact_store, speech, translator):
        _add_contacts(contact_store, "9876543210")
        speech.text, speech.language = "मदद करो", "hi"

        resp = api.post(
            "/emergency",
            data=_form(message="", language="hi-IN"),
            files={"voice": ("voice.webm", b"\x1a\x45\xdf\xa3" + b"\x00" * 64, "audio/webm")},
            headers=auth_headers(),
        )
        assert resp.status_code == 200
        em = resp.json()["emergency"]
        assert em["transcript"] == "मदद करो"
        assert em["translatedTranscript"] == "[en] मदद करो"
        assert em["detectedLanguage"] == "hi"
        assert em["voice"].endswith(".webm")
        assert len(speech.calls) == 1

    def test_internal_error_carries_reason(self, api, auth_headers, contact_store, monkeypatch):
        async def offline(user_id):
            raise RuntimeError("contact store offline")

        monkeypatch.setattr(contact_store, "list", offline)
        monkeypatch.setattr(settings, "DEBUG", False)

        resp = api.post("/emergency", data=_form(), headers=auth_headers())
        assert resp.status_code == 500
        error = resp.json()["error"]
        assert error["code"] == "INTERNAL_ERROR"
        assert error["message"] == "Server error"
        assert error["details"] == {"reason": "contact store offline"}
        assert "Traceback" not in resp.text


# ═══════════════════════════════════════════════════════════════════════════
# Hospitals
# ═══════════════════════════════════════════════════════════════════════════

class TestHospitals:

    def test_nearby(self, api):
        resp = api.get("/hospitals/nearby", params={"latitude": "12.97", "longitude": "77.64"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 3
        assert body["radius"] == 5.0
        assert body["hospitals"][0]["id"] == "hosp-blr-emergency"

    def test_nearby_custom_radius(self, api):
        resp = api.get("/hospitals/nearby", params={"latitude": "12.97", "longitude": "77.64", "radius": 200})
        assert resp.json()["count"] == 8

    def test_nearby_missing_coordinates(self, api):
        resp = api.get("/hospitals/nearby", params={"latitude": "12.97"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_nearby_unparseable_coordinates(self, api):
        resp = api.get("/hospitals/nearby", params={"latitude": "north", "longitude": "77.64"})
        assert resp.status_code == 400

    def test_nearby_out_of_range(self, api):
        resp = api.get("/hospitals/nearby", params={"latitude": "97", "longitude": "77.64"})
        assert resp.status_code == 400

    def test_list(self, api):
        body = api.get("/hospitals").json()
        assert body["count"] == 8
        names = [h["name"] for h in body["hospitals"]]
        assert names == sorted(names)

    def test_get_one(self, api):
        resp = api.get("/hospitals/hosp-mys-apollo")
        assert resp.status_code == 200
        assert resp.json()["name"] == "Apollo Hospital Mysore"

    def test_get_unknown(self, api):
        resp = api.get("/hospitals/hosp-nowhere")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# History
# ═══════════════════════════════════════════════════════════════════════════

class TestHistory:

    def test_list_and_detail(self, api, auth_headers, contact_store):
        _add_contacts(contact_store, "9876543210")
        alert_id = api.post("/emergency", data=_form(), headers=auth_headers()).json()["emergency"]["alertId"]

        listing = api.get("/emergency-history", headers=auth_headers()).json()
        assert listing["count"] == 1
        assert listing["alerts"][0]["alertId"] == alert_id
        assert listing["alerts"][0]["latitude"] == 12.97

        detail = api.get(f"/emergency-history/{alert_id}", headers=auth_headers())
        assert detail.status_code == 200
        body = detail.json()
        assert len(body["outcomes"]) == 2
        assert all(o["success"] for o in body["outcomes"])

    def test_other_users_alert_hidden(self, api, auth_headers, contact_store):
        _add_contacts(contact_store, "9876543210")
        alert_id = api.post("/emergency", data=_form(), headers=auth_headers()).json()["emergency"]["alertId"]

        intruder = auth_headers("user-2")
        assert api.get(f"/emergency-history/{alert_id}", headers=intruder).status_code == 404
        assert api.get("/emergency-history", headers=intruder).json()["count"] == 0

    def test_empty(self, api, auth_headers):
        body = api.get("/emergency-history", headers=auth_headers()).json()
        assert body == {"count": 0, "alerts": []}


# ═══════════════════════════════════════════════════════════════════════════
# Root & health
# ═══════════════════════════════════════════════════════════════════════════

class TestHealth:

    def test_root(self, api):
        body = api.get("/").json()
        assert "emergency-alerts" in body["modules"]

    def test_liveness(self, api):
        assert api.get("/health/live").json() == {"status": "alive"}

    def test_deep_health(self, api):
        body = api.get("/health").json()
        names = {c["name"] for c in body["components"]}
        assert names == {"storage", "redis", "messaging", "transcription", "translation"}
        assert body["status"] in ("healthy", "degraded")

    def test_messaging_degraded_when_channel_uninitialized(self, api, sms_provider):
        sms_provider.initialized = False
        body = api.get("/health").json()
        messaging = next(c for c in body["components"] if c["name"] == "messaging")
        assert messaging["status"] == "degraded"


# ═══════════════════════════════════════════════════════════════════════════
# Request logging
# ═══════════════════════════════════════════════════════════════════════════

def _access_lines(caplog):
    return [r for r in caplog.records if r.name == "backend.app.core.middleware"]


class TestRequestLogging:

    def test_alert_id_and_caller_logged(self, api, auth_headers, contact_store, caplog):
        _add_contacts(contact_store, "9876543210")
        caplog.set_level(logging.INFO, logger="backend.app.core.middleware")

        resp = api.post("/emergency", data=_form(), headers=auth_headers())
        alert_id = resp.json()["emergency"]["alertId"]
        assert resp.headers["X-Alert-ID"] == alert_id
        assert resp.headers["X-Request-ID"]

        line = _access_lines(caplog)[-1]
        assert line.user_id == USER_ID
        assert line.alert_id == alert_id
        assert f"alert={alert_id}" in line.getMessage()

    def test_rejected_alert_stays_at_info(self, api, auth_headers, caplog):
        caplog.set_level(logging.INFO, logger="backend.app.core.middleware")
        resp = api.post("/emergency", data=_form(), headers=auth_headers())
        assert resp.status_code == 400

        line = _access_lines(caplog)[-1]
        assert line.levelno == logging.INFO
        assert line.user_id == USER_ID
        assert not hasattr(line, "alert_id")

    def test_client_request_id_echoed(self, api):
        resp = api.get("/hospitals", headers={"X-Request-ID": "req-abc"})
        assert resp.headers["X-Request-ID"] == "req-abc"


class TestPeekUserId:

    def test_valid_bearer(self):
        assert peek_user_id(f"Bearer {create_access_token('user-9')}") == "user-9"

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Basic abc", "Bearer not-a-jwt"])
    def test_unusable_header(self, header):
        assert peek_user_id(header) is None
