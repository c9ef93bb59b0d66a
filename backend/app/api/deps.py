"""
Request dependencies — collaborators built in the app lifespan.

Everything the routes need hangs off ``app.state`` (see main.py); these
getters keep handlers free of global state and let tests swap in fakes by
assigning ``app.state.<name>``.
"""

from __future__ import annotations

from fastapi import Request

from backend.app.emergency.orchestrator import AlertOrchestrator
from backend.app.emergency.stores import AlertSink, HospitalStore


def get_orchestrator(request: Request) -> AlertOrchestrator:
    return request.app.state.orchestrator


def get_hospital_store(request: Request) -> HospitalStore:
    return request.app.state.hospital_store


def get_alert_sink(request: Request) -> AlertSink:
    return request.app.state.alert_sink
