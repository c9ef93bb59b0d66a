"""
FastAPI route: SOS alert endpoint.

Provides:
    POST /emergency   — notify every contact, rank nearby hospitals, record
                        (alert id echoed in the X-Alert-ID header)

Accepts multipart/form-data (or urlencoded) fields:
    message    free text, or "🚨 EMERGENCY: <on-device transcript>"
    location   "lat,lon"
    userName   shown to recipients
    language   BCP-47 hint for speech recognition / translation
    voice      optional audio file
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from backend.app.api.deps import get_orchestrator
from backend.app.api.schemas import EmergencyResponse
from backend.app.core.middleware import ALERT_ID_HEADER
from backend.app.core.security import CurrentUser, get_current_user
from backend.app.emergency.orchestrator import (
    DEFAULT_MESSAGE,
    DEFAULT_USER_NAME,
    AlertOrchestrator,
    AlertRequest,
)
from backend.app.emergency.transcription.audio import AudioClip
from backend.app.emergency.transcription.chain import DEFAULT_LANGUAGE

logger = logging.getLogger(__name__)

router = APIRouter(tags=["emergency"])


async def _read_voice(voice: Optional[UploadFile]) -> Optional[AudioClip]:
    if voice is None:
        return None
    data = await voice.read()
    if not data:
        logger.info("Empty voice upload ignored (filename=%s)", voice.filename)
        return None
    return AudioClip(
        data=data,
        filename=voice.filename or "voice.webm",
        content_type=voice.content_type,
    )


@router.post(
    "/emergency",
    response_model=EmergencyResponse,
    summary="Send an emergency alert",
    description=(
        "Transcribes and translates the optional voice clip, notifies every "
        "emergency contact over the configured channels, and returns nearby "
        "hospitals plus patient info for first responders."
    ),
)
async def create_emergency(
    response: Response,
    message: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    userName: Optional[str] = Form(None),
    language: Optional[str] = Form(None),
    voice: Optional[UploadFile] = File(None),
    user: CurrentUser = Depends(get_current_user),
    orchestrator: AlertOrchestrator = Depends(get_orchestrator),
):
    request = AlertRequest(
        user_id=user.user_id,
        message=message or DEFAULT_MESSAGE,
        location=location or None,
        user_name=userName or DEFAULT_USER_NAME,
        language=language or DEFAULT_LANGUAGE,
        voice=await _read_voice(voice),
        user_email=user.email,
    )
    outcome = await orchestrator.create_alert(request)
    response.headers[ALERT_ID_HEADER] = outcome.record.alert_id
    return EmergencyResponse.from_outcome(outcome)
