"""
FastAPI route: The caller's past alerts.

    GET /emergency-history              — newest first, at most 50
    GET /emergency-history/{alert_id}   — full record incl. per-contact outcomes
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.app.api.deps import get_alert_sink
from backend.app.api.schemas import AlertHistoryDetail, AlertHistoryItem, AlertHistoryResponse
from backend.app.core.errors import NotFoundError
from backend.app.core.security import CurrentUser, get_current_user
from backend.app.emergency.stores import HISTORY_LIMIT, AlertSink

router = APIRouter(prefix="/emergency-history", tags=["emergency-history"])


@router.get("", response_model=AlertHistoryResponse)
async def list_history(
    user: CurrentUser = Depends(get_current_user),
    sink: AlertSink = Depends(get_alert_sink),
):
    records = await sink.list_for_user(user.user_id, HISTORY_LIMIT)
    return AlertHistoryResponse(
        count=len(records),
        alerts=[AlertHistoryItem.from_record(r) for r in records],
    )


@router.get("/{alert_id}", response_model=AlertHistoryDetail)
async def get_history_item(
    alert_id: str,
    user: CurrentUser = Depends(get_current_user),
    sink: AlertSink = Depends(get_alert_sink),
):
    record = await sink.get(alert_id)
    # Another user's alert is reported as missing, not forbidden
    if record is None or record.user_id != user.user_id:
        raise NotFoundError("Alert", alert_id=alert_id)
    return AlertHistoryDetail.from_record(record)
