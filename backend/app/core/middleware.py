"""
Request middleware — correlation IDs, caller context, alert audit line.

Provides:
    • X-Request-ID header injection (correlation ID)
    • Request timing (X-Process-Time header)
    • Caller user id (from the bearer token) in the request log context,
      so every log line written while handling an alert carries it
    • One audit line per request, tagged with the alert id the emergency
      route returns in X-Alert-ID
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.logging_config import set_request_context
from backend.app.core.security import peek_user_id

logger = logging.getLogger(__name__)

ALERT_ID_HEADER = "X-Alert-ID"

# Probe and docs traffic is not worth a log line
_QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health/live")


def _log_level(path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    # Rejected alerts (no contacts / no phones) stay at INFO for the audit trail
    if status_code >= 400 and not path.startswith("/emergency"):
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation id and the caller, then log it."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        path = request.url.path
        user_id: Optional[str] = peek_user_id(request.headers.get("Authorization"))

        # Copied into the endpoint task, so orchestrator logs inherit it
        set_request_context(
            request_id=request_id,
            client_ip=request.client.host if request.client else "unknown",
            user_id=user_id,
            endpoint=path,
            method=request.method,
        )

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "%s %s → 500 (%.1fms) user=%s",
                request.method, path, duration_ms, user_id or "-",
                extra={"duration_ms": duration_ms, "status_code": 500, "user_id": user_id},
            )
            set_request_context()
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"

        if not path.startswith(_QUIET_PREFIXES):
            alert_id = response.headers.get(ALERT_ID_HEADER)
            extra: Dict[str, Any] = {
                "duration_ms": duration_ms,
                "status_code": response.status_code,
                "endpoint": path,
                "user_id": user_id,
            }
            if alert_id:
                extra["alert_id"] = alert_id
            logger.log(
                _log_level(path, response.status_code),
                "%s %s → %d (%.1fms) user=%s%s",
                request.method, path, response.status_code, duration_ms,
                user_id or "-", f" alert={alert_id}" if alert_id else "",
                extra=extra,
            )

        set_request_context()
        return response
