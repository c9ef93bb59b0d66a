"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes for the alert engine
    • Consistent JSON error response format
    • Automatic logging of unhandled errors
    • Request context in error responses (non-production)

Propagation policy:
    Only ValidationError (and its NoContacts / NoPhones subclasses) aborts an
    alert, and it is raised before any side effect. Every other domain error
    is caught inside the engine and recorded as data (a ProviderOutcome, a
    placeholder transcript, an untranslated text, an unpersisted record).

Usage:
    from backend.app.core.errors import NoContactsError, register_error_handlers

    raise NoContactsError(user_id="u-1")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class SOSAPIError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ValidationError(SOSAPIError):
    """Request cannot be processed; raised before any side effect (400)."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        error_code: str = "VALIDATION_ERROR",
        **details: Any,
    ):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=d,
        )


class NoContactsError(ValidationError):
    """The user has no saved emergency contacts."""

    def __init__(self, **details: Any):
        super().__init__(
            "No emergency contacts found",
            error_code="NO_CONTACTS",
            **details,
        )


class NoPhonesError(ValidationError):
    """Contacts exist but none carries a usable phone number."""

    def __init__(self, **details: Any):
        super().__init__(
            "No valid phone numbers in contacts",
            error_code="NO_PHONES",
            **details,
        )


class AuthenticationError(SOSAPIError):
    """Missing or invalid bearer token (401)."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="UNAUTHORIZED",
        )


class NotFoundError(SOSAPIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class ProviderUnavailable(SOSAPIError):
    """A messaging provider is missing credentials (channel short-circuits)."""

    def __init__(self, provider: str, message: str = ""):
        super().__init__(
            message=message or f"{provider} not initialized",
            status_code=503,
            error_code="PROVIDER_UNAVAILABLE",
            details={"provider": provider},
        )


class ProviderRejected(SOSAPIError):
    """A provider refused a single send; recorded as a failed outcome."""

    def __init__(self, provider: str, code: str, message: str = ""):
        super().__init__(
            message=f"{provider} rejected message: {message}",
            status_code=502,
            error_code="PROVIDER_REJECTED",
            details={"provider": provider, "provider_code": code},
        )
        self.provider_code = code
        self.provider_message = message


class TranscriptionUnavailable(SOSAPIError):
    """No speech backend produced text; a placeholder transcript is used."""

    def __init__(self, message: str = "All transcription backends failed"):
        super().__init__(
            message=message,
            status_code=502,
            error_code="TRANSCRIPTION_UNAVAILABLE",
        )


class TranslationUnavailable(SOSAPIError):
    """Translation backend failed; the original text is kept."""

    def __init__(self, message: str = "Translation backend unavailable"):
        super().__init__(
            message=message,
            status_code=502,
            error_code="TRANSLATION_UNAVAILABLE",
        )


class PersistenceFailure(SOSAPIError):
    """An AlertRecord could not be written."""

    def __init__(self, message: str = "", **details: Any):
        super().__init__(
            message=f"Alert record write failed: {message}",
            status_code=500,
            error_code="PERSISTENCE_FAILURE",
            details=details,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    # Include request path in non-production
    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(SOSAPIError)
    async def handle_sos_error(request: Request, exc: SOSAPIError):
        log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(
            log_level,
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        # Tracebacks stay in the log; the client only sees the reason
        details: Dict[str, Any] = {"reason": str(exc)}
        return _build_error_response(
            500, "INTERNAL_ERROR", "Server error", details, request,
        )
