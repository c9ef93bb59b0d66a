"""
Bearer-token authentication.

Tokens are HS256 JWTs whose ``sub`` claim carries the user id and whose
optional ``email`` claim is echoed in the alert's patient info. Token
issuance (login) lives outside this service; only verification happens here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from backend.app.core.config import settings
from backend.app.core.errors import AuthenticationError

http_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    email: Optional[str] = None


def decode_token(token: str) -> Dict[str, Any]:
    """Verified claims of ``token`` or AuthenticationError."""
    try:
        claims = jwt.decode(
            token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        raise AuthenticationError(f"Invalid token: {e}")
    if not claims.get("sub"):
        raise AuthenticationError("Invalid token: missing subject")
    return claims


def verify_token(token: str) -> str:
    """Return the user id encoded in ``token`` or raise AuthenticationError."""
    return str(decode_token(token)["sub"])


def create_access_token(
    user_id: str,
    *,
    email: Optional[str] = None,
    expires_in: Optional[timedelta] = None,
) -> str:
    """Mint a token for ``user_id`` (used by tests and local tooling)."""
    claims: Dict[str, Any] = {"sub": user_id}
    if email:
        claims["email"] = email
    if expires_in is not None:
        claims["exp"] = datetime.now(timezone.utc) + expires_in
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


async def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> CurrentUser:
    """FastAPI dependency: authenticated caller or 401."""
    if creds is None:
        raise AuthenticationError("Unauthorized")
    claims = decode_token(creds.credentials)
    return CurrentUser(user_id=str(claims["sub"]), email=claims.get("email"))


def peek_user_id(authorization: Optional[str]) -> Optional[str]:
    """
    User id from an ``Authorization: Bearer`` header, or None.

    For log context only; never raises. Endpoints still authenticate
    through ``get_current_user``.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        return verify_token(token.strip())
    except AuthenticationError:
        return None
