"""
Archivist - Security Layer

Bearer-token authentication for the trigger and upload endpoints. A single
shared token (ARCHIVIST_AUTH_TOKEN) is compared in constant time; the same
token is used by the worker when it re-invokes /ingest/all for pagination.
"""

import secrets
from dataclasses import dataclass
from typing import Literal

from fastapi import Header, HTTPException, status
from loguru import logger

from archivist.config import get_settings


@dataclass
class AuthContext:
    """Authentication context for the current request."""

    via: Literal["bearer"]


def _get_auth_token() -> str | None:
    """
    Get the configured bearer token.

    In production, logs a warning if missing to aid debugging.
    """
    settings = get_settings()
    token = settings.ARCHIVIST_AUTH_TOKEN
    if not token and settings.is_production:
        logger.warning("ARCHIVIST_AUTH_TOKEN not set in production - all requests will be rejected")
    return token


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_bearer_token(
    authorization: str | None = Header(default=None),
) -> AuthContext:
    """
    FastAPI dependency for authenticating requests.

    Raises:
        HTTPException 401: header missing, malformed, or token mismatch
    """
    if not authorization:
        raise _unauthorized("Unauthorized")

    if not authorization.startswith("Bearer "):
        raise _unauthorized("Invalid authorization header format")

    token = authorization[7:].strip()
    configured = _get_auth_token()

    if not token or not configured or not secrets.compare_digest(token, configured):
        logger.warning("Invalid bearer token attempted")
        raise _unauthorized("Unauthorized")

    return AuthContext(via="bearer")
