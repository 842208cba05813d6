# ============================================================================
# API AUTHENTICATION
# ============================================================================
# STATUS: Core - Bearer token verification
# PURPOSE: Turn the Authorization header into a Caller
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Authentication

Every endpoint requires "Authorization: Bearer <jwt>". Tokens are HS256
JWTs signed with JWT_SECRET:

    {"sub": "<user id>", "role": "authenticated"}   -> end user
    {"role": "service_role"}                        -> workflow engine

A missing or invalid token is rejected with 401 before any service runs.
"""

import logging
from typing import Any, Mapping, Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import AuthDefaults, get_defaults
from services import Caller

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)
_auth_settings: Optional[AuthDefaults] = None


def set_auth_settings(settings: Optional[AuthDefaults]) -> None:
    """Override token settings (None restores the environment defaults)."""
    global _auth_settings
    _auth_settings = settings


def get_auth_settings() -> AuthDefaults:
    return _auth_settings or get_defaults().auth


def decode_token(token: str, settings: AuthDefaults) -> Mapping[str, Any]:
    """
    Verify signature and expiry of a bearer token.

    Raises:
        jwt.InvalidTokenError: token rejected
    """
    options = {"verify_aud": settings.jwt_audience is not None}
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
        options=options,
    )


def caller_from_claims(claims: Mapping[str, Any], settings: AuthDefaults) -> Caller:
    """
    Map verified claims to a Caller.

    Raises:
        ValueError: claims name neither the service role nor a user
    """
    if claims.get("role") == settings.service_role:
        return Caller.service()
    user_id = claims.get("sub")
    if not user_id:
        raise ValueError("Token has no subject")
    return Caller.user(str(user_id))


async def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Caller:
    """FastAPI dependency resolving the acting identity."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(401, "Missing authorization header")

    settings = get_auth_settings()
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not configured")
        raise HTTPException(503, "Authentication not configured")

    try:
        claims = decode_token(credentials.credentials, settings)
        return caller_from_claims(claims, settings)
    except (jwt.InvalidTokenError, ValueError) as e:
        logger.info(f"Rejected bearer token: {e}")
        raise HTTPException(401, "Invalid or expired token")


__all__ = [
    "get_caller",
    "set_auth_settings",
    "get_auth_settings",
    "decode_token",
    "caller_from_claims",
]
