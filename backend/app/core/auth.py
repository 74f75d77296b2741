"""
Authentication helpers for verifying bearer JWTs and resolving the current user id.

Tokens are issued by the identity provider; this service only verifies them
and reads the subject claim, which is the profile id.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from app.core.config import settings

logger = logging.getLogger(__name__)


def _unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_bearer_token(request: Request) -> str:
    """
    Extract 'Bearer <token>' from Authorization header.
    """
    auth = request.headers.get("Authorization")
    if not auth:
        raise _unauthorized("Missing Authorization header")

    parts = auth.split()
    if len(parts) != 2:
        raise _unauthorized("Invalid Authorization header format. Expected 'Bearer <token>'")

    scheme, token = parts
    if scheme.lower() != "bearer":
        raise _unauthorized("Invalid auth scheme. Expected 'Bearer'")

    if not token.strip():
        raise _unauthorized("Empty bearer token")

    return token


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and validate an access token with the configured secret and algorithm."""
    options = {"verify_aud": settings.JWT_AUDIENCE is not None}
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise _unauthorized("Token validation failed")


def get_current_user_id(request: Request) -> str:
    """
    FastAPI dependency: returns the authenticated user's id (the token's sub claim).
    """
    token = _extract_bearer_token(request)
    payload = decode_access_token(token)

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthorized("Token missing subject (sub)")
    return str(user_id)
