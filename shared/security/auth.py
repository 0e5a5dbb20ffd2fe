"""
Authentication and authorization utilities for staff endpoints.

Staff authenticate with short-lived JWT access tokens and rotate them with
refresh tokens. Guests never see a JWT: they hold an opaque guest token
issued at join time (see GuestMembershipService).
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import jwt
from fastapi import Header

from shared.config.settings import (
    JWT_SECRET,
    JWT_ISSUER,
    JWT_AUDIENCE,
    settings,
)
from shared.config.logging import get_logger
from shared.utils.exceptions import (
    ForbiddenError,
    InsufficientRoleError,
    UnauthorizedError,
)

logger = get_logger(__name__)

REQUIRED_CLAIMS = ("sub", "restaurant_id", "role")


# =============================================================================
# JWT Functions
# =============================================================================

JWT_ALGORITHM = "HS256"


def _default_ttl(token_type: str) -> int:
    if token_type == "refresh":
        return settings.jwt_refresh_token_expire_days * 86400
    return settings.jwt_access_token_expire_minutes * 60


def sign_jwt(
    payload: dict[str, Any],
    ttl_seconds: int | None = None,
    token_type: str = "access",
) -> str:
    """
    Sign a JWT token with the given payload.

    Args:
        payload: Claims to include in the token (sub, restaurant_id, role, email).
        ttl_seconds: Token lifetime in seconds. Defaults to the configured
            lifetime of ``token_type``.
        token_type: "access" or "refresh".
    """
    if ttl_seconds is None:
        ttl_seconds = _default_ttl(token_type)
    issued_at = int(time.time())
    claims = dict(payload)
    claims.update(
        iss=JWT_ISSUER,
        aud=JWT_AUDIENCE,
        iat=issued_at,
        exp=issued_at + ttl_seconds,
        type=token_type,
        jti=uuid.uuid4().hex,
    )
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def sign_access_token(user) -> str:
    """Access token carrying everything the staff guard needs."""
    return sign_jwt(
        {
            "sub": user.id,
            "restaurant_id": user.restaurant_id,
            "role": user.role,
            "email": user.email,
        }
    )


def sign_refresh_token(user) -> str:
    """
    Refresh token for a staff user.

    Carries the same identity claims so a refresh can mint a new access token,
    but is rejected by the staff guard because of its type.
    """
    return sign_jwt(
        {
            "sub": user.id,
            "restaurant_id": user.restaurant_id,
            "role": user.role,
        },
        token_type="refresh",
    )


def verify_jwt(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Raises:
        UnauthorizedError: If the token is invalid, expired, missing claims
            or of the wrong type.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError as e:
        # Generic message to the client, details to the log
        logger.warning("JWT validation failed", error=str(e))
        raise UnauthorizedError("Invalid token")

    for claim in REQUIRED_CLAIMS:
        if not payload.get(claim):
            raise UnauthorizedError(f"Invalid token: missing {claim} claim")

    if payload.get("type") != expected_type:
        raise UnauthorizedError(f"Invalid token type. Expected {expected_type} token.")

    return payload


def verify_refresh_token(token: str) -> dict[str, Any]:
    """Verify and decode a refresh token."""
    return verify_jwt(token, expected_type="refresh")


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract bearer token from Authorization header.

    Raises:
        UnauthorizedError: If header is missing or malformed.
    """
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")
    if not authorization.startswith("Bearer "):
        raise UnauthorizedError("Invalid Authorization header format. Expected: Bearer <token>")
    return authorization.split(" ", 1)[1].strip()


# =============================================================================
# Staff guard
# =============================================================================


def current_staff_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    FastAPI dependency to get the current staff context from the JWT.

    Applied at router level to every staff router, so individual endpoints
    never repeat the check.

    Usage:
        router = APIRouter(dependencies=[Depends(current_staff_context)])

        @router.get("/x")
        def endpoint(ctx: dict = Depends(current_staff_context)):
            restaurant_id = ctx["restaurant_id"]

    Returns:
        Dict with: sub (user id), restaurant_id, role, email
    """
    token = get_bearer_token(authorization)
    return verify_jwt(token)


def require_roles(ctx: dict[str, Any], allowed: frozenset[str] | list[str]) -> None:
    """Raise InsufficientRoleError unless the staff role is one of ``allowed``."""
    if ctx.get("role") not in allowed:
        raise InsufficientRoleError(list(allowed), user_id=ctx.get("sub"))


def require_restaurant(ctx: dict[str, Any], restaurant_id: str) -> None:
    """Raise ForbiddenError unless the staff user belongs to ``restaurant_id``."""
    if ctx.get("restaurant_id") != restaurant_id:
        raise ForbiddenError(
            "access this restaurant",
            user_id=ctx.get("sub"),
            restaurant_id=restaurant_id,
        )
