"""
Authentication router.
Handles staff login, refresh-token rotation and the current-user lookup.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.logging import auth_logger as logger, mask_email
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import (
    current_staff_context,
    sign_access_token,
    sign_refresh_token,
    verify_refresh_token,
)
from shared.security.password import verify_password
from shared.security.rate_limit import LOGIN_RATE_LIMIT, limiter
from shared.utils.exceptions import UnauthorizedError
from shared.utils.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshTokenRequest,
    StaffContextOutput,
    StaffUserOutput,
)
from session_api.models import StaffUser

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(user: StaffUser) -> LoginResponse:
    return LoginResponse(
        access_token=sign_access_token(user),
        refresh_token=sign_refresh_token(user),
        token_type="Bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=StaffUserOutput(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            restaurant_id=user.restaurant_id,
        ),
    )


@router.post("/login", response_model=LoginResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)) -> LoginResponse:
    """
    Authenticate a staff member and return access + refresh tokens.

    The access token carries sub (user id), restaurant_id, role and email.
    Unknown email and wrong password give the same answer.
    """
    email = body.email.lower()
    user = db.scalar(
        select(StaffUser).where(StaffUser.email == email, StaffUser.is_active.is_(True))
    )

    if user is None:
        logger.warning("LOGIN_FAILED: User not found", email=mask_email(email))
        raise UnauthorizedError("Invalid email or password")

    if not verify_password(body.password, user.password_hash):
        logger.warning("LOGIN_FAILED: Invalid password", email=mask_email(email), user_id=user.id)
        raise UnauthorizedError("Invalid email or password")

    logger.info("LOGIN_SUCCESS", email=mask_email(email), user_id=user.id, role=user.role)
    return _token_response(user)


@router.post("/refresh", response_model=LoginResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
def refresh(request: Request, body: RefreshTokenRequest, db: Session = Depends(get_db)) -> LoginResponse:
    """
    Exchange a refresh token for a new access + refresh token pair.

    The user is re-read so a deactivated account cannot keep refreshing.
    """
    payload = verify_refresh_token(body.refresh_token)
    user = db.get(StaffUser, payload["sub"])
    if user is None or not user.is_active:
        logger.warning("REFRESH_FAILED: User inactive or missing", user_id=payload["sub"])
        raise UnauthorizedError("User is no longer active")

    logger.info("TOKEN_REFRESHED", user_id=user.id)
    return _token_response(user)


@router.get("/me", response_model=StaffContextOutput)
def me(ctx: dict = Depends(current_staff_context)) -> StaffContextOutput:
    return StaffContextOutput(
        user_id=ctx["sub"],
        restaurant_id=ctx["restaurant_id"],
        role=ctx["role"],
        email=ctx.get("email"),
    )
