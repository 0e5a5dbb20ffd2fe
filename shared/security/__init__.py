"""
Security module: JWT authentication, password hashing, rate limiting.
"""

from shared.security.auth import (
    sign_jwt,
    sign_access_token,
    sign_refresh_token,
    verify_jwt,
    verify_refresh_token,
    get_bearer_token,
    current_staff_context,
    require_roles,
    require_restaurant,
)
from shared.security.password import hash_password, verify_password
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler

__all__ = [
    "sign_jwt",
    "sign_access_token",
    "sign_refresh_token",
    "verify_jwt",
    "verify_refresh_token",
    "get_bearer_token",
    "current_staff_context",
    "require_roles",
    "require_restaurant",
    "hash_password",
    "verify_password",
    "limiter",
    "rate_limit_exceeded_handler",
]
