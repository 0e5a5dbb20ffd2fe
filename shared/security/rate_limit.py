"""
Rate limiting using slowapi.
Protects the login endpoint and the public guest surface from abuse.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.utils.exceptions import error_body

logger = get_logger(__name__)

# Limiter keyed by client IP
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

LOGIN_RATE_LIMIT = settings.login_rate_limit
GUEST_RATE_LIMIT = settings.guest_rate_limit


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Handler for rate limit exceeded errors.
    Returns the standard error envelope with retry information.
    """
    logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        client=get_remote_address(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content=error_body(
            429,
            "Rate limit exceeded. Try again later.",
            request.url.path,
            {"code": "RATE_LIMITED", "limit": str(exc.detail)},
        ),
        headers={"Retry-After": "60"},
    )
