"""
HTTP middlewares: response hardening and JSON-only request bodies.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shared.config.settings import settings
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.utils.exceptions import error_body

# The API only ever returns JSON, so the browser policy can be strict
_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}
_HSTS = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp hardening headers on every response. HSTS in production only."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.update(_SECURITY_HEADERS)
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = _HSTS
        if "server" in response.headers:
            del response.headers["server"]
        return response


class ContentTypeValidationMiddleware(BaseHTTPMiddleware):
    """
    Reject non-JSON bodies with 415.

    Bodyless POSTs (leave, call-waiter, request-bill) send no Content-Type
    and pass through.
    """

    METHODS_WITH_BODY = frozenset({"POST", "PUT", "PATCH"})

    async def dispatch(self, request: Request, call_next):
        content_type = request.headers.get("content-type", "")
        if (
            request.method in self.METHODS_WITH_BODY
            and content_type
            and not content_type.startswith("application/json")
        ):
            return JSONResponse(
                status_code=415,
                content=error_body(
                    415,
                    "Unsupported Media Type. Use application/json",
                    request.url.path,
                    {"code": "UNSUPPORTED_MEDIA_TYPE", "contentType": content_type},
                ),
            )
        return await call_next(request)


def register_middlewares(app: FastAPI) -> None:
    # Added last runs first: the request id must exist before anything logs
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(ContentTypeValidationMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
