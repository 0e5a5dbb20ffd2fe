"""
Exception handlers.

Every failed request gets the same envelope:
``{message, status, timestamp, path, details?}`` with the machine code in
``details.code``.
"""

from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config.logging import app_logger as logger
from shared.security.rate_limit import rate_limit_exceeded_handler
from shared.utils.exceptions import AppException, error_body

# Machine codes for plain HTTPExceptions raised by the framework
STATUS_CODES: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    415: "UNSUPPORTED_MEDIA_TYPE",
    429: "RATE_LIMITED",
}


def _json(status_code: int, body: dict[str, Any], headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    details = {"code": exc.code, **(exc.details or {})}
    return _json(
        exc.status_code,
        error_body(exc.status_code, exc.detail, request.url.path, details),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc, AppException):
        return await app_exception_handler(request, exc)
    details = {"code": STATUS_CODES.get(exc.status_code, "ERROR")}
    return _json(
        exc.status_code,
        error_body(exc.status_code, str(exc.detail), request.url.path, details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation failures are 400 with per-field errors."""
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    logger.warning("Request validation failed", path=request.url.path, errors=len(errors))
    return _json(
        status.HTTP_400_BAD_REQUEST,
        error_body(
            status.HTTP_400_BAD_REQUEST,
            "Request validation failed",
            request.url.path,
            {"code": "VALIDATION_ERROR", "errors": errors},
        ),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=exc,
    )
    return _json(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_body(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            request.url.path,
            {"code": "INTERNAL_ERROR"},
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
