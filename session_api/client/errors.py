"""
Client-side errors.
"""

from typing import Any

import httpx


class ApiError(Exception):
    """
    A non-2xx response, built from the API's error envelope
    (``{message, status, timestamp, path, details}``).
    """

    def __init__(
        self,
        status: int,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        path: str | None = None,
    ):
        super().__init__(f"{status} {code or 'ERROR'}: {message}")
        self.status = status
        self.message = message
        self.code = code
        self.details = details or {}
        self.path = path

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            return cls(response.status_code, response.text or response.reason_phrase)

        details = body.get("details") or {}
        return cls(
            status=body.get("status", response.status_code),
            message=body.get("message", response.reason_phrase),
            code=details.get("code"),
            details=details,
            path=body.get("path"),
        )


class AuthenticationRequired(ApiError):
    """No staff tokens, or the refresh token was rejected. Log in again."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(401, message, code="UNAUTHORIZED")
