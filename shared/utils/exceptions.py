"""
Centralized HTTP exceptions for consistent error handling.

Every exception carries a machine-readable ``code`` that the error handlers
put into ``details.code`` of the response envelope.

Usage:
    from shared.utils.exceptions import NotFoundError, InvalidTransitionError

    raise SessionNotFoundError(session_id)
    raise InvalidTransitionError("Session", session.status, SessionStatus.AWAITING_PAYMENT)
    raise ValidationError("Quantity must be between 1 and 99", field="quantity")
"""

from datetime import datetime, timezone

from fastapi import HTTPException, status
from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions inherit from this class so that they are logged once
    at the point they are raised and rendered with the same envelope.
    """

    code: str = "ERROR"

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        details: dict[str, Any] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, code=self.code, **log_context)

        self.details = details
        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Menu item", item_id)
    """

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class TableNotFoundError(NotFoundError):
    """Table unknown, disabled or out of service."""

    def __init__(self, identifier: str | None = None, **log_context: Any):
        super().__init__("Table", identifier, **log_context)


class SessionNotFoundError(NotFoundError):
    """Dining session not found."""

    def __init__(self, session_id: str | None = None, **log_context: Any):
        super().__init__("Session", session_id, **log_context)


class GuestNotFoundError(NotFoundError):
    """Session guest not found."""

    def __init__(self, guest_id: str | None = None, **log_context: Any):
        super().__init__("Guest", guest_id, **log_context)


class MenuItemNotFoundError(NotFoundError):
    """Menu item or variation not found."""

    def __init__(self, item_id: str | None = None, entity: str = "Menu item", **log_context: Any):
        super().__init__(entity, item_id, **log_context)


class CartItemNotFoundError(NotFoundError):
    """Cart line not found in this session."""

    def __init__(self, item_id: str | None = None, **log_context: Any):
        super().__init__("Cart item", item_id, **log_context)


class OrderNotFoundError(NotFoundError):
    """Order not found in this session."""

    def __init__(self, order_id: str | None = None, **log_context: Any):
        super().__init__("Order", order_id, **log_context)


# =============================================================================
# 401 / 403 Authentication and Authorization Errors
# =============================================================================


class UnauthorizedError(AppException):
    """
    Missing, unknown or expired credential (401).

    Usage:
        raise UnauthorizedError("Guest token is no longer valid")
    """

    code = "UNAUTHORIZED"

    def __init__(self, detail: str = "Authentication required", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            log_level="warning",
            headers={"WWW-Authenticate": "Bearer"},
            **log_context,
        )


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("manage tables")
        raise ForbiddenError("access this restaurant", restaurant_id=restaurant_id)
    """

    code = "FORBIDDEN"

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"Not allowed to {action}"
        else:
            detail = "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


class InsufficientRoleError(ForbiddenError):
    """Staff user doesn't have the required role."""

    def __init__(self, required_roles: list[str], **log_context: Any):
        roles_str = ", ".join(sorted(required_roles))
        super().__init__(
            f"perform this action (requires role: {roles_str})",
            required_roles=required_roles,
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("Tip cannot be negative", field="amount")
    """

    code = "VALIDATION_ERROR"

    def __init__(self, detail: str, details: dict[str, Any] | None = None, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            details=details,
            **log_context,
        )


class EmptyCartError(AppException):
    """Order submission with nothing pending in the cart (400)."""

    code = "EMPTY_CART"

    def __init__(self, session_id: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No items in cart to submit",
            log_level="info",
            session_id=session_id,
            **log_context,
        )


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Usage:
        raise ConflictError("Table 4 already exists")
    """

    code = "CONFLICT"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidTransitionError(ConflictError):
    """Lifecycle state machine violation."""

    code = "INVALID_TRANSITION"

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        detail = f"Invalid transition from '{from_status}' to '{to_status}' for {entity}"
        super().__init__(detail, entity=entity, from_status=from_status, to_status=to_status, **log_context)


class SessionClosedError(ConflictError):
    """Operation needs an ACTIVE session."""

    code = "SESSION_CLOSED"

    def __init__(self, session_id: str, current_status: str, **log_context: Any):
        detail = f"Session is not accepting changes (status: {current_status})"
        super().__init__(detail, session_id=session_id, current_status=current_status, **log_context)


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).

    Usage:
        raise InternalError("Could not allocate a session code", table_id=table.id)
    """

    code = "INTERNAL_ERROR"

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


# =============================================================================
# Response envelope
# =============================================================================


def error_body(
    status_code: int,
    message: str,
    path: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build the error envelope returned for every failed request:
    ``{message, status, timestamp, path, details?}``.
    """
    body: dict[str, Any] = {
        "message": message,
        "status": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": path,
    }
    if details:
        body["details"] = details
    return body
