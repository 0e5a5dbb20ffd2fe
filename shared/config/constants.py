"""
Centralized constants for the session service.
Avoids magic strings for roles and statuses.

Usage:
    from shared.config.constants import SessionStatus, MANAGEMENT_ROLES

    if session.status in SessionStatus.OPEN:
        ...
"""

from decimal import Decimal
from typing import Final


# =============================================================================
# Staff Roles
# =============================================================================


class Roles:
    """Staff role constants."""

    ADMIN: Final[str] = "ADMIN"
    MANAGER: Final[str] = "MANAGER"
    WAITER: Final[str] = "WAITER"

    ALL: Final[list[str]] = [ADMIN, MANAGER, WAITER]


MANAGEMENT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER})
STAFF_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER, Roles.WAITER})


# =============================================================================
# Entity Status Constants
# =============================================================================


class SessionStatus:
    """Dining session status constants and the allowed transitions between them."""

    ACTIVE: Final[str] = "ACTIVE"
    PAUSED: Final[str] = "PAUSED"
    AWAITING_PAYMENT: Final[str] = "AWAITING_PAYMENT"
    COMPLETED: Final[str] = "COMPLETED"
    CANCELLED: Final[str] = "CANCELLED"

    # Sessions that still hold their table
    OPEN: Final[frozenset[str]] = frozenset({ACTIVE, PAUSED, AWAITING_PAYMENT})
    TERMINAL: Final[frozenset[str]] = frozenset({COMPLETED, CANCELLED})

    TRANSITIONS: Final[dict[str, frozenset[str]]] = {
        ACTIVE: frozenset({PAUSED, AWAITING_PAYMENT, COMPLETED, CANCELLED}),
        PAUSED: frozenset({ACTIVE}),
        AWAITING_PAYMENT: frozenset({COMPLETED}),
        COMPLETED: frozenset(),
        CANCELLED: frozenset(),
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        return to_status in cls.TRANSITIONS.get(from_status, frozenset())


class OrderStatus:
    """Order and order item status constants."""

    PENDING: Final[str] = "PENDING"
    CONFIRMED: Final[str] = "CONFIRMED"
    PREPARING: Final[str] = "PREPARING"
    READY: Final[str] = "READY"
    SERVED: Final[str] = "SERVED"
    COMPLETED: Final[str] = "COMPLETED"
    CANCELLED: Final[str] = "CANCELLED"

    # Kitchen progression, in order
    PROGRESSION: Final[list[str]] = [PENDING, CONFIRMED, PREPARING, READY, SERVED, COMPLETED]
    CANCELLABLE: Final[frozenset[str]] = frozenset({PENDING, CONFIRMED})
    ALL: Final[frozenset[str]] = frozenset({*PROGRESSION, CANCELLED})


class TableStatus:
    """Table status constants."""

    AVAILABLE: Final[str] = "AVAILABLE"
    OCCUPIED: Final[str] = "OCCUPIED"
    OUT_OF_SERVICE: Final[str] = "OUT_OF_SERVICE"


class PaymentStatus:
    """Session payment status constants."""

    PENDING: Final[str] = "PENDING"
    REQUESTED: Final[str] = "REQUESTED"
    PAID: Final[str] = "PAID"
    VOID: Final[str] = "VOID"


# =============================================================================
# Validation Limits
# =============================================================================


class Limits:
    """Validation limits."""

    # Cart quantities
    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 99

    # String lengths
    MAX_GUEST_NAME_LENGTH: Final[int] = 100
    MAX_PHONE_LENGTH: Final[int] = 20
    MAX_INSTRUCTIONS_LENGTH: Final[int] = 500

    # Money
    MAX_TIP: Final[Decimal] = Decimal("99999.99")

    # Session codes
    SESSION_CODE_LENGTH: Final[int] = 6
    SESSION_CODE_ALPHABET: Final[str] = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
    SESSION_CODE_ATTEMPTS: Final[int] = 10

    # Pagination
    DEFAULT_PAGE_SIZE: Final[int] = 20
    MAX_PAGE_SIZE: Final[int] = 100
