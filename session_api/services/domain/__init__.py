"""
Domain services.

Each service wraps one SQLAlchemy session; per-session writes are serialized
through the shared KeyedLockRegistry, locks taken table first, then session.
"""

from .table_registry import TableRegistry, generate_qr_code
from .membership_service import AdmittedGuest, GuestMembershipService, hash_token
from .cart_service import CartService
from .lifecycle_service import JoinResult, SessionLifecycleService, generate_session_code
from .session_query_service import (
    SessionAnalytics,
    SessionHistoryEntry,
    SessionQueryService,
    parse_time_range,
)

__all__ = [
    "TableRegistry",
    "generate_qr_code",
    "AdmittedGuest",
    "GuestMembershipService",
    "hash_token",
    "CartService",
    "JoinResult",
    "SessionLifecycleService",
    "generate_session_code",
    "SessionAnalytics",
    "SessionHistoryEntry",
    "SessionQueryService",
    "parse_time_range",
]
