"""
FastAPI dependencies shared by the routers.

Guests authenticate with the token handed out at join time, sent in the
``X-Guest-Token`` header. Staff authenticate with a Bearer JWT through
``shared.security.auth.current_staff_context``.
"""

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from shared.infrastructure.events import EventPublisher, get_event_publisher
from session_api.models import SessionGuest
from session_api.services.domain import (
    CartService,
    GuestMembershipService,
    SessionLifecycleService,
    SessionQueryService,
    TableRegistry,
)

GUEST_TOKEN_HEADER = "X-Guest-Token"


def guest_token(
    x_guest_token: str | None = Header(default=None, alias=GUEST_TOKEN_HEADER),
) -> str | None:
    return x_guest_token


def current_guest(
    session_id: str,
    token: str | None = Depends(guest_token),
    db: Session = Depends(get_db),
) -> SessionGuest:
    """
    The guest behind ``X-Guest-Token``, who must belong to the ``session_id``
    path parameter.
    """
    return GuestMembershipService(db).require_member(token, session_id)


def get_table_registry(db: Session = Depends(get_db)) -> TableRegistry:
    return TableRegistry(db)


def get_membership_service(db: Session = Depends(get_db)) -> GuestMembershipService:
    return GuestMembershipService(db)


def get_cart_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(db)


def get_lifecycle_service(db: Session = Depends(get_db)) -> SessionLifecycleService:
    return SessionLifecycleService(db)


def get_query_service(db: Session = Depends(get_db)) -> SessionQueryService:
    return SessionQueryService(db)


def get_publisher() -> EventPublisher:
    return get_event_publisher()
