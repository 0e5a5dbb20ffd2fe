"""
Public guest endpoints: restaurant, menu and table lookups.

No authentication. These back the screen a guest sees right after scanning
a table's QR code.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from shared.infrastructure.db import get_db
from shared.security.rate_limit import GUEST_RATE_LIMIT, limiter
from shared.utils.exceptions import NotFoundError, SessionNotFoundError
from shared.utils.schemas import MenuOutput, RestaurantOutput, SessionSummaryOutput, TableOutput
from session_api.dependencies import get_lifecycle_service, get_table_registry
from session_api.models import DiningSession, MenuItem, Restaurant, RestaurantTable
from session_api.services.domain import SessionLifecycleService, TableRegistry
from session_api.services.session_view import build_menu_item, build_restaurant, build_table

router = APIRouter(prefix="/guest", tags=["guest-public"])


def _restaurant_by_slug(db: Session, slug: str) -> Restaurant:
    restaurant = db.scalar(
        select(Restaurant).where(Restaurant.slug == slug, Restaurant.is_active.is_(True))
    )
    if restaurant is None:
        raise NotFoundError("Restaurant", slug)
    return restaurant


def _summary(session: DiningSession, table: RestaurantTable, restaurant: Restaurant) -> SessionSummaryOutput:
    return SessionSummaryOutput(
        session_id=session.id,
        session_code=session.session_code,
        status=session.status,
        restaurant_id=restaurant.id,
        restaurant_name=restaurant.name,
        table_number=table.table_number,
        guest_count=session.guest_count,
        host_name=session.host_name,
    )


@router.get("/restaurants/{slug}", response_model=RestaurantOutput)
def get_restaurant(slug: str, db: Session = Depends(get_db)) -> RestaurantOutput:
    return build_restaurant(_restaurant_by_slug(db, slug))


@router.get("/restaurants/{slug}/menu", response_model=MenuOutput)
def get_menu(slug: str, db: Session = Depends(get_db)) -> MenuOutput:
    """Active and available items only, in menu order."""
    restaurant = _restaurant_by_slug(db, slug)
    items = db.scalars(
        select(MenuItem)
        .options(selectinload(MenuItem.variations))
        .where(
            MenuItem.restaurant_id == restaurant.id,
            MenuItem.is_active.is_(True),
            MenuItem.is_available.is_(True),
        )
        .order_by(MenuItem.category, MenuItem.sort_order, MenuItem.name)
    ).all()
    return MenuOutput(
        restaurant=build_restaurant(restaurant),
        items=[build_menu_item(item) for item in items],
    )


@router.get("/tables/{qr_code}", response_model=TableOutput)
@limiter.limit(GUEST_RATE_LIMIT)
def resolve_table(
    request: Request,
    qr_code: str,
    tables: TableRegistry = Depends(get_table_registry),
) -> TableOutput:
    return build_table(tables.resolve_by_qr_code(qr_code))


@router.get("/tables/{qr_code}/active-session", response_model=SessionSummaryOutput)
@limiter.limit(GUEST_RATE_LIMIT)
def get_table_active_session(
    request: Request,
    qr_code: str,
    db: Session = Depends(get_db),
    tables: TableRegistry = Depends(get_table_registry),
) -> SessionSummaryOutput:
    """The open session at this table, so the scanner can see who is already seated."""
    table = tables.resolve_by_qr_code(qr_code)
    if table.current_session_id is None:
        raise SessionNotFoundError(table_id=table.id)
    session = db.get(DiningSession, table.current_session_id)
    if session is None or not session.is_open:
        raise SessionNotFoundError(table.current_session_id)
    return _summary(session, table, db.get(Restaurant, table.restaurant_id))


@router.get("/sessions/code/{session_code}", response_model=SessionSummaryOutput)
@limiter.limit(GUEST_RATE_LIMIT)
def get_session_by_code(
    request: Request,
    session_code: str,
    db: Session = Depends(get_db),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
) -> SessionSummaryOutput:
    session = lifecycle.get_by_code(session_code)
    return _summary(session, session.table, db.get(Restaurant, session.restaurant_id))
