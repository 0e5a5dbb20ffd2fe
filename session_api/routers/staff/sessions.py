"""
Staff session router.

Dashboard reads (active sessions, history, details, analytics) and the
staff-side lifecycle actions. Every route requires a staff access token and
is scoped to the caller's restaurant.
"""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from shared.config.constants import SessionStatus
from shared.config.logging import staff_logger as logger
from shared.infrastructure.events import (
    BILL_REQUESTED,
    ORDER_STATUS_CHANGED,
    SESSION_CANCELLED,
    SESSION_COMPLETED,
    SESSION_PAUSED,
    SESSION_RESUMED,
    WAITER_ACKNOWLEDGED,
    EventPublisher,
    schedule_events,
)
from shared.security.auth import current_staff_context, require_restaurant
from shared.utils.schemas import (
    CloseSessionRequest,
    OrderOutput,
    OrderStatusRequest,
    SessionAnalyticsOutput,
    SessionDetailsOutput,
    SessionHistoryPage,
    SessionOutput,
    WaiterCallOutput,
)
from session_api.dependencies import (
    get_cart_service,
    get_lifecycle_service,
    get_publisher,
    get_query_service,
)
from session_api.models import DiningSession, as_utc
from session_api.routers._common.pagination import Pagination, get_pagination
from session_api.services.domain import CartService, SessionLifecycleService, SessionQueryService
from session_api.services.session_events import session_event, staff_actor, totals_entity
from session_api.services.session_view import (
    build_analytics,
    build_history_item,
    build_order,
    build_session,
    build_session_details,
)

router = APIRouter(
    prefix="/sessions",
    tags=["staff-sessions"],
    dependencies=[Depends(current_staff_context)],
)


def _scoped_session(
    lifecycle: SessionLifecycleService,
    ctx: dict[str, Any],
    session_id: str,
) -> DiningSession:
    session = lifecycle.get_session(session_id)
    require_restaurant(ctx, session.restaurant_id)
    return session


# =============================================================================
# Dashboard reads
# =============================================================================


@router.get("/restaurant/{restaurant_id}/active", response_model=list[SessionDetailsOutput])
def list_active_sessions(
    restaurant_id: str,
    ctx: dict = Depends(current_staff_context),
    queries: SessionQueryService = Depends(get_query_service),
) -> list[SessionDetailsOutput]:
    require_restaurant(ctx, restaurant_id)
    return [build_session_details(session) for session in queries.active_sessions(restaurant_id)]


@router.get("/restaurant/{restaurant_id}/history", response_model=SessionHistoryPage)
def session_history(
    restaurant_id: str,
    pagination: Pagination = Depends(get_pagination),
    ctx: dict = Depends(current_staff_context),
    queries: SessionQueryService = Depends(get_query_service),
) -> SessionHistoryPage:
    """Newest first. ``page`` is 0-based."""
    require_restaurant(ctx, restaurant_id)
    entries, total = queries.session_history(restaurant_id, pagination.page, pagination.size)
    return SessionHistoryPage(
        items=[build_history_item(entry) for entry in entries],
        **pagination.to_dict(total),
    )


@router.get("/restaurant/{restaurant_id}/analytics", response_model=SessionAnalyticsOutput)
def session_analytics(
    restaurant_id: str,
    time_range: str = Query(default="30d", alias="timeRange"),
    ctx: dict = Depends(current_staff_context),
    queries: SessionQueryService = Depends(get_query_service),
) -> SessionAnalyticsOutput:
    require_restaurant(ctx, restaurant_id)
    return build_analytics(queries.analytics(restaurant_id, time_range))


@router.get("/{session_id}/details", response_model=SessionDetailsOutput)
def session_details(
    session_id: str,
    ctx: dict = Depends(current_staff_context),
    queries: SessionQueryService = Depends(get_query_service),
) -> SessionDetailsOutput:
    session = queries.session_details(session_id)
    require_restaurant(ctx, session.restaurant_id)
    return build_session_details(session)


# =============================================================================
# Lifecycle actions
# =============================================================================


@router.post("/{session_id}/end", response_model=SessionOutput)
def end_session(
    session_id: str,
    background_tasks: BackgroundTasks,
    body: CloseSessionRequest | None = None,
    ctx: dict = Depends(current_staff_context),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> SessionOutput:
    """Complete the session and free the table. Ending twice is harmless."""
    was_completed = _scoped_session(lifecycle, ctx, session_id).status == SessionStatus.COMPLETED
    session = lifecycle.end_session(session_id, reason=body.reason if body else None)
    if not was_completed:
        schedule_events(
            background_tasks,
            publisher,
            session_event(SESSION_COMPLETED, session, staff_actor(ctx), **totals_entity(session)),
        )
        logger.info("Session ended by staff", session_id=session_id, user_id=ctx.get("sub"))
    return build_session(session)


@router.post("/{session_id}/cancel", response_model=SessionOutput)
def cancel_session(
    session_id: str,
    background_tasks: BackgroundTasks,
    body: CloseSessionRequest | None = None,
    ctx: dict = Depends(current_staff_context),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> SessionOutput:
    was_cancelled = _scoped_session(lifecycle, ctx, session_id).status == SessionStatus.CANCELLED
    reason = body.reason if body else None
    session = lifecycle.cancel(session_id, reason=reason)
    if not was_cancelled:
        schedule_events(
            background_tasks,
            publisher,
            session_event(SESSION_CANCELLED, session, staff_actor(ctx), reason=reason),
        )
        logger.info("Session cancelled by staff", session_id=session_id, user_id=ctx.get("sub"))
    return build_session(session)


@router.post("/{session_id}/pause", response_model=SessionOutput)
def pause_session(
    session_id: str,
    background_tasks: BackgroundTasks,
    ctx: dict = Depends(current_staff_context),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> SessionOutput:
    _scoped_session(lifecycle, ctx, session_id)
    session = lifecycle.pause(session_id)
    schedule_events(background_tasks, publisher, session_event(SESSION_PAUSED, session, staff_actor(ctx)))
    return build_session(session)


@router.post("/{session_id}/resume", response_model=SessionOutput)
def resume_session(
    session_id: str,
    background_tasks: BackgroundTasks,
    ctx: dict = Depends(current_staff_context),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> SessionOutput:
    _scoped_session(lifecycle, ctx, session_id)
    session = lifecycle.resume(session_id)
    schedule_events(background_tasks, publisher, session_event(SESSION_RESUMED, session, staff_actor(ctx)))
    return build_session(session)


@router.post("/{session_id}/request-bill", response_model=SessionOutput)
def request_bill(
    session_id: str,
    background_tasks: BackgroundTasks,
    ctx: dict = Depends(current_staff_context),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> SessionOutput:
    _scoped_session(lifecycle, ctx, session_id)
    session = lifecycle.request_bill(session_id)
    schedule_events(
        background_tasks,
        publisher,
        session_event(BILL_REQUESTED, session, staff_actor(ctx), **totals_entity(session)),
    )
    return build_session(session)


@router.post("/{session_id}/waiter/acknowledge", response_model=WaiterCallOutput)
def acknowledge_waiter(
    session_id: str,
    background_tasks: BackgroundTasks,
    ctx: dict = Depends(current_staff_context),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> WaiterCallOutput:
    _scoped_session(lifecycle, ctx, session_id)
    session, changed = lifecycle.acknowledge_waiter(session_id)
    if changed:
        schedule_events(
            background_tasks,
            publisher,
            session_event(WAITER_ACKNOWLEDGED, session, staff_actor(ctx)),
        )
    return WaiterCallOutput(
        session_id=session.id,
        waiter_called=session.waiter_called,
        waiter_call_time=as_utc(session.waiter_call_time),
        waiter_response_time=as_utc(session.waiter_response_time),
        changed=changed,
    )


@router.patch("/{session_id}/orders/{order_id}/status", response_model=OrderOutput)
def update_order_status(
    session_id: str,
    order_id: str,
    body: OrderStatusRequest,
    background_tasks: BackgroundTasks,
    ctx: dict = Depends(current_staff_context),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
    cart: CartService = Depends(get_cart_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> OrderOutput:
    """Kitchen progression is forward-only; cancelling takes the order out of the totals."""
    session = _scoped_session(lifecycle, ctx, session_id)
    order = cart.update_order_status(session_id, order_id, body.status)
    schedule_events(
        background_tasks,
        publisher,
        session_event(
            ORDER_STATUS_CHANGED,
            session,
            staff_actor(ctx),
            order_id=order.id,
            order_number=order.order_number,
            order_status=order.status,
            **totals_entity(session),
        ),
    )
    return build_order(order)
