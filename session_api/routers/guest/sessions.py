"""
Guest session router.

Join a table's session, share a cart, submit orders, call the waiter and ask
for the bill. Every endpoint except join requires the guest token from join
in the ``X-Guest-Token`` header.

Events are published after the transaction commits, as background tasks, so
other guests at the table and the staff dashboard see changes live.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.orm import Session

from shared.config.logging import guest_logger as logger
from shared.infrastructure.db import get_db
from shared.infrastructure.events import (
    BILL_REQUESTED,
    CART_ITEM_ADDED,
    CART_ITEM_REMOVED,
    CART_ITEM_UPDATED,
    GUEST_JOINED,
    GUEST_LEFT,
    ORDER_SUBMITTED,
    SESSION_STARTED,
    TIP_UPDATED,
    WAITER_CALLED,
    EventPublisher,
    schedule_events,
)
from shared.security.rate_limit import GUEST_RATE_LIMIT, limiter
from shared.utils.exceptions import TableNotFoundError, ValidationError
from shared.utils.schemas import (
    AddCartItemRequest,
    CartItemOutput,
    CartOutput,
    JoinSessionRequest,
    JoinSessionResponse,
    LeaveSessionResponse,
    OrderOutput,
    SessionDetailsOutput,
    SessionOutput,
    SubmitOrderRequest,
    SubmitOrderResponse,
    TipRequest,
    UpdateCartItemRequest,
    WaiterCallOutput,
)
from session_api.dependencies import (
    current_guest,
    get_cart_service,
    get_lifecycle_service,
    get_membership_service,
    get_publisher,
    get_query_service,
    get_table_registry,
    guest_token,
)
from session_api.models import DiningSession, SessionGuest, as_utc
from session_api.services.domain import (
    CartService,
    GuestMembershipService,
    SessionLifecycleService,
    SessionQueryService,
    TableRegistry,
)
from session_api.services.session_events import guest_actor, session_event, totals_entity
from session_api.services.session_view import (
    build_cart_item,
    build_guest,
    build_order,
    build_session,
    build_session_details,
    build_table,
)

router = APIRouter(prefix="/guest/sessions", tags=["guest-sessions"])


def _cart_output(cart: CartService, session: DiningSession) -> CartOutput:
    return CartOutput(
        session_id=session.id,
        cart_version=session.cart_version,
        items=[build_cart_item(item) for item in cart.list_cart(session.id)],
    )


# =============================================================================
# Join
# =============================================================================


@router.post("/join", response_model=JoinSessionResponse)
@limiter.limit(GUEST_RATE_LIMIT)
def join_session(
    request: Request,
    body: JoinSessionRequest,
    background_tasks: BackgroundTasks,
    tables: TableRegistry = Depends(get_table_registry),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
    queries: SessionQueryService = Depends(get_query_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> JoinSessionResponse:
    """
    Join by scanned table QR code (creating the session if the table is
    free) or by a session code shared by another guest.

    The first guest admitted becomes the host. The returned ``guestToken``
    authenticates every other guest call.
    """
    if body.table_qr_code:
        table = tables.resolve_by_qr_code(body.table_qr_code)
        if body.restaurant_id and table.restaurant_id != body.restaurant_id:
            raise TableNotFoundError(body.table_qr_code, restaurant_id=body.restaurant_id)
        result = lifecycle.create_or_join(table.id, body.guest_name, body.guest_phone)
    elif body.session_code:
        result = lifecycle.join_by_code(body.session_code, body.guest_name, body.guest_phone)
    else:
        raise ValidationError(
            "Either tableQrCode or sessionCode is required",
            details={"fields": ["tableQrCode", "sessionCode"]},
        )

    session = queries.session_details(result.session.id)
    guest = result.guest
    actor = guest_actor(guest)

    events = []
    if result.created:
        events.append(session_event(SESSION_STARTED, session, actor, session_code=session.session_code))
    events.append(
        session_event(
            GUEST_JOINED,
            session,
            actor,
            guest_id=guest.id,
            guest_name=guest.guest_name,
            is_host=guest.is_host,
            guest_count=session.guest_count,
        )
    )
    schedule_events(background_tasks, publisher, *events)

    logger.info(
        "Guest joined session",
        session_id=session.id,
        guest_id=guest.id,
        created=result.created,
        is_host=guest.is_host,
    )
    return JoinSessionResponse(
        session_id=session.id,
        session_token=session.session_code,
        session_code=session.session_code,
        guest_token=result.token,
        guest_id=guest.id,
        guest_name=guest.guest_name,
        is_host=guest.is_host,
        created=result.created,
        session=build_session(session),
        table=build_table(session.table),
        guests=[build_guest(g) for g in session.guests],
        cart_items=[build_cart_item(item) for item in session.cart_items],
        orders=[build_order(order) for order in session.orders],
    )


# =============================================================================
# Session view
# =============================================================================


@router.get("/{session_id}", response_model=SessionDetailsOutput)
def get_session(
    session_id: str,
    guest: SessionGuest = Depends(current_guest),
    queries: SessionQueryService = Depends(get_query_service),
) -> SessionDetailsOutput:
    return build_session_details(queries.session_details(session_id))


# =============================================================================
# Cart
# =============================================================================


@router.get("/{session_id}/cart", response_model=CartOutput)
def get_cart(
    session_id: str,
    guest: SessionGuest = Depends(current_guest),
    cart: CartService = Depends(get_cart_service),
) -> CartOutput:
    return _cart_output(cart, guest.session)


@router.post("/{session_id}/cart", response_model=CartItemOutput)
def add_cart_item(
    session_id: str,
    body: AddCartItemRequest,
    background_tasks: BackgroundTasks,
    token: str | None = Depends(guest_token),
    cart: CartService = Depends(get_cart_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> CartItemOutput:
    """Add to the shared cart. Identical lines from the same guest merge."""
    cart_item = cart.add_to_cart(
        token,
        session_id,
        body.menu_item_id,
        variation_id=body.variation_id,
        quantity=body.quantity,
        special_instructions=body.special_instructions,
    )
    output = build_cart_item(cart_item)
    schedule_events(
        background_tasks,
        publisher,
        session_event(
            CART_ITEM_ADDED,
            cart_item.session,
            guest_actor(cart_item.guest),
            cart_item_id=cart_item.id,
            menu_item_id=cart_item.menu_item_id,
            quantity=cart_item.quantity,
            cart_version=cart_item.session.cart_version,
        ),
    )
    return output


@router.put("/{session_id}/cart/{item_id}", response_model=CartItemOutput)
def update_cart_item(
    session_id: str,
    item_id: str,
    body: UpdateCartItemRequest,
    background_tasks: BackgroundTasks,
    token: str | None = Depends(guest_token),
    cart: CartService = Depends(get_cart_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> CartItemOutput:
    cart_item = cart.update_cart_item(
        token,
        session_id,
        item_id,
        body.quantity,
        special_instructions=body.special_instructions,
    )
    output = build_cart_item(cart_item)
    schedule_events(
        background_tasks,
        publisher,
        session_event(
            CART_ITEM_UPDATED,
            cart_item.session,
            guest_actor(cart_item.guest),
            cart_item_id=cart_item.id,
            quantity=cart_item.quantity,
            cart_version=cart_item.session.cart_version,
        ),
    )
    return output


@router.delete("/{session_id}/cart/{item_id}", response_model=CartOutput)
def remove_cart_item(
    session_id: str,
    item_id: str,
    background_tasks: BackgroundTasks,
    token: str | None = Depends(guest_token),
    cart: CartService = Depends(get_cart_service),
    membership: GuestMembershipService = Depends(get_membership_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> CartOutput:
    """Remove a line. Returns the cart as it is now."""
    cart.remove_cart_item(token, session_id, item_id)
    guest = membership.require_member(token, session_id)
    session = guest.session
    schedule_events(
        background_tasks,
        publisher,
        session_event(
            CART_ITEM_REMOVED,
            session,
            guest_actor(guest),
            cart_item_id=item_id,
            cart_version=session.cart_version,
        ),
    )
    return _cart_output(cart, session)


# =============================================================================
# Orders
# =============================================================================


@router.post("/{session_id}/orders", response_model=SubmitOrderResponse, status_code=status.HTTP_201_CREATED)
def submit_order(
    session_id: str,
    background_tasks: BackgroundTasks,
    body: SubmitOrderRequest | None = None,
    token: str | None = Depends(guest_token),
    cart: CartService = Depends(get_cart_service),
    publisher: EventPublisher = Depends(get_publisher),
    db: Session = Depends(get_db),
) -> SubmitOrderResponse:
    """
    Send pending cart lines to the kitchen as one order.

    Only the caller's own lines unless ``includeAllGuests`` is set.
    """
    include_all = body.include_all_guests if body else False
    order = cart.submit_order(token, session_id, include_all_guests=include_all)
    session = db.get(DiningSession, session_id)

    schedule_events(
        background_tasks,
        publisher,
        session_event(
            ORDER_SUBMITTED,
            session,
            {"role": "GUEST", "guest_id": order.submitted_by_guest_id},
            order_id=order.id,
            order_number=order.order_number,
            items=len(order.items),
            order_subtotal=str(order.subtotal),
            **totals_entity(session),
        ),
    )
    return SubmitOrderResponse(order=build_order(order), session=build_session(session))


@router.get("/{session_id}/orders", response_model=list[OrderOutput])
def list_orders(
    session_id: str,
    guest: SessionGuest = Depends(current_guest),
    cart: CartService = Depends(get_cart_service),
) -> list[OrderOutput]:
    return [build_order(order) for order in cart.list_orders(session_id)]


# =============================================================================
# Waiter, bill, tip
# =============================================================================


@router.post("/{session_id}/waiter", response_model=WaiterCallOutput)
def call_waiter(
    session_id: str,
    background_tasks: BackgroundTasks,
    guest: SessionGuest = Depends(current_guest),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> WaiterCallOutput:
    """Calling again before a waiter acknowledges keeps the first call time."""
    session, changed = lifecycle.call_waiter(session_id, guest=guest)
    if changed:
        schedule_events(
            background_tasks,
            publisher,
            session_event(
                WAITER_CALLED,
                session,
                guest_actor(guest),
                waiter_call_time=as_utc(session.waiter_call_time).isoformat(),
                table_number=session.table.table_number,
            ),
        )
    return WaiterCallOutput(
        session_id=session.id,
        waiter_called=session.waiter_called,
        waiter_call_time=as_utc(session.waiter_call_time),
        waiter_response_time=as_utc(session.waiter_response_time),
        changed=changed,
    )


@router.post("/{session_id}/bill", response_model=SessionOutput)
def request_bill(
    session_id: str,
    background_tasks: BackgroundTasks,
    guest: SessionGuest = Depends(current_guest),
    lifecycle: SessionLifecycleService = Depends(get_lifecycle_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> SessionOutput:
    session = lifecycle.request_bill(session_id, guest=guest)
    schedule_events(
        background_tasks,
        publisher,
        session_event(BILL_REQUESTED, session, guest_actor(guest), **totals_entity(session)),
    )
    return build_session(session)


@router.put("/{session_id}/tip", response_model=SessionOutput)
def set_tip(
    session_id: str,
    body: TipRequest,
    background_tasks: BackgroundTasks,
    token: str | None = Depends(guest_token),
    cart: CartService = Depends(get_cart_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> SessionOutput:
    session = cart.set_tip(token, session_id, body.amount)
    schedule_events(
        background_tasks,
        publisher,
        session_event(TIP_UPDATED, session, **totals_entity(session)),
    )
    return build_session(session)


# =============================================================================
# Leave
# =============================================================================


@router.post("/{session_id}/leave", response_model=LeaveSessionResponse)
def leave_session(
    session_id: str,
    background_tasks: BackgroundTasks,
    guest_token_query: str | None = Query(default=None, alias="guestToken"),
    token: str | None = Depends(guest_token),
    membership: GuestMembershipService = Depends(get_membership_service),
    publisher: EventPublisher = Depends(get_publisher),
) -> LeaveSessionResponse:
    """Revoke the caller's guest token. Leaving twice is harmless."""
    guest = membership.leave(session_id, token or guest_token_query)
    schedule_events(
        background_tasks,
        publisher,
        session_event(
            GUEST_LEFT,
            guest.session,
            guest_actor(guest),
            guest_id=guest.id,
            guest_count=guest.session.guest_count,
        ),
    )
    return LeaveSessionResponse(session_id=session_id, guest_id=guest.id, left_at=as_utc(guest.left_at))
