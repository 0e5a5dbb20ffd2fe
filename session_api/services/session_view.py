"""
Response builders: ORM objects to API schemas.

Money leaves the API rounded half-up to cents, including the tax and
service charge the database keeps unrounded.
"""

from __future__ import annotations

from shared.config.settings import settings
from shared.utils.money import line_total, round_money, to_decimal
from shared.utils.schemas import (
    CartItemOutput,
    GuestOutput,
    MenuItemOutput,
    MenuVariationOutput,
    OrderItemOutput,
    OrderOutput,
    RestaurantOutput,
    SessionDetailsOutput,
    SessionHistoryItem,
    SessionOutput,
    SessionAnalyticsOutput,
    TableOutput,
)
from session_api.models import (
    CartItem,
    DiningSession,
    MenuItem,
    Order,
    Restaurant,
    RestaurantTable,
    SessionGuest,
    as_utc,
)
from session_api.services.domain.session_query_service import SessionAnalytics, SessionHistoryEntry


def build_restaurant(restaurant: Restaurant) -> RestaurantOutput:
    return RestaurantOutput(
        id=restaurant.id,
        name=restaurant.name,
        slug=restaurant.slug,
        currency_code=restaurant.currency_code,
        tax_rate=restaurant.tax_rate,
        service_charge_rate=restaurant.service_charge_rate,
    )


def build_menu_item(item: MenuItem) -> MenuItemOutput:
    return MenuItemOutput(
        id=item.id,
        name=item.name,
        description=item.description,
        category=item.category,
        price=round_money(item.price),
        variations=[
            MenuVariationOutput(
                id=variation.id,
                name=variation.name,
                price_adjustment=round_money(variation.price_adjustment),
                is_default=variation.is_default,
            )
            for variation in item.variations
            if variation.is_active
        ],
    )


def build_table(table: RestaurantTable) -> TableOutput:
    return TableOutput.model_validate(table)


def build_guest(guest: SessionGuest) -> GuestOutput:
    return GuestOutput(
        id=guest.id,
        guest_name=guest.guest_name,
        is_host=guest.is_host,
        joined_at=as_utc(guest.joined_at),
        last_activity_at=as_utc(guest.last_activity_at),
        left_at=as_utc(guest.left_at),
        is_active=guest.is_recently_active(settings.guest_activity_window_minutes),
    )


def build_cart_item(cart_item: CartItem) -> CartItemOutput:
    """Cart lines show the current menu price; the order snapshots it at submission."""
    unit_price = to_decimal(cart_item.menu_item.price)
    if cart_item.variation is not None:
        unit_price += to_decimal(cart_item.variation.price_adjustment)
    return CartItemOutput(
        id=cart_item.id,
        guest_id=cart_item.guest_id,
        guest_name=cart_item.guest.guest_name,
        menu_item_id=cart_item.menu_item_id,
        menu_item_name=cart_item.menu_item.name,
        variation_id=cart_item.variation_id,
        variation_name=cart_item.variation.name if cart_item.variation else None,
        quantity=cart_item.quantity,
        unit_price=round_money(unit_price),
        total_price=round_money(line_total(unit_price, cart_item.quantity)),
        special_instructions=cart_item.special_instructions,
        created_at=as_utc(cart_item.created_at),
    )


def build_order(order: Order) -> OrderOutput:
    return OrderOutput(
        id=order.id,
        session_id=order.session_id,
        order_number=order.order_number,
        submitted_by_guest_id=order.submitted_by_guest_id,
        status=order.status,
        subtotal=round_money(order.subtotal),
        submitted_at=as_utc(order.submitted_at),
        items=[
            OrderItemOutput(
                id=item.id,
                menu_item_id=item.menu_item_id,
                variation_id=item.variation_id,
                guest_id=item.guest_id,
                guest_name=item.guest_name,
                item_name=item.item_name,
                variation_name=item.variation_name,
                unit_price=round_money(item.unit_price),
                quantity=item.quantity,
                total_price=round_money(item.total_price),
                special_instructions=item.special_instructions,
                status=item.status,
            )
            for item in order.items
        ],
    )


def build_session(session: DiningSession) -> SessionOutput:
    total = round_money(session.total_amount)
    tip = round_money(session.tip_amount)
    return SessionOutput(
        id=session.id,
        restaurant_id=session.restaurant_id,
        table_id=session.table_id,
        table_number=session.table.table_number if session.table else None,
        session_code=session.session_code,
        status=session.status,
        guest_count=session.guest_count,
        host_name=session.host_name,
        subtotal=round_money(session.subtotal),
        tax_amount=round_money(session.tax_amount),
        service_charge_amount=round_money(session.service_charge_amount),
        tip_amount=tip,
        total_amount=total,
        grand_total=total + tip,
        payment_status=session.payment_status,
        waiter_called=session.waiter_called,
        waiter_call_time=as_utc(session.waiter_call_time),
        waiter_response_time=as_utc(session.waiter_response_time),
        started_at=as_utc(session.started_at),
        ended_at=as_utc(session.ended_at),
        last_activity_at=as_utc(session.last_activity_at),
        duration_minutes=session.duration_minutes(),
        cart_version=session.cart_version,
    )


def build_session_details(session: DiningSession) -> SessionDetailsOutput:
    return SessionDetailsOutput(
        session=build_session(session),
        table=build_table(session.table) if session.table else None,
        guests=[build_guest(guest) for guest in session.guests],
        cart_items=[build_cart_item(item) for item in session.cart_items],
        orders=[build_order(order) for order in session.orders],
    )


def build_history_item(entry: SessionHistoryEntry) -> SessionHistoryItem:
    return SessionHistoryItem(
        session=build_session(entry.session),
        duration_minutes=entry.duration_minutes,
        total_orders=entry.total_orders,
        average_order_value=entry.average_order_value,
    )


def build_analytics(analytics: SessionAnalytics) -> SessionAnalyticsOutput:
    return SessionAnalyticsOutput(
        time_range=analytics.time_range,
        start_date=analytics.start_date,
        end_date=analytics.end_date,
        total_sessions=analytics.total_sessions,
        active_sessions=analytics.active_sessions,
        completed_sessions=analytics.completed_sessions,
        cancelled_sessions=analytics.cancelled_sessions,
        total_guests=analytics.total_guests,
        average_guests_per_session=analytics.average_guests_per_session,
        average_session_duration_minutes=analytics.average_session_duration_minutes,
        total_revenue=round_money(analytics.total_revenue),
        average_spend_per_session=analytics.average_spend_per_session,
        average_spend_per_guest=analytics.average_spend_per_guest,
        total_tips=round_money(analytics.total_tips),
        waiter_calls=analytics.waiter_calls,
        peak_hours=analytics.peak_hours,
    )
