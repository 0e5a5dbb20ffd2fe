"""
Shared Pydantic schemas used across the application.

Every schema serializes with camelCase keys; request bodies accept both
camelCase and snake_case. Money is Decimal and leaves the API as a string
with two decimals.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from shared.config.constants import Limits


class CamelModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Common Types
# =============================================================================

Role = Literal["ADMIN", "MANAGER", "WAITER"]
SessionStatusLiteral = Literal["ACTIVE", "PAUSED", "AWAITING_PAYMENT", "COMPLETED", "CANCELLED"]
OrderStatusLiteral = Literal["PENDING", "CONFIRMED", "PREPARING", "READY", "SERVED", "COMPLETED", "CANCELLED"]
TableStatusLiteral = Literal["AVAILABLE", "OCCUPIED", "OUT_OF_SERVICE"]


# =============================================================================
# Authentication Schemas
# =============================================================================


class LoginRequest(CamelModel):
    """Staff login request body."""

    email: EmailStr
    password: str = Field(min_length=1)


class StaffUserOutput(CamelModel):
    id: str
    email: str
    full_name: str | None = None
    role: Role
    restaurant_id: str


class LoginResponse(CamelModel):
    """Login response with access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int  # seconds
    user: StaffUserOutput


class RefreshTokenRequest(CamelModel):
    refresh_token: str


class StaffContextOutput(CamelModel):
    """The caller as seen by the staff guard."""

    user_id: str
    restaurant_id: str
    role: Role
    email: str | None = None


# =============================================================================
# Restaurant, Menu and Table Schemas
# =============================================================================


class RestaurantOutput(CamelModel):
    id: str
    name: str
    slug: str
    currency_code: str
    tax_rate: Decimal
    service_charge_rate: Decimal


class MenuVariationOutput(CamelModel):
    id: str
    name: str
    price_adjustment: Decimal
    is_default: bool


class MenuItemOutput(CamelModel):
    id: str
    name: str
    description: str | None = None
    category: str | None = None
    price: Decimal
    variations: list[MenuVariationOutput] = []


class MenuOutput(CamelModel):
    restaurant: RestaurantOutput
    items: list[MenuItemOutput]


class TableOutput(CamelModel):
    id: str
    restaurant_id: str
    table_number: str
    capacity: int
    location_description: str | None = None
    qr_code: str
    status: TableStatusLiteral
    is_active: bool
    current_session_id: str | None = None


class CreateTableRequest(CamelModel):
    restaurant_id: str
    table_number: str = Field(min_length=1, max_length=20)
    capacity: int = Field(default=4, ge=1, le=50)
    location_description: str | None = Field(default=None, max_length=255)


# =============================================================================
# Session Schemas
# =============================================================================


class GuestOutput(CamelModel):
    id: str
    guest_name: str
    is_host: bool
    joined_at: datetime
    last_activity_at: datetime
    left_at: datetime | None = None
    is_active: bool


class CartItemOutput(CamelModel):
    id: str
    guest_id: str
    guest_name: str
    menu_item_id: str
    menu_item_name: str
    variation_id: str | None = None
    variation_name: str | None = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    special_instructions: str | None = None
    created_at: datetime


class OrderItemOutput(CamelModel):
    id: str
    menu_item_id: str
    variation_id: str | None = None
    guest_id: str | None = None
    guest_name: str | None = None
    item_name: str
    variation_name: str | None = None
    unit_price: Decimal
    quantity: int
    total_price: Decimal
    special_instructions: str | None = None
    status: OrderStatusLiteral


class OrderOutput(CamelModel):
    id: str
    session_id: str
    order_number: str
    submitted_by_guest_id: str | None = None
    status: OrderStatusLiteral
    subtotal: Decimal
    submitted_at: datetime
    items: list[OrderItemOutput]


class SessionOutput(CamelModel):
    id: str
    restaurant_id: str
    table_id: str
    table_number: str | None = None
    session_code: str
    status: SessionStatusLiteral
    guest_count: int
    host_name: str | None = None
    subtotal: Decimal
    tax_amount: Decimal
    service_charge_amount: Decimal
    tip_amount: Decimal
    total_amount: Decimal
    grand_total: Decimal
    payment_status: str
    waiter_called: bool
    waiter_call_time: datetime | None = None
    waiter_response_time: datetime | None = None
    started_at: datetime
    ended_at: datetime | None = None
    last_activity_at: datetime
    duration_minutes: int
    cart_version: int


class SessionDetailsOutput(CamelModel):
    session: SessionOutput
    table: TableOutput | None = None
    guests: list[GuestOutput]
    cart_items: list[CartItemOutput]
    orders: list[OrderOutput]


class SessionSummaryOutput(CamelModel):
    """Public view of a session looked up by code or table."""

    session_id: str
    session_code: str
    status: SessionStatusLiteral
    restaurant_id: str
    restaurant_name: str
    table_number: str
    guest_count: int
    host_name: str | None = None


class JoinSessionRequest(CamelModel):
    """Join by scanned table QR code or by shared session code."""

    table_qr_code: str | None = None
    session_code: str | None = None
    guest_name: str
    guest_phone: str | None = None
    restaurant_id: str | None = None


class JoinSessionResponse(CamelModel):
    session_id: str
    # Shareable code other guests use to join
    session_token: str
    session_code: str
    guest_token: str
    guest_id: str
    guest_name: str
    is_host: bool
    created: bool
    session: SessionOutput
    table: TableOutput
    guests: list[GuestOutput]
    cart_items: list[CartItemOutput]
    orders: list[OrderOutput]


class AddCartItemRequest(CamelModel):
    menu_item_id: str
    variation_id: str | None = None
    quantity: int = 1
    special_instructions: str | None = None


class UpdateCartItemRequest(CamelModel):
    quantity: int
    special_instructions: str | None = None


class CartOutput(CamelModel):
    session_id: str
    cart_version: int
    items: list[CartItemOutput]


class SubmitOrderRequest(CamelModel):
    include_all_guests: bool = False


class SubmitOrderResponse(CamelModel):
    order: OrderOutput
    session: SessionOutput


class TipRequest(CamelModel):
    amount: Decimal = Field(le=Limits.MAX_TIP)


class WaiterCallOutput(CamelModel):
    session_id: str
    waiter_called: bool
    waiter_call_time: datetime | None = None
    waiter_response_time: datetime | None = None
    changed: bool


class LeaveSessionResponse(CamelModel):
    session_id: str
    guest_id: str
    left_at: datetime


# =============================================================================
# Staff Schemas
# =============================================================================


class CloseSessionRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=255)


class OrderStatusRequest(CamelModel):
    status: OrderStatusLiteral


class SessionHistoryItem(CamelModel):
    session: SessionOutput
    duration_minutes: int
    total_orders: int
    average_order_value: Decimal


class SessionHistoryPage(CamelModel):
    items: list[SessionHistoryItem]
    page: int
    size: int
    total: int
    total_pages: int


class SessionAnalyticsOutput(CamelModel):
    time_range: str
    start_date: datetime | None = None
    end_date: datetime
    total_sessions: int
    active_sessions: int
    completed_sessions: int
    cancelled_sessions: int
    total_guests: int
    average_guests_per_session: Decimal
    average_session_duration_minutes: int
    total_revenue: Decimal
    average_spend_per_session: Decimal
    average_spend_per_guest: Decimal
    total_tips: Decimal
    waiter_calls: int
    peak_hours: dict[int, int]


