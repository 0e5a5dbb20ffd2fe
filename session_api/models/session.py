"""
Dining session models: DiningSession, SessionGuest.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import PaymentStatus, SessionStatus
from .base import Base, TimestampMixin, as_utc, id_column, utcnow

if TYPE_CHECKING:
    from .cart import CartItem
    from .order import Order
    from .table import RestaurantTable


class DiningSession(TimestampMixin, Base):
    """
    The unit of shared ordering at one table.

    Totals are derived from the session's non-cancelled orders and written
    only by CartService.recompute_totals(). tax_amount and
    service_charge_amount are stored unrounded; total_amount is rounded
    half-up to cents.
    """

    __tablename__ = "dining_session"

    id: Mapped[str] = id_column()
    restaurant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant.id"), nullable=False, index=True
    )
    table_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant_table.id"), nullable=False, index=True
    )
    session_code: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SessionStatus.ACTIVE, nullable=False, index=True
    )
    guest_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    host_name: Mapped[Optional[str]] = mapped_column(String(100))
    host_phone: Mapped[Optional[str]] = mapped_column(String(20))
    special_requests: Mapped[Optional[str]] = mapped_column(Text)

    # Aggregate totals
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(14, 6), default=Decimal("0"), nullable=False)
    service_charge_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 6), default=Decimal("0"), nullable=False
    )
    tip_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    payment_status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING, nullable=False
    )

    # Waiter calls
    waiter_called: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    waiter_call_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    waiter_response_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    waiter_call_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    end_reason: Mapped[Optional[str]] = mapped_column(String(255))

    # Incremented on every cart change so clients can detect stale carts
    cart_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("ix_session_restaurant_status", "restaurant_id", "status"),
        Index("ix_session_restaurant_started", "restaurant_id", "started_at"),
    )

    table: Mapped["RestaurantTable"] = relationship(back_populates="sessions")
    guests: Mapped[list["SessionGuest"]] = relationship(
        back_populates="session", order_by="SessionGuest.joined_at"
    )
    cart_items: Mapped[list["CartItem"]] = relationship(
        back_populates="session", order_by="CartItem.created_at"
    )
    orders: Mapped[list["Order"]] = relationship(
        back_populates="session", order_by="Order.created_at"
    )

    @property
    def is_open(self) -> bool:
        return self.status in SessionStatus.OPEN

    @property
    def is_terminal(self) -> bool:
        return self.status in SessionStatus.TERMINAL

    def duration_minutes(self, now: datetime | None = None) -> int:
        end = as_utc(self.ended_at) or now or utcnow()
        return int((end - as_utc(self.started_at)).total_seconds() // 60)

    def touch(self) -> None:
        self.last_activity_at = utcnow()

    def __repr__(self) -> str:
        return f"<DiningSession id={self.id} code={self.session_code} status={self.status}>"


class SessionGuest(TimestampMixin, Base):
    """
    One participant of a dining session.

    The join token is a capability credential: only its SHA-256 digest is
    stored, and setting left_at revokes it.
    """

    __tablename__ = "session_guest"

    id: Mapped[str] = id_column()
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dining_session.id"), nullable=False, index=True
    )
    guest_name: Mapped[str] = mapped_column(String(100), nullable=False)
    guest_phone: Mapped[Optional[str]] = mapped_column(String(20))
    is_host: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    token_hash: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    left_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    session: Mapped["DiningSession"] = relationship(back_populates="guests")

    @property
    def has_left(self) -> bool:
        return self.left_at is not None

    def is_recently_active(self, window_minutes: int, now: datetime | None = None) -> bool:
        if self.has_left:
            return False
        now = now or utcnow()
        return (now - as_utc(self.last_activity_at)).total_seconds() <= window_minutes * 60

    def __repr__(self) -> str:
        return f"<SessionGuest id={self.id} name={self.guest_name!r} host={self.is_host}>"
