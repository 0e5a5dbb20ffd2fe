"""
Order models: Order, OrderItem.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import OrderStatus
from .base import Base, TimestampMixin, id_column

if TYPE_CHECKING:
    from .session import DiningSession


class Order(TimestampMixin, Base):
    """
    A submitted batch of cart items.

    Immutable apart from status: items, prices and quantities never change
    after submission.
    """

    # "order" is a reserved SQL keyword
    __tablename__ = "dining_order"

    id: Mapped[str] = id_column()
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dining_session.id"), nullable=False, index=True
    )
    restaurant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant.id"), nullable=False, index=True
    )
    order_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    submitted_by_guest_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("session_guest.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING, nullable=False, index=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    session: Mapped["DiningSession"] = relationship(back_populates="orders")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", order_by="OrderItem.position"
    )

    @property
    def counts_toward_total(self) -> bool:
        return self.status != OrderStatus.CANCELLED

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number} status={self.status}>"


class OrderItem(TimestampMixin, Base):
    """
    One line of a submitted order, with name and price snapshotted at
    submission so later menu edits never change historical totals.
    """

    __tablename__ = "order_item"

    id: Mapped[str] = id_column()
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dining_order.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    menu_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("menu_item.id"), nullable=False)
    variation_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("menu_item_variation.id"), nullable=True
    )
    guest_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("session_guest.id"), nullable=True
    )
    guest_name: Mapped[Optional[str]] = mapped_column(String(100))
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    variation_name: Mapped[Optional[str]] = mapped_column(String(100))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")
