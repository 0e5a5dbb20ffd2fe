"""
Cart model: CartItem.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, id_column

if TYPE_CHECKING:
    from .restaurant import MenuItem, MenuItemVariation
    from .session import DiningSession, SessionGuest


class CartItem(TimestampMixin, Base):
    """
    An unsubmitted contribution of one guest to the shared cart.
    Prices are not stored here; they are snapshotted when the order is submitted.
    """

    __tablename__ = "cart_item"

    id: Mapped[str] = id_column()
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("dining_session.id"), nullable=False, index=True
    )
    guest_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("session_guest.id"), nullable=False, index=True
    )
    menu_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("menu_item.id"), nullable=False
    )
    variation_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("menu_item_variation.id"), nullable=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text)

    session: Mapped["DiningSession"] = relationship(back_populates="cart_items")
    guest: Mapped["SessionGuest"] = relationship()
    menu_item: Mapped["MenuItem"] = relationship()
    variation: Mapped[Optional["MenuItemVariation"]] = relationship()
