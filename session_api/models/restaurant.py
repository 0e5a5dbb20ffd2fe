"""
Restaurant and menu models: Restaurant, MenuItem, MenuItemVariation.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, id_column

if TYPE_CHECKING:
    from .table import RestaurantTable


class Restaurant(TimestampMixin, Base):
    """
    A restaurant (tenant). Owns tables, menu and staff.
    Tax and service charge rates are fractions: 0.08 means 8%.
    """

    __tablename__ = "restaurant"

    id: Mapped[str] = id_column()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    currency_code: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), default=Decimal("0"), nullable=False)
    service_charge_rate: Mapped[Decimal] = mapped_column(
        Numeric(6, 4), default=Decimal("0"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    tables: Mapped[list["RestaurantTable"]] = relationship(back_populates="restaurant")
    menu_items: Mapped[list["MenuItem"]] = relationship(back_populates="restaurant")


class MenuItem(TimestampMixin, Base):
    """
    A dish or drink on the menu.
    is_active hides it permanently, is_available is the day-to-day "86" switch.
    """

    __tablename__ = "menu_item"

    id: Mapped[str] = id_column()
    restaurant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    restaurant: Mapped["Restaurant"] = relationship(back_populates="menu_items")
    variations: Mapped[list["MenuItemVariation"]] = relationship(
        back_populates="menu_item", order_by="MenuItemVariation.name"
    )

    @property
    def orderable(self) -> bool:
        return self.is_active and self.is_available


class MenuItemVariation(TimestampMixin, Base):
    """A size or style of a menu item, priced as an adjustment on the base price."""

    __tablename__ = "menu_item_variation"

    id: Mapped[str] = id_column()
    menu_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("menu_item.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price_adjustment: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    menu_item: Mapped["MenuItem"] = relationship(back_populates="variations")
