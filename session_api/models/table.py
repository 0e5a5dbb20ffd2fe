"""
Table model: RestaurantTable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import TableStatus
from .base import Base, TimestampMixin, id_column

if TYPE_CHECKING:
    from .restaurant import Restaurant
    from .session import DiningSession


class RestaurantTable(TimestampMixin, Base):
    """
    Physical table in a restaurant, addressed by an opaque QR code.

    current_session_id points at the open session seated here, if any. Only
    the session lifecycle writes it.
    """

    # "table" is a reserved SQL keyword
    __tablename__ = "restaurant_table"

    id: Mapped[str] = id_column()
    restaurant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("restaurant.id"), nullable=False, index=True
    )
    table_number: Mapped[str] = mapped_column(String(20), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    location_description: Mapped[Optional[str]] = mapped_column(String(255))
    qr_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=TableStatus.AVAILABLE, nullable=False, index=True
    )
    # No FK: the session row references the table, the pointer is denormalized
    current_session_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "table_number", name="uq_table_restaurant_number"),
        Index("ix_table_restaurant_status", "restaurant_id", "status"),
    )

    restaurant: Mapped["Restaurant"] = relationship(back_populates="tables")
    sessions: Mapped[list["DiningSession"]] = relationship(back_populates="table")

    @property
    def enabled(self) -> bool:
        return self.is_active and self.status != TableStatus.OUT_OF_SERVICE

    def __repr__(self) -> str:
        return f"<RestaurantTable id={self.id} number={self.table_number} status={self.status}>"
