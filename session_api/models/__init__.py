"""
SQLAlchemy ORM Models Package.

- base: Base class, TimestampMixin, id/time helpers
- restaurant: Restaurant, MenuItem, MenuItemVariation
- table: RestaurantTable
- session: DiningSession, SessionGuest
- cart: CartItem
- order: Order, OrderItem
- user: StaffUser
"""

from .base import Base, TimestampMixin, new_id, utcnow, as_utc
from .restaurant import Restaurant, MenuItem, MenuItemVariation
from .table import RestaurantTable
from .session import DiningSession, SessionGuest
from .cart import CartItem
from .order import Order, OrderItem
from .user import StaffUser

__all__ = [
    "Base",
    "TimestampMixin",
    "new_id",
    "utcnow",
    "as_utc",
    "Restaurant",
    "MenuItem",
    "MenuItemVariation",
    "RestaurantTable",
    "DiningSession",
    "SessionGuest",
    "CartItem",
    "Order",
    "OrderItem",
    "StaffUser",
]
