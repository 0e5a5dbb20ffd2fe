"""
Shared Cart & Order Aggregator.

Merges per-guest cart contributions into one session-level order ledger and
keeps the session's aggregate totals in sync with it. Every write runs under
the per-session lock with the session row locked FOR UPDATE, so two guests
adding to the cart at the same time never lose an update.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from shared.config.constants import Limits, OrderStatus, SessionStatus
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from shared.infrastructure.locks import KeyedLockRegistry, session_key, session_locks
from shared.utils.exceptions import (
    CartItemNotFoundError,
    EmptyCartError,
    ForbiddenError,
    InvalidTransitionError,
    MenuItemNotFoundError,
    OrderNotFoundError,
    SessionClosedError,
    ValidationError,
)
from shared.utils.money import SessionTotals, compute_totals, line_total, round_money, to_decimal
from session_api.models import (
    CartItem,
    DiningSession,
    MenuItem,
    MenuItemVariation,
    Order,
    OrderItem,
    Restaurant,
    SessionGuest,
    utcnow,
)
from session_api.services.domain.membership_service import GuestMembershipService

logger = get_logger(__name__)

# Tips are accepted while the guests are still at the table
TIPPABLE_STATUSES = frozenset({SessionStatus.ACTIVE, SessionStatus.AWAITING_PAYMENT})


def validate_quantity(quantity: int) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValidationError("Quantity must be an integer", field="quantity")
    if quantity < Limits.MIN_QUANTITY or quantity > Limits.MAX_QUANTITY:
        raise ValidationError(
            f"Quantity must be between {Limits.MIN_QUANTITY} and {Limits.MAX_QUANTITY}",
            field="quantity",
            value=quantity,
        )
    return quantity


def clean_instructions(text: str | None) -> str | None:
    cleaned = (text or "").strip()
    if not cleaned:
        return None
    if len(cleaned) > Limits.MAX_INSTRUCTIONS_LENGTH:
        raise ValidationError(
            f"Special instructions must be at most {Limits.MAX_INSTRUCTIONS_LENGTH} characters",
            field="specialInstructions",
        )
    return cleaned


def _eq_or_null(column, value):
    return column.is_(None) if value is None else column == value


class CartService:
    """Domain service for the shared cart, order submission and session totals."""

    def __init__(self, db: Session, locks: KeyedLockRegistry = session_locks):
        self._db = db
        self._locks = locks
        self._membership = GuestMembershipService(db, locks)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_active(self, session: DiningSession) -> None:
        if session.status != SessionStatus.ACTIVE:
            raise SessionClosedError(session.id, session.status)

    def _resolve_menu_item(
        self,
        session: DiningSession,
        menu_item_id: str,
        variation_id: str | None,
    ) -> tuple[MenuItem, MenuItemVariation | None]:
        """Menu item must belong to the session's restaurant and be orderable right now."""
        item = self._db.get(MenuItem, menu_item_id)
        if item is None or item.restaurant_id != session.restaurant_id:
            raise MenuItemNotFoundError(menu_item_id, session_id=session.id)
        if not item.orderable:
            raise ValidationError(
                f"{item.name} is not available",
                menu_item_id=menu_item_id,
                details={"menuItemId": menu_item_id},
            )

        variation = None
        if variation_id is not None:
            variation = self._db.get(MenuItemVariation, variation_id)
            if variation is None or variation.menu_item_id != item.id:
                raise MenuItemNotFoundError(variation_id, entity="Variation", menu_item_id=menu_item_id)
            if not variation.is_active:
                raise ValidationError(
                    f"{item.name} ({variation.name}) is not available",
                    variation_id=variation_id,
                    details={"menuItemId": menu_item_id, "variationId": variation_id},
                )
        return item, variation

    def _get_cart_item(self, session_id: str, item_id: str) -> CartItem:
        cart_item = self._db.scalar(
            select(CartItem).where(CartItem.id == item_id, CartItem.session_id == session_id)
        )
        if cart_item is None:
            raise CartItemNotFoundError(item_id, session_id=session_id)
        return cart_item

    def _require_line_owner(self, guest: SessionGuest, cart_item: CartItem) -> None:
        """Guests change their own lines; the host may change any line."""
        if cart_item.guest_id != guest.id and not guest.is_host:
            raise ForbiddenError("change another guest's cart item", guest_id=guest.id, cart_item_id=cart_item.id)

    # =========================================================================
    # Cart
    # =========================================================================

    def list_cart(self, session_id: str) -> list[CartItem]:
        return list(
            self._db.scalars(
                select(CartItem)
                .options(
                    selectinload(CartItem.menu_item),
                    selectinload(CartItem.variation),
                    selectinload(CartItem.guest),
                )
                .where(CartItem.session_id == session_id)
                .order_by(CartItem.created_at)
            ).all()
        )

    def add_to_cart(
        self,
        token: str | None,
        session_id: str,
        menu_item_id: str,
        variation_id: str | None = None,
        quantity: int = 1,
        special_instructions: str | None = None,
    ) -> CartItem:
        """
        Add a line to the guest's part of the shared cart.

        The same item, variation and instructions from the same guest merge
        into the existing line.
        """
        validate_quantity(quantity)
        instructions = clean_instructions(special_instructions)

        with self._locks.hold(session_key(session_id)):
            guest = self._membership.require_member(token, session_id)
            session = self._membership.lock_session(session_id)
            self._require_active(session)
            self._resolve_menu_item(session, menu_item_id, variation_id)

            cart_item = self._db.scalar(
                select(CartItem).where(
                    CartItem.session_id == session_id,
                    CartItem.guest_id == guest.id,
                    CartItem.menu_item_id == menu_item_id,
                    _eq_or_null(CartItem.variation_id, variation_id),
                    _eq_or_null(CartItem.special_instructions, instructions),
                )
            )
            if cart_item is not None:
                merged = cart_item.quantity + quantity
                if merged > Limits.MAX_QUANTITY:
                    raise ValidationError(
                        f"Quantity must be between {Limits.MIN_QUANTITY} and {Limits.MAX_QUANTITY}",
                        field="quantity",
                        value=merged,
                    )
                cart_item.quantity = merged
            else:
                cart_item = CartItem(
                    session_id=session_id,
                    guest_id=guest.id,
                    menu_item_id=menu_item_id,
                    variation_id=variation_id,
                    quantity=quantity,
                    special_instructions=instructions,
                )
                self._db.add(cart_item)

            session.cart_version += 1
            self._membership.touch(guest)
            safe_commit(self._db)
            self._db.refresh(cart_item)

        logger.info(
            "Cart item added",
            session_id=session_id,
            guest_id=guest.id,
            cart_item_id=cart_item.id,
            quantity=cart_item.quantity,
        )
        return cart_item

    def update_cart_item(
        self,
        token: str | None,
        session_id: str,
        item_id: str,
        quantity: int,
        special_instructions: str | None = None,
    ) -> CartItem:
        """Set the quantity (and optionally the instructions) of a cart line."""
        validate_quantity(quantity)

        with self._locks.hold(session_key(session_id)):
            guest = self._membership.require_member(token, session_id)
            session = self._membership.lock_session(session_id)
            self._require_active(session)
            cart_item = self._get_cart_item(session_id, item_id)
            self._require_line_owner(guest, cart_item)

            cart_item.quantity = quantity
            if special_instructions is not None:
                cart_item.special_instructions = clean_instructions(special_instructions)

            session.cart_version += 1
            self._membership.touch(guest)
            safe_commit(self._db)
            self._db.refresh(cart_item)

        logger.info("Cart item updated", session_id=session_id, cart_item_id=item_id, quantity=quantity)
        return cart_item

    def remove_cart_item(self, token: str | None, session_id: str, item_id: str) -> None:
        with self._locks.hold(session_key(session_id)):
            guest = self._membership.require_member(token, session_id)
            session = self._membership.lock_session(session_id)
            self._require_active(session)
            cart_item = self._get_cart_item(session_id, item_id)
            self._require_line_owner(guest, cart_item)

            self._db.delete(cart_item)
            session.cart_version += 1
            self._membership.touch(guest)
            safe_commit(self._db)

        logger.info("Cart item removed", session_id=session_id, cart_item_id=item_id, guest_id=guest.id)

    # =========================================================================
    # Orders
    # =========================================================================

    def submit_order(
        self,
        token: str | None,
        session_id: str,
        include_all_guests: bool = False,
    ) -> Order:
        """
        Convert pending cart lines into one immutable order.

        By default only the submitting guest's lines are sent; with
        ``include_all_guests`` the whole shared cart goes in one order.
        Prices and names are snapshotted from the menu at this moment.

        Raises:
            EmptyCartError: Nothing pending for the submitter.
            SessionClosedError: Session is not ACTIVE.
            ValidationError: An item became unavailable since it was added.
        """
        with self._locks.hold(session_key(session_id)):
            guest = self._membership.require_member(token, session_id)
            session = self._membership.lock_session(session_id)
            self._require_active(session)

            stmt = (
                select(CartItem)
                .options(selectinload(CartItem.guest))
                .where(CartItem.session_id == session_id)
                .order_by(CartItem.created_at)
            )
            if not include_all_guests:
                stmt = stmt.where(CartItem.guest_id == guest.id)
            cart_items = list(self._db.scalars(stmt).all())
            if not cart_items:
                raise EmptyCartError(session_id, guest_id=guest.id)

            order_count = self._db.scalar(
                select(func.count(Order.id)).where(Order.session_id == session_id)
            )
            now = utcnow()
            order = Order(
                session_id=session_id,
                restaurant_id=session.restaurant_id,
                order_number=f"{session.session_code}-{order_count + 1:02d}",
                submitted_by_guest_id=guest.id,
                status=OrderStatus.PENDING,
                subtotal=Decimal("0"),
                submitted_at=now,
            )
            self._db.add(order)

            subtotal = Decimal("0")
            for position, cart_item in enumerate(cart_items):
                item, variation = self._resolve_menu_item(
                    session, cart_item.menu_item_id, cart_item.variation_id
                )
                unit_price = to_decimal(item.price)
                if variation is not None:
                    unit_price += to_decimal(variation.price_adjustment)
                if unit_price < 0:
                    raise ValidationError(f"{item.name} has a negative price", menu_item_id=item.id)

                total_price = line_total(unit_price, cart_item.quantity)
                order.items.append(
                    OrderItem(
                        position=position,
                        menu_item_id=item.id,
                        variation_id=variation.id if variation else None,
                        guest_id=cart_item.guest_id,
                        guest_name=cart_item.guest.guest_name,
                        item_name=item.name,
                        variation_name=variation.name if variation else None,
                        unit_price=unit_price,
                        quantity=cart_item.quantity,
                        total_price=total_price,
                        special_instructions=cart_item.special_instructions,
                        status=OrderStatus.PENDING,
                    )
                )
                subtotal += total_price
                self._db.delete(cart_item)

            order.subtotal = subtotal
            session.cart_version += 1
            self._membership.touch(guest)
            totals = self._recompute(session)
            safe_commit(self._db)
            self._db.refresh(order)

        logger.info(
            "Order submitted",
            session_id=session_id,
            order_id=order.id,
            order_number=order.order_number,
            items=len(cart_items),
            order_subtotal=str(subtotal),
            session_total=str(totals.total),
        )
        return order

    def list_orders(self, session_id: str) -> list[Order]:
        return list(
            self._db.scalars(
                select(Order)
                .options(selectinload(Order.items))
                .where(Order.session_id == session_id)
                .order_by(Order.submitted_at)
            ).all()
        )

    def update_order_status(self, session_id: str, order_id: str, new_status: str) -> Order:
        """
        Staff moves an order along the kitchen progression.

        Forward-only along PENDING -> CONFIRMED -> PREPARING -> READY -> SERVED
        -> COMPLETED. CANCELLED only from PENDING or CONFIRMED while the
        session is open; cancelling takes the order out of the totals.
        Setting the current status again is a no-op.
        """
        if new_status not in OrderStatus.ALL:
            raise ValidationError(f"Unknown order status '{new_status}'", field="status")

        with self._locks.hold(session_key(session_id)):
            session = self._membership.lock_session(session_id)
            order = self._db.scalar(
                select(Order)
                .options(selectinload(Order.items))
                .where(Order.id == order_id, Order.session_id == session_id)
            )
            if order is None:
                raise OrderNotFoundError(order_id, session_id=session_id)

            if order.status == new_status:
                return order

            if new_status == OrderStatus.CANCELLED:
                if order.status not in OrderStatus.CANCELLABLE or session.is_terminal:
                    raise InvalidTransitionError("Order", order.status, new_status, order_id=order_id)
            elif order.status == OrderStatus.CANCELLED or (
                OrderStatus.PROGRESSION.index(new_status) < OrderStatus.PROGRESSION.index(order.status)
            ):
                raise InvalidTransitionError("Order", order.status, new_status, order_id=order_id)

            previous = order.status
            order.status = new_status
            order.status_changed_at = utcnow()
            for item in order.items:
                item.status = new_status

            if new_status == OrderStatus.CANCELLED:
                self._recompute(session)
            safe_commit(self._db)
            self._db.refresh(order)

        logger.info(
            "Order status changed",
            session_id=session_id,
            order_id=order_id,
            from_status=previous,
            to_status=new_status,
        )
        return order

    # =========================================================================
    # Totals
    # =========================================================================

    def _recompute(self, session: DiningSession) -> SessionTotals:
        """Recompute and assign totals. Caller holds the session lock and commits."""
        self._db.flush()
        line_totals = self._db.scalars(
            select(OrderItem.total_price)
            .join(Order, OrderItem.order_id == Order.id)
            .where(
                Order.session_id == session.id,
                Order.status != OrderStatus.CANCELLED,
            )
        ).all()
        restaurant = self._db.get(Restaurant, session.restaurant_id)
        totals = compute_totals(line_totals, restaurant.tax_rate, restaurant.service_charge_rate)

        session.subtotal = totals.subtotal
        session.tax_amount = totals.tax
        session.service_charge_amount = totals.service_charge
        session.total_amount = totals.total
        return totals

    def recompute_totals(self, session_id: str) -> SessionTotals:
        """subtotal, tax, service charge and total from the session's live orders."""
        with self._locks.hold(session_key(session_id)):
            session = self._membership.lock_session(session_id)
            totals = self._recompute(session)
            safe_commit(self._db)
        return totals

    def recompute_locked(self, session: DiningSession) -> SessionTotals:
        """recompute_totals() for callers already holding the session lock."""
        return self._recompute(session)

    def set_tip(self, token: str | None, session_id: str, amount: Decimal | int | str | float) -> DiningSession:
        """Tip is entered separately and never derived from the subtotal."""
        try:
            tip = round_money(amount)
        except ValueError:
            raise ValidationError("Tip must be a number", field="amount")
        if tip < 0:
            raise ValidationError("Tip cannot be negative", field="amount")
        if tip > Limits.MAX_TIP:
            raise ValidationError(f"Tip cannot exceed {Limits.MAX_TIP}", field="amount")

        with self._locks.hold(session_key(session_id)):
            guest = self._membership.require_member(token, session_id)
            session = self._membership.lock_session(session_id)
            if session.status not in TIPPABLE_STATUSES:
                raise SessionClosedError(session.id, session.status)

            session.tip_amount = tip
            self._membership.touch(guest)
            safe_commit(self._db)
            self._db.refresh(session)

        logger.info("Tip updated", session_id=session_id, guest_id=guest.id, tip=str(tip))
        return session
