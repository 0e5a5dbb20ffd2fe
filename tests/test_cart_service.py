"""
Tests for the CartService domain service: shared cart, order submission and
session totals.
"""

from decimal import Decimal

import pytest

from shared.config.constants import OrderStatus, SessionStatus
from shared.utils.exceptions import (
    EmptyCartError,
    ForbiddenError,
    InvalidTransitionError,
    MenuItemNotFoundError,
    SessionClosedError,
    ValidationError,
)
from shared.utils.money import round_money
from session_api.services.domain import CartService, SessionLifecycleService


def _session_subtotal_from_orders(session):
    return sum(
        (
            item.unit_price * item.quantity
            for order in session.orders
            if order.status != OrderStatus.CANCELLED
            for item in order.items
        ),
        Decimal("0"),
    )


class TestAddToCart:
    """Tests for adding items to the shared cart."""

    def test_add_creates_line_and_bumps_version(self, db_session, cart, open_session, seed_menu):
        """Should add a line owned by the guest and bump cart_version."""
        session = open_session.session
        version = session.cart_version

        line = cart.add_to_cart(open_session.token, session.id, seed_menu["burger"].id, quantity=2)

        assert line.guest_id == open_session.guest.id
        assert line.quantity == 2
        db_session.refresh(session)
        assert session.cart_version == version + 1

    def test_same_item_merges(self, cart, open_session, seed_menu):
        """Should merge the same item from the same guest into one line."""
        session_id = open_session.session.id

        first = cart.add_to_cart(open_session.token, session_id, seed_menu["burger"].id, quantity=1)
        second = cart.add_to_cart(open_session.token, session_id, seed_menu["burger"].id, quantity=2)

        assert first.id == second.id
        assert second.quantity == 3
        assert len(cart.list_cart(session_id)) == 1

    def test_different_instructions_do_not_merge(self, cart, open_session, seed_menu):
        session_id = open_session.session.id

        cart.add_to_cart(open_session.token, session_id, seed_menu["burger"].id)
        cart.add_to_cart(open_session.token, session_id, seed_menu["burger"].id, special_instructions="No onions")

        assert len(cart.list_cart(session_id)) == 2

    def test_each_guest_gets_own_line(self, cart, lifecycle, open_session, seed_menu):
        """Should keep contributions of different guests apart."""
        session = open_session.session
        bob = lifecycle.join_by_code(session.session_code, "Bob")

        cart.add_to_cart(open_session.token, session.id, seed_menu["burger"].id)
        cart.add_to_cart(bob.token, session.id, seed_menu["burger"].id)

        owners = {line.guest_id for line in cart.list_cart(session.id)}
        assert owners == {open_session.guest.id, bob.guest.id}

    @pytest.mark.parametrize("quantity", [0, -1, 100])
    def test_quantity_bounds(self, cart, open_session, seed_menu, quantity):
        """Should reject quantities outside 1..99."""
        with pytest.raises(ValidationError):
            cart.add_to_cart(open_session.token, open_session.session.id, seed_menu["burger"].id, quantity=quantity)

    def test_merge_cannot_exceed_max_quantity(self, cart, open_session, seed_menu):
        session_id = open_session.session.id
        cart.add_to_cart(open_session.token, session_id, seed_menu["burger"].id, quantity=60)

        with pytest.raises(ValidationError):
            cart.add_to_cart(open_session.token, session_id, seed_menu["burger"].id, quantity=40)

    def test_unavailable_item_is_rejected(self, cart, open_session, seed_menu):
        with pytest.raises(ValidationError):
            cart.add_to_cart(open_session.token, open_session.session.id, seed_menu["soup"].id)

    def test_unknown_item_is_not_found(self, cart, open_session):
        with pytest.raises(MenuItemNotFoundError):
            cart.add_to_cart(open_session.token, open_session.session.id, "missing")

    def test_variation_of_other_item_is_not_found(self, cart, open_session, seed_menu):
        with pytest.raises(MenuItemNotFoundError):
            cart.add_to_cart(
                open_session.token,
                open_session.session.id,
                seed_menu["burger"].id,
                variation_id=seed_menu["pizza_large"].id,
            )

    def test_paused_session_rejects_cart_changes(self, cart, lifecycle, open_session, seed_menu):
        """Should raise SessionClosedError unless the session is ACTIVE."""
        lifecycle.pause(open_session.session.id)

        with pytest.raises(SessionClosedError):
            cart.add_to_cart(open_session.token, open_session.session.id, seed_menu["burger"].id)


class TestCartEdits:
    """Tests for updating and removing cart lines."""

    def test_owner_updates_quantity(self, cart, open_session, seed_menu):
        session_id = open_session.session.id
        line = cart.add_to_cart(open_session.token, session_id, seed_menu["burger"].id)

        updated = cart.update_cart_item(open_session.token, session_id, line.id, quantity=5)

        assert updated.quantity == 5

    def test_other_guest_cannot_edit_line(self, cart, lifecycle, open_session, seed_menu):
        """Should forbid a non-host guest from editing someone else's line."""
        session = open_session.session
        bob = lifecycle.join_by_code(session.session_code, "Bob")
        carol = lifecycle.join_by_code(session.session_code, "Carol")
        line = cart.add_to_cart(bob.token, session.id, seed_menu["burger"].id)

        with pytest.raises(ForbiddenError):
            cart.update_cart_item(carol.token, session.id, line.id, quantity=3)

    def test_host_can_remove_any_line(self, cart, lifecycle, open_session, seed_menu):
        """Should let the host remove another guest's line."""
        session = open_session.session
        bob = lifecycle.join_by_code(session.session_code, "Bob")
        line = cart.add_to_cart(bob.token, session.id, seed_menu["burger"].id)

        cart.remove_cart_item(open_session.token, session.id, line.id)

        assert cart.list_cart(session.id) == []


class TestSubmitOrder:
    """Tests for converting the cart into orders."""

    def test_alice_scenario_totals(self, db_session, seed_table, seed_menu):
        """Should total 2 x 8.99 with 8% tax and 10% service charge."""
        lifecycle = SessionLifecycleService(db_session, code_generator=lambda: "ABC123")
        cart = CartService(db_session)
        alice = lifecycle.create_or_join(seed_table.id, "Alice")
        assert alice.session.session_code == "ABC123"
        assert alice.guest.is_host

        cart.add_to_cart(alice.token, alice.session.id, seed_menu["burger"].id, quantity=2)
        order = cart.submit_order(alice.token, alice.session.id)

        session = alice.session
        db_session.refresh(session)
        assert order.order_number == "ABC123-01"
        assert session.subtotal == Decimal("17.98")
        assert round_money(session.tax_amount) == Decimal("1.44")
        assert round_money(session.service_charge_amount) == Decimal("1.80")
        # 17.98 + 1.4384 + 1.798, rounded once
        assert session.total_amount == Decimal("21.22")

    def test_bob_joins_by_code_and_both_orders_count(self, db_session, cart, lifecycle, open_session, seed_menu):
        """Should include every guest's submitted order in the session totals."""
        session = open_session.session
        bob = lifecycle.join_by_code(session.session_code.lower(), "Bob")
        assert bob.session.id == session.id

        cart.add_to_cart(open_session.token, session.id, seed_menu["burger"].id, quantity=2)
        cart.add_to_cart(bob.token, session.id, seed_menu["pizza"].id, variation_id=seed_menu["pizza_large"].id)
        cart.submit_order(open_session.token, session.id)
        cart.submit_order(bob.token, session.id)

        db_session.refresh(session)
        assert session.subtotal == Decimal("17.98") + Decimal("18.00")
        assert len(cart.list_orders(session.id)) == 2
        assert session.subtotal == _session_subtotal_from_orders(session)

    def test_submit_only_own_lines_by_default(self, cart, lifecycle, open_session, seed_menu):
        session = open_session.session
        bob = lifecycle.join_by_code(session.session_code, "Bob")
        cart.add_to_cart(open_session.token, session.id, seed_menu["burger"].id)
        cart.add_to_cart(bob.token, session.id, seed_menu["pizza"].id)

        order = cart.submit_order(open_session.token, session.id)

        assert [item.item_name for item in order.items] == ["Burger"]
        remaining = cart.list_cart(session.id)
        assert [line.guest_id for line in remaining] == [bob.guest.id]

    def test_submit_all_guests(self, cart, lifecycle, open_session, seed_menu):
        """Should send the whole shared cart in one order when asked."""
        session = open_session.session
        bob = lifecycle.join_by_code(session.session_code, "Bob")
        cart.add_to_cart(open_session.token, session.id, seed_menu["burger"].id)
        cart.add_to_cart(bob.token, session.id, seed_menu["pizza"].id)

        order = cart.submit_order(open_session.token, session.id, include_all_guests=True)

        assert {item.guest_name for item in order.items} == {"Alice", "Bob"}
        assert cart.list_cart(session.id) == []

    def test_empty_cart_raises(self, cart, open_session):
        with pytest.raises(EmptyCartError):
            cart.submit_order(open_session.token, open_session.session.id)

    def test_order_snapshots_prices(self, db_session, cart, open_session, seed_menu):
        """Should keep the submitted price when the menu changes later."""
        session = open_session.session
        cart.add_to_cart(open_session.token, session.id, seed_menu["burger"].id)
        order = cart.submit_order(open_session.token, session.id)

        seed_menu["burger"].price = Decimal("99.00")
        db_session.commit()
        cart.recompute_totals(session.id)

        db_session.refresh(order)
        db_session.refresh(session)
        assert order.items[0].unit_price == Decimal("8.99")
        assert session.subtotal == Decimal("8.99")


class TestOrderStatus:
    """Tests for staff order status changes."""

    def _submitted(self, cart, open_session, seed_menu):
        session = open_session.session
        cart.add_to_cart(open_session.token, session.id, seed_menu["burger"].id, quantity=2)
        return cart.submit_order(open_session.token, session.id)

    def test_forward_progression(self, cart, open_session, seed_menu):
        order = self._submitted(cart, open_session, seed_menu)

        order = cart.update_order_status(open_session.session.id, order.id, OrderStatus.CONFIRMED)
        order = cart.update_order_status(open_session.session.id, order.id, OrderStatus.READY)

        assert order.status == OrderStatus.READY
        assert all(item.status == OrderStatus.READY for item in order.items)

    def test_backwards_is_invalid(self, cart, open_session, seed_menu):
        order = self._submitted(cart, open_session, seed_menu)
        cart.update_order_status(open_session.session.id, order.id, OrderStatus.PREPARING)

        with pytest.raises(InvalidTransitionError):
            cart.update_order_status(open_session.session.id, order.id, OrderStatus.CONFIRMED)

    def test_cancel_removes_order_from_totals(self, db_session, cart, open_session, seed_menu):
        """Should drop a cancelled order out of the subtotal."""
        session = open_session.session
        order = self._submitted(cart, open_session, seed_menu)

        cart.update_order_status(session.id, order.id, OrderStatus.CANCELLED)

        db_session.refresh(session)
        assert session.subtotal == Decimal("0")
        assert session.total_amount == Decimal("0.00")

    def test_cannot_cancel_once_preparing(self, cart, open_session, seed_menu):
        order = self._submitted(cart, open_session, seed_menu)
        cart.update_order_status(open_session.session.id, order.id, OrderStatus.PREPARING)

        with pytest.raises(InvalidTransitionError):
            cart.update_order_status(open_session.session.id, order.id, OrderStatus.CANCELLED)

    def test_same_status_is_noop(self, cart, open_session, seed_menu):
        order = self._submitted(cart, open_session, seed_menu)

        again = cart.update_order_status(open_session.session.id, order.id, OrderStatus.PENDING)

        assert again.status == OrderStatus.PENDING

    def test_unknown_status_is_rejected(self, cart, open_session, seed_menu):
        order = self._submitted(cart, open_session, seed_menu)

        with pytest.raises(ValidationError):
            cart.update_order_status(open_session.session.id, order.id, "EATEN")


class TestTip:
    """Tests for the tip."""

    def test_tip_is_rounded_and_separate(self, db_session, cart, open_session, seed_menu):
        """Should store the tip apart from the total."""
        session = open_session.session
        cart.add_to_cart(open_session.token, session.id, seed_menu["burger"].id)
        cart.submit_order(open_session.token, session.id)

        updated = cart.set_tip(open_session.token, session.id, "2.505")

        assert updated.tip_amount == Decimal("2.51")
        assert updated.total_amount == round_money(Decimal("8.99") * Decimal("1.18"))

    def test_negative_tip_is_rejected(self, cart, open_session):
        with pytest.raises(ValidationError):
            cart.set_tip(open_session.token, open_session.session.id, "-1")

    @pytest.mark.parametrize("amount", ["100000", "1e30"])
    def test_oversized_tip_is_rejected(self, cart, open_session, amount):
        with pytest.raises(ValidationError):
            cart.set_tip(open_session.token, open_session.session.id, amount)

    def test_tip_allowed_while_awaiting_payment(self, cart, lifecycle, open_session):
        lifecycle.request_bill(open_session.session.id)

        session = cart.set_tip(open_session.token, open_session.session.id, 5)

        assert session.tip_amount == Decimal("5.00")
        assert session.status == SessionStatus.AWAITING_PAYMENT

    def test_tip_rejected_when_paused(self, cart, lifecycle, open_session):
        lifecycle.pause(open_session.session.id)

        with pytest.raises(SessionClosedError):
            cart.set_tip(open_session.token, open_session.session.id, 5)
