"""
Tests for the guest endpoints: public lookups and the session flow.
"""

from shared.infrastructure.events import (
    BILL_REQUESTED,
    CART_ITEM_ADDED,
    GUEST_JOINED,
    GUEST_LEFT,
    ORDER_SUBMITTED,
    SESSION_STARTED,
    WAITER_CALLED,
    channel_restaurant_sessions,
    channel_session,
)
from tests.conftest import API, guest_headers, join_guest

QR = "qr-test-bistro-1"


class TestPublicLookups:
    """Tests for unauthenticated restaurant, menu and table lookups."""

    def test_get_restaurant(self, client, seed_restaurant):
        response = client.get(f"{API}/guest/restaurants/test-bistro")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Test Bistro"
        assert data["currencyCode"] == "USD"

    def test_unknown_restaurant(self, client):
        response = client.get(f"{API}/guest/restaurants/nope")

        assert response.status_code == 404
        assert response.json()["details"]["code"] == "NOT_FOUND"

    def test_menu_hides_unavailable_items(self, client, seed_menu):
        """Should list only items that can be ordered right now."""
        response = client.get(f"{API}/guest/restaurants/test-bistro/menu")

        assert response.status_code == 200
        names = [item["name"] for item in response.json()["items"]]
        assert "Soup" not in names
        assert set(names) == {"Burger", "Pizza"}
        pizza = next(item for item in response.json()["items"] if item["name"] == "Pizza")
        assert {v["name"] for v in pizza["variations"]} == {"Regular", "Large"}

    def test_resolve_table(self, client, seed_table):
        response = client.get(f"{API}/guest/tables/{QR}")

        assert response.status_code == 200
        assert response.json()["tableNumber"] == "1"
        assert response.json()["currentSessionId"] is None

    def test_active_session_for_table(self, client, seed_table, seed_menu):
        """Should show who is already seated at the table."""
        assert client.get(f"{API}/guest/tables/{QR}/active-session").status_code == 404

        joined = join_guest(client, "Alice", table_qr_code=QR)
        response = client.get(f"{API}/guest/tables/{QR}/active-session")

        assert response.status_code == 200
        data = response.json()
        assert data["sessionId"] == joined["sessionId"]
        assert data["hostName"] == "Alice"
        assert data["restaurantName"] == "Test Bistro"

    def test_session_by_code(self, client, seed_table, seed_menu):
        joined = join_guest(client, "Alice", table_qr_code=QR)

        response = client.get(f"{API}/guest/sessions/code/{joined['sessionCode'].lower()}")

        assert response.status_code == 200
        assert response.json()["sessionId"] == joined["sessionId"]


class TestJoin:
    """Tests for POST /guest/sessions/join."""

    def test_first_guest_creates_session(self, client, seed_table, seed_menu, publisher):
        """Should create the session, make the guest host and hand out a token."""
        joined = join_guest(client, "Alice", table_qr_code=QR)

        assert joined["created"] is True
        assert joined["isHost"] is True
        assert joined["guestToken"]
        assert joined["sessionToken"] == joined["sessionCode"]
        assert len(joined["sessionCode"]) == 6
        assert joined["session"]["status"] == "ACTIVE"
        assert joined["session"]["guestCount"] == 1
        assert joined["table"]["currentSessionId"] == joined["sessionId"]
        assert [event.type for event in publisher.events] == [SESSION_STARTED, GUEST_JOINED]

    def test_second_guest_joins_by_code(self, client, seed_table, seed_menu, publisher):
        alice = join_guest(client, "Alice", table_qr_code=QR)
        publisher.clear()

        bob = join_guest(client, "Bob", session_code=alice["sessionCode"])

        assert bob["sessionId"] == alice["sessionId"]
        assert bob["created"] is False
        assert bob["isHost"] is False
        assert {g["guestName"] for g in bob["guests"]} == {"Alice", "Bob"}
        assert [event.type for event in publisher.events] == [GUEST_JOINED]
        assert publisher.events[0].entity["guest_count"] == 2

    def test_second_scan_joins_same_session(self, client, seed_table, seed_menu):
        alice = join_guest(client, "Alice", table_qr_code=QR)
        bob = join_guest(client, "Bob", table_qr_code=QR)

        assert bob["sessionId"] == alice["sessionId"]

    def test_requires_qr_or_code(self, client, seed_table):
        """Should reject a join with neither a QR code nor a session code."""
        response = client.post(f"{API}/guest/sessions/join", json={"guestName": "Alice"})

        assert response.status_code == 400
        assert response.json()["details"]["code"] == "VALIDATION_ERROR"

    def test_missing_name_is_validation_error(self, client, seed_table):
        response = client.post(f"{API}/guest/sessions/join", json={"tableQrCode": QR})

        assert response.status_code == 400
        body = response.json()
        assert body["status"] == 400
        assert body["path"] == f"{API}/guest/sessions/join"
        assert body["details"]["code"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["field"] == "guestName"

    def test_unknown_qr_code(self, client, seed_table):
        response = client.post(
            f"{API}/guest/sessions/join",
            json={"tableQrCode": "does-not-exist", "guestName": "Alice"},
        )

        assert response.status_code == 404

    def test_qr_code_from_another_restaurant(self, client, seed_table, other_restaurant):
        response = client.post(
            f"{API}/guest/sessions/join",
            json={"tableQrCode": QR, "guestName": "Alice", "restaurantId": other_restaurant.id},
        )

        assert response.status_code == 404


class TestGuestAuth:
    """Tests for the X-Guest-Token guard."""

    def test_missing_token(self, client, seed_table, seed_menu):
        joined = join_guest(client, "Alice", table_qr_code=QR)

        response = client.get(f"{API}/guest/sessions/{joined['sessionId']}")

        assert response.status_code == 401
        assert response.json()["details"]["code"] == "UNAUTHORIZED"

    def test_bogus_token(self, client, seed_table, seed_menu):
        joined = join_guest(client, "Alice", table_qr_code=QR)

        response = client.get(
            f"{API}/guest/sessions/{joined['sessionId']}",
            headers={"X-Guest-Token": "not-a-real-token"},
        )

        assert response.status_code == 401

    def test_token_for_another_session(self, client, seed_table, second_table, seed_menu):
        """Should refuse a valid token presented for a different session."""
        alice = join_guest(client, "Alice", table_qr_code=QR)
        zed = join_guest(client, "Zed", table_qr_code="qr-test-bistro-2")

        response = client.get(f"{API}/guest/sessions/{alice['sessionId']}", headers=guest_headers(zed))

        assert response.status_code == 403
        assert response.json()["details"]["code"] == "FORBIDDEN"


class TestCartAndOrders:
    """Tests for the shared cart and order submission."""

    def test_full_flow(self, client, seed_table, seed_menu, publisher):
        """Should add to the cart, submit and bill with consistent totals."""
        alice = join_guest(client, "Alice", table_qr_code=QR)
        session_id = alice["sessionId"]
        headers = guest_headers(alice)

        added = client.post(
            f"{API}/guest/sessions/{session_id}/cart",
            json={"menuItemId": seed_menu["burger"].id, "quantity": 2},
            headers=headers,
        )
        assert added.status_code == 200
        assert added.json()["totalPrice"] == "17.98"
        assert added.json()["guestName"] == "Alice"

        cart = client.get(f"{API}/guest/sessions/{session_id}/cart", headers=headers).json()
        assert len(cart["items"]) == 1
        assert cart["cartVersion"] >= 1

        submitted = client.post(f"{API}/guest/sessions/{session_id}/orders", headers=headers)
        assert submitted.status_code == 201
        order = submitted.json()["order"]
        session = submitted.json()["session"]
        assert order["orderNumber"].endswith("-01")
        assert order["subtotal"] == "17.98"
        assert session["subtotal"] == "17.98"
        assert session["taxAmount"] == "1.44"
        assert session["serviceChargeAmount"] == "1.80"
        assert session["totalAmount"] == "21.22"

        assert client.get(f"{API}/guest/sessions/{session_id}/cart", headers=headers).json()["items"] == []
        orders = client.get(f"{API}/guest/sessions/{session_id}/orders", headers=headers).json()
        assert [o["id"] for o in orders] == [order["id"]]

        bill = client.post(f"{API}/guest/sessions/{session_id}/bill", headers=headers)
        assert bill.status_code == 200
        assert bill.json()["status"] == "AWAITING_PAYMENT"
        assert bill.json()["paymentStatus"] == "REQUESTED"

        tip = client.put(f"{API}/guest/sessions/{session_id}/tip", json={"amount": "3.00"}, headers=headers)
        assert tip.status_code == 200
        assert tip.json()["tipAmount"] == "3.00"
        assert tip.json()["grandTotal"] == "24.22"

        types = [event.type for event in publisher.on_channel(channel_session(session_id))]
        assert CART_ITEM_ADDED in types
        assert ORDER_SUBMITTED in types
        assert BILL_REQUESTED in types

    def test_empty_cart_submit(self, client, seed_table, seed_menu):
        alice = join_guest(client, "Alice", table_qr_code=QR)

        response = client.post(f"{API}/guest/sessions/{alice['sessionId']}/orders", headers=guest_headers(alice))

        assert response.status_code == 400
        assert response.json()["details"]["code"] == "EMPTY_CART"

    def test_update_and_remove_line(self, client, seed_table, seed_menu):
        alice = join_guest(client, "Alice", table_qr_code=QR)
        session_id = alice["sessionId"]
        headers = guest_headers(alice)
        line = client.post(
            f"{API}/guest/sessions/{session_id}/cart",
            json={"menuItemId": seed_menu["pizza"].id, "variationId": seed_menu["pizza_large"].id},
            headers=headers,
        ).json()
        assert line["unitPrice"] == "18.00"

        updated = client.put(
            f"{API}/guest/sessions/{session_id}/cart/{line['id']}",
            json={"quantity": 3, "specialInstructions": "extra basil"},
            headers=headers,
        )
        assert updated.status_code == 200
        assert updated.json()["quantity"] == 3
        assert updated.json()["specialInstructions"] == "extra basil"

        removed = client.delete(f"{API}/guest/sessions/{session_id}/cart/{line['id']}", headers=headers)
        assert removed.status_code == 200
        assert removed.json()["items"] == []

    def test_other_guest_cannot_edit_line(self, client, seed_table, seed_menu):
        """Should only let the owner or the host change a line."""
        alice = join_guest(client, "Alice", table_qr_code=QR)
        bob = join_guest(client, "Bob", session_code=alice["sessionCode"])
        session_id = alice["sessionId"]
        line = client.post(
            f"{API}/guest/sessions/{session_id}/cart",
            json={"menuItemId": seed_menu["burger"].id},
            headers=guest_headers(alice),
        ).json()

        response = client.put(
            f"{API}/guest/sessions/{session_id}/cart/{line['id']}",
            json={"quantity": 5},
            headers=guest_headers(bob),
        )

        assert response.status_code == 403

    def test_unavailable_item(self, client, seed_table, seed_menu):
        alice = join_guest(client, "Alice", table_qr_code=QR)

        response = client.post(
            f"{API}/guest/sessions/{alice['sessionId']}/cart",
            json={"menuItemId": seed_menu["soup"].id},
            headers=guest_headers(alice),
        )

        assert response.status_code == 400

    def test_bad_quantity(self, client, seed_table, seed_menu):
        alice = join_guest(client, "Alice", table_qr_code=QR)

        response = client.post(
            f"{API}/guest/sessions/{alice['sessionId']}/cart",
            json={"menuItemId": seed_menu["burger"].id, "quantity": 0},
            headers=guest_headers(alice),
        )

        assert response.status_code == 400
        assert response.json()["details"]["code"] == "VALIDATION_ERROR"

    def test_submit_for_all_guests(self, client, seed_table, seed_menu):
        alice = join_guest(client, "Alice", table_qr_code=QR)
        bob = join_guest(client, "Bob", session_code=alice["sessionCode"])
        session_id = alice["sessionId"]
        for joined in (alice, bob):
            client.post(
                f"{API}/guest/sessions/{session_id}/cart",
                json={"menuItemId": seed_menu["burger"].id},
                headers=guest_headers(joined),
            )

        response = client.post(
            f"{API}/guest/sessions/{session_id}/orders",
            json={"includeAllGuests": True},
            headers=guest_headers(alice),
        )

        assert response.status_code == 201
        assert len(response.json()["order"]["items"]) == 2


class TestWaiterBillLeave:
    def test_call_waiter(self, client, seed_table, seed_menu, publisher):
        """Should publish WAITER_CALLED once until acknowledged."""
        alice = join_guest(client, "Alice", table_qr_code=QR)
        url = f"{API}/guest/sessions/{alice['sessionId']}/waiter"

        first = client.post(url, headers=guest_headers(alice))
        second = client.post(url, headers=guest_headers(alice))

        assert first.json()["waiterCalled"] is True
        assert first.json()["changed"] is True
        assert second.json()["changed"] is False
        assert second.json()["waiterCallTime"] == first.json()["waiterCallTime"]
        staff_channel = channel_restaurant_sessions(alice["session"]["restaurantId"])
        assert len([e for e in publisher.on_channel(staff_channel) if e.type == WAITER_CALLED]) == 1

    def test_negative_tip(self, client, seed_table, seed_menu):
        alice = join_guest(client, "Alice", table_qr_code=QR)

        response = client.put(
            f"{API}/guest/sessions/{alice['sessionId']}/tip",
            json={"amount": "-1"},
            headers=guest_headers(alice),
        )

        assert response.status_code == 400

    def test_oversized_tip(self, client, seed_table, seed_menu):
        """Should answer an absurd tip with a validation error, not a crash."""
        alice = join_guest(client, "Alice", table_qr_code=QR)

        response = client.put(
            f"{API}/guest/sessions/{alice['sessionId']}/tip",
            json={"amount": "1e30"},
            headers=guest_headers(alice),
        )

        assert response.status_code == 400
        assert response.json()["details"]["code"] == "VALIDATION_ERROR"

    def test_leave_revokes_token(self, client, seed_table, seed_menu, publisher):
        """Should revoke the token and drop the guest count."""
        alice = join_guest(client, "Alice", table_qr_code=QR)
        bob = join_guest(client, "Bob", session_code=alice["sessionCode"])
        session_id = alice["sessionId"]

        response = client.post(f"{API}/guest/sessions/{session_id}/leave", headers=guest_headers(bob))

        assert response.status_code == 200
        assert response.json()["guestId"] == bob["guestId"]
        assert client.get(f"{API}/guest/sessions/{session_id}", headers=guest_headers(bob)).status_code == 401
        details = client.get(f"{API}/guest/sessions/{session_id}", headers=guest_headers(alice)).json()
        assert details["session"]["guestCount"] == 1
        assert publisher.of_type(GUEST_LEFT)[0].entity["guest_id"] == bob["guestId"]

    def test_leave_twice(self, client, seed_table, seed_menu):
        alice = join_guest(client, "Alice", table_qr_code=QR)
        url = f"{API}/guest/sessions/{alice['sessionId']}/leave"

        assert client.post(url, headers=guest_headers(alice)).status_code == 200
        assert client.post(url, headers=guest_headers(alice)).status_code == 200
