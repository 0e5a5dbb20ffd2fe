"""
HTTP client for the guest and staff surfaces of the session API.

The HTTP transport and token storage are both injected. Staff calls send
the stored access token; on a 401 the client refreshes once through
``/auth/refresh`` and retries, and if the refresh is rejected it clears the
stored tokens and raises ``AuthenticationRequired``.
"""

from decimal import Decimal
from typing import Any

import httpx

from shared.config.logging import get_logger
from .errors import ApiError, AuthenticationRequired
from .tokens import MemoryTokenStore, StaffTokens, TokenStore

logger = get_logger(__name__)

DEFAULT_API_PREFIX = "/api/v1"
GUEST_TOKEN_HEADER = "X-Guest-Token"


class SessionsClient:
    def __init__(
        self,
        http: httpx.Client,
        token_store: TokenStore | None = None,
        api_prefix: str = DEFAULT_API_PREFIX,
    ):
        self._http = http
        self._tokens = token_store if token_store is not None else MemoryTokenStore()
        self._prefix = api_prefix.rstrip("/")

    @property
    def tokens(self) -> TokenStore:
        return self._tokens

    # =========================================================================
    # Transport
    # =========================================================================

    def _url(self, path: str) -> str:
        return f"{self._prefix}{path}"

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        if response.is_error:
            raise ApiError.from_response(response)
        if not response.content:
            return None
        return response.json()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        return self._parse(self._http.request(method, self._url(path), **kwargs))

    def _guest_request(self, method: str, session_id: str, path: str, **kwargs) -> Any:
        token = self._tokens.get_guest_token(session_id)
        if token is None:
            raise ApiError(401, "No guest token for this session; join first", code="UNAUTHORIZED")
        headers = {GUEST_TOKEN_HEADER: token}
        return self._request(method, path, headers=headers, **kwargs)

    def _staff_request(self, method: str, path: str, **kwargs) -> Any:
        tokens = self._tokens.get_staff_tokens()
        if tokens is None:
            raise AuthenticationRequired()

        response = self._send_with_access(method, path, tokens.access_token, **kwargs)
        if response.status_code == 401:
            logger.info("Staff access token rejected, refreshing", path=path)
            tokens = self._refresh_tokens(tokens)
            response = self._send_with_access(method, path, tokens.access_token, **kwargs)
        return self._parse(response)

    def _send_with_access(self, method: str, path: str, access_token: str, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {access_token}"}
        return self._http.request(method, self._url(path), headers=headers, **kwargs)

    def _refresh_tokens(self, tokens: StaffTokens) -> StaffTokens:
        response = self._http.post(
            self._url("/auth/refresh"),
            json={"refreshToken": tokens.refresh_token},
        )
        if response.is_error:
            self._tokens.clear_staff_tokens()
            logger.warning("Staff token refresh failed", status=response.status_code)
            raise AuthenticationRequired("Session expired, log in again")
        return self._store_login(response.json())

    def _store_login(self, body: dict) -> StaffTokens:
        tokens = StaffTokens(access_token=body["accessToken"], refresh_token=body["refreshToken"])
        self._tokens.set_staff_tokens(tokens)
        return tokens

    # =========================================================================
    # Public lookups
    # =========================================================================

    def get_restaurant(self, slug: str) -> dict:
        return self._request("GET", f"/guest/restaurants/{slug}")

    def get_menu(self, slug: str) -> dict:
        return self._request("GET", f"/guest/restaurants/{slug}/menu")

    def resolve_table(self, qr_code: str) -> dict:
        return self._request("GET", f"/guest/tables/{qr_code}")

    def table_active_session(self, qr_code: str) -> dict:
        return self._request("GET", f"/guest/tables/{qr_code}/active-session")

    def session_by_code(self, session_code: str) -> dict:
        return self._request("GET", f"/guest/sessions/code/{session_code}")

    # =========================================================================
    # Guest session
    # =========================================================================

    def join(
        self,
        guest_name: str,
        table_qr_code: str | None = None,
        session_code: str | None = None,
        guest_phone: str | None = None,
        restaurant_id: str | None = None,
    ) -> dict:
        """Join by QR code or session code; the guest token is kept in the store."""
        body = {
            "guestName": guest_name,
            "tableQrCode": table_qr_code,
            "sessionCode": session_code,
            "guestPhone": guest_phone,
            "restaurantId": restaurant_id,
        }
        joined = self._request("POST", "/guest/sessions/join", json={k: v for k, v in body.items() if v is not None})
        self._tokens.set_guest_token(joined["sessionId"], joined["guestToken"])
        return joined

    def get_session(self, session_id: str) -> dict:
        return self._guest_request("GET", session_id, f"/guest/sessions/{session_id}")

    def get_cart(self, session_id: str) -> dict:
        return self._guest_request("GET", session_id, f"/guest/sessions/{session_id}/cart")

    def add_to_cart(
        self,
        session_id: str,
        menu_item_id: str,
        quantity: int = 1,
        variation_id: str | None = None,
        special_instructions: str | None = None,
    ) -> dict:
        body = {
            "menuItemId": menu_item_id,
            "variationId": variation_id,
            "quantity": quantity,
            "specialInstructions": special_instructions,
        }
        return self._guest_request("POST", session_id, f"/guest/sessions/{session_id}/cart", json=body)

    def update_cart_item(
        self,
        session_id: str,
        item_id: str,
        quantity: int,
        special_instructions: str | None = None,
    ) -> dict:
        body = {"quantity": quantity, "specialInstructions": special_instructions}
        return self._guest_request(
            "PUT", session_id, f"/guest/sessions/{session_id}/cart/{item_id}", json=body
        )

    def remove_cart_item(self, session_id: str, item_id: str) -> dict:
        return self._guest_request("DELETE", session_id, f"/guest/sessions/{session_id}/cart/{item_id}")

    def submit_order(self, session_id: str, include_all_guests: bool = False) -> dict:
        return self._guest_request(
            "POST",
            session_id,
            f"/guest/sessions/{session_id}/orders",
            json={"includeAllGuests": include_all_guests},
        )

    def list_orders(self, session_id: str) -> list[dict]:
        return self._guest_request("GET", session_id, f"/guest/sessions/{session_id}/orders")

    def call_waiter(self, session_id: str) -> dict:
        return self._guest_request("POST", session_id, f"/guest/sessions/{session_id}/waiter")

    def request_bill(self, session_id: str) -> dict:
        return self._guest_request("POST", session_id, f"/guest/sessions/{session_id}/bill")

    def set_tip(self, session_id: str, amount: Decimal | str) -> dict:
        return self._guest_request(
            "PUT", session_id, f"/guest/sessions/{session_id}/tip", json={"amount": str(amount)}
        )

    def leave(self, session_id: str) -> dict:
        left = self._guest_request("POST", session_id, f"/guest/sessions/{session_id}/leave")
        self._tokens.clear_guest_token(session_id)
        return left

    # =========================================================================
    # Staff auth
    # =========================================================================

    def login(self, email: str, password: str) -> dict:
        body = self._request("POST", "/auth/login", json={"email": email, "password": password})
        self._store_login(body)
        return body

    def logout(self) -> None:
        self._tokens.clear_staff_tokens()

    def me(self) -> dict:
        return self._staff_request("GET", "/auth/me")

    # =========================================================================
    # Staff sessions
    # =========================================================================

    def active_sessions(self, restaurant_id: str) -> list[dict]:
        return self._staff_request("GET", f"/sessions/restaurant/{restaurant_id}/active")

    def session_history(self, restaurant_id: str, page: int = 0, size: int = 20) -> dict:
        return self._staff_request(
            "GET",
            f"/sessions/restaurant/{restaurant_id}/history",
            params={"page": page, "size": size},
        )

    def session_analytics(self, restaurant_id: str, time_range: str = "30d") -> dict:
        return self._staff_request(
            "GET",
            f"/sessions/restaurant/{restaurant_id}/analytics",
            params={"timeRange": time_range},
        )

    def session_details(self, session_id: str) -> dict:
        return self._staff_request("GET", f"/sessions/{session_id}/details")

    def end_session(self, session_id: str, reason: str | None = None) -> dict:
        return self._staff_request("POST", f"/sessions/{session_id}/end", json={"reason": reason})

    def cancel_session(self, session_id: str, reason: str | None = None) -> dict:
        return self._staff_request("POST", f"/sessions/{session_id}/cancel", json={"reason": reason})

    def pause_session(self, session_id: str) -> dict:
        return self._staff_request("POST", f"/sessions/{session_id}/pause")

    def resume_session(self, session_id: str) -> dict:
        return self._staff_request("POST", f"/sessions/{session_id}/resume")

    def staff_request_bill(self, session_id: str) -> dict:
        return self._staff_request("POST", f"/sessions/{session_id}/request-bill")

    def acknowledge_waiter(self, session_id: str) -> dict:
        return self._staff_request("POST", f"/sessions/{session_id}/waiter/acknowledge")

    def update_order_status(self, session_id: str, order_id: str, status: str) -> dict:
        return self._staff_request(
            "PATCH", f"/sessions/{session_id}/orders/{order_id}/status", json={"status": status}
        )

    # =========================================================================
    # Staff tables
    # =========================================================================

    def create_table(
        self,
        restaurant_id: str,
        table_number: str,
        capacity: int = 4,
        location_description: str | None = None,
    ) -> dict:
        body = {
            "restaurantId": restaurant_id,
            "tableNumber": table_number,
            "capacity": capacity,
            "locationDescription": location_description,
        }
        return self._staff_request("POST", "/tables", json=body)

    def list_tables(self, restaurant_id: str) -> list[dict]:
        return self._staff_request("GET", f"/tables/restaurant/{restaurant_id}")

    def disable_table(self, table_id: str) -> dict:
        return self._staff_request("POST", f"/tables/{table_id}/disable")

    def enable_table(self, table_id: str) -> dict:
        return self._staff_request("POST", f"/tables/{table_id}/enable")
