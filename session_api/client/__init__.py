"""
Python client for the session API.

Works over any ``httpx.Client``, including FastAPI's ``TestClient``:

    client = SessionsClient(httpx.Client(base_url="http://localhost:8080/api/v1"))
    joined = client.join(table_qr_code="...", guest_name="Alice")
"""

from .errors import ApiError, AuthenticationRequired
from .sessions_client import SessionsClient
from .tokens import MemoryTokenStore, StaffTokens, TokenStore

__all__ = [
    "ApiError",
    "AuthenticationRequired",
    "MemoryTokenStore",
    "SessionsClient",
    "StaffTokens",
    "TokenStore",
]
