"""
Token storage for the client.

Callers inject a store instead of the client keeping tokens in module
globals; a web backend can keep them per user, a script in memory.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass
class StaffTokens:
    access_token: str
    refresh_token: str


class TokenStore(Protocol):
    def get_staff_tokens(self) -> StaffTokens | None: ...

    def set_staff_tokens(self, tokens: StaffTokens) -> None: ...

    def clear_staff_tokens(self) -> None: ...

    def get_guest_token(self, session_id: str) -> str | None: ...

    def set_guest_token(self, session_id: str, token: str) -> None: ...

    def clear_guest_token(self, session_id: str) -> None: ...


class MemoryTokenStore:
    """Keeps tokens in process memory. Not shared between instances."""

    def __init__(self) -> None:
        self._staff: StaffTokens | None = None
        self._guests: dict[str, str] = {}

    def get_staff_tokens(self) -> StaffTokens | None:
        return self._staff

    def set_staff_tokens(self, tokens: StaffTokens) -> None:
        self._staff = tokens

    def clear_staff_tokens(self) -> None:
        self._staff = None

    def get_guest_token(self, session_id: str) -> str | None:
        return self._guests.get(session_id)

    def set_guest_token(self, session_id: str, token: str) -> None:
        self._guests[session_id] = token

    def clear_guest_token(self, session_id: str) -> None:
        self._guests.pop(session_id, None)
