"""
Redis channel naming.
"""

from __future__ import annotations


def _validate_id(id_value: str, name: str) -> None:
    if not isinstance(id_value, str) or not id_value:
        raise ValueError(f"{name} must be a non-empty string, got {id_value!r}")


def channel_session(session_id: str) -> str:
    """Channel every guest of one dining session listens on."""
    _validate_id(session_id, "session_id")
    return f"session:{session_id}"


def channel_restaurant_sessions(restaurant_id: str) -> str:
    """Channel for staff dashboards of one restaurant."""
    _validate_id(restaurant_id, "restaurant_id")
    return f"restaurant:{restaurant_id}:sessions"
