"""
Builders for session events.

Routers and the sweeper describe what happened with these helpers; the
publisher decides where it goes.
"""

from __future__ import annotations

from typing import Any

from shared.infrastructure.events import Event
from shared.utils.money import round_money
from session_api.models import DiningSession, SessionGuest

SYSTEM_ACTOR: dict[str, Any] = {"role": "SYSTEM"}


def guest_actor(guest: SessionGuest) -> dict[str, Any]:
    return {"role": "GUEST", "guest_id": guest.id, "guest_name": guest.guest_name}


def staff_actor(ctx: dict[str, Any]) -> dict[str, Any]:
    return {"role": ctx.get("role"), "user_id": ctx.get("sub")}


def totals_entity(session: DiningSession) -> dict[str, Any]:
    return {
        "subtotal": str(round_money(session.subtotal)),
        "total": str(round_money(session.total_amount)),
        "tip": str(round_money(session.tip_amount)),
    }


def session_event(
    event_type: str,
    session: DiningSession,
    actor: dict[str, Any] | None = None,
    **entity: Any,
) -> Event:
    """Event about ``session``; ``entity`` carries the event-specific fields."""
    return Event(
        type=event_type,
        restaurant_id=session.restaurant_id,
        session_id=session.id,
        table_id=session.table_id,
        entity={"status": session.status, **entity},
        actor=actor or SYSTEM_ACTOR,
    )
