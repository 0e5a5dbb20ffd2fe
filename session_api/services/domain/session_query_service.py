"""
Staff read side: active sessions, history, details and analytics.

Read-only. Dashboards poll these; nothing here takes a lock.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from shared.config.constants import SessionStatus
from shared.utils.exceptions import SessionNotFoundError, ValidationError
from shared.utils.money import ZERO, round_money
from session_api.models import CartItem, DiningSession, Order, as_utc, utcnow

_RANGE_PATTERN = re.compile(r"^(\d{1,4})d$")


def parse_time_range(time_range: str | None, now: datetime | None = None) -> datetime | None:
    """
    ``"7d"``, ``"30d"``, ``"90d"`` (any ``Nd``) -> start datetime.
    ``"all"`` -> None (no lower bound).
    """
    value = (time_range or "30d").strip().lower()
    if value == "all":
        return None
    match = _RANGE_PATTERN.match(value)
    if not match or int(match.group(1)) == 0:
        raise ValidationError(
            f"Invalid time range '{time_range}'. Use e.g. 7d, 30d, 90d or all",
            field="timeRange",
        )
    return (now or utcnow()) - timedelta(days=int(match.group(1)))


def _average(total: Decimal, count: int) -> Decimal:
    if count == 0:
        return ZERO
    return round_money(total / count)


@dataclass
class SessionHistoryEntry:
    session: DiningSession
    duration_minutes: int
    total_orders: int
    average_order_value: Decimal


@dataclass
class SessionAnalytics:
    time_range: str
    start_date: datetime | None
    end_date: datetime
    total_sessions: int = 0
    active_sessions: int = 0
    completed_sessions: int = 0
    cancelled_sessions: int = 0
    total_guests: int = 0
    average_guests_per_session: Decimal = ZERO
    average_session_duration_minutes: int = 0
    total_revenue: Decimal = ZERO
    average_spend_per_session: Decimal = ZERO
    average_spend_per_guest: Decimal = ZERO
    total_tips: Decimal = ZERO
    waiter_calls: int = 0
    # hour of day (UTC) -> sessions started in that hour
    peak_hours: dict[int, int] = field(default_factory=dict)


class SessionQueryService:
    """Read queries for the staff dashboard."""

    def __init__(self, db: Session):
        self._db = db

    def _with_children(self, stmt):
        return stmt.options(
            selectinload(DiningSession.guests),
            selectinload(DiningSession.cart_items).selectinload(CartItem.menu_item),
            selectinload(DiningSession.cart_items).selectinload(CartItem.variation),
            selectinload(DiningSession.orders).selectinload(Order.items),
            selectinload(DiningSession.table),
        )

    def active_sessions(self, restaurant_id: str) -> list[DiningSession]:
        """Open sessions (ACTIVE, PAUSED, AWAITING_PAYMENT), oldest first."""
        stmt = (
            select(DiningSession)
            .where(
                DiningSession.restaurant_id == restaurant_id,
                DiningSession.status.in_(SessionStatus.OPEN),
            )
            .order_by(DiningSession.started_at)
        )
        return list(self._db.scalars(self._with_children(stmt)).all())

    def session_details(self, session_id: str) -> DiningSession:
        stmt = select(DiningSession).where(DiningSession.id == session_id)
        session = self._db.scalar(self._with_children(stmt))
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def session_history(
        self,
        restaurant_id: str,
        page: int = 0,
        size: int = 20,
    ) -> tuple[list[SessionHistoryEntry], int]:
        """Sessions newest first, one page at a time. Returns (entries, total)."""
        total = self._db.scalar(
            select(func.count(DiningSession.id)).where(DiningSession.restaurant_id == restaurant_id)
        ) or 0

        sessions = self._db.scalars(
            select(DiningSession)
            .options(selectinload(DiningSession.orders))
            .where(DiningSession.restaurant_id == restaurant_id)
            .order_by(DiningSession.started_at.desc())
            .offset(page * size)
            .limit(size)
        ).all()

        entries = []
        for session in sessions:
            live_orders = [order for order in session.orders if order.counts_toward_total]
            order_total = sum((order.subtotal for order in live_orders), ZERO)
            entries.append(
                SessionHistoryEntry(
                    session=session,
                    duration_minutes=session.duration_minutes(),
                    total_orders=len(live_orders),
                    average_order_value=_average(order_total, len(live_orders)),
                )
            )
        return entries, total

    def analytics(self, restaurant_id: str, time_range: str | None = "30d") -> SessionAnalytics:
        """
        Aggregate figures over sessions started inside the range.

        Revenue counts COMPLETED sessions only (their rounded total, tips
        reported separately).
        """
        now = utcnow()
        start = parse_time_range(time_range, now)

        stmt = (
            select(DiningSession)
            .options(selectinload(DiningSession.guests))
            .where(DiningSession.restaurant_id == restaurant_id)
        )
        if start is not None:
            stmt = stmt.where(DiningSession.started_at >= start)
        sessions = self._db.scalars(stmt).all()

        result = SessionAnalytics(
            time_range=(time_range or "30d").strip().lower(),
            start_date=start,
            end_date=now,
            total_sessions=len(sessions),
        )
        if not sessions:
            return result

        statuses = Counter(session.status for session in sessions)
        result.active_sessions = sum(statuses[status] for status in SessionStatus.OPEN)
        result.completed_sessions = statuses[SessionStatus.COMPLETED]
        result.cancelled_sessions = statuses[SessionStatus.CANCELLED]

        # Everyone ever admitted, including guests who left before the bill
        served = {session.id: len(session.guests) for session in sessions}
        result.total_guests = sum(served.values())
        result.average_guests_per_session = _average(Decimal(result.total_guests), len(sessions))
        result.average_session_duration_minutes = sum(
            session.duration_minutes(now) for session in sessions
        ) // len(sessions)
        result.waiter_calls = sum(session.waiter_call_count for session in sessions)

        completed = [s for s in sessions if s.status == SessionStatus.COMPLETED]
        result.total_revenue = sum((s.total_amount for s in completed), ZERO)
        result.total_tips = sum((s.tip_amount for s in completed), ZERO)
        result.average_spend_per_session = _average(result.total_revenue, len(completed))
        result.average_spend_per_guest = _average(
            result.total_revenue, sum(served[s.id] for s in completed)
        )

        hours = Counter(as_utc(session.started_at).hour for session in sessions)
        result.peak_hours = dict(sorted(hours.items(), key=lambda kv: (-kv[1], kv[0])))
        return result

