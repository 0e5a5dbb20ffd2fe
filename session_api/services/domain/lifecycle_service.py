"""
Session Lifecycle Controller.

Owns the dining session state machine:

    ACTIVE <-> PAUSED
    ACTIVE -> AWAITING_PAYMENT -> COMPLETED
    ACTIVE -> COMPLETED
    ACTIVE -> CANCELLED

COMPLETED and CANCELLED are terminal. Closing a session clears the table's
session pointer in the same transaction. Locks are always taken table first,
then session.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import Limits, PaymentStatus, SessionStatus
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from shared.infrastructure.locks import KeyedLockRegistry, session_key, session_locks, table_key
from shared.utils.exceptions import (
    InternalError,
    InvalidTransitionError,
    SessionClosedError,
    SessionNotFoundError,
    TableNotFoundError,
)
from session_api.models import DiningSession, RestaurantTable, SessionGuest, as_utc, utcnow
from session_api.services.domain.cart_service import CartService
from session_api.services.domain.membership_service import (
    GuestMembershipService,
    clean_guest_name,
    clean_phone,
)
from session_api.services.domain.table_registry import TableRegistry

logger = get_logger(__name__)

EXPIRED_REASON = "Expired after inactivity"


def generate_session_code() -> str:
    """Six characters from A-Z0-9, shared verbally or by link."""
    return "".join(
        secrets.choice(Limits.SESSION_CODE_ALPHABET) for _ in range(Limits.SESSION_CODE_LENGTH)
    )


@dataclass
class JoinResult:
    session: DiningSession
    guest: SessionGuest
    token: str
    created: bool


class SessionLifecycleService:
    """Domain service for creating, joining and closing dining sessions."""

    def __init__(
        self,
        db: Session,
        locks: KeyedLockRegistry = session_locks,
        code_generator: Callable[[], str] = generate_session_code,
    ):
        self._db = db
        self._locks = locks
        self._code_generator = code_generator
        self._tables = TableRegistry(db)
        self._membership = GuestMembershipService(db, locks)
        self._cart = CartService(db, locks)

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_session(self, session_id: str) -> DiningSession:
        session = self._db.get(DiningSession, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def get_by_code(self, session_code: str) -> DiningSession:
        code = (session_code or "").strip().upper()
        session = self._db.scalar(select(DiningSession).where(DiningSession.session_code == code))
        if session is None:
            raise SessionNotFoundError(code)
        return session

    @contextmanager
    def _locked_session(self, session_id: str, *, with_table: bool = False) -> Iterator[DiningSession]:
        """Hold the session lock (and the table lock first, when asked) around a FOR UPDATE read."""
        table_id = self.get_session(session_id).table_id
        if with_table:
            with self._locks.hold(table_key(table_id)), self._locks.hold(session_key(session_id)):
                yield self._membership.lock_session(session_id)
        else:
            with self._locks.hold(session_key(session_id)):
                yield self._membership.lock_session(session_id)

    def _transition(self, session: DiningSession, target: str) -> str:
        if not SessionStatus.can_transition(session.status, target):
            raise InvalidTransitionError("Session", session.status, target, session_id=session.id)
        previous = session.status
        session.status = target
        return previous

    # =========================================================================
    # Create / join
    # =========================================================================

    def _new_session(self, table: RestaurantTable) -> DiningSession:
        for _ in range(Limits.SESSION_CODE_ATTEMPTS):
            code = self._code_generator().upper()
            taken = self._db.scalar(
                select(DiningSession.id).where(DiningSession.session_code == code)
            )
            if taken is None:
                break
        else:
            raise InternalError("Could not allocate a session code", table_id=table.id)

        now = utcnow()
        session = DiningSession(
            restaurant_id=table.restaurant_id,
            table_id=table.id,
            session_code=code,
            status=SessionStatus.ACTIVE,
            guest_count=0,
            payment_status=PaymentStatus.PENDING,
            started_at=now,
            last_activity_at=now,
        )
        self._db.add(session)
        self._db.flush()
        return session

    def create_or_join(self, table_id: str, guest_name: str, phone: str | None = None) -> JoinResult:
        """
        Join the open session on a table, or start one with the caller as host.

        Raises:
            TableNotFoundError: Unknown or disabled table.
            SessionClosedError: The table's session is PAUSED or AWAITING_PAYMENT.
            ValidationError: Bad name or phone.
        """
        clean_guest_name(guest_name)
        clean_phone(phone)

        with self._locks.hold(table_key(table_id)):
            try:
                table = self._tables.get_table(table_id, for_update=True)
                if not table.enabled:
                    raise TableNotFoundError(table_id)

                current_id = table.current_session_id
                if current_id is not None:
                    with self._locks.hold(session_key(current_id)):
                        current = self._db.scalar(
                            select(DiningSession)
                            .where(DiningSession.id == current_id)
                            .with_for_update()
                            .execution_options(populate_existing=True)
                        )
                        if current is not None and current.is_open:
                            admitted = self._membership.admit_locked(current, guest_name, phone)
                            safe_commit(self._db)
                            self._db.refresh(admitted.guest)
                            return JoinResult(current, admitted.guest, admitted.token, created=False)

                    logger.warning(
                        "Clearing stale table pointer on join",
                        table_id=table_id,
                        session_id=current_id,
                    )
                    self._tables.release(table, current_id)

                session = self._new_session(table)
                self._tables.occupy(table, session.id)
                admitted = self._membership.admit_locked(session, guest_name, phone)
                safe_commit(self._db)
                self._db.refresh(session)
                self._db.refresh(admitted.guest)
            except Exception:
                self._db.rollback()
                raise

        logger.info(
            "Session started",
            session_id=session.id,
            table_id=table_id,
            restaurant_id=session.restaurant_id,
            session_code=session.session_code,
        )
        return JoinResult(session, admitted.guest, admitted.token, created=True)

    def join_by_code(self, session_code: str, guest_name: str, phone: str | None = None) -> JoinResult:
        session = self.get_by_code(session_code)
        admitted = self._membership.admit(session.id, guest_name, phone)
        self._db.refresh(session)
        return JoinResult(session, admitted.guest, admitted.token, created=False)

    # =========================================================================
    # Waiter
    # =========================================================================

    def call_waiter(self, session_id: str, guest: SessionGuest | None = None) -> tuple[DiningSession, bool]:
        """
        Flag the session for a waiter. Returns (session, changed).
        Calling again before acknowledgement keeps the original call time.
        """
        with self._locked_session(session_id) as session:
            if session.status != SessionStatus.ACTIVE:
                raise SessionClosedError(session.id, session.status)
            if guest is not None:
                self._membership.touch(guest)
            if session.waiter_called:
                safe_commit(self._db)
                return session, False

            session.waiter_called = True
            session.waiter_call_time = utcnow()
            session.waiter_response_time = None
            session.waiter_call_count = (session.waiter_call_count or 0) + 1
            session.touch()
            safe_commit(self._db)
            self._db.refresh(session)

        logger.info("Waiter called", session_id=session_id, table_id=session.table_id)
        return session, True

    def acknowledge_waiter(self, session_id: str) -> tuple[DiningSession, bool]:
        with self._locked_session(session_id) as session:
            if not session.waiter_called:
                return session, False
            session.waiter_called = False
            session.waiter_response_time = utcnow()
            safe_commit(self._db)
            self._db.refresh(session)

        logger.info("Waiter call acknowledged", session_id=session_id)
        return session, True

    # =========================================================================
    # Transitions
    # =========================================================================

    def request_bill(self, session_id: str, guest: SessionGuest | None = None) -> DiningSession:
        """ACTIVE -> AWAITING_PAYMENT, with totals recomputed for the bill."""
        with self._locked_session(session_id) as session:
            self._transition(session, SessionStatus.AWAITING_PAYMENT)
            session.payment_status = PaymentStatus.REQUESTED
            self._cart.recompute_locked(session)
            if guest is not None:
                self._membership.touch(guest)
            else:
                session.touch()
            safe_commit(self._db)
            self._db.refresh(session)

        logger.info("Bill requested", session_id=session_id, total=str(session.total_amount))
        return session

    def pause(self, session_id: str) -> DiningSession:
        with self._locked_session(session_id) as session:
            self._transition(session, SessionStatus.PAUSED)
            safe_commit(self._db)
            self._db.refresh(session)

        logger.info("Session paused", session_id=session_id)
        return session

    def resume(self, session_id: str) -> DiningSession:
        with self._locked_session(session_id) as session:
            self._transition(session, SessionStatus.ACTIVE)
            session.touch()
            safe_commit(self._db)
            self._db.refresh(session)

        logger.info("Session resumed", session_id=session_id)
        return session

    def _release_table(self, session: DiningSession) -> bool:
        table = self._tables.get_table(session.table_id, for_update=True)
        return self._tables.release(table, session.id)

    def _close(self, session: DiningSession, target: str, reason: str | None) -> None:
        """Move to a terminal state and free the table. Caller holds both locks and commits."""
        self._transition(session, target)
        session.ended_at = utcnow()
        session.end_reason = reason
        session.waiter_called = False
        if target == SessionStatus.CANCELLED:
            session.payment_status = PaymentStatus.VOID
        self._cart.recompute_locked(session)
        self._release_table(session)

    def end_session(self, session_id: str, reason: str | None = None) -> DiningSession:
        """
        Complete a session and free its table.

        Ending an already COMPLETED session is a no-op (it only repairs a
        table pointer left behind). Any state other than ACTIVE,
        AWAITING_PAYMENT or COMPLETED raises InvalidTransitionError.
        """
        with self._locked_session(session_id, with_table=True) as session:
            if session.status == SessionStatus.COMPLETED:
                if self._release_table(session):
                    safe_commit(self._db)
                    logger.warning("Repaired table pointer of completed session", session_id=session_id)
                return session

            self._close(session, SessionStatus.COMPLETED, reason)
            safe_commit(self._db)
            self._db.refresh(session)

        logger.info(
            "Session completed",
            session_id=session_id,
            table_id=session.table_id,
            total=str(session.total_amount),
        )
        return session

    def cancel(self, session_id: str, reason: str | None = None) -> DiningSession:
        """ACTIVE -> CANCELLED. Cancelling a CANCELLED session is a no-op."""
        with self._locked_session(session_id, with_table=True) as session:
            if session.status == SessionStatus.CANCELLED:
                if self._release_table(session):
                    safe_commit(self._db)
                return session

            self._close(session, SessionStatus.CANCELLED, reason)
            safe_commit(self._db)
            self._db.refresh(session)

        logger.info("Session cancelled", session_id=session_id, reason=reason)
        return session

    def expire_inactive(self, cutoff: datetime) -> list[DiningSession]:
        """
        Cancel ACTIVE sessions with no activity since ``cutoff``.

        Each candidate is re-checked under its locks, so activity that lands
        between the scan and the lock keeps the session alive. A candidate that
        fails (lock timeout, database error) is logged and skipped.
        """
        candidate_ids = self._db.scalars(
            select(DiningSession.id).where(
                DiningSession.status == SessionStatus.ACTIVE,
                DiningSession.last_activity_at < cutoff,
            )
        ).all()

        expired: list[DiningSession] = []
        for session_id in candidate_ids:
            try:
                with self._locked_session(session_id, with_table=True) as session:
                    if session.status != SessionStatus.ACTIVE or as_utc(session.last_activity_at) >= cutoff:
                        continue
                    self._close(session, SessionStatus.CANCELLED, EXPIRED_REASON)
                    safe_commit(self._db)
                    self._db.refresh(session)
            except Exception as e:
                # One stuck session must not keep the rest alive
                self._db.rollback()
                logger.error("Session expiry failed", session_id=session_id, error=str(e), exc_info=True)
                continue
            logger.info(
                "Session expired",
                session_id=session_id,
                last_activity_at=as_utc(session.last_activity_at).isoformat(),
            )
            expired.append(session)
        return expired
