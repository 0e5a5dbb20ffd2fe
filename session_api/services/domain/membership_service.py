"""
Guest Membership Manager.

Admits guests into a dining session, issues their guest tokens and tracks
the host role. Admission runs under the per-session lock with the session
row re-read FOR UPDATE, so "is this the first guest" is decided on committed
state: two simultaneous joins on an empty session never both become host.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from shared.config.constants import Limits, SessionStatus
from shared.config.logging import get_logger, mask_token
from shared.infrastructure.db import safe_commit
from shared.infrastructure.locks import KeyedLockRegistry, session_key, session_locks
from shared.utils.exceptions import (
    ForbiddenError,
    SessionClosedError,
    SessionNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from session_api.models import DiningSession, SessionGuest, utcnow

logger = get_logger(__name__)

GUEST_TOKEN_BYTES = 32


def generate_guest_token() -> str:
    return secrets.token_urlsafe(GUEST_TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def clean_guest_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Guest name is required", field="guestName")
    if len(cleaned) > Limits.MAX_GUEST_NAME_LENGTH:
        raise ValidationError(
            f"Guest name must be at most {Limits.MAX_GUEST_NAME_LENGTH} characters",
            field="guestName",
        )
    return cleaned


def clean_phone(phone: str | None) -> str | None:
    cleaned = (phone or "").strip()
    if not cleaned:
        return None
    if len(cleaned) > Limits.MAX_PHONE_LENGTH:
        raise ValidationError(
            f"Phone must be at most {Limits.MAX_PHONE_LENGTH} characters",
            field="guestPhone",
        )
    return cleaned


@dataclass
class AdmittedGuest:
    """A freshly admitted guest and the raw token handed back to them once."""

    guest: SessionGuest
    token: str


class GuestMembershipService:
    """Domain service for session membership and guest tokens."""

    def __init__(self, db: Session, locks: KeyedLockRegistry = session_locks):
        self._db = db
        self._locks = locks

    def lock_session(self, session_id: str) -> DiningSession:
        """Re-read the session row FOR UPDATE, discarding any stale identity-map copy."""
        session = self._db.scalar(
            select(DiningSession)
            .where(DiningSession.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    # =========================================================================
    # Admission
    # =========================================================================

    def admit(self, session_id: str, guest_name: str, phone: str | None = None) -> AdmittedGuest:
        """
        Admit a guest into an ACTIVE session.

        Raises:
            SessionNotFoundError: Unknown session.
            SessionClosedError: Session is not ACTIVE.
            ValidationError: Bad name or phone.
        """
        with self._locks.hold(session_key(session_id)):
            session = self.lock_session(session_id)
            admitted = self.admit_locked(session, guest_name, phone)
            safe_commit(self._db)
            self._db.refresh(admitted.guest)
        return admitted

    def admit_locked(
        self,
        session: DiningSession,
        guest_name: str,
        phone: str | None = None,
    ) -> AdmittedGuest:
        """
        Admission body for callers that already hold the session lock and own
        the transaction. Flushes, does not commit.
        """
        name = clean_guest_name(guest_name)
        phone = clean_phone(phone)

        if session.status != SessionStatus.ACTIVE:
            raise SessionClosedError(session.id, session.status)

        existing = self._db.scalar(
            select(func.count(SessionGuest.id)).where(SessionGuest.session_id == session.id)
        )
        is_host = existing == 0

        token = generate_guest_token()
        guest = SessionGuest(
            session_id=session.id,
            guest_name=name,
            guest_phone=phone,
            is_host=is_host,
            token_hash=hash_token(token),
        )
        self._db.add(guest)

        session.guest_count = (session.guest_count or 0) + 1
        if is_host:
            session.host_name = name
            session.host_phone = phone
        session.touch()
        self._db.flush()

        logger.info(
            "Guest admitted",
            session_id=session.id,
            guest_id=guest.id,
            is_host=is_host,
            guest_count=session.guest_count,
        )
        return AdmittedGuest(guest=guest, token=token)

    # =========================================================================
    # Token validation
    # =========================================================================

    def _find_by_token(self, token: str | None) -> SessionGuest:
        if not token:
            raise UnauthorizedError("Missing guest token")
        guest = self._db.scalar(
            select(SessionGuest).where(SessionGuest.token_hash == hash_token(token))
        )
        if guest is None:
            raise UnauthorizedError("Unknown guest token", token=mask_token(token))
        return guest

    def validate_token(self, token: str | None) -> SessionGuest:
        """
        Resolve a guest token.

        Raises UnauthorizedError if the token is unknown, the guest left or
        the session has ended.
        """
        guest = self._find_by_token(token)
        if guest.has_left:
            raise UnauthorizedError("Guest has left the session", guest_id=guest.id)
        if guest.session.status in SessionStatus.TERMINAL:
            raise UnauthorizedError(
                "Session has ended",
                guest_id=guest.id,
                session_id=guest.session_id,
            )
        return guest

    def require_member(self, token: str | None, session_id: str) -> SessionGuest:
        """validate_token() plus a check that the token belongs to ``session_id``."""
        guest = self.validate_token(token)
        if guest.session_id != session_id:
            raise ForbiddenError("access this session", guest_id=guest.id, session_id=session_id)
        return guest

    # =========================================================================
    # Activity and leaving
    # =========================================================================

    def touch(self, guest: SessionGuest) -> None:
        """Record activity for the guest and their session. Caller commits."""
        guest.last_activity_at = utcnow()
        guest.session.touch()

    def leave(self, session_id: str, token: str | None) -> SessionGuest:
        """
        Leave the session. Revokes the token; the host flag stays where it is.
        Leaving twice is a no-op.
        """
        guest = self._find_by_token(token)
        if guest.session_id != session_id:
            raise ForbiddenError("leave this session", guest_id=guest.id, session_id=session_id)
        if guest.has_left:
            return guest

        with self._locks.hold(session_key(session_id)):
            session = self.lock_session(session_id)
            # A concurrent leave with the same token may have won the lock
            self._db.refresh(guest)
            if guest.has_left:
                self._db.rollback()
                return guest
            guest.left_at = utcnow()
            guest.last_activity_at = guest.left_at
            session.guest_count = max(0, (session.guest_count or 0) - 1)
            session.touch()
            safe_commit(self._db)
            self._db.refresh(guest)

        logger.info("Guest left", session_id=session_id, guest_id=guest.id, was_host=guest.is_host)
        return guest

    def active_guests(self, session: DiningSession) -> list[SessionGuest]:
        return [guest for guest in session.guests if not guest.has_left]
