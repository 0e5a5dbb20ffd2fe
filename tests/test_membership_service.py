"""
Tests for the GuestMembershipService domain service.
"""

import pytest
from sqlalchemy import select

from shared.utils.exceptions import (
    ForbiddenError,
    SessionClosedError,
    UnauthorizedError,
    ValidationError,
)
from session_api.models import SessionGuest
from session_api.services.domain import GuestMembershipService, hash_token


class TestAdmission:
    """Tests for admitting guests."""

    def test_first_guest_is_host(self, open_session):
        """Should make the first admitted guest the host."""
        assert open_session.guest.is_host is True
        assert open_session.session.host_name == "Alice"
        assert open_session.session.guest_count == 1

    def test_later_guests_are_not_host(self, db_session, open_session):
        """Should admit later guests without the host flag."""
        admitted = GuestMembershipService(db_session).admit(open_session.session.id, "Bob")

        assert admitted.guest.is_host is False
        db_session.refresh(open_session.session)
        assert open_session.session.guest_count == 2

    def test_exactly_one_host(self, db_session, open_session):
        service = GuestMembershipService(db_session)
        for name in ("Bob", "Carol", "Dan"):
            service.admit(open_session.session.id, name)

        hosts = db_session.scalars(
            select(SessionGuest).where(
                SessionGuest.session_id == open_session.session.id,
                SessionGuest.is_host.is_(True),
            )
        ).all()
        assert len(hosts) == 1

    def test_token_is_stored_hashed(self, db_session, open_session):
        """Should store only the SHA-256 digest of the token."""
        guest = open_session.guest

        assert guest.token_hash == hash_token(open_session.token)
        assert guest.token_hash != open_session.token

    def test_blank_name_is_rejected(self, db_session, open_session):
        with pytest.raises(ValidationError):
            GuestMembershipService(db_session).admit(open_session.session.id, "   ")

    def test_paused_session_refuses_guests(self, db_session, lifecycle, open_session):
        """Should refuse admission unless the session is ACTIVE."""
        lifecycle.pause(open_session.session.id)

        with pytest.raises(SessionClosedError):
            GuestMembershipService(db_session).admit(open_session.session.id, "Bob")


class TestTokens:
    """Tests for guest token validation."""

    def test_validate_token_returns_guest(self, db_session, open_session):
        guest = GuestMembershipService(db_session).validate_token(open_session.token)

        assert guest.id == open_session.guest.id

    def test_missing_token_is_unauthorized(self, db_session):
        with pytest.raises(UnauthorizedError):
            GuestMembershipService(db_session).validate_token(None)

    def test_unknown_token_is_unauthorized(self, db_session, open_session):
        with pytest.raises(UnauthorizedError):
            GuestMembershipService(db_session).validate_token("not-a-token")

    def test_token_of_other_session_is_forbidden(self, db_session, lifecycle, open_session, second_table):
        """Should refuse a valid token used against another session."""
        other = lifecycle.create_or_join(second_table.id, "Zed")

        with pytest.raises(ForbiddenError):
            GuestMembershipService(db_session).require_member(open_session.token, other.session.id)

    def test_token_dies_with_session(self, db_session, lifecycle, open_session):
        """Should reject tokens once the session is terminal."""
        lifecycle.end_session(open_session.session.id)

        with pytest.raises(UnauthorizedError):
            GuestMembershipService(db_session).validate_token(open_session.token)


class TestLeave:
    """Tests for leaving a session."""

    def test_leave_revokes_token(self, db_session, open_session):
        service = GuestMembershipService(db_session)
        bob = service.admit(open_session.session.id, "Bob")

        service.leave(open_session.session.id, bob.token)

        with pytest.raises(UnauthorizedError):
            service.validate_token(bob.token)
        db_session.refresh(open_session.session)
        assert open_session.session.guest_count == 1

    def test_leave_twice_is_noop(self, db_session, open_session):
        """Should not decrement the guest count twice."""
        service = GuestMembershipService(db_session)
        bob = service.admit(open_session.session.id, "Bob")

        service.leave(open_session.session.id, bob.token)
        service.leave(open_session.session.id, bob.token)

        db_session.refresh(open_session.session)
        assert open_session.session.guest_count == 1

    def test_host_keeps_flag_after_leaving(self, db_session, open_session):
        guest = GuestMembershipService(db_session).leave(open_session.session.id, open_session.token)

        assert guest.is_host is True
        assert guest.has_left
