"""
Tests for the TableRegistry domain service.
"""

import pytest

from shared.config.constants import SessionStatus, TableStatus
from shared.utils.exceptions import ConflictError, TableNotFoundError, ValidationError
from session_api.models import DiningSession
from session_api.services.domain import TableRegistry
from tests.conftest import make_table


class TestResolveByQrCode:
    """Tests for QR code resolution."""

    def test_resolves_known_code(self, db_session, seed_table):
        """Should return the table for a known QR code."""
        table = TableRegistry(db_session).resolve_by_qr_code(seed_table.qr_code)

        assert table.id == seed_table.id

    def test_unknown_code_raises(self, db_session, seed_table):
        """Should raise TableNotFoundError for an unknown code."""
        with pytest.raises(TableNotFoundError):
            TableRegistry(db_session).resolve_by_qr_code("nope")

    def test_disabled_table_is_not_found(self, db_session, seed_restaurant):
        """Should treat a disabled table as unknown."""
        table = make_table(db_session, seed_restaurant, "9", is_active=False)

        with pytest.raises(TableNotFoundError):
            TableRegistry(db_session).resolve_by_qr_code(table.qr_code)

    def test_out_of_service_table_is_not_found(self, db_session, seed_restaurant):
        table = make_table(db_session, seed_restaurant, "8", status=TableStatus.OUT_OF_SERVICE)

        with pytest.raises(TableNotFoundError):
            TableRegistry(db_session).resolve_by_qr_code(table.qr_code)


class TestTableAdmin:
    """Tests for creating and disabling tables."""

    def test_create_table_generates_qr_code(self, db_session, seed_restaurant):
        """Should create an AVAILABLE table with a fresh QR code."""
        table = TableRegistry(db_session).create_table(seed_restaurant.id, "12", capacity=6)

        assert table.qr_code
        assert table.capacity == 6
        assert table.status == TableStatus.AVAILABLE
        assert table.current_session_id is None

    def test_duplicate_table_number_conflicts(self, db_session, seed_restaurant, seed_table):
        """Should refuse a second table with the same number."""
        with pytest.raises(ConflictError):
            TableRegistry(db_session).create_table(seed_restaurant.id, seed_table.table_number)

    def test_unknown_restaurant_is_rejected(self, db_session):
        with pytest.raises(ValidationError):
            TableRegistry(db_session).create_table("missing", "1")

    def test_cannot_disable_seated_table(self, db_session, open_session, seed_table):
        """Should refuse to disable a table with an open session."""
        with pytest.raises(ConflictError):
            TableRegistry(db_session).set_enabled(seed_table.id, False)

    def test_disable_and_enable(self, db_session, seed_table):
        """Should take a free table out of service and bring it back."""
        registry = TableRegistry(db_session)

        disabled = registry.set_enabled(seed_table.id, False)
        assert disabled.status == TableStatus.OUT_OF_SERVICE
        assert not disabled.enabled

        enabled = registry.set_enabled(seed_table.id, True)
        assert enabled.status == TableStatus.AVAILABLE
        assert enabled.enabled


class TestReconcilePointers:
    """Tests for pointer repair."""

    def test_clears_pointer_to_terminal_session(self, db_session, open_session, seed_table):
        """Should clear a pointer left behind on a closed session."""
        session = open_session.session
        # Simulate a crash between the status change and the pointer release
        db_session.get(DiningSession, session.id).status = SessionStatus.COMPLETED
        db_session.commit()

        fixed = TableRegistry(db_session).reconcile_pointers()

        db_session.refresh(seed_table)
        assert fixed == 1
        assert seed_table.current_session_id is None
        assert seed_table.status == TableStatus.AVAILABLE

    def test_restores_missing_pointer(self, db_session, open_session, seed_table):
        """Should point the table back at its open session."""
        seed_table.current_session_id = None
        seed_table.status = TableStatus.AVAILABLE
        db_session.commit()

        fixed = TableRegistry(db_session).reconcile_pointers()

        db_session.refresh(seed_table)
        assert fixed == 1
        assert seed_table.current_session_id == open_session.session.id
        assert seed_table.status == TableStatus.OCCUPIED

    def test_consistent_tables_are_left_alone(self, db_session, open_session):
        assert TableRegistry(db_session).reconcile_pointers() == 0
