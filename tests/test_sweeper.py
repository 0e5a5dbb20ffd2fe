"""
Tests for the abandoned-session sweeper.
"""

import asyncio
from datetime import timedelta

import pytest

from shared.config.constants import SessionStatus
from shared.infrastructure.events import SESSION_EXPIRED, channel_restaurant_sessions
from session_api.models import DiningSession, utcnow
from session_api.services.domain.lifecycle_service import EXPIRED_REASON, SessionLifecycleService
from session_api.services.domain.table_registry import TableRegistry
from session_api.services.session_sweeper import SessionSweeper, sweep_once
from tests.conftest import TestingSessionLocal


def _age(db_session, session, hours):
    db_session.get(DiningSession, session.id).last_activity_at = utcnow() - timedelta(hours=hours)
    db_session.commit()


class TestSweepOnce:
    """Tests for a single sweep."""

    def test_expires_idle_sessions(self, db_session, open_session, seed_table):
        """Should cancel sessions idle past the timeout and free their tables."""
        session = open_session.session
        _age(db_session, session, hours=5)

        result = sweep_once(session_factory=TestingSessionLocal, timeout_minutes=240)

        db_session.expire_all()
        assert result.expired_session_ids == [session.id]
        assert db_session.get(DiningSession, session.id).status == SessionStatus.CANCELLED
        assert db_session.get(DiningSession, session.id).end_reason == EXPIRED_REASON
        assert seed_table.current_session_id is None

    def test_builds_expired_events(self, db_session, open_session):
        _age(db_session, open_session.session, hours=5)

        result = sweep_once(session_factory=TestingSessionLocal, timeout_minutes=240)

        assert [event.type for event in result.events] == [SESSION_EXPIRED]
        assert result.events[0].entity["reason"] == EXPIRED_REASON

    def test_leaves_recent_sessions(self, db_session, open_session):
        result = sweep_once(session_factory=TestingSessionLocal, timeout_minutes=240)

        assert result.expired_session_ids == []
        assert result.events == []

    def test_failure_on_one_session_does_not_stop_the_rest(self, db_session, lifecycle, open_session, second_table, monkeypatch):
        """Should log a session that cannot be closed and still expire the others."""
        stuck_id = open_session.session.id
        other = lifecycle.create_or_join(second_table.id, "Bob").session
        other_id = other.id
        _age(db_session, open_session.session, hours=5)
        _age(db_session, other, hours=5)

        real_close = SessionLifecycleService._close

        def close(self, session, target, reason):
            if session.id == stuck_id:
                raise TimeoutError("lock held elsewhere")
            return real_close(self, session, target, reason)

        monkeypatch.setattr(SessionLifecycleService, "_close", close)

        result = sweep_once(session_factory=TestingSessionLocal, timeout_minutes=240)

        db_session.expire_all()
        assert result.expired_session_ids == [other_id]
        assert db_session.get(DiningSession, stuck_id).status == SessionStatus.ACTIVE
        assert db_session.get(DiningSession, other_id).status == SessionStatus.CANCELLED

    def test_reconciles_tables_even_when_expiry_fails(self, db_session, monkeypatch):
        """Should still repair table pointers when expiry raises."""
        reconciled = []

        def explode(self, cutoff):
            raise RuntimeError("database went away")

        def reconcile(self):
            reconciled.append(True)
            return 0

        monkeypatch.setattr(SessionLifecycleService, "expire_inactive", explode)
        monkeypatch.setattr(TableRegistry, "reconcile_pointers", reconcile)

        with pytest.raises(RuntimeError):
            sweep_once(session_factory=TestingSessionLocal)

        assert reconciled == [True]

    def test_custom_now(self, db_session, open_session):
        """Should measure idleness against the given clock."""
        later = utcnow() + timedelta(hours=10)

        result = sweep_once(session_factory=TestingSessionLocal, now=later, timeout_minutes=240)

        assert result.expired_session_ids == [open_session.session.id]


class TestSessionSweeper:
    """Tests for the background sweeper."""

    def test_run_once_publishes_events(self, db_session, open_session, publisher):
        """Should publish SESSION_EXPIRED to the restaurant channel."""
        session = open_session.session
        _age(db_session, session, hours=24 * 7)

        sweeper = SessionSweeper(interval_seconds=60, session_factory=TestingSessionLocal)
        result = asyncio.run(sweeper.run_once())

        assert result.expired_session_ids == [session.id]
        published = publisher.on_channel(channel_restaurant_sessions(session.restaurant_id))
        assert [event.type for event in published] == [SESSION_EXPIRED]

    def test_start_and_stop(self, db_session):
        async def scenario():
            sweeper = SessionSweeper(interval_seconds=3600, session_factory=TestingSessionLocal)
            await sweeper.start()
            assert sweeper.running
            await sweeper.stop()
            assert not sweeper.running

        asyncio.run(scenario())
