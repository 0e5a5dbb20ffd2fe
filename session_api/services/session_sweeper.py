"""
Abandoned-session sweeper.

Periodically cancels ACTIVE sessions that have been idle longer than
``session_inactivity_timeout_minutes`` and repairs table pointers left behind
by an interrupted close. Runs as an asyncio task started from the FastAPI
lifespan; the database work runs in a worker thread because the domain
services are synchronous.

Can also run once from the CLI (``numa-sessions sweep``) or from tests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from shared.infrastructure.events import SESSION_EXPIRED, Event, get_event_publisher, publish_safely
from session_api.models import utcnow
from session_api.services.domain.lifecycle_service import SessionLifecycleService
from session_api.services.domain.table_registry import TableRegistry
from session_api.services.session_events import session_event

logger = get_logger(__name__)


@dataclass
class SweepResult:
    expired_session_ids: list[str] = field(default_factory=list)
    tables_fixed: int = 0
    events: list[Event] = field(default_factory=list)


def sweep_once(
    session_factory: Callable[[], Session] = SessionLocal,
    now: datetime | None = None,
    timeout_minutes: int | None = None,
) -> SweepResult:
    """
    One sweep: expire idle sessions, then reconcile table pointers.

    Returns the expired ids and the events to publish; publishing is left to
    the caller so this stays synchronous.
    """
    timeout = timeout_minutes if timeout_minutes is not None else settings.session_inactivity_timeout_minutes
    cutoff = (now or utcnow()) - timedelta(minutes=timeout)
    result = SweepResult()

    with session_factory() as db:
        try:
            expired = SessionLifecycleService(db).expire_inactive(cutoff)
            for session in expired:
                result.expired_session_ids.append(session.id)
                result.events.append(
                    session_event(SESSION_EXPIRED, session, reason=session.end_reason)
                )
        finally:
            # Pointer repair runs even when expiry blew up
            db.rollback()
            result.tables_fixed = TableRegistry(db).reconcile_pointers()

    if result.expired_session_ids or result.tables_fixed:
        logger.info(
            "Session sweep finished",
            expired=len(result.expired_session_ids),
            tables_fixed=result.tables_fixed,
        )
    return result


class SessionSweeper:
    """
    Background loop around sweep_once().

    Errors are logged and the loop keeps going; stop() cancels the task.
    """

    def __init__(
        self,
        interval_seconds: float = settings.session_sweep_interval_seconds,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self._interval = interval_seconds
        self._session_factory = session_factory
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Session sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Session sweeper started", interval_seconds=self._interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Session sweeper stopped")

    async def run_once(self) -> SweepResult:
        result = await asyncio.to_thread(sweep_once, self._session_factory)
        publisher = get_event_publisher()
        for event in result.events:
            await publish_safely(publisher, event)
        return result

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Session sweep failed", error=str(e), exc_info=True)
            await asyncio.sleep(self._interval)


_sweeper: SessionSweeper | None = None


def get_session_sweeper() -> SessionSweeper:
    global _sweeper
    if _sweeper is None:
        _sweeper = SessionSweeper()
    return _sweeper


async def start_session_sweeper() -> None:
    """Start the sweeper (FastAPI lifespan startup)."""
    await get_session_sweeper().start()


async def stop_session_sweeper() -> None:
    """Stop the sweeper (FastAPI lifespan shutdown)."""
    await get_session_sweeper().stop()
