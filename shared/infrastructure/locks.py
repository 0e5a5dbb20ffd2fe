"""
Keyed lock registry.

Serializes work per key (one dining session, one table) inside this process.
Row locks taken with SELECT ... FOR UPDATE cover the cross-process case; the
registry keeps threads of the same worker from interleaving between the read
and the commit, which SQLite would otherwise allow.

LOCK ORDERING:
    table:<id>  ->  session:<id>
Never acquire a table lock while holding a session lock.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from shared.config.logging import get_logger

logger = get_logger(__name__)


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def table_key(table_id: str) -> str:
    return f"table:{table_id}"


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


class KeyedLockRegistry:
    """
    One re-entrant lock per key, created on demand.

    Entries are reference counted and dropped once nobody holds or waits on
    them, so the registry never grows beyond the keys currently in use.
    """

    def __init__(self, timeout: float = 30.0):
        self._timeout = timeout
        self._entries: dict[str, _Entry] = {}
        self._meta_lock = threading.Lock()

    @property
    def size(self) -> int:
        """Number of keys currently held or awaited."""
        with self._meta_lock:
            return len(self._entries)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises TimeoutError if the lock cannot be acquired within the
        registry timeout.
        """
        with self._meta_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.holders += 1

        acquired = entry.lock.acquire(timeout=self._timeout)
        try:
            if not acquired:
                logger.error("Timed out waiting for lock", key=key, timeout=self._timeout)
                raise TimeoutError(f"Timed out waiting for lock {key}")
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._meta_lock:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(key, None)


# Process-wide registry used by the domain services
session_locks = KeyedLockRegistry()
