"""
Event publishing.

Two publishers share one interface:
- RedisEventPublisher: Redis pub/sub with retry and backoff.
- InMemoryEventPublisher: keeps the most recent events in a bounded buffer
  (single-process deployments and tests).

Routers publish after their transaction commits, through FastAPI background
tasks, so a failed publish never fails the request that caused it.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from typing import Protocol

from fastapi import BackgroundTasks

from shared.config.settings import settings
from shared.config.logging import get_logger
from .channels import channel_session, channel_restaurant_sessions
from .event_schema import Event
from .event_types import MAX_EVENT_SIZE
from .redis_pool import get_redis_pool

logger = get_logger(__name__)


def channels_for(event: Event) -> list[str]:
    """Every event goes to the session's guests and the restaurant's staff."""
    return [
        channel_session(event.session_id),
        channel_restaurant_sessions(event.restaurant_id),
    ]


def _validate_event_size(event_json: str, event_type: str) -> None:
    size = len(event_json.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(f"Event {event_type} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes")


class EventPublisher(Protocol):
    async def publish(self, event: Event) -> None: ...


class RedisEventPublisher:
    """Publishes events to Redis channels, retrying transient failures."""

    def __init__(
        self,
        max_retries: int = settings.redis_publish_max_retries,
        retry_delay: float = settings.redis_publish_retry_delay,
    ):
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay

    async def publish(self, event: Event) -> None:
        event_json = event.to_json()
        _validate_event_size(event_json, event.type)
        redis_client = await get_redis_pool()
        for channel in channels_for(event):
            await self._publish_with_retry(redis_client, channel, event, event_json)

    async def _publish_with_retry(self, redis_client, channel: str, event: Event, event_json: str) -> int:
        last_error: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                return await redis_client.publish(channel, event_json)
            except Exception as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    # Exponential backoff
                    delay = self._retry_delay * (2 ** attempt)
                    logger.warning(
                        "Redis publish failed, retrying",
                        channel=channel,
                        event_type=event.type,
                        attempt=attempt + 1,
                        delay_seconds=round(delay, 2),
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        logger.error(
            "Redis publish failed after all retries",
            channel=channel,
            event_type=event.type,
            error=str(last_error),
        )
        raise last_error  # type: ignore[misc]


class InMemoryEventPublisher:
    """
    Records published events in order. Thread-safe.

    Keeps the newest ``max_events`` (MEMORY_EVENTS_MAX_RETAINED); older ones
    are dropped.
    """

    def __init__(self, max_events: int | None = None) -> None:
        self._events: deque[Event] = deque(maxlen=max_events or settings.memory_events_max_retained)
        self._lock = threading.Lock()

    @property
    def max_events(self) -> int:
        return self._events.maxlen

    async def publish(self, event: Event) -> None:
        _validate_event_size(event.to_json(), event.type)
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[Event]:
        """Published events in order, one entry per event."""
        with self._lock:
            return list(self._events)

    def on_channel(self, channel: str) -> list[Event]:
        return [event for event in self.events if channel in channels_for(event)]

    def of_type(self, event_type: str) -> list[Event]:
        return [event for event in self.events if event.type == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


_publisher: EventPublisher | None = None
_publisher_lock = threading.Lock()


def get_event_publisher() -> EventPublisher:
    """
    FastAPI dependency returning the configured publisher singleton.

    EVENTS_BACKEND=redis (default) or EVENTS_BACKEND=memory.
    """
    global _publisher
    if _publisher is None:
        with _publisher_lock:
            if _publisher is None:
                if settings.events_backend == "memory":
                    _publisher = InMemoryEventPublisher()
                else:
                    _publisher = RedisEventPublisher()
                logger.info("Event publisher initialized", backend=settings.events_backend)
    return _publisher


async def publish_safely(publisher: EventPublisher, event: Event) -> None:
    """Publish and log failures instead of raising."""
    try:
        await publisher.publish(event)
    except Exception as e:
        logger.error(
            "Failed to publish event",
            event_type=event.type,
            session_id=event.session_id,
            error=str(e),
        )


def schedule_events(
    background_tasks: BackgroundTasks,
    publisher: EventPublisher,
    *events: Event,
) -> None:
    """Queue events for publication after the response is sent."""
    for event in events:
        background_tasks.add_task(publish_safely, publisher, event)
