"""
Session event fan-out: schema, channels and publishers.
"""

from .event_schema import Event
from .event_types import *  # noqa: F401,F403
from .channels import channel_session, channel_restaurant_sessions
from .publisher import (
    EventPublisher,
    RedisEventPublisher,
    InMemoryEventPublisher,
    get_event_publisher,
    publish_safely,
    schedule_events,
    channels_for,
)
from .redis_pool import check_redis, close_redis_pool, get_redis_pool

__all__ = [
    "Event",
    "EventPublisher",
    "RedisEventPublisher",
    "InMemoryEventPublisher",
    "get_event_publisher",
    "publish_safely",
    "schedule_events",
    "channels_for",
    "channel_session",
    "channel_restaurant_sessions",
    "get_redis_pool",
    "check_redis",
    "close_redis_pool",
]
