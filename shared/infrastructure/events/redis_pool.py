"""
Shared async Redis client for event publishing and health checks.

One client (and connection pool) per process, created on first use and
closed from the application lifespan.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any

import redis.asyncio as redis

from shared.config.settings import settings, REDIS_URL
from shared.config.logging import get_logger

logger = get_logger(__name__)

_redis_pool: redis.Redis | None = None
_init_lock: asyncio.Lock | None = None
_init_lock_guard = threading.Lock()


def _pool_init_lock() -> asyncio.Lock:
    # Created lazily so it binds to the running event loop
    global _init_lock
    if _init_lock is None:
        with _init_lock_guard:
            if _init_lock is None:
                _init_lock = asyncio.Lock()
    return _init_lock


def _build_pool() -> redis.Redis:
    return redis.from_url(
        REDIS_URL,
        max_connections=settings.redis_pool_max_connections,
        decode_responses=True,
        socket_connect_timeout=settings.redis_socket_timeout,
        socket_timeout=settings.redis_socket_timeout,
        health_check_interval=30,
    )


async def get_redis_pool() -> redis.Redis:
    """The process-wide Redis client."""
    global _redis_pool
    if _redis_pool is None:
        async with _pool_init_lock():
            if _redis_pool is None:
                _redis_pool = _build_pool()
                logger.info(
                    "Redis pool opened",
                    max_connections=settings.redis_pool_max_connections,
                    timeout=settings.redis_socket_timeout,
                )
    return _redis_pool


async def check_redis() -> dict[str, Any]:
    """PING Redis. Returns a health entry instead of raising."""
    started = time.perf_counter()
    try:
        client = await get_redis_pool()
        await client.ping()
    except Exception as e:
        logger.warning("Redis health check failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


async def close_redis_pool() -> None:
    """Close the Redis client on shutdown. Safe to call when never opened."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
        logger.info("Redis pool closed")
