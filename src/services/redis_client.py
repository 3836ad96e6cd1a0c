"""Async Redis client for the session cache.

An empty ``REDIS_URL`` leaves caching disabled: ``init_redis()`` returns None
and the cache layer treats every read as a miss.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.config import Settings, get_settings

logger = logging.getLogger("stridesleep.redis")

# Module-level client, initialized once at app startup
_client: redis.Redis | None = None


async def init_redis(settings: Settings | None = None) -> redis.Redis | None:
    """Create the Redis client. Call once at app startup."""
    global _client
    s = settings or get_settings()
    if not s.redis_url:
        logger.info("REDIS_URL not set, session cache disabled")
        return None

    _client = redis.from_url(
        s.redis_url,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    try:
        await _client.ping()
        logger.info("Redis connection established")
    except RedisError as exc:
        # The cache backs off on its own and retries later
        logger.warning("Redis unavailable at startup: %s", exc)
    return _client


async def close_redis() -> None:
    """Close the client. Call at app shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis connection closed")
