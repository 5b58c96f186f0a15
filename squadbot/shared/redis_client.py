"""Redis connection factory.

The returned client owns a connection pool; every command borrows a
connection for its own duration, so no connection is held across an
interaction. The client is built once at startup and handed to each
service explicitly.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis

from squadbot.shared.config import Settings

logger = logging.getLogger(__name__)


def create_redis_client(settings: Settings) -> redis.Redis:
    """Create the Redis client used by all squad services.

    Args:
        settings: Application settings

    Returns:
        Redis client decoding responses to ``str``
    """
    client = redis.Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )
    logger.info(f"Configured Redis client for {settings.redis_url}")
    return client


async def close_redis_client(client: redis.Redis) -> None:
    """Close the client and release its connection pool."""
    await client.aclose()
    logger.info("Redis client closed")
