"""
Redis client initialization and connection management.

This module provides Redis client setup for the proximity cache. The
client is created by the application lifespan and owned by it.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError

from driver_matching.app.core.config import Settings


def create_redis_client(settings: Settings) -> redis.Redis:
    """
    Create an async Redis client from settings.

    Connection, read and write operations share the configured timeout.
    """
    return redis.from_url(
        settings.redis_url,
        decode_responses=settings.redis_decode_responses,
        socket_timeout=settings.redis_timeout_seconds,
        socket_connect_timeout=settings.redis_timeout_seconds,
    )


async def ping_redis(client: redis.Redis) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return bool(await client.ping())
    except (RedisError, OSError):
        return False
