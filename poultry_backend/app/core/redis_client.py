"""
Redis client initialization and connection management.

Redis backs the distributed keyed locks used when several API processes
share one database.
"""

import redis.asyncio as redis
from poultry_backend.app.core.config import settings


# Create async Redis client (connections are opened lazily)
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except (redis.RedisError, OSError):
        return False
