"""
Redis connection management.

Redis holds the pickup-code attempt counters. The client is created on
first use so importing the app never opens a connection.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from parcelhop.app.core.config import settings

logger = logging.getLogger("parcelhop.redis")

_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    global _client
    if _client is None:
        _client = redis.from_url(
            settings.redis_url,
            decode_responses=settings.redis_decode_responses,
        )
    return _client


async def get_redis() -> redis.Redis:
    """FastAPI dependency returning the shared client."""
    return get_redis_client()


async def ping_redis() -> bool:
    """True if Redis answers a PING."""
    try:
        return await get_redis_client().ping()
    except Exception as e:
        logger.warning("Redis ping failed: %s", e)
        return False


async def close_redis():
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
