"""
Redis connection management for the relay.
One pooled client per process.
"""
import asyncio
from typing import Optional
import redis.asyncio as aioredis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError
from blaze_feed.config import settings
from blaze_feed.utils.logging import get_logger

logger = get_logger("relay.client")

_pool: Optional[ConnectionPool] = None
_client: Optional[aioredis.Redis] = None


async def get_redis() -> aioredis.Redis:
    """Get the shared Redis client, creating the pool on first use."""
    global _pool, _client

    if _client is None:
        logger.info(f"Creating Redis connection pool (max_connections={settings.REDIS_MAX_CONNECTIONS})")
        _pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            decode_responses=True,
            encoding="utf-8",
        )
        _client = aioredis.Redis(connection_pool=_pool)

    return _client


async def close_redis():
    """Close the shared client and its pool."""
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis client closed")

    if _pool is not None:
        await _pool.disconnect()
        _pool = None


async def check_redis_health() -> bool:
    try:
        client = await get_redis()
        result = await asyncio.wait_for(client.ping(), timeout=2.0)
        return result is True
    except (RedisError, RedisConnectionError, asyncio.TimeoutError) as e:
        logger.error(f"Redis health check failed: {e}")
        return False
