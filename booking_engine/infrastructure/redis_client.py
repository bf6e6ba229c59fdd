"""
Redis connection pool for the distributed booking lock.

The pool is created on first use so processes running with the local
lock backend never open a Redis connection.
"""

from typing import Optional

import redis.asyncio as aioredis

from booking_engine.config import settings

_pool: Optional[aioredis.ConnectionPool] = None


async def get_redis() -> aioredis.Redis:
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            settings.redis_url, decode_responses=True
        )
    return aioredis.Redis(connection_pool=_pool)


async def close_redis() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None
