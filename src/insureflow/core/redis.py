"""Module-level Redis connection pool (lazy init).

Backs the persisted connection configuration entry when
CONFIG_STORE_BACKEND is "redis".
"""

from __future__ import annotations

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.insureflow.config import get_settings

_redis_pool: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis:
    """Get or create the Redis connection pool singleton."""
    global _redis_pool
    if _redis_pool is None:
        settings = get_settings()
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def check_config_store() -> str | None:
    """Ping the pool. Returns None when healthy, else the failure reason."""
    try:
        pong = await get_redis_pool().ping()
    except (RedisError, OSError) as exc:
        return str(exc)
    return None if pong else "PING did not return PONG"


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None
