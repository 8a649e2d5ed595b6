# builder_api/app/core/redis_conn.py
from __future__ import annotations

from typing import Optional

from redis.asyncio import Redis as AsyncRedis  # requires redis>=5

from builder_api.app.core.config import settings

# Module-level singleton
_async_client: Optional[AsyncRedis] = None


def get_async_redis() -> AsyncRedis:
    """
    Return a singleton asynchronous Redis client.
    """
    global _async_client
    if _async_client is None:
        _async_client = AsyncRedis.from_url(settings.redis_url, decode_responses=True)
    return _async_client


async def ping() -> bool:
    """
    Lightweight ping for health checks.
    """
    try:
        return bool(await get_async_redis().ping())
    except Exception:
        return False
