"""Redis clients: async for health checks and the poller pass lock, sync for Celery."""

import logging
from typing import Optional

import redis
import redis.asyncio as aioredis

from app.core.config import settings

logger = logging.getLogger(__name__)

# Held for the whole of one alert pass, by the API poller and by Celery alike
PASS_LOCK_NAME = "trackerfi:alerts:pass"

_redis: Optional[aioredis.Redis] = None
_sync_redis: Optional[redis.Redis] = None


async def get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=2,
        )
    return _redis


def get_sync_redis() -> redis.Redis:
    global _sync_redis
    if _sync_redis is None:
        _sync_redis = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=5,
        )
    return _sync_redis


async def get_pass_lock():
    """Cross-process lock for one alert pass, on the shared async client."""
    r = await get_redis()
    return r.lock(PASS_LOCK_NAME, timeout=settings.ALERT_PASS_LOCK_TIMEOUT)


async def check_redis() -> bool:
    """Return True if Redis answers PING."""
    try:
        r = await get_redis()
        await r.ping()
        return True
    except Exception as e:
        logger.warning("Redis health check failed: %s", e)
        return False


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
