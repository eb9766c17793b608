"""
Shared Redis connection for the durable state store and host sessions.

Opened in the lifespan handler. Socket timeouts are short; a state lookup
that times out falls back to the process-local cache.
"""

import redis.asyncio as aioredis

from ssobridge.config import settings
from ssobridge.logging_config import get_logger

logger = get_logger(__name__)

_redis: aioredis.Redis | None = None


async def init_redis() -> None:
    """Connect to Redis and verify the connection with a PING."""
    global _redis  # noqa: PLW0603
    logger.info("Connecting to Redis", timeout=settings.redis_timeout_seconds)
    _redis = aioredis.from_url(
        str(settings.redis_url),
        decode_responses=True,
        socket_timeout=settings.redis_timeout_seconds,
        socket_connect_timeout=settings.redis_timeout_seconds,
    )
    await _redis.ping()
    logger.info("Redis ready for state and session keys")


async def close_redis() -> None:
    global _redis  # noqa: PLW0603
    if _redis is not None:
        logger.info("Closing Redis connection")
        await _redis.aclose()
        _redis = None


def get_redis_client() -> aioredis.Redis:
    """Client used by RedisStateStore and RedisSessionIssuer."""
    if _redis is None:
        raise RuntimeError("Redis client not initialized, call init_redis() first")
    return _redis


async def get_redis_health() -> bool:
    """PING for the readiness probe. Never raises."""
    if _redis is None:
        return False
    try:
        await _redis.ping()
    except Exception as e:
        logger.error("Redis health check failed", error=str(e))
        return False
    return True
