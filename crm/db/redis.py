"""Redis connection management.

Same shape as engine.py: a pool when REDIS_URL is configured, None
otherwise.  Redis only backs the rate limiter, so every consumer falls
back to an in-memory implementation when the pool is None.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from crm.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Verify connectivity on startup and close the pool on shutdown.

    An unreachable Redis does not stop the service from starting; rate
    limiting degrades and /health reports it.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, rate limiting is process-local")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected")
    except RedisError:
        logger.exception("Redis connection failed on startup")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
