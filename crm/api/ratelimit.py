"""Rate limiting dependency for FastAPI routes.

A dependency rather than middleware so each route opts in with its own
limit.  Here it guards the invitation endpoints, where an attacker
would otherwise be free to guess tokens.

Buckets are keyed on the client address (``ip:<addr>``) per scope.
Nothing from the request body or an unverified bearer token goes into
the key, so a caller cannot mint fresh buckets for itself.
X-RateLimit-* headers go out on every limited response; a rejected
request gets 429 with Retry-After.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, Response, status

from crm.core.metrics import RATE_LIMIT_HITS
from crm.db.redis import redis_pool
from crm.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimitResult,
    RedisRateLimiter,
)

logger = logging.getLogger(__name__)

if redis_pool is not None:
    _rate_limiter = RedisRateLimiter(redis_pool)
else:
    _rate_limiter = InMemoryRateLimiter()


_DEFAULT_CONFIG = RateLimitConfig()


def require_rate_limit(config: RateLimitConfig = _DEFAULT_CONFIG, *, scope: str = ""):
    """Dependency factory: enforce a token bucket on a route.

    ``scope`` separates the buckets of routes with different limits::

        @router.get("/v1/invitations/{token}", dependencies=[Depends(
            require_rate_limit(RateLimitConfig(capacity=20, refill_rate=0.2),
                               scope="invitation-lookup")
        )])
    """

    async def _check(request: Request, response: Response) -> None:
        key = _build_key(request)
        bucket = f"{scope}:{key}" if scope else key
        result: RateLimitResult = await _rate_limiter.check(bucket, config)

        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)

        if not result.allowed:
            RATE_LIMIT_HITS.labels(scope=scope or "-").inc()
            logger.warning("Rate limit exceeded key=%s scope=%s", key, scope or "-")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Rate limit exceeded",
                headers={
                    "Retry-After": str(int(result.retry_after) + 1),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check


def _build_key(request: Request) -> str:
    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"
