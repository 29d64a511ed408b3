"""Token-bucket rate limiting.

A bucket holds ``capacity`` tokens and refills at ``refill_rate`` tokens
per second; each request spends one.  Bursts up to capacity are allowed
and the long-run rate is the refill rate.

Used to slow down guessing of invitation tokens on the public lookup and
accept endpoints.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Outcome of one check.

    retry_after is the number of seconds until the next token (0 when allowed).
    """

    allowed: bool
    remaining: int
    limit: int
    retry_after: float


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """capacity: burst size.  refill_rate: tokens per second."""

    capacity: int = 60
    refill_rate: float = 1.0


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    async def reset(self, key: str) -> None: ...


@dataclass(slots=True)
class _Bucket:
    tokens: float
    updated_at: float

    def spend(self, now: float, config: RateLimitConfig) -> RateLimitResult:
        elapsed = max(0.0, now - self.updated_at)
        self.tokens = min(config.capacity, self.tokens + elapsed * config.refill_rate)
        self.updated_at = now
        if self.tokens < 1:
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=config.capacity,
                retry_after=(1 - self.tokens) / config.refill_rate,
            )
        self.tokens -= 1
        return RateLimitResult(
            allowed=True,
            remaining=math.floor(self.tokens),
            limit=config.capacity,
            retry_after=0,
        )


class InMemoryRateLimiter:
    """Process-local buckets; each API replica counts separately."""

    def __init__(self, clock=time.monotonic) -> None:
        self._buckets: dict[str, _Bucket] = {}
        self._clock = clock

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        bucket = self._buckets.setdefault(key, _Bucket(float(config.capacity), now))
        return bucket.spend(now, config)

    async def reset(self, key: str) -> None:
        self._buckets.pop(key, None)


# KEYS[1]: bucket hash.  ARGV: capacity, refill_rate, now (seconds).
# Returns {allowed, remaining, retry_after_ms}.
_SPEND_SCRIPT = """
local capacity = tonumber(ARGV[1])
local rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local state = redis.call('HMGET', KEYS[1], 'tokens', 'updated_at')
local tokens = tonumber(state[1]) or capacity
local updated_at = tonumber(state[2]) or now
tokens = math.min(capacity, tokens + math.max(0, now - updated_at) * rate)

local allowed = 0
local retry_ms = 0
if tokens >= 1 then
    tokens = tokens - 1
    allowed = 1
else
    retry_ms = math.ceil((1 - tokens) / rate * 1000)
end

redis.call('HSET', KEYS[1], 'tokens', tokens, 'updated_at', now)
redis.call('EXPIRE', KEYS[1], math.ceil(capacity / rate) + 60)
return {allowed, math.floor(tokens), retry_ms}
"""


class RedisRateLimiter:
    """Buckets shared by every replica.

    The refill and the spend happen in one Lua call, so two replicas
    cannot both take the last token.
    """

    def __init__(self, redis_client, prefix: str = "ratelimit") -> None:
        self._redis = redis_client
        self._prefix = prefix
        self._spend = redis_client.register_script(_SPEND_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        allowed, remaining, retry_ms = await self._spend(
            keys=[self._key(key)],
            args=[config.capacity, config.refill_rate, time.time()],
        )
        return RateLimitResult(
            allowed=allowed == 1,
            remaining=max(0, int(remaining)),
            limit=config.capacity,
            retry_after=int(retry_ms) / 1000,
        )

    async def reset(self, key: str) -> None:
        await self._redis.delete(self._key(key))
