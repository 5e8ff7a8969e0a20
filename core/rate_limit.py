"""
Token Bucket Rate Limiting.

Two interchangeable backends, chosen by configuration:

- MemoryTokenBucket: process-local buckets. Correct for a single-instance
  deployment only; every worker process keeps its own budget.
- RedisTokenBucket: buckets shared by every instance through Redis, updated
  atomically by a Lua script.

Buckets hold `points` tokens and refill at `points / duration` tokens per
second. With `block_seconds` set, draining a bucket blocks the key for that
long instead of waiting for the next token.
"""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRule:
    """Budget for one limiter."""
    points: int
    duration_seconds: float
    block_seconds: float = 0.0
    name: str = "general"

    @property
    def refill_rate(self) -> float:
        return self.points / self.duration_seconds


@dataclass
class RateLimitResult:
    """Result of consuming one token."""
    allowed: bool
    remaining: float = 0.0
    retry_after_seconds: int = 0


class TokenBucketLimiter(ABC):
    """Consumes tokens from a bucket keyed by caller."""

    def __init__(self, rule: RateLimitRule):
        self.rule = rule

    @abstractmethod
    async def consume(self, key: str) -> RateLimitResult:
        pass

    async def close(self) -> None:
        pass


class MemoryTokenBucket(TokenBucketLimiter):
    """Process-local token bucket."""

    def __init__(self, rule: RateLimitRule, clock=time.monotonic):
        super().__init__(rule)
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: Dict[str, Dict[str, float]] = {}
        # After this long untouched a bucket is full and unblocked again
        self._idle_seconds = rule.duration_seconds + rule.block_seconds
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._buckets)

    def _sweep(self, now: float) -> None:
        idle = [
            key for key, bucket in self._buckets.items()
            if now - bucket["ts"] >= self._idle_seconds and bucket["blocked_until"] <= now
        ]
        for key in idle:
            del self._buckets[key]
        self._last_sweep = now
        if idle:
            logger.debug(f"Dropped {len(idle)} idle '{self.rule.name}' rate limit buckets")

    async def consume(self, key: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self._idle_seconds:
                self._sweep(now)
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = {"tokens": float(self.rule.points), "ts": now, "blocked_until": 0.0}
                self._buckets[key] = bucket

            if bucket["blocked_until"] > now:
                return RateLimitResult(
                    allowed=False,
                    retry_after_seconds=max(1, math.ceil(bucket["blocked_until"] - now)),
                )

            elapsed = now - bucket["ts"]
            bucket["tokens"] = min(float(self.rule.points), bucket["tokens"] + elapsed * self.rule.refill_rate)
            bucket["ts"] = now

            if bucket["tokens"] < 1:
                if self.rule.block_seconds > 0:
                    bucket["blocked_until"] = now + self.rule.block_seconds
                    wait = self.rule.block_seconds
                else:
                    wait = (1 - bucket["tokens"]) / self.rule.refill_rate
                return RateLimitResult(allowed=False, retry_after_seconds=max(1, math.ceil(wait)))

            bucket["tokens"] -= 1
            return RateLimitResult(allowed=True, remaining=bucket["tokens"])

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


# KEYS[1] bucket key
# ARGV: capacity, refill_per_sec, now, block_seconds, ttl
_TOKEN_BUCKET_SCRIPT = """
local key = KEYS[1]
local capacity = tonumber(ARGV[1])
local refill = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local block_seconds = tonumber(ARGV[4])
local ttl = tonumber(ARGV[5])

local blocked_until = tonumber(redis.call('HGET', key, 'blocked_until') or '0')
if blocked_until > now then
  return {0, tostring(blocked_until - now)}
end

local tokens = tonumber(redis.call('HGET', key, 'tokens') or tostring(capacity))
local ts = tonumber(redis.call('HGET', key, 'ts') or tostring(now))
tokens = math.min(capacity, tokens + math.max(0, now - ts) * refill)

if tokens < 1 then
  local wait = (1 - tokens) / refill
  if block_seconds > 0 then
    redis.call('HSET', key, 'blocked_until', tostring(now + block_seconds))
    wait = block_seconds
  end
  redis.call('HSET', key, 'tokens', tostring(tokens), 'ts', tostring(now))
  redis.call('EXPIRE', key, ttl)
  return {0, tostring(wait)}
end

tokens = tokens - 1
redis.call('HSET', key, 'tokens', tostring(tokens), 'ts', tostring(now))
redis.call('EXPIRE', key, ttl)
return {1, tostring(tokens)}
"""


class RedisTokenBucket(TokenBucketLimiter):
    """Token bucket shared across instances through Redis."""

    KEY_PREFIX = "exchange:rate"

    def __init__(self, rule: RateLimitRule, redis_client: Any):
        super().__init__(rule)
        self._redis = redis_client

    @classmethod
    def from_url(cls, rule: RateLimitRule, url: str) -> "RedisTokenBucket":
        from redis.asyncio import Redis

        return cls(rule, Redis.from_url(url))

    async def consume(self, key: str) -> RateLimitResult:
        ttl = int(math.ceil(max(self.rule.duration_seconds, self.rule.block_seconds))) + 1
        allowed, value = await self._redis.eval(
            _TOKEN_BUCKET_SCRIPT,
            1,
            f"{self.KEY_PREFIX}:{self.rule.name}:{key}",
            self.rule.points,
            self.rule.refill_rate,
            time.time(),
            self.rule.block_seconds,
            ttl,
        )
        number = float(value.decode() if isinstance(value, bytes) else value)
        if int(allowed) == 1:
            return RateLimitResult(allowed=True, remaining=number)
        return RateLimitResult(allowed=False, retry_after_seconds=max(1, math.ceil(number)))

    async def close(self) -> None:
        await self._redis.aclose()


def build_limiter(rule: RateLimitRule, backend: str, redis_url: Optional[str] = None) -> TokenBucketLimiter:
    """Create a limiter for the configured backend."""
    if backend == "redis":
        if not redis_url:
            raise ValueError("RATE_LIMIT_REDIS_URL is required for the redis rate limit backend")
        logger.info(f"Using Redis token bucket for '{rule.name}' limiter")
        return RedisTokenBucket.from_url(rule, redis_url)
    if backend == "memory":
        logger.info(f"Using process-local token bucket for '{rule.name}' limiter")
        return MemoryTokenBucket(rule)
    raise ValueError(f"Unknown rate limit backend: {backend}")
