"""Throttles for profile API calls.

Implements:
- IntervalGate: in-process fixed-interval gate (one acquisition per interval)
- RateLimiter: Redis token bucket plus inflight concurrency limiting,
  shared by every process pointing at the same Redis
- Exponential backoff between acquire attempts

Usage:
    throttle = build_profile_throttle(get_settings())

    async with throttle:
        # Make API call
        record = await profiles.resolve(username)
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class AsyncRedisProtocol(Protocol):
    """Protocol for async Redis client."""

    async def get(self, key: str) -> Optional[bytes]: ...
    async def set(self, key: str, value: str) -> Any: ...
    async def incr(self, key: str) -> int: ...
    async def decr(self, key: str) -> int: ...
    async def delete(self, *keys: str) -> int: ...
    async def expire(self, key: str, seconds: int) -> bool: ...
    def pipeline(self) -> Any: ...
    async def aclose(self) -> None: ...


class RateLimitExceeded(Exception):
    """Raised when the throttle cannot be acquired in time."""

    pass


class IntervalGate:
    """Let at most one caller through per interval.

    Acquisitions are spaced at least `min_interval` seconds apart, measured
    between the starts of consecutive acquisitions.
    """

    def __init__(self, min_interval: float = 1.0):
        self.min_interval = min_interval
        self._last_acquired: Optional[float] = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            if self._last_acquired is not None:
                wait = self.min_interval - (time.monotonic() - self._last_acquired)
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last_acquired = time.monotonic()

    async def release(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "IntervalGate":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()


@dataclass
class RateLimitConfig:
    """Configuration for a shared rate limiter.

    Attributes:
        limiter_id: Unique identifier for the limited resource (e.g., "portrait-profile").
        requests_per_minute: Maximum requests per minute (token refill rate).
        max_concurrent: Maximum concurrent requests allowed.
        bucket_size: Maximum tokens in bucket (burst capacity).
        acquire_timeout: Seconds to wait for a token before giving up.
    """

    limiter_id: str
    requests_per_minute: int = 60
    max_concurrent: int = 1
    bucket_size: int = 0  # 0 means same as requests_per_minute
    acquire_timeout: float = 60.0

    def __post_init__(self):
        if self.bucket_size == 0:
            self.bucket_size = self.requests_per_minute


@dataclass
class BackoffStrategy:
    """Exponential backoff between acquire attempts.

    Attributes:
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay in seconds.
        multiplier: Multiplier for exponential increase.
        jitter: Whether to add random jitter.
    """

    base_delay: float = 0.1
    max_delay: float = 5.0
    multiplier: float = 2.0
    jitter: bool = True

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a retry attempt.

        Args:
            attempt: The attempt number (1-based).

        Returns:
            Delay in seconds before next attempt.
        """
        delay = self.base_delay * (self.multiplier ** (attempt - 1))

        if self.jitter:
            # Add +/- 25% jitter before capping
            jitter_range = delay * 0.25
            delay = delay + random.uniform(-jitter_range, jitter_range)

        delay = min(delay, self.max_delay)

        return max(0.01, delay)


class RateLimiter:
    """Redis-backed rate limiter combining token bucket and concurrency limiting.

    Uses Redis keys:
    - rate:{limiter_id}:tokens - Current token count
    - rate:{limiter_id}:last_refill - Timestamp of last refill
    - rate:{limiter_id}:inflight - Current inflight request count
    """

    def __init__(self, redis: AsyncRedisProtocol, config: RateLimitConfig):
        """Initialize the rate limiter.

        Args:
            redis: Async Redis client.
            config: Rate limit configuration.
        """
        self.redis = redis
        self.config = config

        self._tokens_key = f"rate:{config.limiter_id}:tokens"
        self._refill_key = f"rate:{config.limiter_id}:last_refill"
        self._inflight_key = f"rate:{config.limiter_id}:inflight"

        # Tokens per second
        self._refill_rate = config.requests_per_minute / 60.0

    async def acquire_token(self) -> bool:
        """Attempt to acquire a token from the bucket.

        Returns:
            True if token acquired, False if bucket empty.
        """
        tokens_raw = await self.redis.get(self._tokens_key)
        last_refill_raw = await self.redis.get(self._refill_key)

        now = time.time()

        if tokens_raw is None:
            # Initialize bucket to full
            tokens = float(self.config.bucket_size)
            last_refill = now
        else:
            tokens = float(tokens_raw)
            last_refill = float(last_refill_raw) if last_refill_raw else now

        elapsed = now - last_refill
        tokens = min(tokens + elapsed * self._refill_rate, self.config.bucket_size)

        if tokens >= 1:
            tokens -= 1
            pipe = self.redis.pipeline()
            pipe.set(self._tokens_key, str(tokens))
            pipe.set(self._refill_key, str(now))
            pipe.expire(self._tokens_key, 3600)
            pipe.expire(self._refill_key, 3600)
            await pipe.execute()
            return True

        return False

    async def acquire_slot(self) -> bool:
        """Attempt to acquire a concurrency slot.

        Returns:
            True if slot acquired, False if at limit.
        """
        count = await self.redis.incr(self._inflight_key)

        # Expire leaked slots from crashed processes
        await self.redis.expire(self._inflight_key, 300)

        if count > self.config.max_concurrent:
            await self.redis.decr(self._inflight_key)
            return False

        return True

    async def release_slot(self) -> None:
        """Release a concurrency slot."""
        await self.redis.decr(self._inflight_key)

    async def acquire(self, wait: bool = False, timeout: Optional[float] = None) -> bool:
        """Acquire both token and slot.

        Args:
            wait: Whether to wait for availability.
            timeout: Maximum time to wait in seconds (defaults to the config).

        Returns:
            True if acquired, False if not available (and not waiting).
        """
        timeout = self.config.acquire_timeout if timeout is None else timeout
        start_time = time.time()
        attempt = 0
        backoff = BackoffStrategy()

        while True:
            attempt += 1

            if not await self.acquire_slot():
                if not wait or (time.time() - start_time) >= timeout:
                    return False
                await asyncio.sleep(backoff.get_delay(attempt))
                continue

            if await self.acquire_token():
                return True

            # Give the slot back while waiting for a token
            await self.release_slot()

            if not wait or (time.time() - start_time) >= timeout:
                return False

            await asyncio.sleep(backoff.get_delay(attempt))

    async def release(self) -> None:
        """Release acquired resources."""
        await self.release_slot()

    async def __aenter__(self) -> "RateLimiter":
        acquired = await self.acquire(wait=True)
        if not acquired:
            raise RateLimitExceeded(
                f"Rate limit exceeded for {self.config.limiter_id}"
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self.redis.aclose()


def build_profile_throttle(settings) -> "IntervalGate | RateLimiter":
    """Build the throttle gating profile API calls.

    Args:
        settings: Application settings.

    Returns:
        An IntervalGate for the local backend, a Redis RateLimiter otherwise.
    """
    interval = settings.profile_min_interval_seconds

    if settings.profile_rate_limit_backend != "redis" or interval <= 0:
        return IntervalGate(interval)

    import redis.asyncio as aioredis

    client = aioredis.from_url(settings.redis_url)
    config = RateLimitConfig(
        limiter_id="portrait-profile",
        requests_per_minute=max(1, round(60 / interval)),
        max_concurrent=1,
        bucket_size=1,
        acquire_timeout=max(60.0, interval * 10),
    )
    logger.info(f"Profile throttle: redis, {config.requests_per_minute}/min")
    return RateLimiter(client, config)
