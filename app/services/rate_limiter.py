# =============================================================================
# Rate Limiter — Per-Client Sliding Window
# =============================================================================
#
# Two interchangeable implementations of the same interface:
#   - SlidingWindowRateLimiter: in-process, timestamps in a deque per client
#   - RedisRateLimiter: Redis sorted set (ZSET) per client, shared by all
#     API workers
#
# Both are constructed with explicit capacity and window, once per
# application (create_app), and reached through the `enforce_rate_limit`
# dependency. Nothing is held at module level.
#
# DESIGN DECISION: Sliding window over fixed window. Fixed windows allow
# double bursts at window boundaries. Sliding windows spread the limit evenly.
#
# DESIGN DECISION: Graceful degradation. If Redis is unavailable the request
# is allowed through with a warning. A Redis outage must not take the API
# down with it.
# =============================================================================

from __future__ import annotations

import logging
import math
import time
import uuid
from collections import deque
from collections.abc import Callable
from typing import Protocol

from fastapi import HTTPException

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    max_requests: int
    window_seconds: int

    async def check(self, client_id: str) -> None:
        """Record a request; raise HTTPException 429 when over the limit."""
        ...


def _too_many_requests(limit: int, window_seconds: int, retry_after: int) -> HTTPException:
    return HTTPException(
        status_code=429,
        detail=f"Rate limit exceeded. Limit: {limit} requests per {window_seconds} seconds.",
        headers={"Retry-After": str(max(retry_after, 1))},
    )


# ---------------------------------------------------------------------------
# In-process implementation
# ---------------------------------------------------------------------------


class SlidingWindowRateLimiter:
    """
    In-memory sliding window.

    No awaits happen between reading and updating a client's window, so the
    check is atomic on the event loop without a lock. Clients whose window
    has emptied are dropped, at most once per window, so the map only holds
    clients seen in the last `window_seconds`.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def remaining(self, client_id: str) -> int:
        cutoff = self._clock() - self.window_seconds
        live = sum(1 for t in self._hits.get(client_id, ()) if t > cutoff)
        return max(self.max_requests - live, 0)

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        cutoff = now - self.window_seconds
        idle = [c for c, window in self._hits.items() if not window or window[-1] <= cutoff]
        for client_id in idle:
            del self._hits[client_id]
        if idle:
            logger.debug("Dropped %d idle rate-limit windows", len(idle))

    def _prune(self, client_id: str, now: float) -> deque[float]:
        window = self._hits.setdefault(client_id, deque())
        while window and window[0] <= now - self.window_seconds:
            window.popleft()
        return window

    async def check(self, client_id: str) -> None:
        now = self._clock()
        self._sweep(now)
        window = self._prune(client_id, now)
        if len(window) >= self.max_requests:
            retry_after = math.ceil(window[0] + self.window_seconds - now)
            logger.info("Rate limit hit for client %s", client_id)
            raise _too_many_requests(self.max_requests, self.window_seconds, retry_after)
        window.append(now)


# ---------------------------------------------------------------------------
# Redis implementation
# ---------------------------------------------------------------------------


class RedisRateLimiter:
    """
    Redis ZSET sliding window. One key per client; members are unique per
    request, scored by timestamp.
    """

    def __init__(
        self,
        redis_url: str,
        max_requests: int,
        window_seconds: int = 60,
        client=None,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._redis_url = redis_url
        self._client = client

    def _get_client(self):
        if self._client is None:
            import redis.asyncio as aioredis
            self._client = aioredis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def check(self, client_id: str) -> None:
        redis_key = f"ratelimit:client:{client_id}"

        try:
            r = self._get_client()
            now = time.time()

            pipe = r.pipeline()
            pipe.zremrangebyscore(redis_key, 0, now - self.window_seconds)
            pipe.zcard(redis_key)
            pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            pipe.expire(redis_key, self.window_seconds + 10)
            results = await pipe.execute()

            current_count = results[1]
            if current_count >= self.max_requests:
                raise _too_many_requests(
                    self.max_requests, self.window_seconds, self.window_seconds,
                )

        except HTTPException:
            raise
        except Exception as e:
            logger.warning(
                "Rate limiter unavailable (Redis error): %s. Allowing request through.",
                e,
            )


def build_rate_limiter(
    backend: str,
    max_requests: int,
    window_seconds: int,
    redis_url: str | None = None,
) -> SlidingWindowRateLimiter | RedisRateLimiter:
    if backend == "redis":
        if not redis_url:
            raise ValueError("redis_url is required for the redis rate limiter")
        return RedisRateLimiter(redis_url, max_requests, window_seconds)
    return SlidingWindowRateLimiter(max_requests, window_seconds)
