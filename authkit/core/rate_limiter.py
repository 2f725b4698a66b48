"""Per-client sliding-window rate limiting.

One limiter instance is built at startup (see ``build_rate_limiter``) and
stored on ``app.state.limiter``; the security middleware looks it up there.
There is no module-level limiter.

Consistency: the in-memory limiter serializes read-prune-append under one
lock, so it is exact within a process. The Redis limiter runs its steps in a
single pipeline but two racing requests can both observe ``count < limit``;
a client may then briefly exceed the ceiling by the number of racing
requests. That drift converges on the next window and is accepted.
"""

import logging
import threading
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict

import redis

from authkit.core.config import Settings

logger = logging.getLogger("authkit.rate_limiter")


class SlidingWindowRateLimiter:
    """In-process limiter: at most ``limit`` hits per ``window_seconds`` per key."""

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def hit(self, key: str) -> bool:
        """Record a request for ``key``; returns False when it must be rejected."""
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            window = self._hits.pop(key, None) or deque()
            while window and window[0] <= cutoff:
                window.popleft()
            allowed = len(window) < self.limit
            if allowed:
                window.append(now)
            if window:
                self._hits[key] = window
            return allowed

    def _sweep(self, cutoff: float) -> None:
        # caller holds the lock; a deque whose newest hit expired is dead
        for key in [k for k, w in self._hits.items() if not w or w[-1] <= cutoff]:
            del self._hits[key]

    def remaining(self, key: str) -> int:
        """Requests still allowed for ``key`` in the current window."""
        cutoff = self._clock() - self.window_seconds
        with self._lock:
            window = self._hits.get(key)
            if not window:
                return self.limit
            used = sum(1 for ts in window if ts > cutoff)
        return max(self.limit - used, 0)

    def reset(self, key: str = None) -> None:
        """Forget one client's history, or everyone's."""
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)


class RedisSlidingWindowRateLimiter:
    """Limiter sharing its windows across processes through Redis sorted sets."""

    def __init__(
        self,
        client: redis.Redis,
        limit: int,
        window_seconds: float,
        prefix: str = "authkit:ratelimit:",
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix
        self._clock = clock

    def hit(self, key: str) -> bool:
        now = self._clock()
        redis_key = f"{self.prefix}{key}"
        try:
            pipe = self.client.pipeline()
            pipe.zremrangebyscore(redis_key, 0, now - self.window_seconds)
            pipe.zcard(redis_key)
            _, count = pipe.execute()
            if count >= self.limit:
                return False
            pipe = self.client.pipeline()
            pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex}": now})
            pipe.expire(redis_key, int(self.window_seconds) + 1)
            pipe.execute()
        except redis.RedisError as exc:
            # Fail open: losing the limiter must not take the API down
            logger.warning("Rate limiter unavailable, allowing request: %s", exc)
            return True
        return True

    def reset(self, key: str = None) -> None:
        try:
            if key is None:
                keys = self.client.keys(f"{self.prefix}*")
                if keys:
                    self.client.delete(*keys)
            else:
                self.client.delete(f"{self.prefix}{key}")
        except redis.RedisError as exc:
            logger.warning("Rate limiter reset failed: %s", exc)


def build_rate_limiter(settings: Settings):
    """Construct the limiter selected by ``RATE_LIMIT_BACKEND``."""
    if settings.RATE_LIMIT_BACKEND == "redis":
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        return RedisSlidingWindowRateLimiter(
            client, settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS,
        )
    return SlidingWindowRateLimiter(settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS)
