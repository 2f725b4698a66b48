"""
tests/test_rate_limiter.py -- Unit tests for the sliding-window rate limiters.

The in-memory limiter takes an injectable clock so window expiry is tested
without sleeping. The Redis limiter is exercised against a small fake client
implementing only the sorted-set commands it issues.
"""

from __future__ import annotations

import threading

import redis

from authkit.core.config import Settings
from authkit.core.rate_limiter import (
    RedisSlidingWindowRateLimiter,
    SlidingWindowRateLimiter,
    build_rate_limiter,
)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestSlidingWindowRateLimiter:
    def test_rejects_request_over_ceiling(self) -> None:
        limiter = SlidingWindowRateLimiter(3, 60, clock=FakeClock())
        assert [limiter.hit("1.2.3.4") for _ in range(4)] == [True, True, True, False]

    def test_accepts_again_after_window(self) -> None:
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(2, 60, clock=clock)
        assert limiter.hit("c") and limiter.hit("c")
        assert not limiter.hit("c")

        clock.advance(60.001)
        assert limiter.hit("c")

    def test_window_slides_per_entry(self) -> None:
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(2, 60, clock=clock)
        limiter.hit("c")
        clock.advance(30)
        limiter.hit("c")
        clock.advance(31)
        # first hit has left the window, second has not
        assert limiter.hit("c")
        assert not limiter.hit("c")

    def test_rejected_hits_are_not_recorded(self) -> None:
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(1, 60, clock=clock)
        limiter.hit("c")
        for _ in range(10):
            clock.advance(5)
            assert not limiter.hit("c")
        clock.advance(10.5)
        assert limiter.hit("c")

    def test_clients_are_independent(self) -> None:
        limiter = SlidingWindowRateLimiter(1, 60, clock=FakeClock())
        assert limiter.hit("a")
        assert limiter.hit("b")
        assert not limiter.hit("a")

    def test_idle_clients_are_forgotten(self) -> None:
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(5, 60, clock=clock)
        for i in range(10_000):
            limiter.hit(f"10.0.{i // 256}.{i % 256}")
        assert len(limiter._hits) == 10_000

        clock.advance(61)
        assert limiter.hit("192.168.0.1")
        assert len(limiter._hits) == 1

    def test_rejected_first_hit_leaves_no_entry(self) -> None:
        limiter = SlidingWindowRateLimiter(0, 60, clock=FakeClock())
        assert not limiter.hit("a")
        assert limiter._hits == {}

    def test_remaining_and_reset(self) -> None:
        limiter = SlidingWindowRateLimiter(3, 60, clock=FakeClock())
        assert limiter.remaining("a") == 3
        limiter.hit("a")
        assert limiter.remaining("a") == 2
        limiter.reset("a")
        assert limiter.remaining("a") == 3

    def test_concurrent_hits_never_exceed_ceiling(self) -> None:
        limiter = SlidingWindowRateLimiter(50, 3600)
        results: list[bool] = []
        lock = threading.Lock()

        def worker() -> None:
            local = [limiter.hit("shared") for _ in range(20)]
            with lock:
                results.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 200
        assert results.count(True) == 50


class FakePipeline:
    def __init__(self, store: "FakeRedis") -> None:
        self.store = store
        self.ops: list = []

    def zremrangebyscore(self, key, low, high):
        self.ops.append(("zrem", key, low, high))

    def zcard(self, key):
        self.ops.append(("zcard", key))

    def zadd(self, key, mapping):
        self.ops.append(("zadd", key, mapping))

    def expire(self, key, seconds):
        self.ops.append(("expire", key, seconds))

    def execute(self):
        results = []
        for op in self.ops:
            zset = self.store.data.setdefault(op[1], {})
            if op[0] == "zrem":
                for member in [m for m, score in zset.items() if op[2] <= score <= op[3]]:
                    del zset[member]
                results.append(None)
            elif op[0] == "zcard":
                results.append(len(zset))
            elif op[0] == "zadd":
                zset.update(op[2])
                results.append(len(op[2]))
            else:
                self.store.ttls[op[1]] = op[2]
                results.append(True)
        self.ops = []
        return results


class FakeRedis:
    def __init__(self) -> None:
        self.data: dict = {}
        self.ttls: dict = {}

    def pipeline(self):
        return FakePipeline(self)

    def keys(self, pattern):
        prefix = pattern.rstrip("*")
        return [k for k in self.data if k.startswith(prefix)]

    def delete(self, *keys):
        for k in keys:
            self.data.pop(k, None)


class BrokenRedis:
    def pipeline(self):
        raise redis.ConnectionError("connection refused")


class TestRedisSlidingWindowRateLimiter:
    def test_rejects_over_ceiling_and_recovers(self) -> None:
        clock = FakeClock()
        limiter = RedisSlidingWindowRateLimiter(FakeRedis(), 2, 60, clock=clock)
        assert limiter.hit("c")
        assert limiter.hit("c")
        assert not limiter.hit("c")

        clock.advance(61)
        assert limiter.hit("c")

    def test_keys_are_prefixed_and_expire(self) -> None:
        client = FakeRedis()
        limiter = RedisSlidingWindowRateLimiter(client, 5, 60, clock=FakeClock())
        limiter.hit("10.0.0.1")
        assert "authkit:ratelimit:10.0.0.1" in client.data
        assert client.ttls["authkit:ratelimit:10.0.0.1"] == 61

    def test_reset_clears_all_windows(self) -> None:
        client = FakeRedis()
        limiter = RedisSlidingWindowRateLimiter(client, 1, 60, clock=FakeClock())
        limiter.hit("a")
        limiter.hit("b")
        limiter.reset()
        assert limiter.hit("a")

    def test_fails_open_when_redis_is_down(self) -> None:
        limiter = RedisSlidingWindowRateLimiter(BrokenRedis(), 1, 60)
        assert limiter.hit("c")
        assert limiter.hit("c")


def test_build_rate_limiter_defaults_to_memory() -> None:
    limiter = build_rate_limiter(Settings(RATE_LIMIT_BACKEND="memory", RATE_LIMIT_REQUESTS=7))
    assert isinstance(limiter, SlidingWindowRateLimiter)
    assert limiter.limit == 7


def test_build_rate_limiter_redis_backend() -> None:
    limiter = build_rate_limiter(Settings(RATE_LIMIT_BACKEND="redis", REDIS_URL="redis://localhost:6399/0"))
    assert isinstance(limiter, RedisSlidingWindowRateLimiter)
