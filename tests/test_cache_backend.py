"""Tests for cache_backend.py — TTLCache, InMemoryCache and RedisCache."""

from __future__ import annotations

import threading

import pytest
import redis

from errors import DependencyError


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Minimal stand-in for redis.Redis: bytes values, setex/set nx/get/delete/flushdb."""

    def __init__(self):
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value.encode() if isinstance(value, str) else value
        self.ttls[key] = ttl

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.setex(key, ex, value)
        return True

    def delete(self, key):
        self.data.pop(key, None)

    def flushdb(self):
        self.data.clear()


class BrokenRedis:
    def get(self, key):
        raise redis.ConnectionError("down")

    def setex(self, key, ttl, value):
        raise redis.ConnectionError("down")

    def set(self, key, value, nx=False, ex=None):
        raise redis.ConnectionError("down")

    def delete(self, key):
        raise redis.ConnectionError("down")

    def flushdb(self):
        raise redis.ConnectionError("down")


@pytest.fixture
def clock():
    return FakeClock()


class TestInMemoryCache:
    def test_set_and_get(self, clock):
        from cache_backend import InMemoryCache
        cache = InMemoryCache(clock)
        cache.set("key1", {"data": "value"}, ttl=60)
        assert cache.get("key1") == {"data": "value"}

    def test_get_missing_key(self, clock):
        from cache_backend import InMemoryCache
        assert InMemoryCache(clock).get("nonexistent") is None

    def test_ttl_expiry(self, clock):
        from cache_backend import InMemoryCache
        cache = InMemoryCache(clock)
        cache.set("expiring", "data", ttl=10)
        clock.advance(10)
        assert cache.get("expiring") == "data"
        clock.advance(0.5)
        assert cache.get("expiring") is None

    def test_delete(self, clock):
        from cache_backend import InMemoryCache
        cache = InMemoryCache(clock)
        cache.set("to_delete", "value")
        cache.delete("to_delete")
        cache.delete("never_there")
        assert cache.get("to_delete") is None

    def test_clear(self, clock):
        from cache_backend import InMemoryCache
        cache = InMemoryCache(clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert cache.get("a") is None
        assert cache.get("b") is None

    def test_cleanup(self, clock):
        from cache_backend import InMemoryCache
        cache = InMemoryCache(clock)
        cache.set("fresh", "data", ttl=60)
        cache.set("expired", "old", ttl=1)
        clock.advance(5)
        assert cache.cleanup() == 1
        assert cache.get("fresh") == "data"

    def test_overwrite_resets_ttl(self, clock):
        from cache_backend import InMemoryCache
        cache = InMemoryCache(clock)
        cache.set("k", 1, ttl=10)
        clock.advance(8)
        cache.set("k", 2, ttl=10)
        clock.advance(8)
        assert cache.get("k") == 2

    def test_add_only_when_absent(self, clock):
        from cache_backend import InMemoryCache
        cache = InMemoryCache(clock)
        assert cache.add("timer:1", {"n": 1}, ttl=10)
        assert not cache.add("timer:1", {"n": 2}, ttl=10)
        assert cache.get("timer:1") == {"n": 1}

    def test_add_replaces_expired_entry(self, clock):
        from cache_backend import InMemoryCache
        cache = InMemoryCache(clock)
        cache.add("timer:1", "old", ttl=5)
        clock.advance(6)
        assert cache.add("timer:1", "new", ttl=5)
        assert cache.get("timer:1") == "new"

    def test_add_is_exclusive_across_threads(self, clock):
        from cache_backend import InMemoryCache
        cache = InMemoryCache(clock)
        results: list[bool] = []
        lock = threading.Lock()

        def worker(n):
            stored = cache.add("timer:1", n, ttl=60)
            with lock:
                results.append(stored)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1


class TestTTLCacheEviction:
    def test_evicts_earliest_expiry_when_full(self, clock, monkeypatch):
        from cache_backend import TTLCache
        monkeypatch.setattr(TTLCache, "MAX_ENTRIES", 3)
        store = TTLCache(clock)
        store.set("short", "a", 5)
        store.set("mid", "b", 50)
        store.set("long", "c", 500)
        store.set("new", "d", 100)
        assert len(store) == 3
        assert store.get("short") is None
        assert store.get("new") == "d"


class TestRedisCache:
    def test_set_and_get(self):
        from cache_backend import RedisCache
        fake = FakeRedis()
        cache = RedisCache(fake)
        cache.set("key1", {"data": "value"}, ttl=60)
        assert cache.get("key1") == {"data": "value"}
        assert fake.ttls["key1"] == 60

    def test_plain_string_roundtrip(self):
        from cache_backend import RedisCache
        cache = RedisCache(FakeRedis())
        cache.set("s", "hello", ttl=60)
        assert cache.get("s") == "hello"

    def test_delete_and_clear(self):
        from cache_backend import RedisCache
        cache = RedisCache(FakeRedis())
        cache.set("a", 1, ttl=60)
        cache.set("b", 2, ttl=60)
        cache.delete("a")
        assert cache.get("a") is None
        cache.clear()
        assert cache.get("b") is None

    def test_read_errors_degrade_to_miss(self):
        from cache_backend import RedisCache
        cache = RedisCache(BrokenRedis())
        assert cache.get("k") is None
        cache.delete("k")
        cache.clear()

    def test_write_error_is_dependency_error(self):
        from cache_backend import RedisCache
        with pytest.raises(DependencyError):
            RedisCache(BrokenRedis()).set("k", 1, ttl=60)

    def test_add_uses_set_nx(self):
        from cache_backend import RedisCache
        fake = FakeRedis()
        cache = RedisCache(fake)
        assert cache.add("timer:1", {"a": 1}, ttl=90)
        assert not cache.add("timer:1", {"a": 2}, ttl=90)
        assert cache.get("timer:1") == {"a": 1}
        assert fake.ttls["timer:1"] == 90

    def test_add_error_is_dependency_error(self):
        from cache_backend import RedisCache
        with pytest.raises(DependencyError):
            RedisCache(BrokenRedis()).add("k", 1, ttl=60)

    def test_cleanup_returns_zero(self):
        from cache_backend import RedisCache
        assert RedisCache(FakeRedis()).cleanup() == 0


class TestInitCache:
    def test_init_without_redis(self, app):
        from cache_backend import InMemoryCache, get_cache
        assert isinstance(get_cache(), InMemoryCache)
        assert app.extensions["cache"] is get_cache()

    def test_injected_backend(self, app):
        from cache_backend import InMemoryCache, get_cache, init_cache
        backend = InMemoryCache()
        init_cache(app, backend)
        assert get_cache() is backend

    def test_unreachable_redis_falls_back(self, app, monkeypatch):
        from cache_backend import InMemoryCache, init_cache

        class Unreachable:
            def ping(self):
                raise redis.ConnectionError("refused")

        monkeypatch.setattr(redis.Redis, "from_url", staticmethod(lambda *a, **kw: Unreachable()))
        app.config["REDIS_URL"] = "redis://localhost:1"
        assert isinstance(init_cache(app), InMemoryCache)
