"""TTL key/value store with Redis / in-memory swap.

Holds short-lived state such as running focus timers. When REDIS_URL is
configured and reachable, uses Redis; otherwise an in-process TTLCache.
The backend is owned by the app and injected into consumers.

Usage:
    from cache_backend import init_cache, get_cache
    init_cache(app)          # called once in create_app()
    cache = get_cache()      # current app's backend
    cache.set("key", value, ttl=300)
    value = cache.get("key")
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Protocol

import redis
from flask import current_app

from errors import DependencyError

logger = logging.getLogger(__name__)

# ── Protocol ───────────────────────────────────────────────

class CacheBackend(Protocol):
    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any, ttl: int = 300) -> None: ...
    def add(self, key: str, value: Any, ttl: int = 300) -> bool: ...
    def delete(self, key: str) -> None: ...
    def clear(self) -> None: ...
    def cleanup(self) -> int: ...


# ── In-Memory Implementation ──────────────────────────────

class TTLCache:
    """In-memory dict with expiry timestamps and eviction at MAX_ENTRIES."""

    MAX_ENTRIES = 1000

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._store: dict[str, tuple[str, float]] = {}  # key -> (value, expires_at)
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            if key not in self._store and len(self._store) >= self.MAX_ENTRIES:
                self._evict_oldest()
            self._store[key] = (value, self._clock() + ttl_seconds)

    def add(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store ``value`` only if ``key`` is absent or expired. True when stored."""
        with self._lock:
            entry = self._store.get(key)
            if entry is not None and self._clock() <= entry[1]:
                return False
            if entry is None and len(self._store) >= self.MAX_ENTRIES:
                self._evict_oldest()
            self._store[key] = (value, self._clock() + ttl_seconds)
            return True

    def pop(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def _evict_oldest(self) -> None:
        """Remove the entry with the earliest expiry."""
        if not self._store:
            return
        oldest_key = min(self._store, key=lambda k: self._store[k][1])
        del self._store[oldest_key]

    def cleanup(self) -> int:
        """Remove all expired entries. Returns count removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._store.items() if now > exp]
            for k in expired:
                del self._store[k]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class InMemoryCache:
    """JSON-encoding wrapper around TTLCache."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._store = TTLCache(clock)

    def get(self, key: str) -> Any | None:
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return raw

    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        raw = json.dumps(value) if not isinstance(value, str) else value
        self._store.set(key, raw, ttl)

    def add(self, key: str, value: Any, ttl: int = 300) -> bool:
        raw = json.dumps(value) if not isinstance(value, str) else value
        return self._store.add(key, raw, ttl)

    def delete(self, key: str) -> None:
        self._store.pop(key)

    def clear(self) -> None:
        self._store.clear()

    def cleanup(self) -> int:
        return self._store.cleanup()


# ── Redis Implementation ──────────────────────────────────

class RedisCache:
    """Wraps redis.Redis. Reads degrade to a miss; a failed write is a DependencyError."""

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    def get(self, key: str) -> Any | None:
        try:
            raw = self._redis.get(key)
        except redis.RedisError as e:
            logger.warning("Redis GET error (key=%s): %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return raw.decode() if isinstance(raw, bytes) else raw

    def set(self, key: str, value: Any, ttl: int = 300) -> None:
        raw = json.dumps(value) if not isinstance(value, str) else value
        try:
            self._redis.setex(key, ttl, raw)
        except redis.RedisError as e:
            logger.error("Redis SET error (key=%s): %s", key, e)
            raise DependencyError("Cache unavailable", reason=str(e)) from e

    def add(self, key: str, value: Any, ttl: int = 300) -> bool:
        raw = json.dumps(value) if not isinstance(value, str) else value
        try:
            return bool(self._redis.set(key, raw, nx=True, ex=ttl))
        except redis.RedisError as e:
            logger.error("Redis SET NX error (key=%s): %s", key, e)
            raise DependencyError("Cache unavailable", reason=str(e)) from e

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except redis.RedisError as e:
            logger.warning("Redis DELETE error (key=%s): %s", key, e)

    def clear(self) -> None:
        try:
            self._redis.flushdb()
        except redis.RedisError as e:
            logger.warning("Redis CLEAR error: %s", e)

    def cleanup(self) -> int:
        # Redis handles expiry natively
        return 0


# ── App wiring ────────────────────────────────────────────

def init_cache(app, backend: CacheBackend | None = None) -> CacheBackend:
    """Attach the cache backend to ``app.extensions["cache"]``."""
    if backend is None:
        backend = _build_backend(app)
    app.extensions["cache"] = backend
    return backend


def _build_backend(app) -> CacheBackend:
    redis_url = app.config.get("REDIS_URL", "")
    if redis_url:
        try:
            client = redis.Redis.from_url(redis_url, decode_responses=False)
            client.ping()
            app.logger.info("Cache backend: Redis (%s)", redis_url)
            return RedisCache(client)
        except redis.RedisError as e:
            app.logger.warning("Redis connection failed (%s), using in-memory cache.", e)
    app.logger.info("Cache backend: in-memory (TTLCache)")
    return InMemoryCache()


def get_cache() -> CacheBackend:
    """Return the current app's cache backend."""
    return current_app.extensions["cache"]
