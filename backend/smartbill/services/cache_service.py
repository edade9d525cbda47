# Overview: Key-value cache backends (Redis and process-local) behind one small interface.

from __future__ import annotations

import fnmatch
import logging
import threading
import time

import redis

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Raised by a cache backend when the underlying store fails."""


class KeyValueCache:
    """
    get / set-with-expiry / delete / pattern listing over string values.

    Backends raise CacheError on infrastructure failure; they never decide
    whether a failure matters. That call belongs to CacheCoherencePolicy.
    """

    name = "abstract"

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None:
        raise NotImplementedError

    def delete(self, *keys: str) -> int:
        raise NotImplementedError

    def keys_matching(self, pattern: str) -> list[str]:
        raise NotImplementedError

    def ping(self) -> bool:
        raise NotImplementedError


class RedisCache(KeyValueCache):
    name = "redis"

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float | None = None) -> "RedisCache":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except redis.RedisError as exc:
            raise CacheError(f"GET {key} failed") from exc

    def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None:
        try:
            self._client.setex(key, ttl_seconds, value)
        except redis.RedisError as exc:
            raise CacheError(f"SETEX {key} failed") from exc

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(self._client.delete(*keys))
        except redis.RedisError as exc:
            raise CacheError(f"DEL {', '.join(keys)} failed") from exc

    def keys_matching(self, pattern: str) -> list[str]:
        # SCAN instead of KEYS so a large keyspace never blocks the server
        try:
            return list(self._client.scan_iter(match=pattern, count=500))
        except redis.RedisError as exc:
            raise CacheError(f"SCAN {pattern} failed") from exc

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as exc:
            raise CacheError("PING failed") from exc


class InMemoryCache(KeyValueCache):
    """
    Thread-safe process-local cache with per-key expiry.

    Used by the test suite and single-process development. Expired entries are
    dropped lazily on access.
    """

    name = "memory"

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, str]] = {}

    def _live(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            logger.debug("Cache entry expired: %s", key)
            return None
        return value

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._live(key)

    def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None:
        if ttl_seconds <= 0:
            raise CacheError("ttl_seconds must be positive")
        with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, value)

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
        return removed

    def keys_matching(self, pattern: str) -> list[str]:
        with self._lock:
            return [k for k in list(self._entries) if self._live(k) is not None and fnmatch.fnmatchcase(k, pattern)]

    def ping(self) -> bool:
        return True

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()


def build_cache(config) -> KeyValueCache:
    """Pick the cache backend named by CACHE_BACKEND."""
    backend = (config.get("CACHE_BACKEND") or "redis").lower()
    if backend == "memory":
        return InMemoryCache()
    if backend == "redis":
        return RedisCache.from_url(
            config["REDIS_URL"],
            socket_timeout=config.get("CACHE_SOCKET_TIMEOUT"),
        )
    raise ValueError(f"unknown CACHE_BACKEND: {backend}")
