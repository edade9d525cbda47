import unittest
from unittest import mock

import pytest
import redis

from smartbill.services.cache_service import CacheError, InMemoryCache, RedisCache, build_cache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class InMemoryCacheTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = InMemoryCache(clock=self.clock)

    def test_set_get_delete(self):
        self.cache.set_with_expiry("a", 10, "1")
        self.assertEqual(self.cache.get("a"), "1")
        self.assertEqual(self.cache.delete("a", "missing"), 1)
        self.assertIsNone(self.cache.get("a"))

    def test_entries_expire(self):
        self.cache.set_with_expiry("a", 10, "1")
        self.clock.now += 9.9
        self.assertEqual(self.cache.get("a"), "1")
        self.clock.now += 0.1
        self.assertIsNone(self.cache.get("a"))

    def test_keys_matching_uses_glob_and_skips_expired(self):
        self.cache.set_with_expiry("bill-stats:1:daily", 60, "{}")
        self.cache.set_with_expiry("bill-stats:2:summary", 5, "{}")
        self.cache.set_with_expiry("bill:1", 60, "{}")
        self.clock.now += 6
        self.assertEqual(self.cache.keys_matching("bill-stats:*"), ["bill-stats:1:daily"])

    def test_non_positive_ttl_rejected(self):
        with self.assertRaises(CacheError):
            self.cache.set_with_expiry("a", 0, "1")

    def test_flush(self):
        self.cache.set_with_expiry("a", 10, "1")
        self.cache.flush()
        self.assertIsNone(self.cache.get("a"))


class RedisCacheTests(unittest.TestCase):
    def setUp(self):
        self.client = mock.Mock(spec=redis.Redis)
        self.cache = RedisCache(self.client)

    def test_commands_map_to_redis(self):
        self.client.get.return_value = "v"
        self.client.delete.return_value = 2
        self.client.scan_iter.return_value = iter(["k1", "k2"])

        self.assertEqual(self.cache.get("k"), "v")
        self.cache.set_with_expiry("k", 30, "v")
        self.client.setex.assert_called_once_with("k", 30, "v")
        self.assertEqual(self.cache.delete("k1", "k2"), 2)
        self.assertEqual(self.cache.keys_matching("k*"), ["k1", "k2"])
        self.client.scan_iter.assert_called_once_with(match="k*", count=500)

    def test_delete_without_keys_skips_round_trip(self):
        self.assertEqual(self.cache.delete(), 0)
        self.client.delete.assert_not_called()

    def test_connection_errors_become_cache_errors(self):
        for method in ("get", "setex", "delete", "scan_iter", "ping"):
            getattr(self.client, method).side_effect = redis.ConnectionError("down")

        with self.assertRaises(CacheError):
            self.cache.get("k")
        with self.assertRaises(CacheError):
            self.cache.set_with_expiry("k", 1, "v")
        with self.assertRaises(CacheError):
            self.cache.delete("k")
        with self.assertRaises(CacheError):
            self.cache.keys_matching("*")
        with self.assertRaises(CacheError):
            self.cache.ping()


def test_build_cache_selects_backend():
    assert isinstance(build_cache({"CACHE_BACKEND": "memory"}), InMemoryCache)

    cache = build_cache({"CACHE_BACKEND": "redis", "REDIS_URL": "redis://localhost:6379/0", "CACHE_SOCKET_TIMEOUT": 0.1})
    assert isinstance(cache, RedisCache)

    with pytest.raises(ValueError):
        build_cache({"CACHE_BACKEND": "memcached"})
