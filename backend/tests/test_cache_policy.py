from unittest import mock

import pytest
import redis

from smartbill.services.cache_policy import CACHE_EXPIRY, CacheCoherencePolicy
from smartbill.services.cache_service import InMemoryCache, RedisCache


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def local_policy(cache):
    return CacheCoherencePolicy(cache)


def test_product_invalidation_forces_miss(local_policy):
    local_policy.put("product", {"id": 7, "name": "v1"}, id=7)
    assert local_policy.get("product", id=7) == {"id": 7, "name": "v1"}

    local_policy.invalidate("product", id=7)

    assert local_policy.get("product", id=7) is None


def test_invalidate_covers_every_view_of_the_kind(local_policy, cache):
    local_policy.put("product", {"id": 1}, id=1)
    local_policy.put("product_by_barcode", {"id": 1}, barcode="890")
    local_policy.put("product_list", [{"id": 1}])
    local_policy.put("product", {"id": 2}, id=2)

    keys = local_policy.invalidate("product", id=1, barcode="890")

    assert set(keys) == {"product:1", "barcode:890", "products:list", "inventory:list"}
    assert cache.get("product:2") is not None


def test_inventory_invalidation_cascades_to_product_views(local_policy, cache):
    local_policy.put("inventory", {"id": 3}, id=3)
    local_policy.put("inventory_by_barcode", {"id": 3}, barcode="inv-890")
    local_policy.put("inventory_list", [])
    local_policy.put("product", {"id": 9}, id=9)
    local_policy.put("product_by_barcode", {"id": 9}, barcode="890")
    local_policy.put("product_list", [])

    local_policy.invalidate("inventory", id=3, barcode="inv-890", product_id=9, product_barcode="890")

    assert cache.keys_matching("*") == []


def test_product_invalidation_cascades_to_inventory_views(local_policy, cache):
    local_policy.put("inventory", {"id": 3}, id=3)
    local_policy.put("inventory_by_barcode", {"id": 3}, barcode="890")
    local_policy.put("inventory_list", [])
    local_policy.put("inventory", {"id": 4}, id=4)

    local_policy.invalidate("product", id=9, barcode="890", inventory_id=3, inventory_barcode="890")

    assert cache.keys_matching("inventory*") == ["inventory:4"]


def test_bill_invalidation_sweeps_all_stats(local_policy, cache):
    local_policy.put("bill_stats", {}, stats_key="1:daily:2026-10-18")
    local_policy.put("bill_stats", {}, stats_key="2:summary:-:-")
    local_policy.put("bill_list", {}, user_id=1)
    local_policy.put("bill_list", {}, user_id=2)

    local_policy.invalidate("bill", id=5, bill_number="BILL-1", user_id=1)

    assert cache.keys_matching("bill-stats:*") == []
    assert cache.get("bills:1") is None
    assert cache.get("bills:2") is not None


def test_put_uses_view_expiry(local_policy, cache):
    with mock.patch.object(cache, "set_with_expiry", wraps=cache.set_with_expiry) as spy:
        local_policy.put("bill_stats", {"total_bills": 0}, stats_key="k")
    spy.assert_called_once_with("bill-stats:k", CACHE_EXPIRY["BILL_STATS"], '{"total_bills": 0}')


def test_ttl_overrides():
    policy = CacheCoherencePolicy(InMemoryCache(), ttl_overrides={"CART": 5})
    assert policy.ttl("cart") == 5
    assert policy.ttl("inventory") == CACHE_EXPIRY["INVENTORY"]


def test_key_requires_identifiers(local_policy):
    assert local_policy.key("inventory_by_barcode", barcode="X1") == "inventory-barcode:X1"
    with pytest.raises(ValueError):
        local_policy.key("product")
    with pytest.raises(ValueError):
        local_policy.key("nonexistent")


def test_undecodable_entry_is_dropped(local_policy, cache):
    cache.set_with_expiry("product:1", 60, "{not json")
    assert local_policy.get("product", id=1) is None
    assert cache.get("product:1") is None


def test_purge_rejects_unknown_kind(local_policy):
    with pytest.raises(ValueError):
        local_policy.purge("widget", id=1)


def test_redis_outage_is_swallowed():
    client = mock.Mock(spec=redis.Redis)
    for method in ("get", "setex", "delete", "scan_iter", "ping"):
        getattr(client, method).side_effect = redis.ConnectionError("down")
    policy = CacheCoherencePolicy(RedisCache(client))

    assert policy.get("product", id=1) is None
    assert policy.put("product", {"id": 1}, id=1) is False
    assert policy.invalidate("bill", id=1, bill_number="B", user_id=1) == ["bill:1", "bill-number:B", "bills:1"]
    assert policy.ping() is False
