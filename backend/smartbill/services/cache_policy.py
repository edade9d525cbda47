# Overview: Single owner of cache key naming, expiry, and invalidation fan-out.

from __future__ import annotations

import json
import logging
import string
from dataclasses import dataclass
from typing import Any

from .cache_service import CacheError, KeyValueCache
"""
Cache coherence rules (authoritative)

- Cache entries are disposable snapshots. Nothing reads the cache without a
  store-backed fallback, and no cache failure ever reaches a caller: errors
  are logged and treated as a miss (reads) or a no-op (writes, deletes).
- Every cached view is registered in VIEWS. Writers never build key strings;
  they call invalidate(kind, ...) and every view of that kind whose key can be
  computed from the given identifiers is deleted, together with the kind's
  unkeyed list views and pattern views.
- CASCADES lists views that embed another kind's state. An inventory change
  stales the product views because Product.stock mirrors Inventory.quantity;
  a product change stales the inventory views, which embed the product.
"""

logger = logging.getLogger(__name__)

CACHE_EXPIRY = {
    "PRODUCT": 60 * 60,  # 1 hour
    "INVENTORY": 30 * 60,  # 30 minutes
    "BARCODE": 24 * 60 * 60,  # 24 hours
    "BILL_LIST": 5 * 60,  # 5 minutes
    "BILL_DETAIL": 10 * 60,  # 10 minutes
    "BILL_STATS": 1 * 60,  # 1 minute
    "CART": 60 * 60,  # 1 hour
}


@dataclass(frozen=True)
class CacheView:
    name: str
    kind: str
    template: str
    expiry: str
    # glob deleted on every invalidation of the kind, whatever the identifiers
    fan_out: str | None = None

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(f for _, f, _, _ in string.Formatter().parse(self.template) if f)

    def key(self, **ids: Any) -> str | None:
        values = {}
        for field in self.fields:
            value = ids.get(field)
            if value is None or value == "":
                return None
            values[field] = value
        return self.template.format(**values)


VIEWS = (
    CacheView("product", "product", "product:{id}", "PRODUCT"),
    CacheView("product_by_barcode", "product", "barcode:{barcode}", "BARCODE"),
    CacheView("product_list", "product", "products:list", "PRODUCT"),
    CacheView("inventory", "inventory", "inventory:{id}", "INVENTORY"),
    CacheView("inventory_by_barcode", "inventory", "inventory-barcode:{barcode}", "INVENTORY"),
    CacheView("inventory_list", "inventory", "inventory:list", "INVENTORY"),
    CacheView("bill", "bill", "bill:{id}", "BILL_DETAIL"),
    CacheView("bill_by_number", "bill", "bill-number:{bill_number}", "BILL_DETAIL"),
    CacheView("bill_list", "bill", "bills:{user_id}", "BILL_LIST"),
    CacheView("bill_stats", "bill", "bill-stats:{stats_key}", "BILL_STATS", fan_out="bill-stats:*"),
    CacheView("cart", "cart", "cart:{user_id}", "CART"),
)

# kind -> [(dependent kind, {dependent identifier: identifier passed to invalidate})]
CASCADES = {
    "inventory": [("product", {"id": "product_id", "barcode": "product_barcode"})],
    "product": [("inventory", {"id": "inventory_id", "barcode": "inventory_barcode"})],
}


class CacheCoherencePolicy:
    def __init__(self, cache: KeyValueCache, ttl_overrides: dict[str, int] | None = None):
        self._cache = cache
        self._views = {view.name: view for view in VIEWS}
        self._expiry = {**CACHE_EXPIRY, **(ttl_overrides or {})}

    @property
    def backend(self) -> KeyValueCache:
        return self._cache

    def view(self, name: str) -> CacheView:
        try:
            return self._views[name]
        except KeyError:
            raise ValueError(f"unregistered cache view: {name}")

    def views_for(self, kind: str) -> list[CacheView]:
        return [v for v in self._views.values() if v.kind == kind]

    def ttl(self, name: str) -> int:
        return self._expiry[self.view(name).expiry]

    def key(self, name: str, **ids: Any) -> str:
        key = self.view(name).key(**ids)
        if key is None:
            raise ValueError(f"view {name} needs {', '.join(self.view(name).fields)}")
        return key

    def get(self, name: str, **ids: Any) -> Any | None:
        """Decoded snapshot, or None on miss or any cache failure."""
        key = self.key(name, **ids)
        try:
            raw = self._cache.get(key)
        except CacheError:
            logger.warning("Cache read failed for %s", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            self._delete([key])
            return None

    def put(self, name: str, value: Any, *, ttl: int | None = None, **ids: Any) -> bool:
        key = self.key(name, **ids)
        try:
            self._cache.set_with_expiry(key, ttl or self.ttl(name), json.dumps(value))
            return True
        except (CacheError, TypeError, ValueError):
            logger.warning("Cache write failed for %s", key, exc_info=True)
            return False

    def invalidate(self, kind: str, **ids: Any) -> list[str]:
        """
        Delete every cached view that could hold a stale copy of the entity.

        Returns the keys that were targeted. Failures are logged, never raised.
        """
        keys: list[str] = []
        patterns: list[str] = []
        self._collect(kind, ids, keys, patterns)
        for dependent, mapping in CASCADES.get(kind, ()):
            dependent_ids = {field: ids.get(source) for field, source in mapping.items()}
            self._collect(dependent, dependent_ids, keys, patterns)

        for pattern in patterns:
            try:
                keys.extend(self._cache.keys_matching(pattern))
            except CacheError:
                logger.warning("Cache scan failed for %s", pattern, exc_info=True)

        keys = list(dict.fromkeys(keys))
        self._delete(keys)
        return keys

    def _collect(self, kind: str, ids: dict, keys: list[str], patterns: list[str]) -> None:
        for view in self.views_for(kind):
            if view.fan_out:
                patterns.append(view.fan_out)
                continue
            key = view.key(**ids)
            if key is not None:
                keys.append(key)

    def _delete(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            self._cache.delete(*keys)
        except CacheError:
            logger.warning("Cache invalidation failed for %s", ", ".join(keys), exc_info=True)

    def purge(self, kind: str, **ids: Any) -> list[str]:
        """Operator-facing invalidate that also validates the kind."""
        if not self.views_for(kind):
            raise ValueError(f"no cached views registered for {kind}")
        return self.invalidate(kind, **ids)

    def ping(self) -> bool:
        try:
            return self._cache.ping()
        except CacheError:
            logger.warning("Cache ping failed", exc_info=True)
            return False
