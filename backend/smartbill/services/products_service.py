# backend/smartbill/services/products_service.py
"""
Catalog reads and writes that carry cached views.

Product.stock is a mirror owned by InventoryLedger; it is not writable here.
Every write invalidates the product views (by id, by barcode, the list) for
the old and the new barcode, plus the inventory views that embed the
product.
"""
from __future__ import annotations

import logging

from ..models import Product
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    enforce_rules_product,
    validate_payload,
)
from .cache_policy import CacheCoherencePolicy
from .record_store import RecordStore

logger = logging.getLogger(__name__)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "category",
        "brand",
        "description",
        "sku",
        "barcode",
        "price_cents",
        "tax_percentage",
        "active",
    },
    required_on_create={"name", "category", "price_cents"},
)

PRODUCT_LIST_LIMIT = 100


class ProductCatalog:
    def __init__(self, store: RecordStore, cache_policy: CacheCoherencePolicy):
        self._store = store
        self._cache = cache_policy

    def get_product(self, product_id: int) -> tuple[dict, bool]:
        cached = self._cache.get("product", id=product_id)
        if cached is not None:
            return cached, True

        product = self._store.get("product", product_id)
        if product is None:
            raise NotFoundError("Product not found")

        data = product.to_dict()
        self._cache.put("product", data, id=product_id)
        return data, False

    def get_product_by_barcode(self, barcode: str) -> tuple[dict, bool]:
        cached = self._cache.get("product_by_barcode", barcode=barcode)
        if cached is not None:
            return cached, True

        product = self._store.find_one("product", {"barcode": barcode, "active": True})
        if product is None:
            raise NotFoundError("Product not found by barcode")

        data = product.to_dict()
        self._cache.put("product_by_barcode", data, barcode=barcode)
        return data, False

    def list_products(self, *, category: str | None = None, search: str | None = None) -> tuple[list[dict], bool]:
        """Active products; only the unfiltered listing is served from cache."""
        unfiltered = not category and not search
        if unfiltered:
            cached = self._cache.get("product_list")
            if cached is not None:
                return cached, True

        query: dict = {"active": True}
        if category:
            query["category"] = category
        if search:
            pattern = f"%{search}%"
            query["or"] = [
                {"name": {"ilike": pattern}},
                {"brand": {"ilike": pattern}},
                {"sku": search},
                {"barcode": search},
            ]

        rows = self._store.find("product", query, order_by=["name"], limit=PRODUCT_LIST_LIMIT)
        data = [p.to_dict() for p in rows]
        if unfiltered:
            self._cache.put("product_list", data)
        return data, False

    def create_product(self, payload: dict) -> Product:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)

        barcode = patch.get("barcode")
        if barcode and self._store.find_one("product", {"barcode": barcode}) is not None:
            raise ConflictError("Product with this barcode already exists")

        patch["stock"] = 0
        product = self._store.insert("product", patch)
        self._cache.invalidate("product", id=product.id, barcode=product.barcode)
        logger.info("Created product %s (%s)", product.id, product.name)
        return product

    def update_product(self, product_id: int, payload: dict) -> Product:
        if "stock" in (payload or {}):
            raise ConflictError("stock mirrors inventory; adjust inventory instead")
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)

        product = self._store.get("product", product_id)
        if product is None:
            raise NotFoundError("Product not found")
        previous_barcode = product.barcode

        product = self._store.update("product", product_id, patch)
        self._invalidate(product, previous_barcode)
        return product

    def deactivate_product(self, product_id: int) -> Product:
        product = self._store.update("product", product_id, {"active": False})
        if product is None:
            raise NotFoundError("Product not found")
        self._invalidate(product, product.barcode)
        return product

    def _invalidate(self, product: Product, previous_barcode: str | None) -> None:
        # inventory views embed the product
        inventory = self._store.find_one("inventory", {"product_id": product.id})
        self._cache.invalidate(
            "product",
            id=product.id,
            barcode=product.barcode,
            inventory_id=inventory.id if inventory is not None else None,
            inventory_barcode=inventory.barcode if inventory is not None else None,
        )
        if previous_barcode and previous_barcode != product.barcode:
            self._cache.invalidate("product", barcode=previous_barcode)
