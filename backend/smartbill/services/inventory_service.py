# Overview: Service-layer operations for inventory; the only writer of stock quantities.

# backend/smartbill/services/inventory_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import case

from ..models import Inventory, Product
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, coerce_int, enforce_rules_inventory
from .cache_policy import CacheCoherencePolicy
from .products_service import ProductCatalog
from .record_store import RecordStore, StoreError
"""
SmartBill Inventory Invariants (authoritative)

Ownership:
- InventoryLedger is the single writer of Inventory.quantity, Inventory.status
  and the Product.stock mirror. Nothing else updates those columns.

Status:
- status is a pure function of (quantity, min_stock), see derive_status().
- Quantity moves through RecordStore.increment(); the same UPDATE statement
  rewrites status from the post-update quantity, so no write path persists a
  quantity without its status.
- A follow-up settle step re-reads the record, repairs status if it ever
  drifted, mirrors quantity onto Product.stock and invalidates caches.

Uniqueness:
- One Inventory record per product (found-or-create on product id, then
  barcode). A lost create race folds into the winning record.

Movements:
- Restock/register accumulates; it never replaces the on-hand quantity.
- adjust_quantity() accepts any delta, including one that drives quantity
  below zero (corrections); negative quantities report Out of Stock.
- deduct_for_bill() never oversells: each line is a guarded decrement that
  only applies when enough stock remains. Lines are independent; failures are
  reported per line and never abort the others.

Caching:
- Every mutation invalidates the inventory views (by id, by barcode, list) and,
  through the cascade, the owning product's views.
- Only the unfiltered inventory list is cached. Filtered lists always hit the
  store.
"""

logger = logging.getLogger(__name__)

STATUS_IN_STOCK = "In Stock"
STATUS_LOW_STOCK = "Low Stock"
STATUS_OUT_OF_STOCK = "Out of Stock"
INVENTORY_STATUSES = (STATUS_IN_STOCK, STATUS_LOW_STOCK, STATUS_OUT_OF_STOCK)

DEFAULT_MIN_STOCK = 10
DEFAULT_LOCATION = "Main Store"
DEFAULT_WAREHOUSE = "Default"

INVENTORY_LIST_FILTERS = ("warehouse", "status", "search")


def derive_status(quantity: int, min_stock: int) -> str:
    # a negative quantity (left by adjust_quantity) reads as Low Stock
    if quantity == 0:
        return STATUS_OUT_OF_STOCK
    if quantity <= min_stock:
        return STATUS_LOW_STOCK
    return STATUS_IN_STOCK


def derive_status_sql(quantity_expr, min_stock_expr):
    """derive_status() as a SQL CASE, evaluated inside the UPDATE."""
    return case(
        (quantity_expr == 0, STATUS_OUT_OF_STOCK),
        (quantity_expr <= min_stock_expr, STATUS_LOW_STOCK),
        else_=STATUS_IN_STOCK,
    )


@dataclass
class StockMovementResult:
    """Per-line partition of a multi-line stock movement."""
    applied: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self, applied_key: str = "deducted") -> dict:
        return {applied_key: self.applied, "errors": self.errors}


def _item_label(item: Any) -> str:
    if not isinstance(item, dict):
        return repr(item)
    for key in ("name", "product_name", "barcode", "product_id", "id"):
        if item.get(key) not in (None, ""):
            return str(item[key])
    return "unknown item"


class InventoryLedger:
    def __init__(
        self,
        store: RecordStore,
        cache_policy: CacheCoherencePolicy,
        catalog: ProductCatalog,
        *,
        clock: Callable = utcnow,
    ):
        self._store = store
        self._cache = cache_policy
        self._catalog = catalog
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_inventory(self, inventory_id: int) -> tuple[dict, bool]:
        cached = self._cache.get("inventory", id=inventory_id)
        if cached is not None:
            return cached, True

        inventory = self._store.get("inventory", inventory_id)
        if inventory is None:
            raise NotFoundError("Inventory not found")
        data = inventory.to_dict(include_product=True)
        self._cache.put("inventory", data, id=inventory_id)
        return data, False

    def get_by_barcode(self, barcode: str) -> tuple[dict, bool]:
        cached = self._cache.get("inventory_by_barcode", barcode=barcode)
        if cached is not None:
            return cached, True

        inventory = self._resolve(barcode, None)
        if inventory is None:
            raise NotFoundError("Inventory item not found by barcode")
        data = inventory.to_dict(include_product=True)
        self._cache.put("inventory_by_barcode", data, barcode=barcode)
        return data, False

    def get_inventory_list(self, filters: dict | None = None) -> tuple[list[dict], bool]:
        """
        Inventory rows with their product, ordered by warehouse then location.

        Returns (rows, served_from_cache). Any filter bypasses the cache in
        both directions: it is neither read from nor written to.
        """
        filters = {k: v for k, v in (filters or {}).items() if v not in (None, "")}
        unknown = sorted(set(filters) - set(INVENTORY_LIST_FILTERS))
        if unknown:
            raise ValidationError(f"Unsupported filters: {', '.join(unknown)}")

        if not filters:
            cached = self._cache.get("inventory_list")
            if cached is not None:
                return cached, True

        query: dict = {}
        if "warehouse" in filters:
            query["warehouse"] = filters["warehouse"]
        if "status" in filters:
            if filters["status"] not in INVENTORY_STATUSES:
                raise ValidationError(f"status must be one of: {', '.join(INVENTORY_STATUSES)}")
            query["status"] = filters["status"]
        if "search" in filters:
            search = str(filters["search"])
            products = self._store.find(
                "product",
                {"or": [{"name": {"ilike": f"%{search}%"}}, {"barcode": search}]},
            )
            query["or"] = [
                {"product_id": {"in": [p.id for p in products]}},
                {"barcode": search},
            ]

        rows = self._store.find("inventory", query, order_by=["warehouse", "location"])
        data = [row.to_dict(include_product=True) for row in rows]
        if not filters:
            self._cache.put("inventory_list", data)
        return data, False

    def low_stock(self) -> list[dict]:
        rows = self._store.find("inventory", order_by=["quantity"])
        return [row.to_dict(include_product=True) for row in rows if row.quantity <= row.min_stock]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def find_or_create(
        self,
        *,
        product_id: int | None = None,
        barcode: str | None = None,
        quantity: Any,
        min_stock: Any = None,
        location: str | None = None,
        warehouse: str | None = None,
    ) -> Inventory:
        """
        Register stock for a product: add to its record, or create the record.

        Lookup is by barcode first, then by product id. Supplied metadata
        overwrites, omitted metadata is kept. New records default min_stock
        to 10.

        Barcode conflicts are checked before anything is written: a barcode
        owned by another product, or a record that already carries a
        different barcode, raises ConflictError and moves no stock.
        """
        barcode = barcode or None
        if product_id is None and barcode is None:
            raise ValidationError("Either product_id or barcode is required")

        quantity = coerce_int("quantity", quantity)
        metadata = {
            "min_stock": coerce_int("min_stock", min_stock) if min_stock is not None else None,
            "location": location or None,
            "warehouse": warehouse or None,
        }
        enforce_rules_inventory({"quantity": quantity, **metadata})

        product = None
        if product_id is not None:
            product = self._store.get("product", coerce_int("product_id", product_id))
            if product is None:
                raise NotFoundError("Product not found")

        stale_barcodes: list[str] = []
        inventory = self._resolve(barcode, product.id if product else None)

        if inventory is None:
            if product is None:
                product = self._store.find_one("product", {"barcode": barcode})
            if product is None:
                raise ValidationError("product_id is required for new inventory when no product carries this barcode")
            self._check_barcode_owner(product, barcode)
            try:
                inventory = self._create(product, barcode, quantity, metadata)
            except ConflictError:
                # Lost a create race on product_id or barcode: fold into the winner.
                inventory = self._resolve(barcode, product.id)
                if inventory is None or inventory.product_id != product.id:
                    raise
                self._check_inventory_barcode(inventory, barcode)
                self._accumulate(inventory, quantity, metadata, barcode)
        else:
            if product is not None and product.id != inventory.product_id:
                raise ConflictError("Barcode already belongs to another product's inventory")
            product = self._store.get("product", inventory.product_id)
            self._check_inventory_barcode(inventory, barcode)
            if product is not None:
                self._check_barcode_owner(product, barcode)
            self._accumulate(inventory, quantity, metadata, barcode)

        if product is not None and barcode and product.barcode != barcode:
            if product.barcode:
                stale_barcodes.append(product.barcode)
            self._store.update("product", product.id, {"barcode": barcode})

        return self._settle(inventory.id, stale_barcodes=stale_barcodes)

    def register_barcode(
        self,
        *,
        barcode: str,
        name: str,
        price_cents: Any,
        category: str,
        brand: str | None = None,
        quantity: Any = 0,
        location: str | None = None,
        warehouse: str | None = None,
    ) -> tuple[Product, Inventory]:
        """Found-or-create the product behind a scanned barcode, then stock it."""
        if not barcode or not name or price_cents is None or not category:
            raise ValidationError("Barcode, name, price, and category are required")

        product = self._store.find_one("product", {"barcode": barcode})
        if product is None:
            product = self._catalog.create_product({
                "barcode": barcode,
                "name": name,
                "price_cents": price_cents,
                "category": category,
                "brand": brand or "",
            })

        inventory = self.find_or_create(
            product_id=product.id,
            barcode=barcode,
            quantity=quantity or 0,
            location=location,
            warehouse=warehouse,
        )
        return self._store.get("product", product.id), inventory

    def adjust_quantity(self, inventory_id: int, delta: Any) -> Inventory:
        """Add delta (may be negative) to on-hand quantity. No lower bound."""
        delta = coerce_int("quantity", delta)
        if self._store.get("inventory", inventory_id) is None:
            raise NotFoundError("Inventory not found")

        if not self._store.increment(
            "inventory", inventory_id, "quantity", delta, extra=self._movement_columns(delta)
        ):
            raise NotFoundError("Inventory not found")
        return self._settle(inventory_id)

    def update_inventory(self, inventory_id: int, patch: dict) -> Inventory:
        """Absolute correction of quantity and metadata (validated patch)."""
        enforce_rules_inventory(patch)
        inventory = self._store.get("inventory", inventory_id)
        if inventory is None:
            raise NotFoundError("Inventory not found")

        patch = dict(patch)
        if "quantity" in patch or "min_stock" in patch:
            patch["status"] = derive_status(
                patch.get("quantity", inventory.quantity),
                patch.get("min_stock", inventory.min_stock),
            )
        if "quantity" in patch:
            patch["last_restocked"] = self._clock()

        previous_barcode = inventory.barcode
        self._store.update("inventory", inventory_id, patch)
        stale = [previous_barcode] if previous_barcode and previous_barcode != patch.get("barcode", previous_barcode) else []
        return self._settle(inventory_id, stale_barcodes=stale)

    def deduct_for_bill(self, items: Any) -> StockMovementResult:
        """
        Take each bill line out of stock independently.

        A line is skipped (and reported in errors) when its inventory is
        missing or holds less than the requested quantity; that line's stock
        is left untouched. Only a missing or empty item list fails the call.
        """
        if not isinstance(items, list) or not items:
            raise ValidationError("bill_items array is required")

        result = StockMovementResult()
        for item in items:
            self._move_line(item, result, outbound=True)
        return result

    def restock_items(self, items: Any) -> StockMovementResult:
        """Put bill lines back into stock; the inverse of deduct_for_bill."""
        if not isinstance(items, list) or not items:
            raise ValidationError("items array is required")

        result = StockMovementResult()
        for item in items:
            self._move_line(item, result, outbound=False)
        return result

    def reconcile(self) -> list[int]:
        """Repair records whose status or product mirror drifted. Returns repaired ids."""
        repaired = []
        for inventory in self._store.find("inventory"):
            product = self._store.get("product", inventory.product_id)
            status_ok = inventory.status == derive_status(inventory.quantity, inventory.min_stock)
            mirror_ok = product is None or product.stock == inventory.quantity
            if status_ok and mirror_ok:
                continue
            self._settle(inventory.id)
            repaired.append(inventory.id)
        if repaired:
            logger.warning("Reconciled %d inventory records: %s", len(repaired), repaired)
        return repaired

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, barcode: str | None, product_id: Any) -> Inventory | None:
        if barcode:
            inventory = self._store.find_one("inventory", {"barcode": barcode})
            if inventory is not None:
                return inventory
            if product_id is None:
                product = self._store.find_one("product", {"barcode": barcode})
                if product is not None:
                    product_id = product.id
        if product_id is not None:
            return self._store.find_one("inventory", {"product_id": product_id})
        return None

    def _movement_columns(self, delta: int) -> dict:
        return {
            "status": derive_status_sql(Inventory.quantity + delta, Inventory.min_stock),
            "last_restocked": self._clock(),
        }

    def _create(self, product: Product, barcode: str | None, quantity: int, metadata: dict) -> Inventory:
        min_stock = metadata["min_stock"] if metadata["min_stock"] is not None else DEFAULT_MIN_STOCK
        return self._store.insert("inventory", {
            "product_id": product.id,
            "barcode": barcode,
            "quantity": quantity,
            "min_stock": min_stock,
            "location": metadata["location"] or DEFAULT_LOCATION,
            "warehouse": metadata["warehouse"] or DEFAULT_WAREHOUSE,
            "status": derive_status(quantity, min_stock),
            "last_restocked": self._clock(),
        })

    def _check_barcode_owner(self, product: Product, barcode: str | None) -> None:
        if not barcode:
            return
        owner = self._store.find_one("product", {"barcode": barcode})
        if owner is not None and owner.id != product.id:
            raise ConflictError("Barcode already belongs to another product")

    @staticmethod
    def _check_inventory_barcode(inventory: Inventory, barcode: str | None) -> None:
        if barcode and inventory.barcode and inventory.barcode != barcode:
            raise ConflictError(f"Inventory for this product already uses barcode {inventory.barcode}")

    def _accumulate(self, inventory: Inventory, quantity: int, metadata: dict, barcode: str | None) -> None:
        patch = {k: v for k, v in metadata.items() if v is not None}
        if barcode and inventory.barcode is None:
            patch["barcode"] = barcode
        if patch:
            # metadata first, so the status CASE below sees the new min_stock
            self._store.update("inventory", inventory.id, patch)
        self._store.increment(
            "inventory", inventory.id, "quantity", quantity, extra=self._movement_columns(quantity)
        )

    def _move_line(self, item: Any, result: StockMovementResult, *, outbound: bool) -> None:
        label = _item_label(item)
        try:
            self._move_line_inner(item, label, result, outbound=outbound)
        except ValidationError as exc:
            result.errors.append({"product": label, "error": str(exc)})
        except StoreError:
            logger.exception("Stock movement failed for %s", label)
            result.errors.append({"product": label, "error": "Inventory update failed"})

    def _move_line_inner(self, item: Any, label: str, result: StockMovementResult, *, outbound: bool) -> None:
        if not isinstance(item, dict):
            raise ValidationError("Invalid bill item")

        barcode = item.get("barcode") or None
        product_id = item.get("product_id", item.get("id"))
        if product_id is not None:
            product_id = coerce_int("product_id", product_id)
        quantity = coerce_int("quantity", item.get("quantity"))
        if quantity <= 0:
            raise ValidationError("quantity must be > 0")

        inventory = self._resolve(barcode, product_id)
        if inventory is None:
            result.errors.append({"product": label, "error": "Inventory item not found"})
            return

        delta = -quantity if outbound else quantity
        applied = self._store.increment(
            "inventory",
            inventory.id,
            "quantity",
            delta,
            minimum=0 if outbound else None,
            extra=self._movement_columns(delta),
        )
        if not applied:
            current = self._store.get("inventory", inventory.id)
            available = current.quantity if current is not None else 0
            result.errors.append({
                "product": label,
                "error": f"Insufficient quantity. Available: {available}, Required: {quantity}",
            })
            return

        inventory = self._settle(inventory.id)
        result.applied.append({
            "inventory_id": inventory.id,
            "product_id": inventory.product_id,
            "barcode": inventory.barcode,
            "name": item.get("name") or item.get("product_name"),
            "quantity": quantity,
            "remaining_quantity": inventory.quantity,
            "status": inventory.status,
        })

    def _settle(self, inventory_id: int, *, stale_barcodes: list[str] | None = None) -> Inventory:
        inventory = self._store.get("inventory", inventory_id)
        if inventory is None:
            raise NotFoundError("Inventory not found")

        expected = derive_status(inventory.quantity, inventory.min_stock)
        if inventory.status != expected:
            logger.warning(
                "Repairing status of inventory %s: %r -> %r", inventory.id, inventory.status, expected
            )
            self._store.update("inventory", inventory.id, {"status": expected})

        product = self._store.get("product", inventory.product_id)
        if product is not None and product.stock != inventory.quantity:
            self._store.update("product", product.id, {"stock": inventory.quantity})

        self._cache.invalidate(
            "inventory",
            id=inventory.id,
            barcode=inventory.barcode,
            product_id=inventory.product_id,
            product_barcode=product.barcode if product is not None else None,
        )
        for barcode in stale_barcodes or ():
            self._cache.invalidate("inventory", barcode=barcode, product_barcode=barcode)
        return inventory
