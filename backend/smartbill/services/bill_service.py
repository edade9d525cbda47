# Overview: Service-layer operations for bills; creation, lookups, statistics and export.

# backend/smartbill/services/bill_service.py

from __future__ import annotations

import csv
import io
import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Iterable

from ..models import Bill, BillItem, Customer
from ..time_utils import day_bounds, month_bounds, to_utc_z, utcnow, year_bounds
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_bill,
    validate_payload,
)
from .cache_policy import CacheCoherencePolicy
from .inventory_service import InventoryLedger, StockMovementResult
from .record_store import RecordStore, StoreError
"""
SmartBill Billing Invariants (authoritative)

- A bill is created once, already Completed. Its lines and money fields never
  change afterwards; update_bill_metadata() only touches notes and customer
  contact fields.
- Money is integer cents. total == subtotal + tax - discount holds at creation;
  supplied totals that disagree with the lines are rejected, omitted totals are
  computed.
- bill_number is unique in the store. A generated number that already exists
  (or loses an insert race) is replaced by a fresh one; it never overwrites.
- Deleting a bill is soft (deleted_at) and leaves stock deducted. Reversing
  stock is the separate void_and_restock() operation, which runs at most once
  per bill.
- Statistics only count Completed bills that are neither deleted nor voided.
- Every bill mutation invalidates that bill's views, the owner's list view and
  every cached statistic.
"""

logger = logging.getLogger(__name__)

PAYMENT_STATUS_PENDING = "Pending"
PAYMENT_STATUS_COMPLETED = "Completed"
PAYMENT_STATUS_FAILED = "Failed"
PAYMENT_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_COMPLETED, PAYMENT_STATUS_FAILED)

STATS_PERIODS = ("daily", "monthly", "yearly")
BILL_LIST_FILTERS = ("payment_status", "payment_method", "start_date", "end_date", "customer_mobile")
BILL_NUMBER_ATTEMPTS = 5
MAX_PAGE_SIZE = 100
POPULAR_PRODUCTS_LIMIT = 10

BILL_CONTEXT_FIELDS = (
    "shop_name",
    "shop_address",
    "shop_phone",
    "gst_number",
    "customer_name",
    "customer_mobile",
    "customer_email",
    "cashier",
    "notes",
)

BILL_METADATA_POLICY = ModelValidationPolicy(
    writable_fields={"notes", "customer_name", "customer_mobile", "customer_email"},
)

EXPORT_COLUMNS = (
    "bill_number",
    "date",
    "customer_name",
    "customer_mobile",
    "total_cents",
    "payment_method",
    "payment_status",
    "item_count",
)


class BillNumberGenerator:
    """Time-based bill numbers ("BILL-<epoch ms>"), strictly increasing in-process."""

    def __init__(self, prefix: str = "BILL-", clock: Callable[[], float] = time.time):
        self._prefix = prefix
        self._clock = clock
        self._lock = threading.Lock()
        self._last = 0

    def __call__(self) -> str:
        with self._lock:
            value = max(int(self._clock() * 1000), self._last + 1)
            self._last = value
        return f"{self._prefix}{value}"


def _half_up_div(numerator: int, denominator: int) -> int:
    return (2 * numerator + denominator) // (2 * denominator)


def compute_stats(bills: Iterable[Any]) -> dict:
    """
    Aggregate a bill set. Pure: works on any objects carrying total_cents,
    tax_cents, discount_cents and payment_method.
    """
    total_bills = 0
    revenue = tax = discount = 0
    breakdown: dict[str, dict] = {}

    for bill in bills:
        total_bills += 1
        revenue += bill.total_cents
        tax += bill.tax_cents
        discount += bill.discount_cents
        entry = breakdown.setdefault(bill.payment_method, {"count": 0, "total_cents": 0})
        entry["count"] += 1
        entry["total_cents"] += bill.total_cents

    return {
        "total_bills": total_bills,
        "total_revenue_cents": revenue,
        "total_tax_cents": tax,
        "total_discount_cents": discount,
        "average_bill_cents": _half_up_div(revenue, total_bills) if total_bills else 0,
        "payment_method_breakdown": breakdown,
    }


def render_csv(rows: list[dict]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=EXPORT_COLUMNS, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buf.getvalue()


class BillingEngine:
    def __init__(
        self,
        store: RecordStore,
        cache_policy: CacheCoherencePolicy,
        ledger: InventoryLedger,
        *,
        number_generator: Callable[[], str] | None = None,
        default_tax_percentage: int = 5,
        page_size: int = 20,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._cache = cache_policy
        self._ledger = ledger
        self._next_number = number_generator or BillNumberGenerator()
        self._default_tax_percentage = default_tax_percentage
        self._page_size = page_size
        self._clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_bill(self, user_id: int, payload: dict) -> Bill:
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")

        items = payload.get("items")
        if not isinstance(items, list) or not items:
            raise ValidationError("Bill must have at least one item")
        lines = [self._parse_line(position, item) for position, item in enumerate(items)]

        money = self._compute_totals(lines, payload)
        enforce_rules_bill({"payment_method": payload.get("payment_method"), **money})

        values = {
            "user_id": user_id,
            "payment_method": payload["payment_method"],
            "payment_status": PAYMENT_STATUS_COMPLETED,
            "created_at": self._clock(),
            **money,
        }
        for field in BILL_CONTEXT_FIELDS:
            value = payload.get(field)
            if value not in (None, ""):
                values[field] = str(value).strip()

        bill = self._insert_with_fresh_number(values, lines)
        logger.info("Created bill %s for user %s (%s cents)", bill.bill_number, user_id, bill.total_cents)

        self._tally_customer(bill)
        self._invalidate(bill)
        return bill

    def checkout(self, user_id: int, payload: dict) -> tuple[Bill, StockMovementResult]:
        """Create the bill, then take its lines out of stock."""
        bill = self.create_bill(user_id, payload)
        movement = self._ledger.deduct_for_bill([self._line_as_movement(item) for item in bill.items])
        if movement.errors:
            logger.warning("Bill %s: %d line(s) not deducted", bill.bill_number, len(movement.errors))
        return bill, movement

    def _parse_line(self, position: int, item: Any) -> dict:
        if not isinstance(item, dict):
            raise ValidationError(f"items[{position}] must be an object")

        quantity = coerce_int(f"items[{position}].quantity", item.get("quantity"))
        if quantity <= 0:
            raise ValidationError(f"items[{position}].quantity must be > 0")
        unit_price = item.get("unit_price_cents")
        if unit_price is None:
            raise ValidationError(f"items[{position}].unit_price_cents is required")
        unit_price = coerce_int(f"items[{position}].unit_price_cents", unit_price)
        if unit_price < 0:
            raise ValidationError(f"items[{position}].unit_price_cents must be >= 0")

        product_id = item.get("product_id")
        if product_id is not None:
            product_id = coerce_int(f"items[{position}].product_id", product_id)

        return {
            "position": position,
            "product_id": product_id,
            "product_name": item.get("product_name") or item.get("name"),
            "barcode": item.get("barcode") or None,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "line_total_cents": unit_price * quantity,
        }

    def _compute_totals(self, lines: list[dict], payload: dict) -> dict:
        def optional(key):
            value = payload.get(key)
            return None if value is None else coerce_int(key, value)

        subtotal = sum(line["line_total_cents"] for line in lines)
        supplied_subtotal = optional("subtotal_cents")
        if supplied_subtotal is not None and supplied_subtotal != subtotal:
            raise ValidationError(f"subtotal_cents must equal the sum of line totals ({subtotal})")

        tax_percentage = optional("tax_percentage")
        if tax_percentage is None:
            tax_percentage = self._default_tax_percentage
        tax = optional("tax_cents")
        if tax is None:
            tax = _half_up_div(subtotal * tax_percentage, 100)
        discount = optional("discount_cents") or 0

        total = subtotal + tax - discount
        supplied_total = optional("total_cents")
        if supplied_total is not None and supplied_total != total:
            raise ValidationError(f"total_cents must equal subtotal + tax - discount ({total})")
        if total < 0:
            raise ValidationError("discount_cents cannot exceed subtotal + tax")

        received = optional("amount_received_cents")
        if received is not None and received < total:
            raise ValidationError("amount_received_cents cannot be less than total_cents")

        return {
            "subtotal_cents": subtotal,
            "tax_cents": tax,
            "tax_percentage": tax_percentage,
            "discount_cents": discount,
            "total_cents": total,
            "amount_received_cents": received,
            "change_cents": received - total if received is not None else 0,
        }

    def _insert_with_fresh_number(self, values: dict, lines: list[dict]) -> Bill:
        for _ in range(BILL_NUMBER_ATTEMPTS):
            number = self._next_number()
            if self._store.find_one("bill", {"bill_number": number}) is not None:
                logger.warning("Bill number %s already taken; generating another", number)
                continue
            try:
                return self._store.insert("bill", {
                    **values,
                    "bill_number": number,
                    "items": [BillItem(**line) for line in lines],
                })
            except ConflictError:
                logger.warning("Bill number %s lost an insert race; generating another", number)
        raise ConflictError("Could not allocate a unique bill number")

    def _tally_customer(self, bill: Bill) -> None:
        if not bill.customer_mobile:
            return
        try:
            customer = self._store.find_one(
                "customer",
                {"user_id": bill.user_id, "mobile_number": bill.customer_mobile, "is_active": True},
            )
            if customer is None:
                return
            self._store.increment(
                "customer",
                customer.id,
                "total_bills",
                1,
                extra={"total_spent_cents": Customer.total_spent_cents + bill.total_cents},
            )
        except StoreError:
            # the bill is already persisted
            logger.exception("Could not update purchase tally for customer %s", bill.customer_mobile)

    @staticmethod
    def _line_as_movement(item: BillItem) -> dict:
        return {
            "product_id": item.product_id,
            "barcode": item.barcode,
            "name": item.product_name,
            "quantity": item.quantity,
        }

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _owned_bill(self, user_id: int, bill_id: int) -> Bill:
        bill = self._store.get("bill", bill_id)
        if bill is None or bill.user_id != user_id or bill.deleted_at is not None:
            raise NotFoundError("Bill not found")
        return bill

    def get_bill(self, user_id: int, bill_id: int) -> tuple[dict, bool]:
        cached = self._cache.get("bill", id=bill_id)
        if cached is not None and cached.get("user_id") == user_id:
            return cached, True

        data = self._owned_bill(user_id, bill_id).to_dict()
        self._cache.put("bill", data, id=bill_id)
        return data, False

    def get_bill_by_number(self, bill_number: str) -> tuple[dict, bool]:
        cached = self._cache.get("bill_by_number", bill_number=bill_number)
        if cached is not None:
            return cached, True

        bill = self._store.find_one("bill", {"bill_number": bill_number, "deleted_at": None})
        if bill is None:
            raise NotFoundError("Bill not found")
        data = bill.to_dict()
        self._cache.put("bill_by_number", data, bill_number=bill_number)
        return data, False

    def list_bills(
        self,
        user_id: int,
        *,
        page: Any = 1,
        limit: Any = None,
        filters: dict | None = None,
    ) -> tuple[dict, bool]:
        """
        Newest-first page of the caller's bills with pagination metadata.

        Only the default view (first page, default size, no filters) is cached.
        """
        page = coerce_int("page", page)
        limit = self._page_size if limit is None else coerce_int("limit", limit)
        if page < 1:
            raise ValidationError("page must be >= 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        query = self._list_query(user_id, filters)
        filtered = any(v not in (None, "") for v in (filters or {}).values())
        default_view = page == 1 and limit == self._page_size and not filtered
        if default_view:
            cached = self._cache.get("bill_list", user_id=user_id)
            if cached is not None:
                return cached, True

        total = self._store.count("bill", query)
        rows = self._store.find(
            "bill", query, order_by=["-created_at"], limit=limit, offset=(page - 1) * limit
        )
        data = {
            "bills": [bill.to_dict() for bill in rows],
            "pagination": {
                "current_page": page,
                "total_pages": (total + limit - 1) // limit,
                "total_bills": total,
                "bills_per_page": limit,
            },
        }
        if default_view:
            self._cache.put("bill_list", data, user_id=user_id)
        return data, False

    def _list_query(self, user_id: int, filters: dict | None) -> dict:
        filters = {k: v for k, v in (filters or {}).items() if v not in (None, "")}
        unknown = sorted(set(filters) - set(BILL_LIST_FILTERS))
        if unknown:
            raise ValidationError(f"Unsupported filters: {', '.join(unknown)}")

        query: dict = {"user_id": user_id, "deleted_at": None}
        if "payment_status" in filters:
            if filters["payment_status"] not in PAYMENT_STATUSES:
                raise ValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")
            query["payment_status"] = filters["payment_status"]
        if "payment_method" in filters:
            query["payment_method"] = filters["payment_method"]
        if "customer_mobile" in filters:
            query["customer_mobile"] = filters["customer_mobile"]
        created = self._date_range(filters.get("start_date"), filters.get("end_date"))
        if created:
            query["created_at"] = created
        return query

    @staticmethod
    def _date_range(start: datetime | None, end: datetime | None) -> dict:
        if start is not None and end is not None and start > end:
            raise ValidationError("start_date must not be after end_date")
        created: dict = {}
        if start is not None:
            created["gte"] = start
        if end is not None:
            created["lte"] = end
        return created

    # ------------------------------------------------------------------
    # Mutations after creation
    # ------------------------------------------------------------------

    def update_bill_metadata(self, user_id: int, bill_id: int, payload: dict) -> Bill:
        patch = validate_payload(model=Bill, payload=payload, policy=BILL_METADATA_POLICY, partial=True)
        self._owned_bill(user_id, bill_id)
        if not patch:
            raise ValidationError("Nothing to update")
        bill = self._store.update("bill", bill_id, patch)
        self._invalidate(bill)
        return bill

    def delete_bill(self, user_id: int, bill_id: int) -> Bill:
        """Soft delete. Stock taken by the bill stays taken."""
        self._owned_bill(user_id, bill_id)
        bill = self._store.update("bill", bill_id, {"deleted_at": self._clock()})
        self._invalidate(bill)
        logger.info("Deleted bill %s", bill.bill_number)
        return bill

    def void_and_restock(self, user_id: int, bill_id: int) -> tuple[Bill, StockMovementResult]:
        """Mark the bill voided and put every line back into stock, once."""
        bill = self._owned_bill(user_id, bill_id)
        if bill.voided_at is not None:
            raise ConflictError("Bill is already voided")

        bill = self._store.update("bill", bill_id, {"voided_at": self._clock()})
        self._invalidate(bill)
        movement = self._ledger.restock_items([self._line_as_movement(item) for item in bill.items])
        logger.info("Voided bill %s; %d line(s) restocked", bill.bill_number, len(movement.applied))
        return bill, movement

    def _invalidate(self, bill: Bill) -> None:
        self._cache.invalidate("bill", id=bill.id, bill_number=bill.bill_number, user_id=bill.user_id)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def _counted_bills(self, user_id: int, start=None, end=None, *, inclusive_end=False) -> list[Bill]:
        query: dict = {
            "user_id": user_id,
            "payment_status": PAYMENT_STATUS_COMPLETED,
            "deleted_at": None,
            "voided_at": None,
        }
        created: dict = {}
        if start is not None:
            created["gte"] = start
        if end is not None:
            created["lte" if inclusive_end else "lt"] = end
        if created:
            query["created_at"] = created
        return self._store.find("bill", query, order_by=["created_at"])

    def _cached_stats(self, stats_key: str, build: Callable[[], Any]) -> tuple[Any, bool]:
        cached = self._cache.get("bill_stats", stats_key=stats_key)
        if cached is not None:
            return cached, True
        data = build()
        self._cache.put("bill_stats", data, stats_key=stats_key)
        return data, False

    def period_stats(
        self,
        user_id: int,
        period: str,
        *,
        year: Any = None,
        month: Any = None,
    ) -> tuple[dict, bool]:
        if period not in STATS_PERIODS:
            raise ValidationError(f"period must be one of: {', '.join(STATS_PERIODS)}")

        now = self._clock()
        year = now.year if year in (None, "") else coerce_int("year", year)
        month = now.month if month in (None, "") else coerce_int("month", month)

        try:
            if period == "daily":
                start, end = day_bounds(now)
                label = start.date().isoformat()
            elif period == "monthly":
                start, end = month_bounds(year, month)
                label = f"{year:04d}-{month:02d}"
            else:
                start, end = year_bounds(year)
                label = f"{year:04d}"
        except ValueError as exc:
            raise ValidationError(str(exc))

        def build():
            stats = compute_stats(self._counted_bills(user_id, start, end))
            return {"period": period, "label": label, "start": to_utc_z(start), "end": to_utc_z(end), **stats}

        return self._cached_stats(f"{user_id}:{period}:{label}", build)

    def summary(self, user_id: int, start: datetime | None = None, end: datetime | None = None) -> tuple[dict, bool]:
        self._date_range(start, end)
        key = f"{user_id}:summary:{_stamp(start)}:{_stamp(end)}"
        return self._cached_stats(
            key, lambda: compute_stats(self._counted_bills(user_id, start, end, inclusive_end=True))
        )

    def payment_method_breakdown(
        self, user_id: int, start: datetime | None = None, end: datetime | None = None
    ) -> tuple[dict, bool]:
        self._date_range(start, end)

        def build():
            breakdown = compute_stats(
                self._counted_bills(user_id, start, end, inclusive_end=True)
            )["payment_method_breakdown"]
            for entry in breakdown.values():
                entry["average_cents"] = _half_up_div(entry["total_cents"], entry["count"])
            return breakdown

        return self._cached_stats(f"{user_id}:payment-methods:{_stamp(start)}:{_stamp(end)}", build)

    def popular_products(self, user_id: int, limit: Any = POPULAR_PRODUCTS_LIMIT) -> tuple[list[dict], bool]:
        """
        Products ranked by how many counted bill lines name them, most first.

        Ties keep the order in which products were first sold.
        """
        limit = coerce_int("limit", limit)
        if limit < 1:
            raise ValidationError("limit must be >= 1")

        def build():
            tally: dict[Any, dict] = {}
            for bill in self._counted_bills(user_id):
                for item in bill.items:
                    key = item.product_id if item.product_id is not None else (item.barcode or item.product_name)
                    entry = tally.setdefault(key, {
                        "product_id": item.product_id,
                        "barcode": item.barcode,
                        "name": item.product_name,
                        "sales_count": 0,
                        "units_sold": 0,
                        "revenue_cents": 0,
                    })
                    entry["sales_count"] += 1
                    entry["units_sold"] += item.quantity
                    entry["revenue_cents"] += item.line_total_cents
            ranked = sorted(tally.values(), key=lambda e: -e["sales_count"])
            return ranked[:limit]

        return self._cached_stats(f"{user_id}:popular:{limit}", build)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_rows(self, user_id: int, filters: dict | None = None) -> list[dict]:
        query = self._list_query(user_id, filters)
        return [
            {
                "bill_number": bill.bill_number,
                "date": to_utc_z(bill.created_at),
                "customer_name": bill.customer_name,
                "customer_mobile": bill.customer_mobile,
                "total_cents": bill.total_cents,
                "payment_method": bill.payment_method,
                "payment_status": bill.payment_status,
                "item_count": len(bill.items),
            }
            for bill in self._store.find("bill", query, order_by=["-created_at"])
        ]


def _stamp(value: datetime | None) -> str:
    return value.isoformat() if value is not None else "-"
