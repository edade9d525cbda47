from datetime import datetime
from types import SimpleNamespace
from unittest import mock

import pytest

from smartbill.services.bill_service import (
    BillNumberGenerator,
    BillingEngine,
    compute_stats,
    render_csv,
)
from smartbill.services.record_store import StoreError
from smartbill.validation import ConflictError, NotFoundError, ValidationError

USER_ID = 1
OTHER_USER_ID = 2


def _payload(*lines, **extra):
    payload = {
        "items": list(lines) or [{"product_name": "Chips", "quantity": 2, "unit_price_cents": 1000}],
        "payment_method": "Cash",
    }
    payload.update(extra)
    return payload


def _line(product, quantity=1, unit_price_cents=None):
    return {
        "product_id": product.id,
        "barcode": product.barcode,
        "product_name": product.name,
        "quantity": quantity,
        "unit_price_cents": product.price_cents if unit_price_cents is None else unit_price_cents,
    }


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def engine_at(store, policy, ledger):
    """Factory: BillingEngine whose clock is pinned to `now`."""
    def _engine(now, **kwargs):
        return BillingEngine(store, policy, ledger, clock=FixedClock(now), **kwargs)
    return _engine


def test_compute_stats_empty():
    assert compute_stats([]) == {
        "total_bills": 0,
        "total_revenue_cents": 0,
        "total_tax_cents": 0,
        "total_discount_cents": 0,
        "average_bill_cents": 0,
        "payment_method_breakdown": {},
    }


def test_compute_stats_totals_and_half_up_average():
    bills = [
        SimpleNamespace(total_cents=100, tax_cents=5, discount_cents=0, payment_method="Cash"),
        SimpleNamespace(total_cents=101, tax_cents=5, discount_cents=10, payment_method="UPI"),
        SimpleNamespace(total_cents=100, tax_cents=5, discount_cents=0, payment_method="Cash"),
    ]
    stats = compute_stats(bills)
    assert stats["total_bills"] == 3
    assert stats["total_revenue_cents"] == 301
    assert stats["total_discount_cents"] == 10
    assert stats["average_bill_cents"] == 100
    assert stats["payment_method_breakdown"] == {
        "Cash": {"count": 2, "total_cents": 200},
        "UPI": {"count": 1, "total_cents": 101},
    }
    pair = [SimpleNamespace(total_cents=c, tax_cents=0, discount_cents=0, payment_method="Cash") for c in (100, 101)]
    assert compute_stats(pair)["average_bill_cents"] == 101


def test_bill_number_generator_is_strictly_increasing():
    generate = BillNumberGenerator(prefix="BILL-", clock=lambda: 1700000000.0)
    assert [generate(), generate(), generate()] == [
        "BILL-1700000000000",
        "BILL-1700000000001",
        "BILL-1700000000002",
    ]


def test_create_bill_computes_totals(billing):
    bill = billing.create_bill(USER_ID, _payload(
        {"product_name": "Chips", "quantity": 3, "unit_price_cents": 1000},
        {"product_name": "Soda", "quantity": 1, "unit_price_cents": 2050},
        discount_cents=50,
        amount_received_cents=6000,
    ))

    assert [item.line_total_cents for item in bill.items] == [3000, 2050]
    assert bill.subtotal_cents == 5050
    assert bill.tax_percentage == 5
    assert bill.tax_cents == 253
    assert bill.total_cents == 5050 + 253 - 50
    assert bill.change_cents == 6000 - bill.total_cents
    assert bill.payment_status == "Completed"
    assert bill.bill_number.startswith("BILL-")


def test_create_bill_accepts_consistent_supplied_totals(billing):
    bill = billing.create_bill(USER_ID, _payload(
        subtotal_cents=2000, tax_cents=100, discount_cents=0, total_cents=2100
    ))
    assert bill.total_cents == 2100


@pytest.mark.parametrize("overrides,message", [
    ({"items": []}, "at least one item"),
    ({"payment_method": None}, "Payment method is required"),
    ({"payment_method": "Barter"}, "payment_method"),
    ({"subtotal_cents": 1999}, "subtotal_cents"),
    ({"total_cents": 1}, "total_cents"),
    ({"discount_cents": 999999}, "discount_cents"),
    ({"amount_received_cents": 10}, "amount_received_cents"),
    ({"items": [{"product_name": "x", "quantity": 0, "unit_price_cents": 1}]}, "quantity"),
    ({"items": [{"product_name": "x", "quantity": 1}]}, "unit_price_cents"),
])
def test_create_bill_validation(billing, overrides, message):
    with pytest.raises(ValidationError, match=message):
        billing.create_bill(USER_ID, _payload(**overrides))


def test_bill_number_collision_retries_with_fresh_value(store, policy, ledger, billing):
    taken = billing.create_bill(USER_ID, _payload()).bill_number
    numbers = iter([taken, taken, "BILL-fresh"])
    engine = BillingEngine(store, policy, ledger, number_generator=lambda: next(numbers))

    bill = engine.create_bill(USER_ID, _payload())

    assert bill.bill_number == "BILL-fresh"
    assert store.count("bill") == 2


def test_bill_number_exhaustion_raises_conflict(store, policy, ledger, billing):
    taken = billing.create_bill(USER_ID, _payload()).bill_number
    engine = BillingEngine(store, policy, ledger, number_generator=lambda: taken)

    with pytest.raises(ConflictError):
        engine.create_bill(USER_ID, _payload())
    assert store.count("bill") == 1


def test_checkout_deducts_stock_and_reports_shortfalls(billing, stocked, store):
    chips, chips_inv = stocked(quantity=10, name="Chips")
    soda, soda_inv = stocked(quantity=1, name="Soda")

    bill, movement = billing.checkout(USER_ID, _payload(_line(chips, 4), _line(soda, 2)))

    assert bill.id is not None
    assert [row["name"] for row in movement.applied] == ["Chips"]
    assert [err["product"] for err in movement.errors] == ["Soda"]
    assert store.get("inventory", chips_inv.id).quantity == 6
    assert store.get("inventory", soda_inv.id).quantity == 1


def test_customer_tally_incremented(billing, store, db_session):
    customer = store.insert("customer", {"user_id": USER_ID, "name": "Asha", "mobile_number": "9999900000"})
    store.insert("customer", {"user_id": OTHER_USER_ID, "name": "Other", "mobile_number": "9999900000"})

    billing.create_bill(USER_ID, _payload(customer_mobile="9999900000"))
    bill = billing.create_bill(USER_ID, _payload(customer_mobile="9999900000"))

    fresh = store.get("customer", customer.id)
    assert fresh.total_bills == 2
    assert fresh.total_spent_cents == 2 * bill.total_cents
    other = store.find_one("customer", {"user_id": OTHER_USER_ID})
    assert other.total_bills == 0


def test_customer_lookup_failure_keeps_the_sale(billing, stocked, store):
    product, inventory = stocked(quantity=5)
    real_find_one = store.find_one

    def failing_customer_lookup(kind, *args, **kwargs):
        if kind == "customer":
            raise StoreError("customer table unavailable")
        return real_find_one(kind, *args, **kwargs)

    with mock.patch.object(store, "find_one", side_effect=failing_customer_lookup):
        bill, movement = billing.checkout(USER_ID, _payload(_line(product, 2), customer_mobile="9999900000"))

    assert store.get("bill", bill.id) is not None
    assert movement.errors == []
    assert store.get("inventory", inventory.id).quantity == 3


def test_get_bill_scoped_to_owner_and_cached(billing):
    bill = billing.create_bill(USER_ID, _payload())

    data, cached = billing.get_bill(USER_ID, bill.id)
    assert (data["bill_number"], cached) == (bill.bill_number, False)
    assert billing.get_bill(USER_ID, bill.id)[1] is True

    with pytest.raises(NotFoundError):
        billing.get_bill(OTHER_USER_ID, bill.id)


def test_get_bill_by_number(billing):
    bill = billing.create_bill(USER_ID, _payload())
    data, cached = billing.get_bill_by_number(bill.bill_number)
    assert (data["id"], cached) == (bill.id, False)
    assert billing.get_bill_by_number(bill.bill_number)[1] is True
    with pytest.raises(NotFoundError):
        billing.get_bill_by_number("BILL-missing")


def test_list_bills_pagination_and_cache(billing):
    for _ in range(3):
        billing.create_bill(USER_ID, _payload())
    billing.create_bill(OTHER_USER_ID, _payload())

    data, cached = billing.list_bills(USER_ID)
    assert (len(data["bills"]), cached) == (3, False)
    assert data["pagination"] == {"current_page": 1, "total_pages": 1, "total_bills": 3, "bills_per_page": 20}
    assert billing.list_bills(USER_ID)[1] is True

    data, cached = billing.list_bills(USER_ID, page=2, limit=2)
    assert (len(data["bills"]), data["pagination"]["total_pages"], cached) == (1, 2, False)

    data, cached = billing.list_bills(USER_ID, filters={"payment_method": "Card"})
    assert (data["bills"], cached) == ([], False)

    billing.create_bill(USER_ID, _payload())
    data, cached = billing.list_bills(USER_ID)
    assert (len(data["bills"]), cached) == (4, False)


def test_list_bills_rejects_bad_paging(billing):
    with pytest.raises(ValidationError):
        billing.list_bills(USER_ID, page=0)
    with pytest.raises(ValidationError):
        billing.list_bills(USER_ID, limit=1000)
    with pytest.raises(ValidationError):
        billing.list_bills(USER_ID, filters={"sort": "total"})


def test_update_metadata_only(billing):
    bill = billing.create_bill(USER_ID, _payload())
    billing.get_bill(USER_ID, bill.id)

    billing.update_bill_metadata(USER_ID, bill.id, {"notes": "gift wrap", "customer_name": "Ravi"})

    data, cached = billing.get_bill(USER_ID, bill.id)
    assert (data["notes"], data["customer_name"], cached) == ("gift wrap", "Ravi", False)
    with pytest.raises(ValidationError):
        billing.update_bill_metadata(USER_ID, bill.id, {"total_cents": 1})


def test_soft_delete_keeps_stock_deducted(billing, stocked, store):
    product, inventory = stocked(quantity=10)
    bill, _ = billing.checkout(USER_ID, _payload(_line(product, 3)))

    billing.delete_bill(USER_ID, bill.id)

    assert store.get("inventory", inventory.id).quantity == 7
    assert store.get("bill", bill.id).deleted_at is not None
    with pytest.raises(NotFoundError):
        billing.get_bill(USER_ID, bill.id)
    assert billing.list_bills(USER_ID)[0]["bills"] == []


def test_void_and_restock_runs_once(billing, stocked, store):
    product, inventory = stocked(quantity=10)
    bill, _ = billing.checkout(USER_ID, _payload(_line(product, 3)))

    voided, movement = billing.void_and_restock(USER_ID, bill.id)

    assert voided.voided_at is not None
    assert movement.applied[0]["remaining_quantity"] == 10
    with pytest.raises(ConflictError):
        billing.void_and_restock(USER_ID, bill.id)
    assert store.get("inventory", inventory.id).quantity == 10


def test_stats_cache_invalidated_by_new_bill(billing):
    billing.create_bill(USER_ID, _payload())
    stats, cached = billing.period_stats(USER_ID, "daily")
    assert (stats["total_bills"], cached) == (1, False)
    assert billing.period_stats(USER_ID, "daily")[1] is True

    billing.create_bill(USER_ID, _payload())

    stats, cached = billing.period_stats(USER_ID, "daily")
    assert (stats["total_bills"], cached) == (2, False)


def test_period_stats_windows(engine_at, db_session):
    engine = engine_at(datetime(2026, 3, 15, 12, 0, 0))
    engine.create_bill(USER_ID, _payload())
    later = engine_at(datetime(2026, 4, 2, 9, 0, 0))
    later.create_bill(USER_ID, _payload())

    monthly, _ = later.period_stats(USER_ID, "monthly", year=2026, month=3)
    assert (monthly["label"], monthly["total_bills"]) == ("2026-03", 1)
    yearly, _ = later.period_stats(USER_ID, "yearly", year="2026")
    assert (yearly["label"], yearly["total_bills"]) == ("2026", 2)
    daily, _ = later.period_stats(USER_ID, "daily")
    assert (daily["label"], daily["total_bills"]) == ("2026-04-02", 1)

    with pytest.raises(ValidationError):
        later.period_stats(USER_ID, "monthly", year=2026, month=13)
    with pytest.raises(ValidationError):
        later.period_stats(USER_ID, "weekly")


def test_stats_exclude_deleted_and_voided(billing):
    keep = billing.create_bill(USER_ID, _payload())
    gone = billing.create_bill(USER_ID, _payload())
    void = billing.create_bill(USER_ID, _payload())
    billing.delete_bill(USER_ID, gone.id)
    billing.void_and_restock(USER_ID, void.id)

    summary, _ = billing.summary(USER_ID)
    assert summary["total_bills"] == 1
    assert summary["total_revenue_cents"] == keep.total_cents


def test_payment_method_breakdown(billing):
    billing.create_bill(USER_ID, _payload(payment_method="Cash"))
    billing.create_bill(USER_ID, _payload(payment_method="Card"))
    billing.create_bill(USER_ID, _payload(payment_method="Card"))

    breakdown, _ = billing.payment_method_breakdown(USER_ID)

    assert breakdown["Card"]["count"] == 2
    assert breakdown["Card"]["average_cents"] == breakdown["Card"]["total_cents"] // 2
    assert breakdown["Cash"]["count"] == 1


def test_popular_products_stable_order(billing, make_product):
    a, b, c = make_product(name="A"), make_product(name="B"), make_product(name="C")
    billing.create_bill(USER_ID, _payload(_line(a), _line(b)))
    billing.create_bill(USER_ID, _payload(_line(c), _line(b, 3)))

    ranked, _ = billing.popular_products(USER_ID, 10)

    assert [row["name"] for row in ranked] == ["B", "A", "C"]
    assert ranked[0]["sales_count"] == 2
    assert ranked[0]["units_sold"] == 4
    assert ranked[0]["revenue_cents"] == 4 * b.price_cents
    assert [row["name"] for row in billing.popular_products(USER_ID, 1)[0]] == ["B"]


def test_popular_products_count_completed_bills_only(billing, make_product, store):
    a, b = make_product(name="A"), make_product(name="B")
    billing.create_bill(USER_ID, _payload(_line(a)))
    pending = billing.create_bill(USER_ID, _payload(_line(b), _line(b)))
    store.update("bill", pending.id, {"payment_status": "Pending"})

    ranked, _ = billing.popular_products(USER_ID, 10)

    assert [row["name"] for row in ranked] == ["A"]


def test_export_rows_and_csv(billing):
    bill = billing.create_bill(USER_ID, _payload(customer_name="Meera"))

    rows = billing.export_rows(USER_ID)
    assert rows[0]["bill_number"] == bill.bill_number
    assert rows[0]["item_count"] == 1

    text = render_csv(rows)
    header, first = text.splitlines()[:2]
    assert header == "bill_number,date,customer_name,customer_mobile,total_cents,payment_method,payment_status,item_count"
    assert first.startswith(f"{bill.bill_number},")
    assert ",Meera," in first
