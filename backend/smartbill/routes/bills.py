# Overview: Flask API routes for bills; checkout, lookups, statistics and export.

# backend/smartbill/routes/bills.py
"""
Bill routes.

Every route is scoped to the calling shop user (g.user_id) except the
public lookup by bill number, which receipts link to.
"""
from flask import Blueprint, Response, g, jsonify, request

from ..decorators import require_user, service_errors
from ..extensions import get_services
from ..services.bill_service import render_csv
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from ..validation import ValidationError

bills_bp = Blueprint("bills", __name__, url_prefix="/api/bills")


def _date_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")


def _list_filters() -> dict:
    return {
        "payment_status": request.args.get("payment_status"),
        "payment_method": request.args.get("payment_method"),
        "customer_mobile": request.args.get("customer_mobile"),
        "start_date": _date_arg("start_date"),
        "end_date": _date_arg("end_date"),
    }


@bills_bp.post("")
@require_user
@service_errors("Failed to create bill")
def create_bill():
    """
    Create a completed bill and deduct its lines from inventory.

    The bill is kept even when some lines could not be deducted; those lines
    are listed under inventory.errors.
    """
    bill, movement = get_services().billing.checkout(g.user_id, request.get_json(silent=True) or {})
    return jsonify({
        "success": True,
        "message": "Bill created successfully",
        "data": bill.to_dict(),
        "inventory": movement.to_dict("deducted"),
    }), 201


@bills_bp.get("/all")
@require_user
@service_errors("Failed to fetch bills")
def list_bills():
    """
    Query params:
    - page (default 1), limit (default BILL_LIST_PAGE_SIZE, max 100)
    - payment_status, payment_method, customer_mobile
    - start_date, end_date: ISO-8601, inclusive
    """
    data, cached = get_services().billing.list_bills(
        g.user_id,
        page=request.args.get("page", 1),
        limit=request.args.get("limit"),
        filters=_list_filters(),
    )
    return jsonify({
        "success": True,
        "data": data["bills"],
        "pagination": data["pagination"],
        "cached": cached,
    })


@bills_bp.get("/summary")
@require_user
@service_errors("Failed to fetch summary")
def summary():
    data, cached = get_services().billing.summary(g.user_id, _date_arg("start_date"), _date_arg("end_date"))
    return jsonify({"success": True, "data": data, "cached": cached})


@bills_bp.get("/<int:bill_id>")
@require_user
@service_errors("Failed to fetch bill")
def get_bill(bill_id: int):
    data, cached = get_services().billing.get_bill(g.user_id, bill_id)
    return jsonify({"success": True, "data": data, "cached": cached})


@bills_bp.put("/<int:bill_id>")
@require_user
@service_errors("Failed to update bill")
def update_bill(bill_id: int):
    """Only notes and customer contact fields are editable."""
    bill = get_services().billing.update_bill_metadata(g.user_id, bill_id, request.get_json(silent=True) or {})
    return jsonify({"success": True, "message": "Bill updated successfully", "data": bill.to_dict()})


@bills_bp.delete("/<int:bill_id>")
@require_user
@service_errors("Failed to delete bill")
def delete_bill(bill_id: int):
    """Soft delete. Stock is not returned; use POST /<id>/void for that."""
    get_services().billing.delete_bill(g.user_id, bill_id)
    return jsonify({"success": True, "message": "Bill deleted successfully"})


@bills_bp.post("/<int:bill_id>/void")
@require_user
@service_errors("Failed to void bill")
def void_bill(bill_id: int):
    bill, movement = get_services().billing.void_and_restock(g.user_id, bill_id)
    return jsonify({
        "success": True,
        "message": "Bill voided",
        "data": bill.to_dict(),
        "inventory": movement.to_dict("restocked"),
    })


@bills_bp.get("/search/by-number/<bill_number>")
@service_errors("Failed to search bill")
def search_by_number(bill_number: str):
    data, cached = get_services().billing.get_bill_by_number(bill_number)
    return jsonify({"success": True, "data": data, "cached": cached})


@bills_bp.get("/search/by-customer/<customer_mobile>")
@require_user
@service_errors("Failed to search bills")
def search_by_customer(customer_mobile: str):
    data, _ = get_services().billing.list_bills(
        g.user_id,
        page=request.args.get("page", 1),
        limit=request.args.get("limit"),
        filters={"customer_mobile": customer_mobile},
    )
    return jsonify({
        "success": True,
        "count": len(data["bills"]),
        "data": data["bills"],
        "pagination": data["pagination"],
    })


@bills_bp.get("/stats/daily")
@require_user
@service_errors("Failed to fetch statistics")
def daily_stats():
    data, cached = get_services().billing.period_stats(g.user_id, "daily")
    return jsonify({"success": True, "data": data, "cached": cached})


@bills_bp.get("/stats/monthly")
@require_user
@service_errors("Failed to fetch statistics")
def monthly_stats():
    """Query params: year, month (default: current UTC month)."""
    data, cached = get_services().billing.period_stats(
        g.user_id, "monthly", year=request.args.get("year"), month=request.args.get("month")
    )
    return jsonify({"success": True, "data": data, "cached": cached})


@bills_bp.get("/stats/yearly")
@require_user
@service_errors("Failed to fetch statistics")
def yearly_stats():
    data, cached = get_services().billing.period_stats(g.user_id, "yearly", year=request.args.get("year"))
    return jsonify({"success": True, "data": data, "cached": cached})


@bills_bp.get("/stats/popular-products")
@require_user
@service_errors("Failed to fetch popular products")
def popular_products():
    rows, cached = get_services().billing.popular_products(g.user_id, request.args.get("limit", 10))
    return jsonify({"success": True, "count": len(rows), "data": rows, "cached": cached})


@bills_bp.get("/stats/payment-methods")
@require_user
@service_errors("Failed to fetch payment methods breakdown")
def payment_methods():
    data, cached = get_services().billing.payment_method_breakdown(
        g.user_id, _date_arg("start_date"), _date_arg("end_date")
    )
    return jsonify({"success": True, "data": data, "cached": cached})


@bills_bp.get("/export/csv")
@require_user
@service_errors("Failed to export bills")
def export_csv():
    rows = get_services().billing.export_rows(g.user_id, _list_filters())
    filename = f"bills-{to_utc_z(utcnow())[:10]}.csv"
    return Response(
        render_csv(rows),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
