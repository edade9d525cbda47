# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/smartbill/routes/inventory.py
"""
Inventory routes.

All quantity changes go through InventoryLedger; these handlers only parse
the request and shape the response envelope.
"""
from flask import Blueprint, jsonify, request

from ..decorators import require_user, service_errors
from ..extensions import get_services
from ..models import Inventory
from ..validation import ModelValidationPolicy, ValidationError, enforce_rules_inventory, validate_payload

INVENTORY_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "min_stock", "max_stock", "reorder_level", "location", "warehouse", "notes"},
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


@inventory_bp.get("")
@require_user
@service_errors("Failed to fetch inventory")
def list_inventory():
    """
    Query params (all optional; any of them bypasses the cache):
    - warehouse: exact warehouse name
    - status: In Stock | Low Stock | Out of Stock
    - search: product name fragment or exact barcode
    """
    filters = {key: request.args.get(key) for key in ("warehouse", "status", "search")}
    rows, cached = get_services().ledger.get_inventory_list(filters)
    return jsonify({"success": True, "data": rows, "count": len(rows), "cached": cached})


@inventory_bp.get("/low-stock")
@require_user
@service_errors("Failed to fetch low stock items")
def low_stock():
    rows = get_services().ledger.low_stock()
    return jsonify({"success": True, "data": rows, "count": len(rows)})


@inventory_bp.get("/<int:inventory_id>")
@require_user
@service_errors("Failed to fetch inventory")
def get_inventory(inventory_id: int):
    data, cached = get_services().ledger.get_inventory(inventory_id)
    return jsonify({"success": True, "data": data, "cached": cached})


@inventory_bp.get("/barcode/<barcode>")
@require_user
@service_errors("Failed to fetch inventory")
def get_by_barcode(barcode: str):
    data, cached = get_services().ledger.get_by_barcode(barcode)
    return jsonify({"success": True, "data": data, "cached": cached})


@inventory_bp.post("")
@require_user
@service_errors("Failed to save inventory")
def add_inventory():
    """Create the product's inventory record or add stock to the existing one."""
    payload = _json_body()
    inventory = get_services().ledger.find_or_create(
        product_id=payload.get("product_id"),
        barcode=payload.get("barcode"),
        quantity=payload.get("quantity", 0),
        min_stock=payload.get("min_stock"),
        location=payload.get("location"),
        warehouse=payload.get("warehouse"),
    )
    return jsonify({"success": True, "data": inventory.to_dict(include_product=True)}), 201


@inventory_bp.post("/register-barcode")
@require_user
@service_errors("Failed to register barcode")
def register_barcode():
    payload = _json_body()
    product, inventory = get_services().ledger.register_barcode(
        barcode=payload.get("barcode"),
        name=payload.get("name"),
        price_cents=payload.get("price_cents"),
        category=payload.get("category"),
        brand=payload.get("brand"),
        quantity=payload.get("quantity", 0),
        location=payload.get("location"),
        warehouse=payload.get("warehouse"),
    )
    return jsonify({
        "success": True,
        "message": "Barcode registered successfully",
        "data": {"product": product.to_dict(), "inventory": inventory.to_dict()},
    }), 201


@inventory_bp.put("/<int:inventory_id>")
@require_user
@service_errors("Failed to update inventory")
def update_inventory(inventory_id: int):
    patch = validate_payload(model=Inventory, payload=_json_body(), policy=INVENTORY_UPDATE_POLICY, partial=True)
    enforce_rules_inventory(patch)
    inventory = get_services().ledger.update_inventory(inventory_id, patch)
    return jsonify({"success": True, "data": inventory.to_dict(include_product=True)})


@inventory_bp.put("/<int:inventory_id>/adjust-quantity")
@require_user
@service_errors("Failed to adjust quantity")
def adjust_quantity(inventory_id: int):
    """Body: {"quantity": <signed delta>}."""
    payload = _json_body()
    if payload.get("quantity") is None:
        raise ValidationError("quantity is required")
    inventory = get_services().ledger.adjust_quantity(inventory_id, payload["quantity"])
    return jsonify({"success": True, "data": inventory.to_dict(include_product=True)})


@inventory_bp.post("/deduct-bill")
@require_user
@service_errors("Failed to deduct inventory")
def deduct_bill():
    """
    Body: {"bill_items": [{"barcode"|"product_id", "quantity", "name"}, ...]}

    Always 200 once the list itself is valid; per-line failures come back in
    `errors` next to the lines that were deducted.
    """
    result = get_services().ledger.deduct_for_bill(_json_body().get("bill_items"))
    return jsonify({
        "success": True,
        "message": "Inventory updated",
        "data": result.to_dict("deducted"),
    })
