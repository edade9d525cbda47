# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/smartbill/routes/products.py
"""
Product catalog routes backed by the cached catalog views.

Product.stock is read-only here: it mirrors the inventory quantity and is
changed through /api/inventory.
"""
from flask import Blueprint, jsonify, request

from ..decorators import require_user, service_errors
from ..extensions import get_services

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_user
@service_errors("Failed to fetch products")
def list_products():
    """
    Query params:
    - category: exact category (optional)
    - search: name/brand fragment, exact SKU or barcode (optional)
    """
    rows, cached = get_services().catalog.list_products(
        category=request.args.get("category"),
        search=request.args.get("search"),
    )
    return jsonify({"success": True, "data": rows, "count": len(rows), "cached": cached})


@products_bp.get("/<int:product_id>")
@require_user
@service_errors("Failed to fetch product")
def get_product(product_id: int):
    data, cached = get_services().catalog.get_product(product_id)
    return jsonify({"success": True, "data": data, "cached": cached})


@products_bp.get("/barcode/<barcode>")
@require_user
@service_errors("Failed to fetch product")
def get_product_by_barcode(barcode: str):
    data, cached = get_services().catalog.get_product_by_barcode(barcode)
    return jsonify({"success": True, "data": data, "cached": cached})


@products_bp.post("")
@require_user
@service_errors("Failed to create product")
def create_product():
    product = get_services().catalog.create_product(request.get_json(silent=True) or {})
    return jsonify({"success": True, "data": product.to_dict()}), 201


@products_bp.put("/<int:product_id>")
@require_user
@service_errors("Failed to update product")
def update_product(product_id: int):
    product = get_services().catalog.update_product(product_id, request.get_json(silent=True) or {})
    return jsonify({"success": True, "data": product.to_dict()})


@products_bp.delete("/<int:product_id>")
@require_user
@service_errors("Failed to delete product")
def delete_product(product_id: int):
    """Deactivates; inventory history stays attached to the product."""
    get_services().catalog.deactivate_product(product_id)
    return jsonify({"success": True, "message": "Product deactivated"})
