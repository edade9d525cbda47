# Overview: Flask API routes for the per-user cart snapshot kept in the cache.

# backend/smartbill/routes/cart.py
"""
Cart routes.

The cart lives only in the cache under the cart view (1 hour expiry). It is
a convenience snapshot for the checkout screen; losing it loses nothing that
a bill depends on.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_user, service_errors
from ..extensions import get_services
from ..time_utils import to_utc_z, utcnow
from ..validation import ValidationError

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_user
@service_errors("Failed to fetch cart")
def get_cart():
    cart = get_services().cache_policy.get("cart", user_id=g.user_id)
    return jsonify({"success": True, "data": cart or {"items": [], "updated_at": None}})


@cart_bp.put("")
@require_user
@service_errors("Failed to save cart")
def save_cart():
    payload = request.get_json(silent=True) or {}
    items = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise ValidationError("items array is required")

    cart = {"items": items, "updated_at": to_utc_z(utcnow())}
    if not get_services().cache_policy.put("cart", cart, user_id=g.user_id):
        return jsonify({"success": False, "error": "Cart storage unavailable"}), 503
    return jsonify({"success": True, "data": cart})


@cart_bp.delete("")
@require_user
@service_errors("Failed to clear cart")
def clear_cart():
    get_services().cache_policy.invalidate("cart", user_id=g.user_id)
    return jsonify({"success": True, "message": "Cart cleared"})
