# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

# backend/stockledger/routes/products.py
"""
Product catalog routes.

SECURITY: every route requires an actor (@require_actor).
- Reads are open to any role
- Mutations require admin or stock
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_STOCK
from ..services import products_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_actor
def list_products():
    """
    List products.

    Query params:
    - search: substring of name or SKU
    - category: exact category
    - low_stock: "true" keeps products at or under the low-stock threshold
    - page / per_page: optional pagination (default 20, max 100)
    """
    low_stock = request.args.get("low_stock", "false").lower() == "true"
    result = products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        low_stock=low_stock,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.get("/categories")
@require_actor
def list_categories():
    return jsonify({"categories": products_service.list_categories()}), 200


@products_bp.get("/<int:product_id>")
@require_actor
def get_product(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except LedgerError as e:
        return error_response(e)
    return jsonify(product.to_dict()), 200


@products_bp.post("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_STOCK)
def create_product():
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.create_product(patch=payload, actor_user_id=g.actor_id)
        return jsonify(product.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_STOCK)
def update_product(product_id: int):
    """
    Update catalog fields. Sending stock_quantity overrides the counter and is
    recorded as a stock adjustment; an optional "reason" is kept with it.
    """
    payload = dict(request.get_json(silent=True) or {})
    reason = payload.pop("reason", None)
    try:
        product = products_service.update_product(
            product_id=product_id,
            patch=payload,
            actor_user_id=g.actor_id,
            reason=reason,
        )
        return jsonify(product.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_STOCK)
def delete_product(product_id: int):
    try:
        products_service.delete_product(product_id=product_id, actor_user_id=g.actor_id)
        return jsonify({"ok": True}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
