# Overview: Flask API routes for stock purchases; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_STOCK
from ..services import purchase_service

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
@require_actor
def list_purchases():
    try:
        result = purchase_service.list_purchases(
            start=request.args.get("start"),
            end=request.args.get("end"),
            product_id=request.args.get("product_id", type=int),
            supplier=request.args.get("supplier"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)


@purchases_bp.get("/suppliers")
@require_actor
def list_suppliers():
    return jsonify({"suppliers": purchase_service.list_suppliers()}), 200


@purchases_bp.get("/<int:purchase_id>")
@require_actor
def get_purchase(purchase_id: int):
    try:
        return jsonify(purchase_service.get_purchase(purchase_id).to_dict()), 200
    except LedgerError as e:
        return error_response(e)


@purchases_bp.post("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_STOCK)
def create_purchase():
    """
    Body: product_id, quantity, unit_cost_cents, supplier, occurred_at (optional).

    The unit cost becomes the product's current cost price.
    """
    data = request.get_json(silent=True) or {}
    if data.get("product_id") is None:
        return jsonify({"error": "product_id is required"}), 400

    try:
        purchase = purchase_service.create_purchase(
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            unit_cost_cents=data.get("unit_cost_cents"),
            supplier=data.get("supplier"),
            actor_user_id=g.actor_id,
            occurred_at=data.get("occurred_at"),
        )
        return jsonify(purchase.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.put("/<int:purchase_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_STOCK)
def update_purchase(purchase_id: int):
    data = request.get_json(silent=True) or {}
    try:
        purchase = purchase_service.update_purchase(
            purchase_id=purchase_id, patch=data, actor_user_id=g.actor_id
        )
        return jsonify(purchase.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.delete("/<int:purchase_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_STOCK)
def delete_purchase(purchase_id: int):
    try:
        purchase_service.delete_purchase(purchase_id=purchase_id, actor_user_id=g.actor_id)
        return jsonify({"ok": True}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete purchase")
        return jsonify({"error": "Internal server error"}), 500
