# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_SALES
from ..services import sales_service

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_actor
def list_sales():
    """
    Query params: start, end (ISO date or datetime; a bare date is a whole
    local day), product_id, payment_status, page, per_page.
    """
    try:
        result = sales_service.list_sales(
            start=request.args.get("start"),
            end=request.args.get("end"),
            product_id=request.args.get("product_id", type=int),
            payment_status=request.args.get("payment_status"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)


@sales_bp.get("/<int:sale_id>")
@require_actor
def get_sale(sale_id: int):
    try:
        return jsonify(sales_service.get_sale(sale_id).to_dict()), 200
    except LedgerError as e:
        return error_response(e)


@sales_bp.post("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_SALES)
def create_sale():
    """
    Record a sale.

    Body: product_id, quantity, unit_price_cents, payment_method,
    payment_status (default "paid"), occurred_at (optional).

    Returns:
        201: sale created
        400: invalid input
        404: product not found
        409: insufficient stock
        503: could not commit under contention; safe to retry
    """
    data = request.get_json(silent=True) or {}
    if data.get("product_id") is None:
        return jsonify({"error": "product_id is required"}), 400

    try:
        sale = sales_service.create_sale(
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
            payment_method=data.get("payment_method"),
            payment_status=data.get("payment_status") or "paid",
            actor_user_id=g.actor_id,
            occurred_at=data.get("occurred_at"),
        )
        return jsonify(sale.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.put("/<int:sale_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_SALES)
def update_sale(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.update_sale(sale_id=sale_id, patch=data, actor_user_id=g.actor_id)
        return jsonify(sale.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>/payment-status")
@require_actor
@require_role(ROLE_ADMIN, ROLE_SALES)
def update_payment_status(sale_id: int):
    data = request.get_json(silent=True) or {}
    if data.get("payment_status") is None:
        return jsonify({"error": "payment_status is required"}), 400
    try:
        sale = sales_service.update_sale(
            sale_id=sale_id,
            patch={"payment_status": data["payment_status"]},
            actor_user_id=g.actor_id,
        )
        return jsonify(sale.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_SALES)
def delete_sale(sale_id: int):
    try:
        sales_service.delete_sale(sale_id=sale_id, actor_user_id=g.actor_id)
        return jsonify({"ok": True}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
