# Overview: Flask API routes for operating expenses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_SALES
from ..services import expense_service, reporting_service

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_SALES)
def list_expenses():
    try:
        result = expense_service.list_expenses(
            category=request.args.get("category"),
            start=request.args.get("start"),
            end=request.args.get("end"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)


@expenses_bp.get("/stats/summary")
@require_actor
@require_role(ROLE_ADMIN, ROLE_SALES)
def expense_summary():
    try:
        report = reporting_service.expenses_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
            group_by=request.args.get("group_by", "month"),
        )
        return jsonify(report), 200
    except LedgerError as e:
        return error_response(e)


@expenses_bp.get("/<int:expense_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_SALES)
def get_expense(expense_id: int):
    try:
        return jsonify(expense_service.get_expense(expense_id).to_dict()), 200
    except LedgerError as e:
        return error_response(e)


@expenses_bp.post("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_SALES)
def create_expense():
    payload = request.get_json(silent=True) or {}
    try:
        expense = expense_service.create_expense(patch=payload, actor_user_id=g.actor_id)
        return jsonify(expense.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.put("/<int:expense_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_SALES)
def update_expense(expense_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        expense = expense_service.update_expense(expense_id=expense_id, patch=payload, actor_user_id=g.actor_id)
        return jsonify(expense.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.delete("/<int:expense_id>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_expense(expense_id: int):
    try:
        expense_service.delete_expense(expense_id=expense_id, actor_user_id=g.actor_id)
        return jsonify({"ok": True}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return jsonify({"error": "Internal server error"}), 500
