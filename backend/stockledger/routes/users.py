# Overview: Flask API routes for staff administration; admin only.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError, error_response
from ..models.auth import ROLE_ADMIN
from ..services import users_service

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_actor
@require_role(ROLE_ADMIN)
def list_users():
    """
    Query params:
    - role: admin, sales or stock
    - include_inactive: bool (default false)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    try:
        users = users_service.list_users(role=request.args.get("role"), include_inactive=include_inactive)
        return jsonify({"users": [u.to_dict() for u in users], "count": len(users)}), 200
    except LedgerError as e:
        return error_response(e)


@users_bp.get("/<int:user_id>")
@require_actor
@require_role(ROLE_ADMIN)
def get_user(user_id: int):
    try:
        return jsonify(users_service.get_user(user_id).to_dict()), 200
    except LedgerError as e:
        return error_response(e)


@users_bp.post("")
@require_actor
@require_role(ROLE_ADMIN)
def create_user():
    """Body: username, email, role, full_name (optional)."""
    payload = request.get_json(silent=True) or {}
    try:
        user = users_service.create_user(patch=payload, actor_user_id=g.actor_id)
        return jsonify(user.to_dict()), 201
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>")
@require_actor
@require_role(ROLE_ADMIN)
def update_user(user_id: int):
    """Body: any of username, email, full_name, role, is_active."""
    payload = request.get_json(silent=True) or {}
    try:
        user = users_service.update_user(user_id=user_id, patch=payload, actor_user_id=g.actor_id)
        return jsonify(user.to_dict()), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_user(user_id: int):
    """Deactivates the user; attribution on ledger rows is kept."""
    try:
        user = users_service.deactivate_user(user_id=user_id, actor_user_id=g.actor_id)
        return jsonify({"ok": True, "user": user.to_dict()}), 200
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete user")
        return jsonify({"error": "Internal server error"}), 500
