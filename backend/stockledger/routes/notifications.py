# Overview: Flask API routes for the caller's own notifications.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError, error_response
from ..models.auth import ROLE_ADMIN
from ..services import notification_service

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_actor
def list_notifications():
    """
    Query params:
    - is_read: "true" / "false" to filter by read state
    - page / per_page: default 20, max 100
    """
    raw = request.args.get("is_read")
    is_read = None if raw is None else raw.lower() == "true"
    result = notification_service.list_notifications(
        g.actor_id,
        is_read=is_read,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int) or request.args.get("limit", type=int),
    )
    return jsonify(result), 200


@notifications_bp.get("/unread-count")
@require_actor
def unread_count():
    return jsonify({"unread_count": notification_service.unread_count(g.actor_id)}), 200


@notifications_bp.put("/read-all")
@require_actor
def mark_all_read():
    changed = notification_service.mark_all_read(g.actor_id)
    return jsonify({"updated": changed, "unread_count": 0}), 200


@notifications_bp.put("/<int:notification_id>/read")
@require_actor
def mark_read(notification_id: int):
    try:
        notification = notification_service.mark_read(notification_id, g.actor_id)
        return jsonify(notification.to_dict()), 200
    except LedgerError as e:
        return error_response(e)


@notifications_bp.delete("/<int:notification_id>")
@require_actor
def delete_notification(notification_id: int):
    try:
        notification_service.delete_notification(notification_id, g.actor_id)
        return jsonify({"ok": True}), 200
    except LedgerError as e:
        return error_response(e)


@notifications_bp.post("/system")
@require_actor
@require_role(ROLE_ADMIN)
def broadcast_system():
    """Body: title, message, target_role ("all" or a role), link (optional)."""
    data = request.get_json(silent=True) or {}
    try:
        sent = notification_service.broadcast_system_notification(
            title=data.get("title"),
            message=data.get("message"),
            target_role=data.get("target_role"),
            link=data.get("link"),
            actor_user_id=g.actor_id,
        )
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to broadcast system notification")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sent": sent}), 201
