from flask import Blueprint, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import LedgerError, error_response
from ..models.auth import ROLE_ADMIN
from ..services import audit_service

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_actor
@require_role(ROLE_ADMIN)
def list_audit_entries():
    """
    Newest-first audit trail.

    Query params: actor_user_id, action, entity_type, entity_id, start, end,
    page, per_page (default 50, max 200).
    """
    try:
        result = audit_service.list_audit_entries(
            actor_user_id=request.args.get("actor_user_id", type=int),
            action=request.args.get("action"),
            entity_type=request.args.get("entity_type"),
            entity_id=request.args.get("entity_id", type=int),
            start=request.args.get("start"),
            end=request.args.get("end"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 50, type=int),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return error_response(e)
