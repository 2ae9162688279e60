# Overview: Actor and role decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g

from .models.auth import VALID_ROLES

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


def _has_actor() -> bool:
    return hasattr(g, 'actor_id') and hasattr(g, 'actor_role')


def require_actor(f):
    """
    Establish the calling actor from gateway headers.

    Authentication happens upstream; the gateway forwards the verified
    identity as X-Actor-Id / X-Actor-Role. Sets:
    - g.actor_id: int user id
    - g.actor_role: one of admin, sales, stock

    Returns 401 if either header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
        role = (request.headers.get(ACTOR_ROLE_HEADER) or "").strip().lower()

        if not raw_id or not role:
            return jsonify({"error": "Actor identity required"}), 401

        try:
            actor_id = int(raw_id)
        except ValueError:
            return jsonify({"error": f"{ACTOR_ID_HEADER} must be an integer"}), 401

        if role not in VALID_ROLES:
            return jsonify({"error": f"{ACTOR_ROLE_HEADER} must be one of: {', '.join(VALID_ROLES)}"}), 401

        g.actor_id = actor_id
        g.actor_role = role
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require the actor's role to be one of `roles`. Use after @require_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _has_actor():
                return jsonify({"error": "Actor identity required"}), 401

            if g.actor_role not in roles:
                current_app.logger.warning(
                    "Role denied: actor=%s role=%s path=%s required=%s",
                    g.actor_id, g.actor_role, request.path, ",".join(roles),
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                    "message": f"Requires any of: {', '.join(roles)}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
