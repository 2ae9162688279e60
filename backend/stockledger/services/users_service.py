# Overview: Staff identities; role and is_active decide who default fan-out reaches.

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, VALID_ROLES
from ..validation import ModelValidationPolicy, require_choice, validate_payload
from .audit_service import append_audit_entry
from .concurrency import best_effort

USER_POLICY = ModelValidationPolicy(
    writable_fields={"username", "email", "full_name", "role", "is_active"},
    required_on_create={"username", "email", "role"},
)


def _clean_patch(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=partial)
    if "role" in patch:
        patch["role"] = require_choice(patch["role"], "role", VALID_ROLES)
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
    return patch


def _taken(column, value: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(User.id).filter(func.lower(column) == value.lower())
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def _check_unique(patch: dict, exclude_id: int | None = None) -> None:
    if patch.get("username") and _taken(User.username, patch["username"], exclude_id):
        raise ConflictError("Username already exists.", details={"username": patch["username"]})
    if patch.get("email") and _taken(User.email, patch["email"], exclude_id):
        raise ConflictError("Email is already in use.", details={"email": patch["email"]})


def _guard_last_admin(user: User, *, role: str, is_active: bool) -> None:
    """Default alerts go to active admins; never leave that set empty."""
    was_admin = user.role == ROLE_ADMIN and user.is_active
    if not was_admin or (role == ROLE_ADMIN and is_active):
        return
    others = (
        db.session.query(User.id)
        .filter(User.role == ROLE_ADMIN, User.is_active.is_(True), User.id != user.id)
        .first()
    )
    if others is None:
        raise ValidationError("At least one active admin is required.")


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": user_id})
    return user


def list_users(*, role: str | None = None, include_inactive: bool = False) -> list[User]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == require_choice(role, "role", VALID_ROLES))
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username.asc()).all()


def create_user(*, patch: dict, actor_user_id: int | None = None) -> User:
    """
    Record a staff identity. Credentials live with the upstream identity
    provider; this row is only used for attribution and alert targeting.
    """
    clean = _clean_patch(patch, partial=False)
    clean.setdefault("is_active", True)
    _check_unique(clean)

    user = User(**clean)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Username or email already exists.") from exc

    if actor_user_id is not None:
        best_effort(
            "audit create_user",
            append_audit_entry,
            actor_user_id=actor_user_id,
            action="create_user",
            entity_type="user",
            entity_id=user.id,
            meta={"username": user.username, "role": user.role},
        )
    return user


def update_user(*, user_id: int, patch: dict, actor_user_id: int) -> User:
    """
    Rewrite profile, role or active flag. Omitted fields are unchanged.

    Admins cannot change their own role or deactivate themselves, so the
    caller always keeps the access it used to make the change.
    """
    clean = _clean_patch(patch, partial=True)
    user = get_user(user_id)

    if user.id == actor_user_id:
        if "role" in clean and clean["role"] != user.role:
            raise ValidationError("You cannot change your own role.")
        if clean.get("is_active") is False:
            raise ValidationError("You cannot deactivate your own account.")

    _guard_last_admin(
        user,
        role=clean.get("role", user.role),
        is_active=clean.get("is_active", user.is_active),
    )
    _check_unique(clean, exclude_id=user.id)

    changes = {}
    for key, value in clean.items():
        before = getattr(user, key)
        if before != value:
            changes[key] = {"from": before, "to": value}
            setattr(user, key, value)

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Username or email already exists.") from exc

    best_effort(
        "audit update_user",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="update_user",
        entity_type="user",
        entity_id=user.id,
        meta={"username": user.username, "changes": changes},
    )
    return user


def deactivate_user(*, user_id: int, actor_user_id: int) -> User:
    """
    Soft-delete: the row stays so sales, purchases and audit entries keep
    their attribution, but the user stops receiving fan-out alerts.
    """
    if user_id == actor_user_id:
        raise ValidationError("You cannot delete your own account.")

    user = get_user(user_id)
    _guard_last_admin(user, role=user.role, is_active=False)
    user.is_active = False
    db.session.commit()

    best_effort(
        "audit delete_user",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="delete_user",
        entity_type="user",
        entity_id=user.id,
        meta={"username": user.username, "role": user.role},
    )
    return user
