# Overview: Operating expenses; independent of stock, audited and announced like ledger rows.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Expense
from ..validation import (
    EXPENSE_CATEGORIES,
    ModelValidationPolicy,
    enforce_rules_expense,
    require_choice,
    validate_payload,
)
from .audit_service import append_audit_entry
from .concurrency import best_effort
from .notification_service import notify_expense
from .pagination import paginate
from stockledger.time_utils import parse_date_range, to_utc_z, utcnow

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"category", "amount_cents", "description", "payment_method", "receipt_number", "occurred_at"},
    required_on_create={"category", "amount_cents", "description"},
)


def _clean_patch(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=partial)
    enforce_rules_expense(patch)
    if "receipt_number" in patch and patch["receipt_number"] == "":
        patch["receipt_number"] = None
    return patch


def create_expense(*, patch: dict, actor_user_id: int) -> Expense:
    clean = _clean_patch(patch, partial=False)
    clean.setdefault("payment_method", "cash")
    if clean.get("occurred_at") is None:
        clean["occurred_at"] = utcnow()

    expense = Expense(created_by_user_id=actor_user_id, **clean)
    db.session.add(expense)
    db.session.commit()

    best_effort(
        "audit create_expense",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="create_expense",
        entity_type="expense",
        entity_id=expense.id,
        meta={"category": expense.category, "amount_cents": expense.amount_cents},
    )
    best_effort(
        "notify expense",
        notify_expense,
        expense_id=expense.id,
        category=expense.category,
        amount_cents=expense.amount_cents,
        description=expense.description,
        actor_user_id=actor_user_id,
    )
    return expense


def get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError("Expense not found", details={"expense_id": expense_id})
    return expense


def update_expense(*, expense_id: int, patch: dict, actor_user_id: int) -> Expense:
    clean = _clean_patch(patch, partial=True)
    if "occurred_at" in clean and clean["occurred_at"] is None:
        raise ValidationError("occurred_at cannot be null")

    expense = get_expense(expense_id)
    for key, value in clean.items():
        setattr(expense, key, value)
    db.session.commit()

    best_effort(
        "audit update_expense",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="update_expense",
        entity_type="expense",
        entity_id=expense_id,
        meta={"fields": sorted(clean.keys())},
    )
    return expense


def delete_expense(*, expense_id: int, actor_user_id: int) -> None:
    expense = get_expense(expense_id)
    meta = {"category": expense.category, "amount_cents": expense.amount_cents}
    db.session.delete(expense)
    db.session.commit()

    best_effort(
        "audit delete_expense",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="delete_expense",
        entity_type="expense",
        entity_id=expense_id,
        meta=meta,
    )


def list_expenses(
    *,
    category: str | None = None,
    start: str | None = None,
    end: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    try:
        start_dt, end_dt = parse_date_range(start, end)
    except ValueError as exc:
        raise ValidationError(f"Invalid date range: {exc}")

    query = db.session.query(Expense)
    if category:
        query = query.filter(Expense.category == require_choice(category, "category", EXPENSE_CATEGORIES))
    if start_dt:
        query = query.filter(Expense.occurred_at >= start_dt)
    if end_dt:
        query = query.filter(Expense.occurred_at <= end_dt)

    expenses, pagination = paginate(
        query.order_by(Expense.occurred_at.desc(), Expense.id.desc()),
        page,
        per_page,
        default_per_page=20,
        max_per_page=100,
    )
    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "items": [e.to_dict() for e in expenses],
        "pagination": pagination,
    }
