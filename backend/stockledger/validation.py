"""
Input normalization shared by the services.

Catalog and expense payloads are checked against their model's column
metadata plus an allowlist (ModelValidationPolicy). Ledger quantities and
amounts go through the narrower require_* helpers.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text

from .errors import ValidationError
from stockledger.time_utils import parse_iso_datetime


# Ceiling for any single money field or computed total, in minor units
MAX_AMOUNT_CENTS = 999_999_999

PAYMENT_METHODS = ("cash", "mobile", "card")
PAYMENT_STATUSES = ("paid", "pending")
EXPENSE_CATEGORIES = ("transport", "food", "maintenance", "taxes", "other")
EXPENSE_PAYMENT_METHODS = ("cash", "mobile_money", "bank_transfer", "card")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which columns a client may write, and which a create must supply."""
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects floats, bools, decimals and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an integer")

    text = value.strip()
    if "e" in text.lower():
        raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
    if "." in text:
        raise ValidationError(f"{field} must be an integer (no decimals)")
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"{field} must be an integer")


def require_quantity(value: Any, field: str = "quantity") -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    qty = coerce_int(value, field)
    if qty < 1:
        raise ValidationError(f"{field} must be at least 1")
    return qty


def require_amount(value: Any, field: str, *, allow_zero: bool = True) -> int:
    if value is None:
        raise ValidationError(f"{field} is required")
    amount = coerce_int(value, field)
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return amount


def require_choice(value: Any, field: str, choices: tuple[str, ...]) -> str:
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{field} is required")
    normalized = str(value).strip().lower()
    if normalized not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return normalized


def _to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def coerce_occurred_at(value: Any) -> datetime | None:
    """Backdated ledger timestamp: None, a datetime or an ISO-8601 string, stored UTC-naive."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_utc_naive(value)
    if not isinstance(value, str):
        raise ValidationError("occurred_at must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError("occurred_at must be an ISO-8601 datetime")


def _normalize(column, value: Any):
    """Coerce one non-null value to the column's Python type."""
    kind = column.type
    name = column.key

    if isinstance(kind, Integer):
        return coerce_int(value, name)

    if isinstance(kind, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{name} must be true or false")
        return value

    if isinstance(kind, DateTime):
        if isinstance(value, datetime):
            return _to_utc_naive(value)
        try:
            parsed = parse_iso_datetime(value) if isinstance(value, str) else None
        except ValueError:
            parsed = None
        if parsed is None:
            raise ValidationError(f"{name} must be an ISO-8601 datetime")
        return parsed

    if isinstance(kind, (String, Text)):
        text = str(value).strip()
        if text == "" and not column.nullable:
            raise ValidationError(f"{name} cannot be blank")
        limit = getattr(kind, "length", None)
        if limit and len(text) > limit:
            raise ValidationError(f"{name} exceeds max length {limit}")
        return text

    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Return the cleaned subset of `payload` a client may write to `model`.

    partial=False is create semantics: every required_on_create field must be
    present and non-null. partial=True only validates the keys supplied.
    Unknown or non-writable keys, nulls in NOT NULL columns, blank required
    text and over-long strings all raise ValidationError.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    columns = {c.key: c for c in model.__mapper__.columns}

    rejected = sorted(k for k in payload if k not in policy.writable_fields or k not in columns)
    if rejected:
        raise ValidationError(f"Field not allowed: {', '.join(rejected)}")

    if not partial:
        missing = sorted(k for k in policy.required_on_create if payload.get(k) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    clean: dict = {}
    for key, value in payload.items():
        column = columns[key]
        if value is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            clean[key] = None
        else:
            clean[key] = _normalize(column, value)
    return clean


def enforce_rules_product(patch: dict) -> None:
    """Catalog rules beyond column metadata. Mutates `patch` in place."""
    for key in ("cost_price_cents", "selling_price_cents"):
        if patch.get(key) is not None:
            patch[key] = require_amount(patch[key], key)

    for key in ("stock_quantity", "reorder_level"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} cannot be negative")

    if patch.get("sku"):
        patch["sku"] = patch["sku"].strip().upper()


def enforce_rules_expense(patch: dict) -> None:
    if "amount_cents" in patch:
        patch["amount_cents"] = require_amount(patch["amount_cents"], "amount_cents", allow_zero=False)
    if "category" in patch:
        patch["category"] = require_choice(patch["category"], "category", EXPENSE_CATEGORIES)
    if "payment_method" in patch and patch["payment_method"] is not None:
        patch["payment_method"] = require_choice(
            patch["payment_method"], "payment_method", EXPENSE_PAYMENT_METHODS
        )
