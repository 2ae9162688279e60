# Overview: Service-layer operations for the audit trail; append-only writes and filtered reads.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import AuditEntry
from .pagination import paginate
from stockledger.time_utils import parse_date_range, to_utc_z
"""
Audit Trail Invariants (authoritative)

- Append-only: no updates or deletes of existing entries.
- append_audit_entry is fire-and-forget: it commits its own transaction,
  logs failures and never raises to the caller.
- Callers append only after the business transaction has committed, so an
  entry never describes a change that was rolled back.
- Reads are newest-first; time filters are inclusive on both ends.
"""


def append_audit_entry(
    *,
    actor_user_id: int,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    meta: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
) -> AuditEntry | None:
    """Append one entry. Returns it, or None when the write failed."""
    try:
        entry = AuditEntry(
            actor_user_id=actor_user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            meta=meta or {},
            occurred_at=occurred_at,  # if None, column default applies
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to append audit entry action=%s entity=%s:%s", action, entity_type, entity_id
        )
        return None


def list_audit_entries(
    *,
    actor_user_id: int | None = None,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    start: str | None = None,
    end: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    try:
        start_dt, end_dt = parse_date_range(start, end)
    except ValueError as exc:
        raise ValidationError(f"Invalid date range: {exc}")

    query = db.session.query(AuditEntry)
    if actor_user_id is not None:
        query = query.filter(AuditEntry.actor_user_id == actor_user_id)
    if action:
        query = query.filter(AuditEntry.action == action)
    if entity_type:
        query = query.filter(AuditEntry.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditEntry.entity_id == entity_id)
    if start_dt:
        query = query.filter(AuditEntry.occurred_at >= start_dt)
    if end_dt:
        query = query.filter(AuditEntry.occurred_at <= end_dt)

    entries, pagination = paginate(
        query.order_by(AuditEntry.occurred_at.desc(), AuditEntry.id.desc()),
        page,
        per_page,
    )
    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "items": [entry.to_dict() for entry in entries],
        "pagination": pagination,
    }
