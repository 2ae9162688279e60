from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow

AUDIT_ACTIONS = (
    "create_product",
    "update_product",
    "delete_product",
    "adjust_stock",
    "create_sale",
    "update_sale",
    "delete_sale",
    "create_purchase",
    "update_purchase",
    "delete_purchase",
    "create_expense",
    "update_expense",
    "delete_expense",
    "broadcast_notification",
)

AUDIT_ENTITY_TYPES = ("product", "sale", "purchase", "expense", "notification", "user")


class AuditEntry(db.Model):
    """
    Audit trail of actor actions.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.

    Written after the business transaction commits, in its own transaction,
    so a failed audit write never rolls back the action it describes.
    """
    __tablename__ = "audit_entries"
    __table_args__ = (
        db.Index("ix_audit_entries_actor_occurred", "actor_user_id", "occurred_at"),
        db.Index("ix_audit_entries_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    actor_user_id = db.Column(db.Integer, nullable=False, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    meta = db.Column(db.JSON, nullable=False, default=dict)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_user_id": self.actor_user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "meta": self.meta or {},
            "occurred_at": to_utc_z(self.occurred_at),
        }
