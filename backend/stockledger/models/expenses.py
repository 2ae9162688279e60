from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow


class Expense(db.Model):
    """Operating expense. Independent of stock."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_occurred_category", "occurred_at", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    category = db.Column(db.String(32), nullable=False, index=True)  # transport, food, maintenance, taxes, other
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    receipt_number = db.Column(db.String(100), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "payment_method": self.payment_method,
            "receipt_number": self.receipt_number,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
