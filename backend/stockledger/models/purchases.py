from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow


class Purchase(db.Model):
    """
    One stock purchase from a supplier.

    Carries the same frozen product snapshot as Sale so reads never depend on
    the catalog row still existing. product_price_cents is the catalog cost
    price immediately before this purchase overwrote it.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.CheckConstraint("quantity_purchased >= 1", name="ck_purchases_quantity_positive"),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_purchases_unit_cost_non_negative"),
        db.Index("ix_purchases_occurred_product", "occurred_at", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # No FK: history survives catalog deletion
    product_id = db.Column(db.Integer, nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)
    product_price_cents = db.Column(db.Integer, nullable=True)

    quantity_purchased = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False)

    supplier = db.Column(db.String(255), nullable=False, index=True)

    purchased_by_user_id = db.Column(db.Integer, nullable=False, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def product_snapshot(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.product_name,
            "sku": self.product_sku,
            "price_cents": self.product_price_cents,
        }

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} sku={self.product_sku!r} qty={self.quantity_purchased} supplier={self.supplier!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_snapshot": self.product_snapshot,
            "quantity_purchased": self.quantity_purchased,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "supplier": self.supplier,
            "purchased_by_user_id": self.purchased_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
