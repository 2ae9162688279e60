from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    One sale of a single product.

    SNAPSHOT: product_name / product_sku / product_price_cents are frozen from
    the catalog at creation time and never rewritten. product_id is a plain
    reference that dangles once the product is deleted; reads fall back to
    the snapshot.

    unit_price_cents is the negotiated price at sale time and is independent
    of the catalog selling price (captured in product_price_cents).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity_sold >= 1", name="ck_sales_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sales_unit_price_non_negative"),
        db.Index("ix_sales_occurred_product", "occurred_at", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # No FK: history survives catalog deletion
    product_id = db.Column(db.Integer, nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=False)
    product_price_cents = db.Column(db.Integer, nullable=True)

    quantity_sold = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)  # cash, mobile, card
    payment_status = db.Column(db.String(16), nullable=False, default="paid", index=True)  # paid, pending

    sold_by_user_id = db.Column(db.Integer, nullable=False, index=True)

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
        return f"<Sale id={self.id} sku={self.product_sku!r} qty={self.quantity_sold} total={self.total_price_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_snapshot": self.product_snapshot,
            "quantity_sold": self.quantity_sold,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "sold_by_user_id": self.sold_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
