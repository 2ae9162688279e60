from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow

# Fixed reorder alert threshold (units). Not configurable per product.
LOW_STOCK_THRESHOLD = 5


def is_low_stock(stock_quantity: int) -> bool:
    return stock_quantity <= LOW_STOCK_THRESHOLD


class Product(db.Model):
    """
    Product catalog row and the authoritative stock counter.

    STOCK DESIGN DECISION:
    Product.stock_quantity is a stored counter, not a derived sum.
    - Only the sale/purchase services change it as a byproduct of writing a
      Sale or Purchase row, inside the same transaction.
    - Administrative rewrites go through products_service.update_product,
      which records a StockAdjustment row in the same transaction.
    - Replaying Purchase - Sale + StockAdjustment rows from 0 reproduces it.

    SKU: stored trimmed and upper-cased; unique across the catalog.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_category", "category"),
        db.Index("ix_products_stock_quantity", "stock_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in minor units (frontend may only format for display)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return is_low_stock(self.stock_quantity or 0)

    @property
    def stock_value_cents(self) -> int:
        return (self.stock_quantity or 0) * (self.cost_price_cents or 0)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock_quantity": self.stock_quantity,
            "reorder_level": self.reorder_level,
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockAdjustment(db.Model):
    """
    Administrative stock override, recorded as its own ledger entry.

    Written in the same transaction as the Product counter change. Never
    updated or deleted. Opening balances at product creation are recorded
    here too (previous_quantity=0).
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # No FK: ledger rows outlive the catalog row they refer to
    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_sku = db.Column(db.String(64), nullable=False)

    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    adjusted_by_user_id = db.Column(db.Integer, nullable=True, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_sku": self.product_sku,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "quantity_delta": self.quantity_delta,
            "reason": self.reason,
            "adjusted_by_user_id": self.adjusted_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
