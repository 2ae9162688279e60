"""
Purchase Service - stock intake from suppliers

Mirror of sales_service: each mutation is one atomic scope that writes the
Purchase row and the Product stock delta together. A purchase also makes its
unit cost the product's current cost price.

Reducing or deleting a purchase can never drive stock negative; such edits
are rejected with InsufficientStockError rather than clamped.
"""
from __future__ import annotations

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Purchase
from ..validation import MAX_AMOUNT_CENTS, coerce_occurred_at, require_amount, require_quantity
from .audit_service import append_audit_entry
from .concurrency import atomic_scope, best_effort, lock_for_update, lock_product
from .notification_service import notify_purchase
from .pagination import paginate
from stockledger.time_utils import parse_date_range, to_utc_z, utcnow

PURCHASE_MUTABLE_FIELDS = {"quantity_purchased", "unit_cost_cents", "supplier"}
SUPPLIER_MAX_LENGTH = 255


def _require_supplier(value) -> str:
    supplier = str(value or "").strip()
    if not supplier:
        raise ValidationError("supplier is required")
    if len(supplier) > SUPPLIER_MAX_LENGTH:
        raise ValidationError(f"supplier exceeds max length {SUPPLIER_MAX_LENGTH}")
    return supplier


def _total(quantity: int, unit_cost_cents: int) -> int:
    total = quantity * unit_cost_cents
    if total > MAX_AMOUNT_CENTS:
        raise ValidationError(f"total_cost_cents cannot exceed {MAX_AMOUNT_CENTS}")
    return total


def _clean_purchase_patch(patch: dict) -> dict:
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")
    patch = dict(patch)
    if "quantity" in patch:
        patch["quantity_purchased"] = patch.pop("quantity")

    unknown = sorted(set(patch) - PURCHASE_MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    clean: dict = {}
    if "quantity_purchased" in patch:
        clean["quantity_purchased"] = require_quantity(patch["quantity_purchased"], "quantity_purchased")
    if "unit_cost_cents" in patch:
        clean["unit_cost_cents"] = require_amount(patch["unit_cost_cents"], "unit_cost_cents")
    if "supplier" in patch:
        clean["supplier"] = _require_supplier(patch["supplier"])
    return clean


def create_purchase(
    *,
    product_id: int,
    quantity,
    unit_cost_cents,
    supplier,
    actor_user_id: int,
    occurred_at=None,
) -> Purchase:
    """
    Record a purchase, increment stock and overwrite the product's cost price.

    Raises:
        ValidationError: bad quantity / cost / supplier
        NotFoundError: product does not exist
        TransactionAbortError: could not commit under contention
    """
    qty = require_quantity(quantity)
    cost = require_amount(unit_cost_cents, "unit_cost_cents")
    supplier = _require_supplier(supplier)
    when = coerce_occurred_at(occurred_at)
    total = _total(qty, cost)

    def _op() -> Purchase:
        product = lock_product(product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        purchase = Purchase(
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            product_price_cents=product.cost_price_cents,
            quantity_purchased=qty,
            unit_cost_cents=cost,
            total_cost_cents=total,
            supplier=supplier,
            purchased_by_user_id=actor_user_id,
            occurred_at=when or utcnow(),
        )
        product.stock_quantity = product.stock_quantity + qty
        product.cost_price_cents = cost
        db.session.add(purchase)
        db.session.flush()
        return purchase

    purchase = atomic_scope(_op)

    best_effort(
        "audit create_purchase",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="create_purchase",
        entity_type="purchase",
        entity_id=purchase.id,
        meta={
            "product_id": product_id,
            "product_name": purchase.product_name,
            "quantity": qty,
            "total_cost_cents": total,
            "supplier": supplier,
        },
    )
    best_effort(
        "notify purchase",
        notify_purchase,
        purchase_id=purchase.id,
        product_name=purchase.product_name,
        quantity=qty,
        total_cost_cents=total,
    )
    return purchase


def update_purchase(*, purchase_id: int, patch: dict, actor_user_id: int) -> Purchase:
    """
    Edit a purchase. Omitted fields are unchanged.

    A quantity change moves stock by the difference; a new unit cost also
    becomes the product's cost price.
    """
    clean = _clean_purchase_patch(patch)
    changes: dict = {}

    def _op() -> Purchase:
        changes.clear()
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if purchase is None:
            raise NotFoundError("Purchase not found", details={"purchase_id": purchase_id})

        old_qty = purchase.quantity_purchased
        new_qty = clean.get("quantity_purchased", old_qty)
        cost_changed = "unit_cost_cents" in clean and clean["unit_cost_cents"] != purchase.unit_cost_cents

        product = None
        if new_qty != old_qty or cost_changed:
            product = lock_product(purchase.product_id)
        if new_qty != old_qty:
            if product is None:
                raise NotFoundError("Product not found", details={"product_id": purchase.product_id})
            resulting = product.stock_quantity - old_qty + new_qty
            if resulting < 0:
                raise InsufficientStockError(product.stock_quantity, old_qty - new_qty)
            product.stock_quantity = resulting
        if cost_changed and product is not None:
            product.cost_price_cents = clean["unit_cost_cents"]

        for key, value in clean.items():
            before = getattr(purchase, key)
            if before != value:
                changes[key] = {"from": before, "to": value}
                setattr(purchase, key, value)

        purchase.total_cost_cents = _total(purchase.quantity_purchased, purchase.unit_cost_cents)
        return purchase

    purchase = atomic_scope(_op)

    best_effort(
        "audit update_purchase",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="update_purchase",
        entity_type="purchase",
        entity_id=purchase_id,
        meta={"changes": changes},
    )
    return purchase


def delete_purchase(*, purchase_id: int, actor_user_id: int) -> None:
    """Remove a purchase and take its quantity back out of stock, atomically."""
    removed: dict = {}

    def _op() -> None:
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if purchase is None:
            raise NotFoundError("Purchase not found", details={"purchase_id": purchase_id})

        product = lock_product(purchase.product_id)
        if product is not None:
            if product.stock_quantity < purchase.quantity_purchased:
                raise InsufficientStockError(product.stock_quantity, purchase.quantity_purchased)
            product.stock_quantity = product.stock_quantity - purchase.quantity_purchased

        removed.update(
            product_id=purchase.product_id,
            product_name=purchase.product_name,
            quantity=purchase.quantity_purchased,
            total_cost_cents=purchase.total_cost_cents,
            supplier=purchase.supplier,
        )
        db.session.delete(purchase)

    atomic_scope(_op)

    best_effort(
        "audit delete_purchase",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="delete_purchase",
        entity_type="purchase",
        entity_id=purchase_id,
        meta=removed,
    )


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFoundError("Purchase not found", details={"purchase_id": purchase_id})
    return purchase


def list_purchases(
    *,
    start: str | None = None,
    end: str | None = None,
    product_id: int | None = None,
    supplier: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    try:
        start_dt, end_dt = parse_date_range(start, end)
    except ValueError as exc:
        raise ValidationError(f"Invalid date range: {exc}")

    query = db.session.query(Purchase)
    if start_dt:
        query = query.filter(Purchase.occurred_at >= start_dt)
    if end_dt:
        query = query.filter(Purchase.occurred_at <= end_dt)
    if product_id is not None:
        query = query.filter(Purchase.product_id == product_id)
    if supplier:
        query = query.filter(Purchase.supplier.ilike(f"%{supplier.strip()}%"))

    purchases, pagination = paginate(
        query.order_by(Purchase.occurred_at.desc(), Purchase.id.desc()),
        page,
        per_page,
        default_per_page=20,
        max_per_page=100,
    )
    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "items": [p.to_dict() for p in purchases],
        "pagination": pagination,
    }


def list_suppliers() -> list[str]:
    rows = db.session.query(Purchase.supplier).distinct().order_by(Purchase.supplier.asc()).all()
    return [r[0] for r in rows]
