"""
Sales Service - sale rows and their stock effect

Every mutation here runs inside atomic_scope(): the Sale row and the Product
stock delta commit together or not at all. The Product row is locked before
the sufficiency check and stays locked until commit, so two concurrent sales
can never both spend the same units.

Audit and notifications are post-commit and best-effort.
"""
from __future__ import annotations

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Sale
from ..models.inventory import LOW_STOCK_THRESHOLD
from ..validation import (
    MAX_AMOUNT_CENTS,
    PAYMENT_METHODS,
    PAYMENT_STATUSES,
    coerce_occurred_at,
    require_amount,
    require_choice,
    require_quantity,
)
from .audit_service import append_audit_entry
from .concurrency import atomic_scope, best_effort, lock_for_update, lock_product
from .notification_service import notify_low_stock, notify_sale
from .pagination import paginate
from stockledger.time_utils import parse_date_range, to_utc_z, utcnow

SALE_MUTABLE_FIELDS = {"quantity_sold", "unit_price_cents", "payment_method", "payment_status"}


def _total(quantity: int, unit_price_cents: int) -> int:
    total = quantity * unit_price_cents
    if total > MAX_AMOUNT_CENTS:
        raise ValidationError(f"total_price_cents cannot exceed {MAX_AMOUNT_CENTS}")
    return total


def _clean_sale_patch(patch: dict) -> dict:
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")
    patch = dict(patch)
    if "quantity" in patch:
        patch["quantity_sold"] = patch.pop("quantity")

    unknown = sorted(set(patch) - SALE_MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    clean: dict = {}
    if "quantity_sold" in patch:
        clean["quantity_sold"] = require_quantity(patch["quantity_sold"], "quantity_sold")
    if "unit_price_cents" in patch:
        clean["unit_price_cents"] = require_amount(patch["unit_price_cents"], "unit_price_cents")
    if "payment_method" in patch:
        clean["payment_method"] = require_choice(patch["payment_method"], "payment_method", PAYMENT_METHODS)
    if "payment_status" in patch:
        clean["payment_status"] = require_choice(patch["payment_status"], "payment_status", PAYMENT_STATUSES)
    return clean


def create_sale(
    *,
    product_id: int,
    quantity,
    unit_price_cents,
    payment_method,
    payment_status="paid",
    actor_user_id: int,
    occurred_at=None,
) -> Sale:
    """
    Record a sale and decrement stock atomically.

    Raises:
        ValidationError: bad quantity / price / payment fields
        NotFoundError: product does not exist
        InsufficientStockError: stock < quantity (nothing is written)
        TransactionAbortError: could not commit under contention
    """
    qty = require_quantity(quantity)
    price = require_amount(unit_price_cents, "unit_price_cents")
    method = require_choice(payment_method, "payment_method", PAYMENT_METHODS)
    status = require_choice(payment_status or "paid", "payment_status", PAYMENT_STATUSES)
    when = coerce_occurred_at(occurred_at)
    total = _total(qty, price)

    def _op():
        product = lock_product(product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        if product.stock_quantity < qty:
            raise InsufficientStockError(product.stock_quantity, qty)

        sale = Sale(
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            product_price_cents=product.selling_price_cents,
            quantity_sold=qty,
            unit_price_cents=price,
            total_price_cents=total,
            payment_method=method,
            payment_status=status,
            sold_by_user_id=actor_user_id,
            occurred_at=when or utcnow(),
        )
        product.stock_quantity = product.stock_quantity - qty
        db.session.add(sale)
        db.session.flush()
        return sale, product.stock_quantity

    sale, remaining = atomic_scope(_op)

    best_effort(
        "audit create_sale",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="create_sale",
        entity_type="sale",
        entity_id=sale.id,
        meta={
            "product_id": product_id,
            "product_name": sale.product_name,
            "quantity": qty,
            "total_price_cents": total,
            "payment_status": status,
        },
    )
    if 0 < remaining <= LOW_STOCK_THRESHOLD:
        best_effort(
            "notify low_stock",
            notify_low_stock,
            product_id=product_id,
            product_name=sale.product_name,
            stock_quantity=remaining,
        )
    best_effort(
        "notify sale",
        notify_sale,
        sale_id=sale.id,
        product_name=sale.product_name,
        quantity=qty,
        total_price_cents=total,
    )
    return sale


def update_sale(*, sale_id: int, patch: dict, actor_user_id: int) -> Sale:
    """
    Edit a sale. Omitted fields are unchanged.

    The old quantity is returned to stock and the new one taken in the same
    atomic scope; the total is always recomputed. A quantity change on a sale
    whose product has been deleted raises NotFoundError.
    """
    clean = _clean_sale_patch(patch)
    changes: dict = {}

    def _op() -> Sale:
        changes.clear()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found", details={"sale_id": sale_id})

        old_qty = sale.quantity_sold
        new_qty = clean.get("quantity_sold", old_qty)

        if new_qty != old_qty:
            product = lock_product(sale.product_id)
            if product is None:
                raise NotFoundError("Product not found", details={"product_id": sale.product_id})
            available = product.stock_quantity + old_qty
            if available < new_qty:
                raise InsufficientStockError(available, new_qty)
            product.stock_quantity = available - new_qty

        for key, value in clean.items():
            before = getattr(sale, key)
            if before != value:
                changes[key] = {"from": before, "to": value}
                setattr(sale, key, value)

        sale.total_price_cents = _total(sale.quantity_sold, sale.unit_price_cents)
        return sale

    sale = atomic_scope(_op)

    best_effort(
        "audit update_sale",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="update_sale",
        entity_type="sale",
        entity_id=sale_id,
        meta={"changes": changes},
    )
    return sale


def delete_sale(*, sale_id: int, actor_user_id: int) -> None:
    """Remove a sale and return its quantity to stock, atomically."""
    removed: dict = {}

    def _op() -> None:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found", details={"sale_id": sale_id})

        # deleted product: the row goes, there is no counter to restore
        product = lock_product(sale.product_id)
        if product is not None:
            product.stock_quantity = product.stock_quantity + sale.quantity_sold

        removed.update(
            product_id=sale.product_id,
            product_name=sale.product_name,
            quantity=sale.quantity_sold,
            total_price_cents=sale.total_price_cents,
        )
        db.session.delete(sale)

    atomic_scope(_op)

    best_effort(
        "audit delete_sale",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="delete_sale",
        entity_type="sale",
        entity_id=sale_id,
        meta=removed,
    )


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    *,
    start: str | None = None,
    end: str | None = None,
    product_id: int | None = None,
    payment_status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    try:
        start_dt, end_dt = parse_date_range(start, end)
    except ValueError as exc:
        raise ValidationError(f"Invalid date range: {exc}")

    query = db.session.query(Sale)
    if start_dt:
        query = query.filter(Sale.occurred_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.occurred_at <= end_dt)
    if product_id is not None:
        query = query.filter(Sale.product_id == product_id)
    if payment_status:
        query = query.filter(
            Sale.payment_status == require_choice(payment_status, "payment_status", PAYMENT_STATUSES)
        )

    sales, pagination = paginate(
        query.order_by(Sale.occurred_at.desc(), Sale.id.desc()),
        page,
        per_page,
        default_per_page=20,
        max_per_page=100,
    )
    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "items": [s.to_dict() for s in sales],
        "pagination": pagination,
    }
