# backend/stockledger/services/products_service.py
"""
Products Service - catalog and the authoritative stock counter

STOCK COUNTER: Product.stock_quantity changes in exactly three ways:
- sales_service / purchase_service, as a byproduct of writing a ledger row
- update_product with stock_quantity (administrative override)
- create_product with a non-zero opening balance
The last two write a StockAdjustment row in the same transaction, so
replay_stock() can rebuild every counter from committed history.
"""
from __future__ import annotations

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Product, Purchase, Sale, StockAdjustment
from ..models.inventory import LOW_STOCK_THRESHOLD
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .audit_service import append_audit_entry
from .concurrency import atomic_scope, best_effort, lock_for_update
from .pagination import paginate
from stockledger.time_utils import utcnow

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "category",
        "description",
        "cost_price_cents",
        "selling_price_cents",
        "stock_quantity",
        "reorder_level",
    },
    required_on_create={"sku", "name", "category", "cost_price_cents", "selling_price_cents"},
)


def _clean_patch(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    return patch


def _sku_taken(sku: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(func.upper(Product.sku) == sku.upper())
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


def _record_adjustment(product: Product, previous: int, new: int, actor_user_id: int | None, reason: str | None):
    adjustment = StockAdjustment(
        product_id=product.id,
        product_sku=product.sku,
        previous_quantity=previous,
        new_quantity=new,
        quantity_delta=new - previous,
        reason=reason,
        adjusted_by_user_id=actor_user_id,
        occurred_at=utcnow(),
    )
    db.session.add(adjustment)
    return adjustment


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    low_stock: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Catalog listing ordered by name.

    search matches name or SKU (case-insensitive substring). low_stock keeps
    rows at or under the fixed threshold, zero included. Without `page` every
    matching row is returned.
    """
    query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if category:
        query = query.filter(Product.category == category)
    if low_stock:
        query = query.filter(Product.stock_quantity <= LOW_STOCK_THRESHOLD)

    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = query.all()
        return {"items": [p.to_dict() for p in products], "count": len(products)}

    products, pagination = paginate(query, page, per_page, default_per_page=20, max_per_page=100)
    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": pagination,
    }


def list_categories() -> list[str]:
    rows = db.session.query(Product.category).distinct().order_by(Product.category.asc()).all()
    return [r[0] for r in rows]


def create_product(*, patch: dict, actor_user_id: int) -> Product:
    """
    Create a catalog row. A non-zero stock_quantity becomes an opening-balance
    StockAdjustment in the same transaction.

    Raises:
        ValidationError: missing/invalid fields
        ConflictError: SKU already exists (case-insensitive)
    """
    clean = _clean_patch(patch, partial=False)
    opening = clean.pop("stock_quantity", None) or 0

    def _op() -> Product:
        if _sku_taken(clean["sku"]):
            raise ConflictError("SKU already exists.", details={"sku": clean["sku"]})

        product = Product(stock_quantity=opening, **clean)
        db.session.add(product)
        db.session.flush()  # ensure product.id exists before the adjustment row

        if opening:
            _record_adjustment(product, 0, opening, actor_user_id, "Opening balance")
        return product

    try:
        product = atomic_scope(_op)
    except IntegrityError as exc:
        raise ConflictError("SKU already exists.", details={"sku": clean["sku"]}) from exc

    best_effort(
        "audit create_product",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="create_product",
        entity_type="product",
        entity_id=product.id,
        meta={"sku": product.sku, "name": product.name, "stock_quantity": opening},
    )
    return product


def update_product(*, product_id: int, patch: dict, actor_user_id: int, reason: str | None = None) -> Product:
    """
    Rewrite catalog fields. Omitted fields are unchanged.

    A changed stock_quantity is an administrative override: it is recorded as
    a StockAdjustment in the same atomic scope.
    """
    clean = _clean_patch(patch, partial=True)
    adjustment: dict = {}

    def _op() -> Product:
        adjustment.clear()
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        if "sku" in clean and clean["sku"] != product.sku and _sku_taken(clean["sku"], exclude_id=product.id):
            raise ConflictError("SKU already exists.", details={"sku": clean["sku"]})

        previous = product.stock_quantity
        for key, value in clean.items():
            setattr(product, key, value)

        if "stock_quantity" in clean and clean["stock_quantity"] != previous:
            _record_adjustment(product, previous, clean["stock_quantity"], actor_user_id, reason)
            adjustment.update(previous_quantity=previous, new_quantity=clean["stock_quantity"])
        return product

    try:
        product = atomic_scope(_op)
    except IntegrityError as exc:
        raise ConflictError("SKU already exists.", details={"sku": clean.get("sku")}) from exc

    best_effort(
        "audit update_product",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="update_product",
        entity_type="product",
        entity_id=product.id,
        meta={"fields": sorted(clean.keys())},
    )
    if adjustment:
        best_effort(
            "audit adjust_stock",
            append_audit_entry,
            actor_user_id=actor_user_id,
            action="adjust_stock",
            entity_type="product",
            entity_id=product.id,
            meta={**adjustment, "reason": reason},
        )
    return product


def delete_product(*, product_id: int, actor_user_id: int) -> None:
    """
    Remove the catalog row. Sales, purchases and adjustments that reference
    it are kept; their snapshots carry the product identity.
    """
    removed: dict = {}

    def _op() -> None:
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        removed.update(sku=product.sku, name=product.name, stock_quantity=product.stock_quantity)
        db.session.delete(product)

    atomic_scope(_op)

    best_effort(
        "audit delete_product",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="delete_product",
        entity_type="product",
        entity_id=product_id,
        meta=removed,
    )


def replay_stock(product_id: int) -> int:
    """Rebuild one product's stock from 0 using committed ledger rows."""
    purchased = (
        db.session.query(func.coalesce(func.sum(Purchase.quantity_purchased), 0))
        .filter(Purchase.product_id == product_id)
        .scalar()
    )
    sold = (
        db.session.query(func.coalesce(func.sum(Sale.quantity_sold), 0))
        .filter(Sale.product_id == product_id)
        .scalar()
    )
    adjusted = (
        db.session.query(func.coalesce(func.sum(StockAdjustment.quantity_delta), 0))
        .filter(StockAdjustment.product_id == product_id)
        .scalar()
    )
    return int(purchased) - int(sold) + int(adjusted)


def _grouped_totals(key_column, value_column) -> dict[int, int]:
    rows = db.session.query(key_column, func.sum(value_column)).group_by(key_column).all()
    return {product_id: int(total or 0) for product_id, total in rows}


def verify_stock_invariant() -> list[dict]:
    """
    Compare every product's stored counter against its replayed history.

    Returns one entry per mismatch; an empty list means the ledger is
    consistent.
    """
    purchased = _grouped_totals(Purchase.product_id, Purchase.quantity_purchased)
    sold = _grouped_totals(Sale.product_id, Sale.quantity_sold)
    adjusted = _grouped_totals(StockAdjustment.product_id, StockAdjustment.quantity_delta)

    mismatches = []
    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        expected = purchased.get(product.id, 0) - sold.get(product.id, 0) + adjusted.get(product.id, 0)
        if expected != product.stock_quantity:
            mismatches.append(
                {
                    "product_id": product.id,
                    "sku": product.sku,
                    "stock_quantity": product.stock_quantity,
                    "replayed_quantity": expected,
                }
            )
    return mismatches
