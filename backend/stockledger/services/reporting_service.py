# Overview: Read-only reports over committed ledger history; never mutates state.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Expense, Product, Purchase, Sale
from ..models.inventory import LOW_STOCK_THRESHOLD
from stockledger.time_utils import (
    VALID_GROUP_BY,
    add_months,
    bucket_key,
    local_midnight_utc,
    org_today,
    parse_date_range,
    to_utc_z,
)

"""
Reporting Rules (authoritative)

- Dates: a bare YYYY-MM-DD is an org-local calendar day; `end` is inclusive
  through the end of that day. Buckets use org-local calendar units
  (ISO week "YYYY-Www" for week).
- Sales revenue counts only payment_status == "paid"; pending rows in the
  same range are reported separately.
- Money sums are exact integers. Averages round half-up to the nearest
  minor unit, percentages to 2 decimals; both are 0 when the denominator is 0.
- Top-N lists are ordered by the ranking value desc, then name asc.
"""

TOP_PRODUCTS_LIMIT = 10
TOP_SUPPLIERS_LIMIT = 10
TOP_EXPENSES_LIMIT = 5
EXPENSE_TREND_MONTHS = 6
DASHBOARD_SERIES_DAYS = 30


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        return parse_date_range(start, end)
    except ValueError as exc:
        raise ValidationError(f"Invalid date range: {exc}")


def _require_group_by(group_by: str | None) -> str:
    group_by = (group_by or "day").strip().lower()
    if group_by not in VALID_GROUP_BY:
        raise ValidationError("group_by must be day, week, or month")
    return group_by


def _in_range(query, column, start_dt, end_dt):
    if start_dt:
        query = query.filter(column >= start_dt)
    if end_dt:
        query = query.filter(column <= end_dt)
    return query


def average_half_up(total: int, count: int) -> int:
    if not count:
        return 0
    return int((Decimal(total) / Decimal(count)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percentage(part: int, total: int) -> float:
    if not total:
        return 0.0
    return float((Decimal(part) * 100 / Decimal(total)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _bucket(rows, group_by: str, count_field: str, sum_fields: tuple[str, ...]) -> list[dict]:
    """
    Fold (occurred_at, v1, v2, ...) rows into ascending calendar buckets.

    `count_field` counts rows; each value column is summed into the matching
    name in `sum_fields`.
    """
    buckets: dict[str, dict] = {}
    for row in rows:
        key = bucket_key(row[0], group_by)
        entry = buckets.setdefault(
            key, {"period": key, count_field: 0, **{f: 0 for f in sum_fields}}
        )
        entry[count_field] += 1
        for field, value in zip(sum_fields, row[1:]):
            entry[field] += int(value or 0)
    return [buckets[k] for k in sorted(buckets)]


def sales_report(*, start: str | None = None, end: str | None = None, group_by: str = "day") -> dict:
    start_dt, end_dt = _parse_range(start, end)
    group_by = _require_group_by(group_by)

    paid = _in_range(
        db.session.query(Sale).filter(Sale.payment_status == "paid"), Sale.occurred_at, start_dt, end_dt
    )
    pending = _in_range(
        db.session.query(Sale).filter(Sale.payment_status == "pending"), Sale.occurred_at, start_dt, end_dt
    )

    revenue, orders, quantity = paid.with_entities(
        func.coalesce(func.sum(Sale.total_price_cents), 0),
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.quantity_sold), 0),
    ).one()
    pending_revenue, pending_orders = pending.with_entities(
        func.coalesce(func.sum(Sale.total_price_cents), 0),
        func.count(Sale.id),
    ).one()

    series_rows = paid.with_entities(Sale.occurred_at, Sale.total_price_cents, Sale.quantity_sold).all()

    revenue_col = func.sum(Sale.total_price_cents).label("revenue_cents")
    top_rows = (
        paid.with_entities(
            Sale.product_id,
            func.max(Sale.product_name).label("product_name"),
            func.max(Sale.product_sku).label("product_sku"),
            func.sum(Sale.quantity_sold).label("quantity"),
            revenue_col,
        )
        .group_by(Sale.product_id)
        .order_by(revenue_col.desc(), func.max(Sale.product_name).asc())
        .limit(TOP_PRODUCTS_LIMIT)
        .all()
    )

    method_revenue = func.sum(Sale.total_price_cents).label("revenue_cents")
    method_rows = (
        paid.with_entities(Sale.payment_method, method_revenue, func.count(Sale.id).label("orders"))
        .group_by(Sale.payment_method)
        .order_by(method_revenue.desc(), Sale.payment_method.asc())
        .all()
    )

    revenue = int(revenue)
    return {
        "group_by": group_by,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "totals": {
            "revenue_cents": revenue,
            "orders": int(orders),
            "quantity": int(quantity),
            "pending_revenue_cents": int(pending_revenue),
            "pending_orders": int(pending_orders),
            "average_order_value_cents": average_half_up(revenue, int(orders)),
        },
        "series": _bucket(series_rows, group_by, "orders", ("revenue_cents", "quantity")),
        "top_products": [
            {
                "product_id": r.product_id,
                "product_name": r.product_name,
                "product_sku": r.product_sku,
                "quantity": int(r.quantity or 0),
                "revenue_cents": int(r.revenue_cents or 0),
            }
            for r in top_rows
        ],
        "payment_methods": [
            {
                "payment_method": r.payment_method,
                "revenue_cents": int(r.revenue_cents or 0),
                "orders": int(r.orders or 0),
                "percentage": percentage(int(r.revenue_cents or 0), revenue),
            }
            for r in method_rows
        ],
    }


def purchases_report(*, start: str | None = None, end: str | None = None, group_by: str = "day") -> dict:
    start_dt, end_dt = _parse_range(start, end)
    group_by = _require_group_by(group_by)

    base = _in_range(db.session.query(Purchase), Purchase.occurred_at, start_dt, end_dt)

    spend, orders, quantity = base.with_entities(
        func.coalesce(func.sum(Purchase.total_cost_cents), 0),
        func.count(Purchase.id),
        func.coalesce(func.sum(Purchase.quantity_purchased), 0),
    ).one()

    series_rows = base.with_entities(
        Purchase.occurred_at, Purchase.total_cost_cents, Purchase.quantity_purchased
    ).all()

    supplier_spend = func.sum(Purchase.total_cost_cents).label("spend_cents")
    supplier_rows = (
        base.with_entities(
            Purchase.supplier,
            supplier_spend,
            func.count(Purchase.id).label("orders"),
            func.sum(Purchase.quantity_purchased).label("quantity"),
        )
        .group_by(Purchase.supplier)
        .order_by(supplier_spend.desc(), Purchase.supplier.asc())
        .limit(TOP_SUPPLIERS_LIMIT)
        .all()
    )

    product_qty = func.sum(Purchase.quantity_purchased).label("quantity")
    product_rows = (
        base.with_entities(
            Purchase.product_id,
            func.max(Purchase.product_name).label("product_name"),
            func.max(Purchase.product_sku).label("product_sku"),
            product_qty,
            func.sum(Purchase.total_cost_cents).label("spend_cents"),
        )
        .group_by(Purchase.product_id)
        .order_by(product_qty.desc(), func.max(Purchase.product_name).asc())
        .limit(TOP_PRODUCTS_LIMIT)
        .all()
    )

    spend = int(spend)
    return {
        "group_by": group_by,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "totals": {
            "spend_cents": spend,
            "orders": int(orders),
            "quantity": int(quantity),
            "average_order_value_cents": average_half_up(spend, int(orders)),
        },
        "series": _bucket(series_rows, group_by, "orders", ("spend_cents", "quantity")),
        "top_suppliers": [
            {
                "supplier": r.supplier,
                "spend_cents": int(r.spend_cents or 0),
                "orders": int(r.orders or 0),
                "quantity": int(r.quantity or 0),
            }
            for r in supplier_rows
        ],
        "top_products": [
            {
                "product_id": r.product_id,
                "product_name": r.product_name,
                "product_sku": r.product_sku,
                "quantity": int(r.quantity or 0),
                "spend_cents": int(r.spend_cents or 0),
            }
            for r in product_rows
        ],
    }


def stock_report() -> dict:
    """Current catalog snapshot. No date filter."""
    products = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()

    categories: dict[str, dict] = {}
    rows = []
    total_quantity = 0
    total_value = 0
    for p in products:
        value = p.stock_value_cents
        total_quantity += p.stock_quantity
        total_value += value

        cat = categories.setdefault(
            p.category, {"category": p.category, "count": 0, "stock_quantity": 0, "value_cents": 0}
        )
        cat["count"] += 1
        cat["stock_quantity"] += p.stock_quantity
        cat["value_cents"] += value

        rows.append({**p.to_dict(), "stock_value_cents": value})

    low_stock = [r for r in rows if 0 < r["stock_quantity"] <= LOW_STOCK_THRESHOLD]
    out_of_stock = [r for r in rows if r["stock_quantity"] == 0]

    return {
        "threshold": LOW_STOCK_THRESHOLD,
        "totals": {
            "products": len(rows),
            "stock_quantity": total_quantity,
            "value_cents": total_value,
            "low_stock": len(low_stock),
            "out_of_stock": len(out_of_stock),
        },
        "categories": [categories[k] for k in sorted(categories)],
        "low_stock": low_stock,
        "out_of_stock": out_of_stock,
        "products": rows,
    }


def expenses_report(*, start: str | None = None, end: str | None = None, group_by: str = "day") -> dict:
    start_dt, end_dt = _parse_range(start, end)
    group_by = _require_group_by(group_by)

    base = _in_range(db.session.query(Expense), Expense.occurred_at, start_dt, end_dt)

    amount, count = base.with_entities(
        func.coalesce(func.sum(Expense.amount_cents), 0),
        func.count(Expense.id),
    ).one()
    amount = int(amount)

    series_rows = base.with_entities(Expense.occurred_at, Expense.amount_cents).all()

    category_amount = func.sum(Expense.amount_cents).label("amount_cents")
    category_rows = (
        base.with_entities(Expense.category, category_amount, func.count(Expense.id).label("count"))
        .group_by(Expense.category)
        .order_by(category_amount.desc(), Expense.category.asc())
        .all()
    )

    top = (
        base.order_by(Expense.amount_cents.desc(), Expense.occurred_at.desc(), Expense.id.desc())
        .limit(TOP_EXPENSES_LIMIT)
        .all()
    )

    return {
        "group_by": group_by,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "totals": {"amount_cents": amount, "count": int(count)},
        "series": _bucket(series_rows, group_by, "count", ("amount_cents",)),
        "categories": [
            {
                "category": r.category,
                "amount_cents": int(r.amount_cents or 0),
                "count": int(r.count or 0),
                "percentage": percentage(int(r.amount_cents or 0), amount),
            }
            for r in category_rows
        ],
        "top_expenses": [e.to_dict() for e in top],
        "trend": expense_trend(),
    }


def expense_trend(months: int = EXPENSE_TREND_MONTHS) -> list[dict]:
    """Trailing calendar months ending with the current one, zero-filled."""
    today = org_today()
    first = add_months(today, -(months - 1))

    trend: OrderedDict[str, dict] = OrderedDict()
    for i in range(months):
        key = add_months(first, i).strftime("%Y-%m")
        trend[key] = {"period": key, "amount_cents": 0, "count": 0}

    rows = (
        db.session.query(Expense.occurred_at, Expense.amount_cents)
        .filter(
            Expense.occurred_at >= local_midnight_utc(first),
            Expense.occurred_at < local_midnight_utc(add_months(today, 1)),
        )
        .all()
    )
    for occurred_at, amount_cents in rows:
        entry = trend.get(bucket_key(occurred_at, "month"))
        if entry is not None:
            entry["amount_cents"] += int(amount_cents or 0)
            entry["count"] += 1
    return list(trend.values())


def dashboard_summary() -> dict:
    today = org_today()
    day_start = local_midnight_utc(today)
    day_end = local_midnight_utc(today + timedelta(days=1))

    revenue_today, orders_today = (
        db.session.query(func.coalesce(func.sum(Sale.total_price_cents), 0), func.count(Sale.id))
        .filter(Sale.payment_status == "paid", Sale.occurred_at >= day_start, Sale.occurred_at < day_end)
        .one()
    )

    qty_col = func.sum(Sale.quantity_sold).label("quantity")
    top = (
        db.session.query(Sale.product_id, func.max(Sale.product_name).label("product_name"), qty_col)
        .filter(Sale.occurred_at >= day_start, Sale.occurred_at < day_end)
        .group_by(Sale.product_id)
        .order_by(qty_col.desc(), func.max(Sale.product_name).asc())
        .first()
    )

    low_stock_count = (
        db.session.query(func.count(Product.id)).filter(Product.stock_quantity <= LOW_STOCK_THRESHOLD).scalar()
    )
    pending_count, pending_amount = (
        db.session.query(func.count(Sale.id), func.coalesce(func.sum(Sale.total_price_cents), 0))
        .filter(Sale.payment_status == "pending")
        .one()
    )

    first_day = today - timedelta(days=DASHBOARD_SERIES_DAYS - 1)
    series: OrderedDict[str, dict] = OrderedDict()
    for i in range(DASHBOARD_SERIES_DAYS):
        key = (first_day + timedelta(days=i)).isoformat()
        series[key] = {"period": key, "revenue_cents": 0, "orders": 0}

    rows = (
        db.session.query(Sale.occurred_at, Sale.total_price_cents)
        .filter(
            Sale.payment_status == "paid",
            Sale.occurred_at >= local_midnight_utc(first_day),
            Sale.occurred_at < day_end,
        )
        .all()
    )
    for occurred_at, total in rows:
        entry = series.get(bucket_key(occurred_at, "day"))
        if entry is not None:
            entry["revenue_cents"] += int(total or 0)
            entry["orders"] += 1

    return {
        "date": today.isoformat(),
        "today": {"revenue_cents": int(revenue_today), "orders": int(orders_today)},
        "top_product_today": (
            {"product_id": top.product_id, "product_name": top.product_name, "quantity": int(top.quantity or 0)}
            if top
            else None
        ),
        "low_stock_count": int(low_stock_count or 0),
        "pending_payments": {"count": int(pending_count), "amount_cents": int(pending_amount)},
        "revenue_series": list(series.values()),
    }
