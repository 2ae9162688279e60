# Overview: Flat row projections of ledger history for CSV downloads.

from __future__ import annotations

import csv
import io
from typing import Iterable

from ..errors import ValidationError
from ..extensions import db
from ..models import Expense, Product, Purchase, Sale, User
from ..models.inventory import LOW_STOCK_THRESHOLD
from stockledger.time_utils import parse_date_range, to_org_local

SALES_COLUMNS = (
    "Date",
    "Product Name",
    "SKU",
    "Quantity",
    "Unit Price (cents)",
    "Total (cents)",
    "Payment Method",
    "Payment Status",
    "Sold By",
)
PURCHASES_COLUMNS = (
    "Date",
    "Product Name",
    "SKU",
    "Quantity",
    "Unit Cost (cents)",
    "Total Cost (cents)",
    "Supplier",
    "Purchased By",
)
STOCK_COLUMNS = (
    "Product Name",
    "SKU",
    "Category",
    "Selling Price (cents)",
    "Cost Price (cents)",
    "Stock Quantity",
    "Stock Value (cents)",
    "Status",
)
EXPENSES_COLUMNS = (
    "Date",
    "Category",
    "Description",
    "Amount (cents)",
    "Payment Method",
    "Receipt Number",
    "Recorded By",
)


def _parse_range(start, end):
    try:
        return parse_date_range(start, end)
    except ValueError as exc:
        raise ValidationError(f"Invalid date range: {exc}")


def _local_date(dt) -> str:
    return to_org_local(dt).strftime("%Y-%m-%d")


def _user_names(user_ids: Iterable[int]) -> dict[int, str]:
    ids = {uid for uid in user_ids if uid is not None}
    if not ids:
        return {}
    users = db.session.query(User).filter(User.id.in_(ids)).all()
    return {u.id: u.full_name or u.email for u in users}


def _windowed(model, start, end):
    start_dt, end_dt = _parse_range(start, end)
    query = db.session.query(model)
    if start_dt:
        query = query.filter(model.occurred_at >= start_dt)
    if end_dt:
        query = query.filter(model.occurred_at <= end_dt)
    return query.order_by(model.occurred_at.asc(), model.id.asc()).all()


def stock_status(stock_quantity: int) -> str:
    if stock_quantity == 0:
        return "Out of Stock"
    if stock_quantity <= LOW_STOCK_THRESHOLD:
        return "Low Stock"
    return "In Stock"


def sales_rows(*, start: str | None = None, end: str | None = None) -> list[dict]:
    sales = _windowed(Sale, start, end)
    names = _user_names(s.sold_by_user_id for s in sales)
    return [
        {
            "Date": _local_date(s.occurred_at),
            "Product Name": s.product_name,
            "SKU": s.product_sku,
            "Quantity": s.quantity_sold,
            "Unit Price (cents)": s.unit_price_cents,
            "Total (cents)": s.total_price_cents,
            "Payment Method": s.payment_method,
            "Payment Status": s.payment_status,
            "Sold By": names.get(s.sold_by_user_id, "N/A"),
        }
        for s in sales
    ]


def purchases_rows(*, start: str | None = None, end: str | None = None) -> list[dict]:
    purchases = _windowed(Purchase, start, end)
    names = _user_names(p.purchased_by_user_id for p in purchases)
    return [
        {
            "Date": _local_date(p.occurred_at),
            "Product Name": p.product_name,
            "SKU": p.product_sku,
            "Quantity": p.quantity_purchased,
            "Unit Cost (cents)": p.unit_cost_cents,
            "Total Cost (cents)": p.total_cost_cents,
            "Supplier": p.supplier,
            "Purchased By": names.get(p.purchased_by_user_id, "N/A"),
        }
        for p in purchases
    ]


def stock_rows() -> list[dict]:
    products = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()
    return [
        {
            "Product Name": p.name,
            "SKU": p.sku,
            "Category": p.category,
            "Selling Price (cents)": p.selling_price_cents,
            "Cost Price (cents)": p.cost_price_cents,
            "Stock Quantity": p.stock_quantity,
            "Stock Value (cents)": p.stock_value_cents,
            "Status": stock_status(p.stock_quantity),
        }
        for p in products
    ]


def expenses_rows(*, start: str | None = None, end: str | None = None) -> list[dict]:
    expenses = _windowed(Expense, start, end)
    names = _user_names(e.created_by_user_id for e in expenses)
    return [
        {
            "Date": _local_date(e.occurred_at),
            "Category": e.category,
            "Description": e.description,
            "Amount (cents)": e.amount_cents,
            "Payment Method": e.payment_method,
            "Receipt Number": e.receipt_number or "",
            "Recorded By": names.get(e.created_by_user_id, "N/A"),
        }
        for e in expenses
    ]


def rows_to_csv(rows: list[dict], columns: Iterable[str] | None = None) -> str:
    """
    Render rows as CSV text. Column order comes from `columns`, else from the
    first row; with neither the result is empty.
    """
    fieldnames = list(columns) if columns is not None else (list(rows[0].keys()) if rows else [])
    if not fieldnames:
        return ""

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: ("" if row.get(k) is None else row.get(k)) for k in fieldnames})
    return buffer.getvalue()
