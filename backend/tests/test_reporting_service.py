"""
Reporting tests.

Verifies:
- Paid revenue and pending receivables are reported separately
- Org-local calendar buckets (day / ISO week / month)
- Low-stock and out-of-stock boundaries (5 is low, 6 is not, 0 is out)
- Half-up averages, 2-decimal percentages, zero denominators
"""

import pytest

from stockledger.errors import ValidationError
from stockledger.services import expense_service, products_service, purchase_service, reporting_service, sales_service
from stockledger.time_utils import org_today


def _product(admin, sku, stock, cost=100, category="Hardware"):
    return products_service.create_product(
        patch={
            "sku": sku,
            "name": sku.title(),
            "category": category,
            "cost_price_cents": cost,
            "selling_price_cents": cost * 2,
            "stock_quantity": stock,
        },
        actor_user_id=admin.id,
    )


def _sell(product, user, quantity, price, method="cash", status="paid", at=None):
    return sales_service.create_sale(
        product_id=product.id,
        quantity=quantity,
        unit_price_cents=price,
        payment_method=method,
        payment_status=status,
        actor_user_id=user.id,
        occurred_at=at,
    )


@pytest.fixture
def april_sales(widget, sales_user):
    # Africa/Dar_es_Salaam is UTC+3
    _sell(widget, sales_user, 2, 150, at="2026-04-06T09:00:00Z")
    _sell(widget, sales_user, 1, 100, method="card", at="2026-04-06T20:30:00Z")
    _sell(widget, sales_user, 3, 150, method="mobile", status="pending", at="2026-04-07T09:00:00Z")
    _sell(widget, sales_user, 1, 150, at="2026-04-06T21:30:00Z")  # 00:30 local on the 7th


class TestHelpers:
    @pytest.mark.parametrize("total,count,expected", [(5, 2, 3), (7, 3, 2), (550, 3, 183), (0, 0, 0), (10, 0, 0)])
    def test_average_half_up(self, total, count, expected):
        assert reporting_service.average_half_up(total, count) == expected

    @pytest.mark.parametrize("part,total,expected", [(1, 3, 33.33), (2, 3, 66.67), (450, 550, 81.82), (1, 0, 0.0)])
    def test_percentage(self, part, total, expected):
        assert reporting_service.percentage(part, total) == expected


class TestSalesReport:
    def test_paid_and_pending_split(self, april_sales):
        report = reporting_service.sales_report(start="2026-04-06", end="2026-04-07")

        assert report["totals"] == {
            "revenue_cents": 550,
            "orders": 3,
            "quantity": 4,
            "pending_revenue_cents": 450,
            "pending_orders": 1,
            "average_order_value_cents": 183,
        }

    def test_daily_buckets_use_org_calendar(self, april_sales):
        report = reporting_service.sales_report(start="2026-04-06", end="2026-04-07", group_by="day")

        assert report["series"] == [
            {"period": "2026-04-06", "orders": 2, "revenue_cents": 400, "quantity": 3},
            {"period": "2026-04-07", "orders": 1, "revenue_cents": 150, "quantity": 1},
        ]

    def test_weekly_buckets(self, april_sales):
        report = reporting_service.sales_report(start="2026-04-06", end="2026-04-07", group_by="week")
        assert [b["period"] for b in report["series"]] == ["2026-W15"]
        assert report["series"][0]["revenue_cents"] == 550

    def test_payment_method_breakdown(self, april_sales):
        methods = reporting_service.sales_report(start="2026-04-06", end="2026-04-07")["payment_methods"]

        assert methods == [
            {"payment_method": "cash", "revenue_cents": 450, "orders": 2, "percentage": 81.82},
            {"payment_method": "card", "revenue_cents": 100, "orders": 1, "percentage": 18.18},
        ]

    def test_top_products(self, april_sales, widget):
        top = reporting_service.sales_report(start="2026-04-06", end="2026-04-07")["top_products"]
        assert top == [
            {
                "product_id": widget.id,
                "product_name": "Widget",
                "product_sku": "WID-001",
                "quantity": 4,
                "revenue_cents": 550,
            }
        ]

    def test_single_day_range(self, april_sales):
        report = reporting_service.sales_report(start="2026-04-06", end="2026-04-06")
        assert report["totals"]["revenue_cents"] == 400
        assert report["start"] == "2026-04-05T21:00:00Z"

    def test_empty_range(self, db_session):
        report = reporting_service.sales_report(start="2030-01-01", end="2030-01-31")
        assert report["totals"]["revenue_cents"] == 0
        assert report["totals"]["average_order_value_cents"] == 0
        assert report["series"] == []
        assert report["payment_methods"] == []

    @pytest.mark.parametrize("kwargs", [{"group_by": "year"}, {"start": "2026-13-01"}, {"start": "2026-04-07", "end": "2026-04-06"}])
    def test_invalid_arguments(self, db_session, kwargs):
        with pytest.raises(ValidationError):
            reporting_service.sales_report(**kwargs)


class TestPurchasesReport:
    def test_totals_and_suppliers(self, widget, stock_user):
        for qty, cost, supplier in ((5, 90, "Acme"), (2, 100, "Kibo"), (3, 90, "Acme")):
            purchase_service.create_purchase(
                product_id=widget.id,
                quantity=qty,
                unit_cost_cents=cost,
                supplier=supplier,
                actor_user_id=stock_user.id,
                occurred_at="2026-04-10T08:00:00Z",
            )

        report = reporting_service.purchases_report(start="2026-04-01", end="2026-04-30", group_by="month")

        assert report["totals"] == {
            "spend_cents": 920,
            "orders": 3,
            "quantity": 10,
            "average_order_value_cents": 307,
        }
        assert report["series"] == [{"period": "2026-04", "orders": 3, "spend_cents": 920, "quantity": 10}]
        assert [(s["supplier"], s["spend_cents"]) for s in report["top_suppliers"]] == [("Acme", 720), ("Kibo", 200)]
        assert report["top_products"][0]["quantity"] == 10


class TestStockReport:
    def test_value_uses_current_cost(self, widget, sales_user, stock_user):
        _sell(widget, sales_user, 3, 150)
        purchase_service.create_purchase(
            product_id=widget.id, quantity=5, unit_cost_cents=90, supplier="Acme", actor_user_id=stock_user.id
        )

        report = reporting_service.stock_report()

        row = report["products"][0]
        assert row["stock_quantity"] == 12
        assert row["stock_value_cents"] == 1080
        assert report["low_stock"] == []
        assert report["out_of_stock"] == []

    def test_threshold_boundaries(self, admin_user):
        _product(admin_user, "five", 5)
        _product(admin_user, "six", 6)
        _product(admin_user, "zero", 0)

        report = reporting_service.stock_report()

        assert report["threshold"] == 5
        assert [r["sku"] for r in report["low_stock"]] == ["FIVE"]
        assert [r["sku"] for r in report["out_of_stock"]] == ["ZERO"]
        assert report["totals"]["low_stock"] == 1
        assert report["totals"]["out_of_stock"] == 1

    def test_category_rollup(self, widget, admin_user):
        _product(admin_user, "bolt", 4, cost=10)
        _product(admin_user, "cable", 2, cost=50, category="Electrical")

        report = reporting_service.stock_report()

        assert report["categories"] == [
            {"category": "Electrical", "count": 1, "stock_quantity": 2, "value_cents": 100},
            {"category": "Hardware", "count": 2, "stock_quantity": 14, "value_cents": 840},
        ]
        assert report["totals"]["value_cents"] == 940


class TestExpensesReport:
    def test_categories_and_trend(self, sales_user):
        for category, amount in (("transport", 3000), ("food", 1000), ("transport", 1000)):
            expense_service.create_expense(
                patch={"category": category, "amount_cents": amount, "description": "x"},
                actor_user_id=sales_user.id,
            )

        report = reporting_service.expenses_report()

        assert report["totals"] == {"amount_cents": 5000, "count": 3}
        assert report["categories"] == [
            {"category": "transport", "amount_cents": 4000, "count": 2, "percentage": 80.0},
            {"category": "food", "amount_cents": 1000, "count": 1, "percentage": 20.0},
        ]
        assert [e["amount_cents"] for e in report["top_expenses"]] == [3000, 1000, 1000]

        trend = report["trend"]
        assert len(trend) == 6
        assert trend[-1]["period"] == org_today().strftime("%Y-%m")
        assert trend[-1]["amount_cents"] == 5000
        assert all(t["amount_cents"] == 0 for t in trend[:-1])


class TestDashboard:
    def test_summary(self, widget, sales_user, admin_user):
        _sell(widget, sales_user, 2, 150)
        _sell(widget, sales_user, 1, 150, status="pending")
        _product(admin_user, "bolt", 3)

        summary = reporting_service.dashboard_summary()

        assert summary["date"] == org_today().isoformat()
        assert summary["today"] == {"revenue_cents": 300, "orders": 1}
        assert summary["top_product_today"] == {"product_id": widget.id, "product_name": "Widget", "quantity": 3}
        assert summary["low_stock_count"] == 1
        assert summary["pending_payments"] == {"count": 1, "amount_cents": 150}

        series = summary["revenue_series"]
        assert len(series) == 30
        assert series[-1] == {"period": org_today().isoformat(), "revenue_cents": 300, "orders": 1}
        assert sum(day["revenue_cents"] for day in series) == 300

    def test_empty_day(self, db_session):
        summary = reporting_service.dashboard_summary()
        assert summary["top_product_today"] is None
        assert summary["today"] == {"revenue_cents": 0, "orders": 0}
