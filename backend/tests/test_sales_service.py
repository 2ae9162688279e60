"""
Sales ledger tests.

Verifies:
- Sale rows and stock deltas commit together (or not at all)
- Snapshots survive catalog deletion
- Post-commit audit/notification failures never reverse a sale
- Contention that outlasts the retries aborts cleanly
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from stockledger.errors import InsufficientStockError, NotFoundError, TransactionAbortError, ValidationError
from stockledger.extensions import db
from stockledger.models import AuditEntry, Notification, Product, Sale
from stockledger.services import concurrency, products_service, purchase_service, sales_service


def _sell(product, user, quantity=3, price=150, **kwargs):
    return sales_service.create_sale(
        product_id=product.id,
        quantity=quantity,
        unit_price_cents=price,
        payment_method=kwargs.pop("payment_method", "cash"),
        payment_status=kwargs.pop("payment_status", "paid"),
        actor_user_id=user.id,
        **kwargs,
    )


def _stock(product_id) -> int:
    return db.session.get(Product, product_id).stock_quantity


# =============================================================================
# SCENARIOS
# =============================================================================


class TestLedgerScenarios:
    def test_sale_decrements_stock_and_snapshots_product(self, widget, sales_user):
        sale = _sell(widget, sales_user, quantity=3, price=150)

        assert sale.total_price_cents == 450
        assert _stock(widget.id) == 7
        assert sale.product_snapshot == {
            "product_id": widget.id,
            "name": "Widget",
            "sku": "WID-001",
            "price_cents": 150,
        }
        assert sale.sold_by_user_id == sales_user.id

    def test_purchase_increments_stock_and_overwrites_cost(self, widget, sales_user, stock_user):
        _sell(widget, sales_user, quantity=3)
        purchase = purchase_service.create_purchase(
            product_id=widget.id,
            quantity=5,
            unit_cost_cents=90,
            supplier="Acme Supplies",
            actor_user_id=stock_user.id,
        )

        assert purchase.total_cost_cents == 450
        product = db.session.get(Product, widget.id)
        assert product.stock_quantity == 12
        assert product.cost_price_cents == 90

    def test_oversell_is_rejected_without_side_effects(self, widget, sales_user, stock_user):
        _sell(widget, sales_user, quantity=3)
        purchase_service.create_purchase(
            product_id=widget.id, quantity=5, unit_cost_cents=90, supplier="Acme", actor_user_id=stock_user.id
        )
        sales_before = db.session.query(Sale).count()

        with pytest.raises(InsufficientStockError) as excinfo:
            _sell(widget, sales_user, quantity=20)

        assert excinfo.value.available == 12
        assert excinfo.value.requested == 20
        assert excinfo.value.details == {"available": 12, "requested": 20}
        assert _stock(widget.id) == 12
        assert db.session.query(Sale).count() == sales_before

    def test_delete_sale_restores_stock(self, widget, sales_user, stock_user):
        sale = _sell(widget, sales_user, quantity=3)
        purchase_service.create_purchase(
            product_id=widget.id, quantity=5, unit_cost_cents=90, supplier="Acme", actor_user_id=stock_user.id
        )
        assert _stock(widget.id) == 12

        sales_service.delete_sale(sale_id=sale.id, actor_user_id=sales_user.id)

        assert _stock(widget.id) == 15
        assert db.session.get(Sale, sale.id) is None


# =============================================================================
# PROPERTIES
# =============================================================================


class TestLedgerProperties:
    def test_create_then_delete_round_trips_stock(self, widget, sales_user):
        before = _stock(widget.id)
        sale = _sell(widget, sales_user, quantity=4)
        sales_service.delete_sale(sale_id=sale.id, actor_user_id=sales_user.id)
        assert _stock(widget.id) == before

    def test_stock_matches_replayed_history(self, widget, sales_user, stock_user, admin_user):
        _sell(widget, sales_user, quantity=2)
        purchase_service.create_purchase(
            product_id=widget.id, quantity=7, unit_cost_cents=85, supplier="Acme", actor_user_id=stock_user.id
        )
        sale = _sell(widget, sales_user, quantity=5)
        sales_service.update_sale(sale_id=sale.id, patch={"quantity": 3}, actor_user_id=sales_user.id)
        products_service.update_product(
            product_id=widget.id,
            patch={"stock_quantity": 20},
            actor_user_id=admin_user.id,
            reason="Recount",
        )
        _sell(widget, sales_user, quantity=1)

        assert _stock(widget.id) == 19
        assert products_service.replay_stock(widget.id) == 19
        assert products_service.verify_stock_invariant() == []


# =============================================================================
# UPDATES
# =============================================================================


class TestUpdateSale:
    def test_quantity_change_moves_stock_by_difference(self, widget, sales_user):
        sale = _sell(widget, sales_user, quantity=3, price=150)

        updated = sales_service.update_sale(sale_id=sale.id, patch={"quantity": 10}, actor_user_id=sales_user.id)

        assert updated.quantity_sold == 10
        assert updated.total_price_cents == 1500
        assert _stock(widget.id) == 0

    def test_quantity_beyond_returned_stock_is_rejected(self, widget, sales_user):
        sale = _sell(widget, sales_user, quantity=3)

        with pytest.raises(InsufficientStockError) as excinfo:
            sales_service.update_sale(sale_id=sale.id, patch={"quantity_sold": 11}, actor_user_id=sales_user.id)

        assert excinfo.value.available == 10
        assert excinfo.value.requested == 11
        assert _stock(widget.id) == 7
        assert db.session.get(Sale, sale.id).quantity_sold == 3

    def test_omitted_fields_are_unchanged(self, widget, sales_user):
        sale = _sell(widget, sales_user, quantity=2, price=150, payment_method="card")

        updated = sales_service.update_sale(
            sale_id=sale.id, patch={"unit_price_cents": 140}, actor_user_id=sales_user.id
        )

        assert updated.quantity_sold == 2
        assert updated.payment_method == "card"
        assert updated.total_price_cents == 280
        assert _stock(widget.id) == 8

    def test_unknown_field_rejected(self, widget, sales_user):
        sale = _sell(widget, sales_user)
        with pytest.raises(ValidationError):
            sales_service.update_sale(sale_id=sale.id, patch={"product_id": 99}, actor_user_id=sales_user.id)

    def test_missing_sale(self, db_session, sales_user):
        with pytest.raises(NotFoundError):
            sales_service.update_sale(sale_id=999, patch={"quantity": 1}, actor_user_id=sales_user.id)


class TestDeletedProduct:
    def test_snapshot_survives_and_non_quantity_edits_allowed(self, widget, sales_user, admin_user):
        sale = _sell(widget, sales_user, quantity=2, payment_status="pending")
        products_service.delete_product(product_id=widget.id, actor_user_id=admin_user.id)

        fetched = sales_service.get_sale(sale.id)
        assert fetched.product_snapshot["name"] == "Widget"
        assert fetched.product_snapshot["sku"] == "WID-001"

        updated = sales_service.update_sale(
            sale_id=sale.id, patch={"payment_status": "paid"}, actor_user_id=sales_user.id
        )
        assert updated.payment_status == "paid"

        with pytest.raises(NotFoundError):
            sales_service.update_sale(sale_id=sale.id, patch={"quantity": 1}, actor_user_id=sales_user.id)

    def test_delete_sale_without_product_removes_row(self, widget, sales_user, admin_user):
        sale = _sell(widget, sales_user, quantity=2)
        products_service.delete_product(product_id=widget.id, actor_user_id=admin_user.id)

        sales_service.delete_sale(sale_id=sale.id, actor_user_id=sales_user.id)

        assert db.session.get(Sale, sale.id) is None


# =============================================================================
# VALIDATION
# =============================================================================


class TestCreateSaleValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"quantity": 0},
            {"quantity": -2},
            {"quantity": "1.5"},
            {"price": -1},
            {"payment_method": "bitcoin"},
            {"payment_status": "refunded"},
            {"occurred_at": 1700000000},
            {"occurred_at": "last tuesday"},
        ],
    )
    def test_rejects_bad_input(self, widget, sales_user, kwargs):
        with pytest.raises(ValidationError):
            _sell(widget, sales_user, **kwargs)
        assert _stock(widget.id) == 10

    def test_missing_product(self, db_session, sales_user):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                product_id=12345,
                quantity=1,
                unit_price_cents=100,
                payment_method="cash",
                actor_user_id=sales_user.id,
            )

    def test_aware_occurred_at_stored_as_utc(self, widget, sales_user):
        when = datetime(2026, 4, 1, 1, 0, tzinfo=timezone(timedelta(hours=3)))
        sale = _sell(widget, sales_user, quantity=1, occurred_at=when)
        assert sale.to_dict()["occurred_at"] == "2026-03-31T22:00:00Z"


# =============================================================================
# SIDE EFFECTS
# =============================================================================


class TestPostCommitEffects:
    def test_audit_entry_appended(self, widget, sales_user):
        sale = _sell(widget, sales_user, quantity=1)
        entry = db.session.query(AuditEntry).filter_by(action="create_sale", entity_id=sale.id).one()
        assert entry.actor_user_id == sales_user.id
        assert entry.entity_type == "sale"

    def test_sale_notifies_admins(self, widget, sales_user, admin_user):
        _sell(widget, sales_user, quantity=1)
        types = [n.type for n in db.session.query(Notification).filter_by(recipient_user_id=admin_user.id)]
        assert types == ["sale"]

    def test_low_stock_alert_when_remaining_in_band(self, widget, sales_user, admin_user):
        _sell(widget, sales_user, quantity=5)
        alert = (
            db.session.query(Notification)
            .filter_by(recipient_user_id=admin_user.id, type="low_stock")
            .one()
        )
        assert alert.title == "Low Stock Alert"
        assert alert.message == "Widget is running low (5 remaining)"
        assert alert.link == "/products"

    def test_no_low_stock_alert_when_sold_out(self, widget, sales_user, admin_user):
        _sell(widget, sales_user, quantity=10)
        assert db.session.query(Notification).filter_by(type="low_stock").count() == 0

    def test_audit_failure_does_not_reverse_sale(self, widget, sales_user, monkeypatch):
        def boom(**kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(sales_service, "append_audit_entry", boom)

        sale = _sell(widget, sales_user, quantity=2)

        assert db.session.get(Sale, sale.id) is not None
        assert _stock(widget.id) == 8

    def test_notification_failure_does_not_reverse_sale(self, widget, sales_user, monkeypatch):
        def boom(**kwargs):
            raise RuntimeError("fan-out failed")

        monkeypatch.setattr(sales_service, "notify_sale", boom)
        monkeypatch.setattr(sales_service, "notify_low_stock", boom)

        _sell(widget, sales_user, quantity=6)

        assert _stock(widget.id) == 4
        assert db.session.query(AuditEntry).filter_by(action="create_sale").count() == 1


class TestTransactionAbort:
    def test_persistent_lock_contention_aborts_and_persists_nothing(self, widget, sales_user, monkeypatch):
        attempts = []

        def locked():
            attempts.append(1)
            raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))

        monkeypatch.setattr(concurrency, "begin_write_scope", locked)

        with pytest.raises(TransactionAbortError) as excinfo:
            _sell(widget, sales_user, quantity=1)

        assert excinfo.value.details == {"attempts": 2}
        assert len(attempts) == 2
        monkeypatch.undo()
        assert _stock(widget.id) == 10
        assert db.session.query(Sale).count() == 0


class TestListSales:
    def test_date_only_range_is_org_local_day(self, widget, sales_user):
        # Africa/Dar_es_Salaam is UTC+3
        inside = _sell(widget, sales_user, quantity=1, occurred_at="2026-03-14T10:00:00Z")
        _sell(widget, sales_user, quantity=1, occurred_at="2026-03-14T22:30:00Z")  # 01:30 local on the 15th
        early = _sell(widget, sales_user, quantity=1, occurred_at="2026-03-13T21:30:00Z")  # 00:30 local on the 14th

        result = sales_service.list_sales(start="2026-03-14", end="2026-03-14")

        assert [s["id"] for s in result["items"]] == [inside.id, early.id]
        assert result["pagination"]["total"] == 2

    def test_reversed_range_rejected(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.list_sales(start="2026-03-15", end="2026-03-14")
