import pytest

from stockledger.errors import NotFoundError, ValidationError
from stockledger.extensions import db
from stockledger.models import AuditEntry, Notification
from stockledger.services import notification_service


def _alert(user_id, title="Heads up", message="Something happened"):
    return notification_service.create_notification(
        recipient_user_id=user_id, type="system", title=title, message=message
    )


class TestRecipients:
    def test_default_is_active_admins(self, admin_user, sales_user, make_user):
        make_user("retired", "admin", is_active=False)
        second = make_user("boss", "admin")

        assert notification_service.resolve_recipients("sale") == [admin_user.id, second.id]

    def test_injected_resolver_and_dedupe(self, admin_user, sales_user):
        calls = []

        def resolver(event_type):
            calls.append(event_type)
            return [sales_user.id, sales_user.id, admin_user.id]

        created = notification_service.notify_low_stock(
            product_id=1, product_name="Widget", stock_quantity=3, resolver=resolver
        )

        assert calls == ["low_stock"]
        assert [n.recipient_user_id for n in created] == [sales_user.id, admin_user.id]

    def test_configured_resolver(self, app, admin_user, stock_user, monkeypatch):
        monkeypatch.setitem(
            app.config, "NOTIFICATION_RECIPIENT_RESOLVER", lambda event_type: [stock_user.id]
        )

        notification_service.notify_purchase(
            purchase_id=7, product_name="Widget", quantity=5, total_cost_cents=45000
        )

        note = db.session.query(Notification).one()
        assert note.recipient_user_id == stock_user.id
        assert note.message == "Purchased 5 Widget for 450.00"

    def test_no_recipients_writes_nothing(self, db_session):
        assert notification_service.notify_sale(
            sale_id=1, product_name="Widget", quantity=1, total_price_cents=100
        ) == []
        assert db.session.query(Notification).count() == 0


class TestReadState:
    def test_mark_read_is_idempotent(self, admin_user):
        note = _alert(admin_user.id)

        first = notification_service.mark_read(note.id, admin_user.id)
        read_at = first.read_at
        second = notification_service.mark_read(note.id, admin_user.id)

        assert second.is_read is True
        assert second.read_at == read_at
        assert notification_service.unread_count(admin_user.id) == 0

    def test_mark_all_read_twice(self, admin_user, sales_user):
        for _ in range(3):
            _alert(admin_user.id)
        _alert(sales_user.id)

        assert notification_service.mark_all_read(admin_user.id) == 3
        assert notification_service.mark_all_read(admin_user.id) == 0
        assert notification_service.unread_count(admin_user.id) == 0
        assert notification_service.unread_count(sales_user.id) == 1

    def test_other_users_rows_are_invisible(self, admin_user, sales_user):
        note = _alert(admin_user.id)

        with pytest.raises(NotFoundError):
            notification_service.mark_read(note.id, sales_user.id)
        with pytest.raises(NotFoundError):
            notification_service.delete_notification(note.id, sales_user.id)

        notification_service.delete_notification(note.id, admin_user.id)
        assert db.session.get(Notification, note.id) is None

    def test_list_filters_and_counts(self, admin_user):
        older = _alert(admin_user.id, title="First")
        _alert(admin_user.id, title="Second")
        notification_service.mark_read(older.id, admin_user.id)

        unread = notification_service.list_notifications(admin_user.id, is_read=False)
        assert [n["title"] for n in unread["items"]] == ["Second"]
        assert unread["unread_count"] == 1

        everything = notification_service.list_notifications(admin_user.id)
        assert everything["pagination"]["total"] == 2


class TestBroadcast:
    def test_broadcast_to_role(self, admin_user, sales_user, stock_user):
        sent = notification_service.broadcast_system_notification(
            title="Stocktake", message="Friday 5pm", actor_user_id=admin_user.id, target_role="sales"
        )

        assert sent == 1
        note = db.session.query(Notification).one()
        assert note.recipient_user_id == sales_user.id
        assert note.type == "system"
        assert db.session.query(AuditEntry).filter_by(action="broadcast_notification").count() == 1

    def test_broadcast_to_everyone(self, admin_user, sales_user, stock_user):
        sent = notification_service.broadcast_system_notification(
            title="Closing early", message="Holiday", actor_user_id=admin_user.id
        )
        assert sent == 3

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"title": " ", "message": "x"},
            {"title": "x", "message": ""},
            {"title": "x", "message": "y", "target_role": "owner"},
        ],
    )
    def test_broadcast_validation(self, admin_user, kwargs):
        with pytest.raises(ValidationError):
            notification_service.broadcast_system_notification(actor_user_id=admin_user.id, **kwargs)

    def test_unknown_type_rejected(self, admin_user):
        with pytest.raises(ValidationError):
            notification_service.create_notification(
                recipient_user_id=admin_user.id, type="gossip", title="t", message="m"
            )
