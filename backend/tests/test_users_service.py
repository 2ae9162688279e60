"""
Staff administration tests.

Role and active-flag changes feed straight into default alert targeting, so
these also check that a deactivated admin stops receiving fan-out.
"""

import pytest

from stockledger.errors import ConflictError, NotFoundError, ValidationError
from stockledger.extensions import db
from stockledger.models import AuditEntry, User
from stockledger.services import notification_service, users_service


class TestCreateUser:
    def test_create_and_audit(self, admin_user):
        user = users_service.create_user(
            patch={"username": "amina", "email": "Amina@Shop.test", "role": "sales"},
            actor_user_id=admin_user.id,
        )

        assert user.email == "amina@shop.test"
        assert user.is_active is True
        entry = db.session.query(AuditEntry).filter_by(action="create_user").one()
        assert entry.entity_id == user.id

    def test_duplicate_username(self, admin_user):
        with pytest.raises(ConflictError):
            users_service.create_user(
                patch={"username": "ADMIN", "email": "other@shop.test", "role": "sales"},
                actor_user_id=admin_user.id,
            )

    @pytest.mark.parametrize(
        "patch",
        [
            {"username": "x", "email": "x@shop.test", "role": "owner"},
            {"username": "x", "role": "sales"},
            {"username": "x", "email": "x@shop.test", "role": "sales", "password": "secret"},
        ],
    )
    def test_rejects_bad_payload(self, admin_user, patch):
        with pytest.raises(ValidationError):
            users_service.create_user(patch=patch, actor_user_id=admin_user.id)


class TestUpdateUser:
    def test_role_change_is_audited(self, admin_user, sales_user):
        user = users_service.update_user(
            user_id=sales_user.id, patch={"role": "stock"}, actor_user_id=admin_user.id
        )

        assert user.role == "stock"
        entry = db.session.query(AuditEntry).filter_by(action="update_user").one()
        assert entry.meta["changes"] == {"role": {"from": "sales", "to": "stock"}}

    def test_email_conflict(self, admin_user, sales_user):
        with pytest.raises(ConflictError):
            users_service.update_user(
                user_id=sales_user.id, patch={"email": admin_user.email}, actor_user_id=admin_user.id
            )

    def test_cannot_demote_self(self, admin_user):
        with pytest.raises(ValidationError):
            users_service.update_user(
                user_id=admin_user.id, patch={"role": "sales"}, actor_user_id=admin_user.id
            )

    def test_missing_user(self, admin_user):
        with pytest.raises(NotFoundError):
            users_service.update_user(user_id=999, patch={"full_name": "X"}, actor_user_id=admin_user.id)


class TestDeactivateUser:
    def test_deactivated_admin_drops_out_of_fan_out(self, admin_user, make_user):
        other = make_user("boss", "admin")
        assert notification_service.resolve_recipients("sale") == [admin_user.id, other.id]

        users_service.deactivate_user(user_id=other.id, actor_user_id=admin_user.id)

        assert notification_service.resolve_recipients("sale") == [admin_user.id]
        assert [u.username for u in users_service.list_users()] == ["admin"]
        assert {u.username for u in users_service.list_users(include_inactive=True)} == {"admin", "boss"}
        assert db.session.query(AuditEntry).filter_by(action="delete_user").count() == 1

    def test_cannot_delete_self(self, admin_user):
        with pytest.raises(ValidationError):
            users_service.deactivate_user(user_id=admin_user.id, actor_user_id=admin_user.id)


class TestLastActiveAdmin:
    def test_cannot_demote_last_active_admin(self, admin_user, make_user):
        retired = make_user("retired", "admin", is_active=False)

        with pytest.raises(ValidationError):
            users_service.update_user(user_id=admin_user.id, patch={"role": "sales"}, actor_user_id=retired.id)
        with pytest.raises(ValidationError):
            users_service.update_user(user_id=admin_user.id, patch={"is_active": False}, actor_user_id=retired.id)

        assert db.session.get(User, admin_user.id).role == "admin"
        assert notification_service.resolve_recipients("sale") == [admin_user.id]

    def test_cannot_deactivate_last_active_admin(self, admin_user, make_user):
        retired = make_user("retired", "admin", is_active=False)

        with pytest.raises(ValidationError):
            users_service.deactivate_user(user_id=admin_user.id, actor_user_id=retired.id)

        assert db.session.get(User, admin_user.id).is_active is True

    def test_demote_allowed_while_another_admin_remains(self, admin_user, make_user):
        other = make_user("boss", "admin")

        users_service.update_user(user_id=other.id, patch={"role": "stock"}, actor_user_id=admin_user.id)

        assert notification_service.resolve_recipients("sale") == [admin_user.id]
