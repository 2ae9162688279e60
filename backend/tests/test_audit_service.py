"""Audit trail: append-only writes, filtered newest-first reads."""

import pytest

from stockledger.errors import ValidationError
from stockledger.extensions import db
from stockledger.models import AuditEntry
from stockledger.services.audit_service import append_audit_entry, list_audit_entries
from stockledger.time_utils import parse_iso_datetime


class TestAuditTrail:
    def test_append_and_filter(self, admin_user, sales_user):
        append_audit_entry(actor_user_id=admin_user.id, action="create_product", entity_type="product", entity_id=1)
        append_audit_entry(actor_user_id=sales_user.id, action="create_sale", entity_type="sale", entity_id=4)
        append_audit_entry(actor_user_id=sales_user.id, action="delete_sale", entity_type="sale", entity_id=4)

        by_actor = list_audit_entries(actor_user_id=sales_user.id)
        assert [e["action"] for e in by_actor["items"]] == ["delete_sale", "create_sale"]

        by_entity = list_audit_entries(entity_type="sale", entity_id=4, action="create_sale")
        assert by_entity["pagination"]["total"] == 1
        assert by_entity["items"][0]["actor_user_id"] == sales_user.id

    def test_time_window_is_inclusive(self, admin_user):
        for stamp in ("2026-01-10T08:00:00Z", "2026-01-11T08:00:00Z", "2026-01-12T08:00:00Z"):
            append_audit_entry(
                actor_user_id=admin_user.id,
                action="update_product",
                entity_type="product",
                occurred_at=parse_iso_datetime(stamp),
            )

        result = list_audit_entries(start="2026-01-10T08:00:00Z", end="2026-01-11T08:00:00Z")

        assert [e["occurred_at"] for e in result["items"]] == ["2026-01-11T08:00:00Z", "2026-01-10T08:00:00Z"]

    def test_failed_write_returns_none(self, admin_user):
        # meta that cannot be serialized to JSON fails at flush
        entry = append_audit_entry(
            actor_user_id=admin_user.id, action="create_sale", entity_type="sale", meta={"bad": object()}
        )

        assert entry is None
        assert db.session.query(AuditEntry).count() == 0

    def test_bad_range(self, db_session):
        with pytest.raises(ValidationError):
            list_audit_entries(start="not-a-date")
