from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow

NOTIFICATION_TYPES = ("low_stock", "sale", "purchase", "expense", "system")


class Notification(db.Model):
    """
    Per-recipient alert derived from ledger events.

    One row per recipient per event. Only is_read / read_at change after
    insert; rows are otherwise immutable until the recipient deletes them.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_recipient_read", "recipient_user_id", "is_read"),
        db.Index("ix_notifications_recipient_created", "recipient_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    recipient_user_id = db.Column(db.Integer, nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    link = db.Column(db.String(255), nullable=True)
    meta = db.Column(db.JSON, nullable=False, default=dict)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipient_user_id": self.recipient_user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "link": self.link,
            "meta": self.meta or {},
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }
