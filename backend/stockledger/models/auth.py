from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z

ROLE_ADMIN = "admin"
ROLE_SALES = "sales"
ROLE_STOCK = "stock"
VALID_ROLES = (ROLE_ADMIN, ROLE_SALES, ROLE_STOCK)


class User(db.Model):
    """
    Staff identity for attribution and notification targeting.

    Credentials are issued and verified upstream; nothing secret lives here.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, index=True)  # admin, sales, stock
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
