from __future__ import annotations

from typing import Callable, Iterable

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Notification, User
from ..models.auth import ROLE_ADMIN, VALID_ROLES
from ..models.communications import NOTIFICATION_TYPES
from .audit_service import append_audit_entry
from .concurrency import best_effort
from .pagination import paginate
from stockledger.time_utils import utcnow


TYPE_LOW_STOCK = "low_stock"
TYPE_SALE = "sale"
TYPE_PURCHASE = "purchase"
TYPE_EXPENSE = "expense"
TYPE_SYSTEM = "system"

# event_type -> recipient user ids, evaluated on every event (never cached)
RecipientResolver = Callable[[str], Iterable[int]]


def admin_recipients(event_type: str) -> list[int]:
    """Default targeting: every active admin at the time of the event."""
    rows = (
        db.session.query(User.id)
        .filter(User.role == ROLE_ADMIN, User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )
    return [r[0] for r in rows]


def resolve_recipients(event_type: str, resolver: RecipientResolver | None = None) -> list[int]:
    if resolver is None:
        resolver = current_app.config.get("NOTIFICATION_RECIPIENT_RESOLVER") or admin_recipients
    # de-duplicate, keep resolver order
    return list(dict.fromkeys(int(uid) for uid in resolver(event_type)))


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def create_notification(
    *,
    recipient_user_id: int,
    type: str,
    title: str,
    message: str,
    link: str | None = None,
    meta: dict | None = None,
    commit: bool = True,
) -> Notification:
    if type not in NOTIFICATION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(NOTIFICATION_TYPES)}")
    if not title or not message:
        raise ValidationError("title and message are required")

    notification = Notification(
        recipient_user_id=recipient_user_id,
        type=type,
        title=title,
        message=message,
        link=link,
        meta=meta or {},
        is_read=False,
    )
    db.session.add(notification)
    if commit:
        db.session.commit()
    return notification


def fan_out(
    event_type: str,
    *,
    title: str,
    message: str,
    link: str | None = None,
    meta: dict | None = None,
    resolver: RecipientResolver | None = None,
) -> list[Notification]:
    """Insert one notification per resolved recipient, in a single commit."""
    recipients = resolve_recipients(event_type, resolver)
    if not recipients:
        return []

    created = [
        create_notification(
            recipient_user_id=uid,
            type=event_type,
            title=title,
            message=message,
            link=link,
            meta=meta,
            commit=False,
        )
        for uid in recipients
    ]
    db.session.commit()
    return created


def notify_low_stock(
    *, product_id: int, product_name: str, stock_quantity: int, resolver: RecipientResolver | None = None
) -> list[Notification]:
    return fan_out(
        TYPE_LOW_STOCK,
        title="Low Stock Alert",
        message=f"{product_name} is running low ({stock_quantity} remaining)",
        link="/products",
        meta={"product_id": product_id, "product_name": product_name, "stock_quantity": stock_quantity},
        resolver=resolver,
    )


def notify_sale(
    *,
    sale_id: int,
    product_name: str,
    quantity: int,
    total_price_cents: int,
    resolver: RecipientResolver | None = None,
) -> list[Notification]:
    return fan_out(
        TYPE_SALE,
        title="New Sale Recorded",
        message=f"Sale of {quantity} {product_name} for {_money(total_price_cents)}",
        link="/sales",
        meta={
            "sale_id": sale_id,
            "product_name": product_name,
            "quantity": quantity,
            "total_price_cents": total_price_cents,
        },
        resolver=resolver,
    )


def notify_purchase(
    *,
    purchase_id: int,
    product_name: str,
    quantity: int,
    total_cost_cents: int,
    resolver: RecipientResolver | None = None,
) -> list[Notification]:
    return fan_out(
        TYPE_PURCHASE,
        title="New Purchase Recorded",
        message=f"Purchased {quantity} {product_name} for {_money(total_cost_cents)}",
        link="/purchases",
        meta={
            "purchase_id": purchase_id,
            "product_name": product_name,
            "quantity": quantity,
            "total_cost_cents": total_cost_cents,
        },
        resolver=resolver,
    )


def notify_expense(
    *,
    expense_id: int,
    category: str,
    amount_cents: int,
    description: str,
    actor_user_id: int,
    resolver: RecipientResolver | None = None,
) -> list[Notification]:
    actor = db.session.get(User, actor_user_id)
    actor_name = (actor.full_name or actor.username) if actor else f"User {actor_user_id}"
    return fan_out(
        TYPE_EXPENSE,
        title="New Expense Recorded",
        message=f"{actor_name} added a {category} expense of {_money(amount_cents)}",
        link="/expenses",
        meta={
            "expense_id": expense_id,
            "category": category,
            "amount_cents": amount_cents,
            "description": description,
        },
        resolver=resolver,
    )


def broadcast_system_notification(
    *,
    title: str,
    message: str,
    actor_user_id: int,
    target_role: str | None = None,
    link: str | None = None,
) -> int:
    """Send a system notification to every active user, or every user of one role."""
    title = (title or "").strip()
    message = (message or "").strip()
    if not title or not message:
        raise ValidationError("title and message are required")

    query = db.session.query(User.id).filter(User.is_active.is_(True))
    if target_role and target_role != "all":
        if target_role not in VALID_ROLES:
            raise ValidationError(f"target_role must be one of: all, {', '.join(VALID_ROLES)}")
        query = query.filter(User.role == target_role)
    user_ids = [r[0] for r in query.order_by(User.id.asc()).all()]
    if not user_ids:
        raise ValidationError("No users found for the specified target")

    created = fan_out(
        TYPE_SYSTEM,
        title=title,
        message=message,
        link=link,
        meta={"created_by_user_id": actor_user_id, "target_role": target_role or "all"},
        resolver=lambda _event: user_ids,
    )
    best_effort(
        "audit broadcast_notification",
        append_audit_entry,
        actor_user_id=actor_user_id,
        action="broadcast_notification",
        entity_type="notification",
        meta={"title": title, "target_role": target_role or "all", "recipients": len(created)},
    )
    return len(created)


def unread_count(user_id: int) -> int:
    return (
        db.session.query(Notification)
        .filter(Notification.recipient_user_id == user_id, Notification.is_read.is_(False))
        .count()
    )


def list_notifications(
    user_id: int,
    *,
    is_read: bool | None = None,
    page: int | None = None,
    per_page: int | None = 20,
) -> dict:
    query = db.session.query(Notification).filter(Notification.recipient_user_id == user_id)
    if is_read is not None:
        query = query.filter(Notification.is_read.is_(is_read))

    items, pagination = paginate(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()),
        page,
        per_page,
        default_per_page=20,
        max_per_page=100,
    )
    return {
        "items": [n.to_dict() for n in items],
        "unread_count": unread_count(user_id),
        "pagination": pagination,
    }


def _get_owned(notification_id: int, user_id: int) -> Notification:
    notification = (
        db.session.query(Notification)
        .filter_by(id=notification_id, recipient_user_id=user_id)
        .first()
    )
    if notification is None:
        raise NotFoundError("Notification not found", details={"notification_id": notification_id})
    return notification


def mark_read(notification_id: int, user_id: int) -> Notification:
    notification = _get_owned(notification_id, user_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification


def mark_all_read(user_id: int) -> int:
    """Mark every unread notification read. Returns how many changed."""
    changed = (
        db.session.query(Notification)
        .filter(Notification.recipient_user_id == user_id, Notification.is_read.is_(False))
        .update({"is_read": True, "read_at": utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return changed


def delete_notification(notification_id: int, user_id: int) -> None:
    notification = _get_owned(notification_id, user_id)
    db.session.delete(notification)
    db.session.commit()
