# Overview: Service-layer operations for stock notifications; encapsulates business logic and database work.

"""
Notification invariants:

- A product has at most one UNREAD notification of type low_stock or
  out_of_stock. create_low_stock_if_not_exists() checks for one before
  inserting, so repeated adjustments below the reorder level do not pile up
  alerts. Once the alert is read, the next low-stock event creates a new one.
- reorder_required notifications are only created manually by managers and
  are not deduplicated.
"""
from __future__ import annotations

from datetime import timedelta

from sqlalchemy import case, func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Notification, Product
from ..validation import NOTIFICATION_TYPES, coerce_int
from ..time_utils import utcnow

LOW_STOCK_TYPES = ("low_stock", "out_of_stock")
MAX_BULK_MARK = 100
MIN_CLEANUP_DAYS = 7


def _require_type(notification_type: str | None) -> None:
    if notification_type is not None and notification_type not in NOTIFICATION_TYPES:
        raise ValidationError(
            f"Invalid notification type. Must be one of: {', '.join(NOTIFICATION_TYPES)}"
        )


def get_notification(notification_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification")
    return notification


def list_notifications(
    *,
    unread_only: bool = False,
    notification_type: str | None = None,
    product_id: int | None = None,
    offset: int = 0,
    limit: int = 10,
    descending: bool = True,
) -> tuple[list[Notification], int]:
    _require_type(notification_type)
    query = db.session.query(Notification)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    if notification_type:
        query = query.filter(Notification.type == notification_type)
    if product_id is not None:
        query = query.filter(Notification.product_id == product_id)

    total = query.count()
    if descending:
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
    else:
        query = query.order_by(Notification.created_at.asc(), Notification.id.asc())
    return query.offset(offset).limit(limit).all(), total


def _unread_stock_alert_exists(product_id: int) -> bool:
    existing = (
        db.session.query(Notification.id)
        .filter(
            Notification.product_id == product_id,
            Notification.type.in_(LOW_STOCK_TYPES),
            Notification.is_read.is_(False),
        )
        .first()
    )
    return existing is not None


def create_notification(*, product_id: int, message: str, notification_type: str) -> Notification:
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product")
    _require_type(notification_type or "")

    message = str(message or "").strip()
    if len(message) < 10 or len(message) > 500:
        raise ValidationError("Message must be between 10 and 500 characters")

    if notification_type in LOW_STOCK_TYPES and _unread_stock_alert_exists(product_id):
        raise ConflictError("An unread stock alert already exists for this product")

    notification = Notification(product_id=product_id, message=message, type=notification_type)
    db.session.add(notification)
    db.session.commit()
    return notification


def create_low_stock_if_not_exists(product: Product) -> Notification | None:
    """
    Insert a low_stock / out_of_stock alert for product unless an unread one exists.

    Returns the new Notification, or None when an unread alert was already present.
    Commits its own transaction.
    """
    if _unread_stock_alert_exists(product.id):
        return None

    if product.quantity == 0:
        notification_type = "out_of_stock"
        message = "Product is out of stock and needs immediate attention"
    else:
        notification_type = "low_stock"
        message = f"Product quantity ({product.quantity}) is below reorder level ({product.reorder_level})"

    notification = Notification(product_id=product.id, message=message, type=notification_type)
    db.session.add(notification)
    db.session.commit()
    return notification


def check_all_low_stock() -> int:
    """Run the deduplicated stock check for every low-stock product. Returns alerts created."""
    products = (
        db.session.query(Product)
        .filter(Product.quantity <= Product.reorder_level)
        .order_by(Product.id.asc())
        .all()
    )
    created = 0
    for product in products:
        if create_low_stock_if_not_exists(product) is not None:
            created += 1
    return created


def unread_count(notification_type: str | None = None) -> int:
    _require_type(notification_type)
    query = db.session.query(func.count(Notification.id)).filter(Notification.is_read.is_(False))
    if notification_type:
        query = query.filter(Notification.type == notification_type)
    return query.scalar() or 0


def mark_as_read(notification_id: int) -> Notification:
    notification = get_notification(notification_id)
    notification.is_read = True
    db.session.commit()
    return notification


def mark_multiple_as_read(ids) -> int:
    if not isinstance(ids, list) or not ids:
        raise ValidationError("Notification IDs array is required")
    if len(ids) > MAX_BULK_MARK:
        raise ValidationError(f"Cannot mark more than {MAX_BULK_MARK} notifications at once")
    clean_ids = [coerce_int("ids", i) for i in ids]

    updated = (
        db.session.query(Notification)
        .filter(Notification.id.in_(clean_ids), Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return updated


def mark_all_as_read(notification_type: str | None = None) -> int:
    _require_type(notification_type)
    query = db.session.query(Notification).filter(Notification.is_read.is_(False))
    if notification_type:
        query = query.filter(Notification.type == notification_type)
    updated = query.update({Notification.is_read: True}, synchronize_session=False)
    db.session.commit()
    return updated


def for_product(product_id: int, *, unread_only: bool = False) -> tuple[Product, list[Notification]]:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product")
    query = db.session.query(Notification).filter(Notification.product_id == product_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
    return product, notifications


def recent(*, limit: int = 10, unread_only: bool = False) -> list[Notification]:
    limit = min(max(limit, 1), 100)
    query = db.session.query(Notification)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def delete_notification(notification_id: int) -> Notification:
    notification = get_notification(notification_id)
    db.session.delete(notification)
    db.session.commit()
    return notification


def delete_old_read(*, days_old: int = 30) -> int:
    """Delete READ notifications older than days_old. Unread alerts are never purged."""
    if days_old < MIN_CLEANUP_DAYS:
        raise ValidationError(f"Cannot delete notifications newer than {MIN_CLEANUP_DAYS} days")
    cutoff = utcnow() - timedelta(days=days_old)
    deleted = (
        db.session.query(Notification)
        .filter(Notification.is_read.is_(True), Notification.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted


def _pct(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0


def stats_by_type() -> dict:
    rows = (
        db.session.query(
            Notification.type,
            func.count(Notification.id),
            func.sum(case((Notification.is_read.is_(False), 1), else_=0)),
        )
        .group_by(Notification.type)
        .all()
    )
    by_type = {t: {"total": 0, "unread": 0} for t in NOTIFICATION_TYPES}
    for notification_type, total, unread in rows:
        by_type[notification_type] = {"total": int(total or 0), "unread": int(unread or 0)}

    total_all = sum(v["total"] for v in by_type.values())
    unread_all = sum(v["unread"] for v in by_type.values())
    for data in by_type.values():
        data["percentage_of_total"] = _pct(data["total"], total_all)
        data["unread_percentage"] = _pct(data["unread"], data["total"])

    return {
        "overview": {
            "total_notifications": total_all,
            "total_unread": unread_all,
            "unread_percentage": _pct(unread_all, total_all),
        },
        "by_type": by_type,
        "recommendations": _recommendations(by_type, unread_all),
    }


def _recommendations(by_type: dict, total_unread: int) -> list[dict]:
    recommendations = []
    if total_unread > 10:
        recommendations.append({
            "type": "urgent",
            "message": "High number of unread notifications. Consider reviewing and addressing them.",
            "action": "Review unread notifications",
        })
    if by_type["out_of_stock"]["unread"] > 0:
        recommendations.append({
            "type": "critical",
            "message": "Products are out of stock and need immediate attention.",
            "action": "Restock out-of-stock products",
        })
    if by_type["low_stock"]["unread"] > 5:
        recommendations.append({
            "type": "warning",
            "message": "Multiple products are running low on stock.",
            "action": "Plan restocking for low-stock products",
        })
    if not recommendations:
        recommendations.append({
            "type": "info",
            "message": "Notification levels are manageable.",
            "action": "Continue monitoring",
        })
    return recommendations
