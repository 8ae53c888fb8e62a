# Overview: Service-layer operations for the inventory audit log; read-side queries and retention.

"""
Audit log queries.

InventoryAudit rows are written by stock_service / product_service only.
This module reads them back (filters, histories, aggregates) and owns the
one delete path: the age-based retention purge.

Date filters are day-granular: date_to is inclusive through 23:59:59 of
that day.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import case, func

from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryAudit, Product, User
from ..time_utils import end_of_day, start_of_day, to_utc_z, utcnow
from ..validation import OPERATION_TYPES

MIN_RETENTION_DAYS = 30

_increase = case((InventoryAudit.new_quantity > InventoryAudit.old_quantity, 1), else_=0)
_decrease = case((InventoryAudit.new_quantity < InventoryAudit.old_quantity, 1), else_=0)
_change = InventoryAudit.new_quantity - InventoryAudit.old_quantity


def _since(days: int | None):
    return utcnow() - timedelta(days=days) if days else None


def _filtered_query(
    *,
    product_id: int | None = None,
    user_id: int | None = None,
    operation_type: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
):
    query = db.session.query(InventoryAudit)
    if product_id is not None:
        query = query.filter(InventoryAudit.product_id == product_id)
    if user_id is not None:
        query = query.filter(InventoryAudit.user_id == user_id)
    if operation_type:
        if operation_type not in OPERATION_TYPES:
            raise ValidationError(f"operation_type must be one of: {', '.join(OPERATION_TYPES)}")
        query = query.filter(InventoryAudit.operation_type == operation_type)
    if date_from is not None:
        query = query.filter(InventoryAudit.created_at >= start_of_day(date_from))
    if date_to is not None:
        query = query.filter(InventoryAudit.created_at <= end_of_day(date_to))
    return query


def find_with_filters(
    *,
    product_id: int | None = None,
    user_id: int | None = None,
    operation_type: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[InventoryAudit], int]:
    """Newest first. Returns (rows, total matching count)."""
    if limit < 1:
        raise ValidationError("limit must be at least 1")
    query = _filtered_query(
        product_id=product_id,
        user_id=user_id,
        operation_type=operation_type,
        date_from=date_from,
        date_to=date_to,
    )
    total = query.count()
    rows = (
        query.order_by(InventoryAudit.created_at.desc(), InventoryAudit.id.desc())
        .offset(max(offset, 0))
        .limit(limit)
        .all()
    )
    return rows, total


def summarize(audits: list[InventoryAudit]) -> dict:
    """Counts over a newest-first list of audit rows."""
    return {
        "total_changes": len(audits),
        "total_increases": sum(1 for a in audits if a.is_increase),
        "total_decreases": sum(1 for a in audits if a.is_decrease),
        "products_affected": len({a.product_id for a in audits}),
        "users_involved": len({a.user_id for a in audits}),
        "earliest_record": to_utc_z(audits[-1].created_at) if audits else None,
        "latest_record": to_utc_z(audits[0].created_at) if audits else None,
    }


def get_audit(audit_id: int) -> InventoryAudit:
    audit = db.session.get(InventoryAudit, audit_id)
    if audit is None:
        raise NotFoundError("Audit record")
    return audit


def product_history(product_id: int, *, limit: int = 100) -> tuple[Product, list[InventoryAudit]]:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product")
    audits, _ = find_with_filters(product_id=product_id, limit=limit)
    return product, audits


def user_history(*, actor: User, user_id: int, limit: int = 100) -> tuple[User, list[InventoryAudit]]:
    """Staff may only read their own history; managers may read anyone's."""
    if not actor.is_manager and actor.id != user_id:
        raise AuthorizationError("You can only view your own audit history")
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User")
    audits, _ = find_with_filters(user_id=user_id, limit=limit)
    return user, audits


def date_range(*, date_from: date | None, date_to: date | None, limit: int = 500) -> list[InventoryAudit]:
    if date_from is None or date_to is None:
        raise ValidationError("Both date_from and date_to are required")
    if date_from > date_to:
        raise ValidationError("date_from cannot be later than date_to")
    audits, _ = find_with_filters(date_from=date_from, date_to=date_to, limit=limit)
    return audits


def daily_summary(days: int = 7) -> list[dict]:
    """Per-day activity for the last `days` days, newest day first."""
    if days < 1 or days > 365:
        raise ValidationError("Days must be between 1 and 365")
    day = func.date(InventoryAudit.created_at)
    rows = (
        db.session.query(
            day.label("day"),
            func.count(InventoryAudit.id),
            func.coalesce(func.sum(_increase), 0),
            func.coalesce(func.sum(_decrease), 0),
            func.count(func.distinct(InventoryAudit.product_id)),
            func.count(func.distinct(InventoryAudit.user_id)),
        )
        .filter(InventoryAudit.created_at >= _since(days))
        .group_by(day)
        .order_by(day.desc())
        .all()
    )
    return [
        {
            "date": str(d),
            "total_changes": int(total),
            "total_increases": int(inc),
            "total_decreases": int(dec),
            "products_affected": int(products),
            "users_involved": int(users),
        }
        for d, total, inc, dec, products, users in rows
    ]


def stats_by_operation_type(days: int | None = None) -> list[dict]:
    query = db.session.query(
        InventoryAudit.operation_type,
        func.count(InventoryAudit.id),
        func.count(func.distinct(InventoryAudit.product_id)),
        func.count(func.distinct(InventoryAudit.user_id)),
        func.coalesce(func.sum(_change), 0),
    )
    since = _since(days)
    if since is not None:
        query = query.filter(InventoryAudit.created_at >= since)
    rows = (
        query.group_by(InventoryAudit.operation_type)
        .order_by(func.count(InventoryAudit.id).desc())
        .all()
    )
    return [
        {
            "operation_type": op,
            "total_operations": int(total),
            "products_affected": int(products),
            "users_involved": int(users),
            "total_quantity_change": int(net),
        }
        for op, total, products, users, net in rows
    ]


def most_active_users(limit: int = 10, days: int | None = None) -> list[dict]:
    query = (
        db.session.query(
            User.id,
            User.username,
            User.role,
            func.count(InventoryAudit.id).label("total_operations"),
            func.count(func.distinct(InventoryAudit.product_id)),
            func.max(InventoryAudit.created_at),
        )
        .join(User, User.id == InventoryAudit.user_id)
    )
    since = _since(days)
    if since is not None:
        query = query.filter(InventoryAudit.created_at >= since)
    rows = (
        query.group_by(User.id, User.username, User.role)
        .order_by(func.count(InventoryAudit.id).desc(), User.username.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "user_id": uid,
            "username": username,
            "role": role,
            "total_operations": int(total),
            "products_affected": int(products),
            "last_activity": to_utc_z(last) if isinstance(last, datetime) else last,
        }
        for uid, username, role, total, products, last in rows
    ]


def most_changed_products(limit: int = 10, days: int | None = None) -> list[dict]:
    query = (
        db.session.query(
            Product.id,
            Product.sku,
            Product.name,
            Product.quantity,
            func.count(InventoryAudit.id).label("total_changes"),
            func.coalesce(func.sum(_change), 0),
        )
        .join(Product, Product.id == InventoryAudit.product_id)
    )
    since = _since(days)
    if since is not None:
        query = query.filter(InventoryAudit.created_at >= since)
    rows = (
        query.group_by(Product.id, Product.sku, Product.name, Product.quantity)
        .order_by(func.count(InventoryAudit.id).desc(), Product.sku.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": pid,
            "sku": sku,
            "name": name,
            "current_quantity": qty,
            "total_changes": int(total),
            "net_change": int(net),
        }
        for pid, sku, name, qty, total, net in rows
    ]


def audit_report(
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    include_details: bool = False,
) -> dict:
    """Combined audit report; defaults to the last 30 days."""
    end = date_to or utcnow().date()
    start = date_from or (end - timedelta(days=30))
    if start > end:
        raise ValidationError("date_from cannot be later than date_to")
    days = max((end - start).days, 1)

    audits, total = find_with_filters(date_from=start, date_to=end, limit=1000)
    summary = summarize(audits)

    report = {
        "report_metadata": {
            "generated_at": to_utc_z(utcnow()),
            "date_range": {"from": start.isoformat(), "to": end.isoformat(), "days": days},
            "includes_details": include_details,
        },
        "summary": {
            "total_audit_records": total,
            "total_stock_increases": summary["total_increases"],
            "total_stock_decreases": summary["total_decreases"],
            "unique_products_affected": summary["products_affected"],
            "unique_users_involved": summary["users_involved"],
        },
        "daily_breakdown": daily_summary(min(days, 365)),
        "operation_analysis": stats_by_operation_type(days),
        "user_activity": most_active_users(5, days),
        "product_activity": most_changed_products(5, days),
    }
    if include_details:
        report["detailed_records"] = [a.to_display() for a in audits]
    return report


def delete_old_records(*, days_old: int = 365) -> int:
    """Retention purge: delete audit rows older than days_old (minimum 30)."""
    if days_old < MIN_RETENTION_DAYS:
        raise ValidationError(f"Cannot delete audit records newer than {MIN_RETENTION_DAYS} days")
    cutoff = utcnow() - timedelta(days=days_old)
    deleted = (
        db.session.query(InventoryAudit)
        .filter(InventoryAudit.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
