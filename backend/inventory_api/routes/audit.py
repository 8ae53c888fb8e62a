# Overview: Flask API routes for the inventory audit log; parses input and returns JSON responses.

import math

from flask import Blueprint, request, g, current_app

from ..decorators import require_auth, require_manager, require_staff_or_manager
from ..responses import envelope
from ..services import audit_service
from ..validation import coerce_int, parse_bool, parse_date_param

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


def _optional_int(name: str):
    value = request.args.get(name)
    return coerce_int(name, value) if value not in (None, "") else None


def _optional_days():
    days = _optional_int("days")
    return days if days and days > 0 else None


@audit_bp.get("")
@require_auth
@require_staff_or_manager
def list_audits_route():
    """
    Query params:
    - product_id, user_id, operation_type
    - date_from, date_to: YYYY-MM-DD (date_to inclusive)
    - limit (default 50, max 500), offset (default 0)
    """
    filters = {
        "product_id": _optional_int("product_id"),
        "user_id": _optional_int("user_id"),
        "operation_type": request.args.get("operation_type") or None,
        "date_from": parse_date_param(request.args.get("date_from"), "date_from"),
        "date_to": parse_date_param(request.args.get("date_to"), "date_to"),
    }
    limit = min(request.args.get("limit", 50, type=int), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)

    audits, total = audit_service.find_with_filters(limit=limit, offset=offset, **filters)
    return envelope(
        {
            "audits": [a.to_dict() for a in audits],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "pages": math.ceil(total / limit) if limit else 0,
            },
            "filters": {
                k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in filters.items()
            },
        },
        "Audit records retrieved successfully",
    )


@audit_bp.get("/product/<int:product_id>")
@require_auth
@require_staff_or_manager
def product_history_route(product_id: int):
    product, audits = audit_service.product_history(
        product_id, limit=request.args.get("limit", 100, type=int)
    )
    summary = audit_service.summarize(audits)
    return envelope(
        {
            "product": {"id": product.id, "sku": product.sku, "name": product.name, "quantity": product.quantity},
            "history": [a.to_display() for a in audits],
            "summary": {
                "total_changes": summary["total_changes"],
                "increases": summary["total_increases"],
                "decreases": summary["total_decreases"],
                "earliest": summary["earliest_record"],
                "latest": summary["latest_record"],
            },
        },
        "Product audit history retrieved successfully",
    )


@audit_bp.get("/user/<int:user_id>")
@require_auth
@require_staff_or_manager
def user_history_route(user_id: int):
    user, audits = audit_service.user_history(
        actor=g.current_user, user_id=user_id, limit=request.args.get("limit", 100, type=int)
    )
    return envelope(
        {
            "user": user.to_dict(),
            "history": [a.to_display() for a in audits],
            "summary": audit_service.summarize(audits),
        },
        "User audit history retrieved successfully",
    )


@audit_bp.get("/date-range")
@require_auth
@require_staff_or_manager
def date_range_route():
    date_from = parse_date_param(request.args.get("date_from"), "date_from")
    date_to = parse_date_param(request.args.get("date_to"), "date_to")
    audits = audit_service.date_range(
        date_from=date_from, date_to=date_to, limit=request.args.get("limit", 500, type=int)
    )
    return envelope(
        {
            "date_range": {
                "from": date_from.isoformat() if date_from else None,
                "to": date_to.isoformat() if date_to else None,
            },
            "audits": [a.to_dict() for a in audits],
            "summary": audit_service.summarize(audits),
        },
        "Audit records retrieved successfully",
    )


@audit_bp.get("/daily-summary")
@require_auth
@require_staff_or_manager
def daily_summary_route():
    days = request.args.get("days", 7, type=int)
    return envelope(
        {"days": days, "daily_summary": audit_service.daily_summary(days)},
        "Daily audit summary retrieved successfully",
    )


@audit_bp.get("/stats/operations")
@require_auth
@require_staff_or_manager
def operation_stats_route():
    days = _optional_days()
    return envelope(
        {"days": days, "operations": audit_service.stats_by_operation_type(days)},
        "Operation statistics retrieved successfully",
    )


@audit_bp.get("/stats/users")
@require_auth
@require_staff_or_manager
def active_users_route():
    days = _optional_days()
    limit = min(request.args.get("limit", 10, type=int), 100)
    return envelope(
        {"days": days, "users": audit_service.most_active_users(limit, days)},
        "Most active users retrieved successfully",
    )


@audit_bp.get("/stats/products")
@require_auth
@require_staff_or_manager
def changed_products_route():
    days = _optional_days()
    limit = min(request.args.get("limit", 10, type=int), 100)
    return envelope(
        {"days": days, "products": audit_service.most_changed_products(limit, days)},
        "Most changed products retrieved successfully",
    )


@audit_bp.get("/report")
@require_auth
@require_staff_or_manager
def report_route():
    report = audit_service.audit_report(
        date_from=parse_date_param(request.args.get("date_from"), "date_from"),
        date_to=parse_date_param(request.args.get("date_to"), "date_to"),
        include_details=parse_bool(request.args.get("include_details")),
    )
    return envelope(report, "Audit report generated successfully")


@audit_bp.delete("/cleanup")
@require_auth
@require_manager
def cleanup_route():
    days_old = request.args.get("days_old", current_app.config["AUDIT_RETENTION_DAYS"], type=int)
    deleted = audit_service.delete_old_records(days_old=days_old)
    current_app.logger.info("Audit cleanup by %s removed %s records", g.current_user.username, deleted)
    return envelope({"deleted_count": deleted, "days_old": days_old}, "Old audit records cleaned up successfully")


@audit_bp.get("/<int:audit_id>")
@require_auth
@require_staff_or_manager
def get_audit_route(audit_id: int):
    return envelope(audit_service.get_audit(audit_id).to_display(), "Audit record retrieved successfully")
