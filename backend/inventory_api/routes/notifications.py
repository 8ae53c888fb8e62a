# Overview: Flask API routes for stock notifications; parses input and returns JSON responses.

from flask import Blueprint, request

from ..decorators import require_auth, require_manager, require_staff_or_manager
from ..responses import PageOptions, envelope
from ..services import notification_service
from ..validation import ValidationError, coerce_int, parse_bool

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


@notifications_bp.get("")
@require_auth
@require_staff_or_manager
def list_notifications_route():
    """
    Query params:
    - unread_only: bool
    - type: low_stock|out_of_stock|reorder_required
    - product_id: int
    - page, take, order
    """
    page = PageOptions.from_args(request.args)
    product_id = request.args.get("product_id")
    notifications, total = notification_service.list_notifications(
        unread_only=parse_bool(request.args.get("unread_only")),
        notification_type=request.args.get("type") or None,
        product_id=coerce_int("product_id", product_id) if product_id else None,
        offset=page.offset,
        limit=page.limit,
        descending=page.descending,
    )
    summary = {
        "total": total,
        "unread": notification_service.unread_count(),
        "critical": notification_service.unread_count("out_of_stock"),
    }
    return envelope(
        [n.to_dict() for n in notifications],
        "Notifications retrieved successfully",
        page=page,
        total=total,
        extra={"summary": summary},
    )


@notifications_bp.post("")
@require_auth
@require_manager
def create_notification_route():
    payload = _json_body()
    if payload.get("product_id") is None:
        raise ValidationError("product_id is required")
    notification = notification_service.create_notification(
        product_id=coerce_int("product_id", payload["product_id"]),
        message=payload.get("message"),
        notification_type=payload.get("type"),
    )
    return envelope(notification.to_dict(), "Notification created successfully", 201)


@notifications_bp.get("/unread-count")
@require_auth
@require_staff_or_manager
def unread_count_route():
    notification_type = request.args.get("type") or None
    return envelope(
        {"unread_count": notification_service.unread_count(notification_type), "type": notification_type},
        "Unread count retrieved successfully",
    )


@notifications_bp.get("/recent")
@require_auth
@require_staff_or_manager
def recent_route():
    notifications = notification_service.recent(
        limit=request.args.get("limit", 10, type=int),
        unread_only=parse_bool(request.args.get("unread_only")),
    )
    return envelope([n.to_dict() for n in notifications], "Recent notifications retrieved successfully")


@notifications_bp.get("/stats")
@require_auth
@require_staff_or_manager
def stats_route():
    return envelope(notification_service.stats_by_type(), "Notification statistics retrieved successfully")


@notifications_bp.put("/mark-read")
@require_auth
@require_staff_or_manager
def mark_multiple_route():
    payload = _json_body()
    updated = notification_service.mark_multiple_as_read(payload.get("ids"))
    return envelope({"updated_count": updated}, f"{updated} notifications marked as read")


@notifications_bp.put("/mark-all-read")
@require_auth
@require_staff_or_manager
def mark_all_route():
    payload = _json_body()
    notification_type = payload.get("type") or request.args.get("type") or None
    updated = notification_service.mark_all_as_read(notification_type)
    return envelope({"updated_count": updated, "type": notification_type}, "All notifications marked as read")


@notifications_bp.get("/product/<int:product_id>")
@require_auth
@require_staff_or_manager
def by_product_route(product_id: int):
    product, notifications = notification_service.for_product(
        product_id, unread_only=parse_bool(request.args.get("unread_only"))
    )
    return envelope(
        {
            "product": {"id": product.id, "sku": product.sku, "name": product.name},
            "notifications": [n.to_dict() for n in notifications],
            "count": len(notifications),
        },
        "Product notifications retrieved successfully",
    )


@notifications_bp.delete("/cleanup")
@require_auth
@require_manager
def cleanup_route():
    days_old = request.args.get("days_old", 30, type=int)
    deleted = notification_service.delete_old_read(days_old=days_old)
    return envelope({"deleted_count": deleted, "days_old": days_old}, "Old notifications cleaned up successfully")


@notifications_bp.get("/<int:notification_id>")
@require_auth
@require_staff_or_manager
def get_notification_route(notification_id: int):
    notification = notification_service.get_notification(notification_id)
    return envelope(notification.to_dict(), "Notification retrieved successfully")


@notifications_bp.put("/<int:notification_id>/read")
@require_auth
@require_staff_or_manager
def mark_read_route(notification_id: int):
    notification = notification_service.mark_as_read(notification_id)
    return envelope(notification.to_dict(), "Notification marked as read")


@notifications_bp.delete("/<int:notification_id>")
@require_auth
@require_manager
def delete_notification_route(notification_id: int):
    notification_service.delete_notification(notification_id)
    return envelope({"id": notification_id}, "Notification deleted successfully")
