# Overview: Flask API routes for reports; parses input and returns JSON responses.

"""
Reporting & Analytics routes.

- inventory-valuation and low-stock-alerts: staff and managers
- sales-performance, stock-movement, user-activity, executive-summary: managers
"""

from flask import Blueprint, request

from ..decorators import require_auth, require_manager, require_staff_or_manager
from ..responses import envelope
from ..services import reporting_service
from ..validation import parse_bool, parse_date_param, require_operation_type

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

AVAILABLE_REPORTS = (
    {
        "name": "inventory-valuation",
        "description": "Inventory value by product and category with recommendations",
        "access": "staff, manager",
        "parameters": ["include_zero_value", "group_by_category"],
    },
    {
        "name": "low-stock-alerts",
        "description": "Products at or below reorder level ranked by urgency",
        "access": "staff, manager",
        "parameters": [],
    },
    {
        "name": "sales-performance",
        "description": "Units sold, top products and users, daily trend",
        "access": "manager",
        "parameters": ["date_from", "date_to"],
    },
    {
        "name": "stock-movement",
        "description": "Stock increases and decreases by operation, product and day",
        "access": "manager",
        "parameters": ["date_from", "date_to", "operation_type"],
    },
    {
        "name": "user-activity",
        "description": "Stock operations per user and role",
        "access": "manager",
        "parameters": ["date_from", "date_to"],
    },
    {
        "name": "executive-summary",
        "description": "Key metrics, alerts and recommendations across all reports",
        "access": "manager",
        "parameters": [],
    },
)


def _date_args() -> dict:
    return {
        "date_from": parse_date_param(request.args.get("date_from"), "date_from"),
        "date_to": parse_date_param(request.args.get("date_to"), "date_to"),
    }


@reports_bp.get("")
@require_auth
@require_staff_or_manager
def index_route():
    return envelope(
        {"available_reports": list(AVAILABLE_REPORTS), "date_format": "YYYY-MM-DD"},
        "Available reports retrieved successfully",
    )


@reports_bp.get("/inventory-valuation")
@require_auth
@require_staff_or_manager
def inventory_valuation_route():
    report = reporting_service.inventory_valuation(
        include_zero_value=parse_bool(request.args.get("include_zero_value")),
        group_by_category=parse_bool(request.args.get("group_by_category"), default=True),
    )
    return envelope(report, "Inventory valuation report generated successfully")


@reports_bp.get("/low-stock-alerts")
@require_auth
@require_staff_or_manager
def low_stock_alerts_route():
    return envelope(reporting_service.low_stock_alerts(), "Low stock alert report generated successfully")


@reports_bp.get("/sales-performance")
@require_auth
@require_manager
def sales_performance_route():
    return envelope(
        reporting_service.sales_performance(**_date_args()),
        "Sales performance report generated successfully",
    )


@reports_bp.get("/stock-movement")
@require_auth
@require_manager
def stock_movement_route():
    operation_type = request.args.get("operation_type") or None
    if operation_type is not None:
        require_operation_type(operation_type)
    return envelope(
        reporting_service.stock_movement(operation_type=operation_type, **_date_args()),
        "Stock movement report generated successfully",
    )


@reports_bp.get("/user-activity")
@require_auth
@require_manager
def user_activity_route():
    return envelope(
        reporting_service.user_activity(**_date_args()),
        "User activity report generated successfully",
    )


@reports_bp.get("/executive-summary")
@require_auth
@require_manager
def executive_summary_route():
    return envelope(reporting_service.executive_summary(), "Executive summary generated successfully")
