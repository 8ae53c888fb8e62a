# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal

from ..errors import ValidationError
from ..extensions import db
from ..models import InventoryAudit, Notification, Product, User
from ..time_utils import end_of_day, start_of_day, to_utc_z, utcnow

MAX_ROWS = 10000


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""


def _resolve_range(date_from: date | None, date_to: date | None, default_days: int) -> tuple[date, date]:
    end = date_to or utcnow().date()
    start = date_from or (end - timedelta(days=default_days))
    if start > end:
        raise ReportError("date_from cannot be later than date_to")
    return start, end


def _audits_between(start: date, end: date, operation_type: str | None = None) -> list[InventoryAudit]:
    query = db.session.query(InventoryAudit).filter(
        InventoryAudit.created_at >= start_of_day(start),
        InventoryAudit.created_at <= end_of_day(end),
    )
    if operation_type:
        query = query.filter(InventoryAudit.operation_type == operation_type)
    return (
        query.order_by(InventoryAudit.created_at.desc(), InventoryAudit.id.desc())
        .limit(MAX_ROWS)
        .all()
    )


def _day_key(audit: InventoryAudit) -> str:
    return audit.created_at.date().isoformat()


def _money(value) -> float:
    return round(float(value), 2)


def _pct(part, whole) -> float:
    return round(float(part) / float(whole) * 100, 1) if whole else 0


# ---------------------------------------------------------------------------
# Inventory valuation
# ---------------------------------------------------------------------------

def inventory_valuation(*, include_zero_value: bool = False, group_by_category: bool = True) -> dict:
    query = db.session.query(Product)
    if not include_zero_value:
        query = query.filter(Product.quantity > 0)
    products = query.order_by(Product.category.asc(), Product.name.asc()).all()

    items = []
    for p in products:
        value = p.total_value
        items.append({
            "id": p.id,
            "sku": p.sku,
            "name": p.name,
            "category": p.category,
            "quantity": p.quantity,
            "unit_price": _money(p.price),
            "total_value": _money(value),
            "reorder_level": p.reorder_level,
            "is_low_stock": p.is_low_stock,
            "is_out_of_stock": p.is_out_of_stock,
            "low_stock_value": _money(value if p.is_low_stock else 0),
            "location": p.location or "Unknown",
        })

    total_value = sum(Decimal(str(i["total_value"])) for i in items)
    summary = {
        "total_products": len(items),
        "total_inventory_value": _money(total_value),
        "total_quantity": sum(i["quantity"] for i in items),
        "low_stock_items": sum(1 for i in items if i["is_low_stock"]),
        "out_of_stock_items": sum(1 for i in items if i["is_out_of_stock"]),
        "low_stock_value": _money(sum(Decimal(str(i["low_stock_value"])) for i in items)),
        "average_unit_value": _money(total_value / len(items)) if items else 0,
        "highest_value_product": (
            max(items, key=lambda i: i["total_value"])["sku"] if items else None
        ),
    }

    categories: dict = {}
    if group_by_category:
        for i in items:
            cat = categories.setdefault(i["category"], {
                "category": i["category"],
                "total_items": 0,
                "total_quantity": 0,
                "total_value": 0.0,
                "low_stock_items": 0,
                "out_of_stock_items": 0,
            })
            cat["total_items"] += 1
            cat["total_quantity"] += i["quantity"]
            cat["total_value"] = _money(cat["total_value"] + i["total_value"])
            cat["low_stock_items"] += int(i["is_low_stock"])
            cat["out_of_stock_items"] += int(i["is_out_of_stock"])
        for cat in categories.values():
            cat["value_percentage"] = _pct(cat["total_value"], summary["total_inventory_value"])

    return {
        "report_type": "inventory_valuation",
        "generated_at": to_utc_z(utcnow()),
        "summary": summary,
        "category_breakdown": categories,
        "detailed_items": items,
        "recommendations": _inventory_recommendations(summary),
        "performance_metrics": {
            "stock_health_percentage": _pct(
                summary["total_products"] - summary["low_stock_items"], summary["total_products"]
            ),
            "low_stock_value_percentage": _pct(summary["low_stock_value"], summary["total_inventory_value"]),
            "categories_count": len({i["category"] for i in items}),
        },
    }


def _inventory_recommendations(summary: dict) -> list[dict]:
    recommendations = []
    if summary["out_of_stock_items"] > 0:
        recommendations.append({
            "priority": "critical",
            "type": "restock",
            "message": f"{summary['out_of_stock_items']} products are out of stock and need immediate restocking.",
            "action": "Review out-of-stock items and place urgent orders",
        })
    if summary["low_stock_items"] > 5:
        recommendations.append({
            "priority": "high",
            "type": "reorder",
            "message": f"{summary['low_stock_items']} products are running low on stock.",
            "action": "Plan restock orders for low-stock items",
        })
    if summary["low_stock_value"] > summary["total_inventory_value"] * 0.1:
        recommendations.append({
            "priority": "medium",
            "type": "optimization",
            "message": "Low stock items represent significant inventory value.",
            "action": "Review reorder levels and purchasing strategies",
        })
    return recommendations


# ---------------------------------------------------------------------------
# Sales performance
# ---------------------------------------------------------------------------

def sales_performance(*, date_from: date | None = None, date_to: date | None = None) -> dict:
    start, end = _resolve_range(date_from, date_to, 30)
    sales = [a for a in _audits_between(start, end, "sale") if a.quantity_change < 0]

    by_product: dict = {}
    by_user: dict = {}
    by_day: dict = {}
    for sale in sales:
        sold = abs(sale.quantity_change)
        product = by_product.setdefault(sale.product_id, {
            "product_id": sale.product_id,
            "product_sku": sale.product.sku if sale.product else "Unknown",
            "product_name": sale.product.name if sale.product else "Unknown",
            "total_quantity_sold": 0,
            "total_sales_count": 0,
            "last_sale_date": to_utc_z(sale.created_at),
        })
        product["total_quantity_sold"] += sold
        product["total_sales_count"] += 1

        user = by_user.setdefault(sale.user_id, {
            "user_id": sale.user_id,
            "username": sale.user.username if sale.user else "Unknown",
            "total_quantity_sold": 0,
            "total_sales_count": 0,
            "products": set(),
        })
        user["total_quantity_sold"] += sold
        user["total_sales_count"] += 1
        user["products"].add(sale.product_id)

        day = by_day.setdefault(_day_key(sale), {
            "date": _day_key(sale),
            "total_quantity_sold": 0,
            "total_sales_count": 0,
            "products": set(),
            "users": set(),
        })
        day["total_quantity_sold"] += sold
        day["total_sales_count"] += 1
        day["products"].add(sale.product_id)
        day["users"].add(sale.user_id)

    top_products = sorted(by_product.values(), key=lambda p: -p["total_quantity_sold"])[:20]
    top_users = sorted(
        ({**{k: v for k, v in u.items() if k != "products"}, "unique_products": len(u["products"])}
         for u in by_user.values()),
        key=lambda u: -u["total_quantity_sold"],
    )[:10]
    daily = sorted(
        ({
            "date": d["date"],
            "total_quantity_sold": d["total_quantity_sold"],
            "total_sales_count": d["total_sales_count"],
            "unique_products": len(d["products"]),
            "unique_users": len(d["users"]),
        } for d in by_day.values()),
        key=lambda d: d["date"],
    )

    total_sold = sum(abs(s.quantity_change) for s in sales)
    return {
        "report_type": "sales_performance",
        "date_range": {"from": start.isoformat(), "to": end.isoformat()},
        "generated_at": to_utc_z(utcnow()),
        "summary": {
            "total_quantity_sold": total_sold,
            "total_sales_transactions": len(sales),
            "unique_products_sold": len(by_product),
            "unique_users_involved": len(by_user),
            "average_daily_sales": round(total_sold / len(daily), 2) if daily else 0,
            "peak_sales_day": max(daily, key=lambda d: d["total_quantity_sold"]) if daily else None,
        },
        "top_selling_products": top_products,
        "top_performing_users": top_users,
        "daily_breakdown": daily,
        "trends": sales_trend(daily),
    }


def sales_trend(daily: list[dict]) -> dict | None:
    """
    Compare the average of the last 7 daily entries with the 7 before them.

    Direction is 'increasing' / 'decreasing' beyond +/-5%, else 'stable'.
    """
    if len(daily) < 2:
        return None
    recent = daily[-7:]
    previous = daily[-14:-7]
    recent_avg = sum(d["total_quantity_sold"] for d in recent) / len(recent)
    previous_avg = (
        sum(d["total_quantity_sold"] for d in previous) / len(previous) if previous else recent_avg
    )
    trend = ((recent_avg - previous_avg) / previous_avg * 100) if previous_avg > 0 else 0
    if trend > 5:
        direction = "increasing"
    elif trend < -5:
        direction = "decreasing"
    else:
        direction = "stable"
    return {
        "recent_average": round(recent_avg, 2),
        "previous_average": round(previous_avg, 2),
        "trend_percentage": round(trend, 1),
        "trend_direction": direction,
    }


# ---------------------------------------------------------------------------
# Stock movement
# ---------------------------------------------------------------------------

def _movement_bucket() -> dict:
    return {
        "total_movements": 0,
        "total_increase": 0,
        "total_decrease": 0,
        "net_change": 0,
        "products": set(),
        "users": set(),
        "operation_types": set(),
    }


def _add_movement(bucket: dict, audit: InventoryAudit) -> None:
    change = audit.quantity_change
    bucket["total_movements"] += 1
    if change > 0:
        bucket["total_increase"] += change
    else:
        bucket["total_decrease"] += abs(change)
    bucket["net_change"] += change
    bucket["products"].add(audit.product_id)
    bucket["users"].add(audit.user_id)
    bucket["operation_types"].add(audit.operation_type)


def _flatten(bucket: dict, **extra) -> dict:
    return {
        **extra,
        "total_movements": bucket["total_movements"],
        "total_increase": bucket["total_increase"],
        "total_decrease": bucket["total_decrease"],
        "net_change": bucket["net_change"],
        "unique_products": len(bucket["products"]),
        "unique_users": len(bucket["users"]),
        "operation_types": sorted(bucket["operation_types"]),
    }


def stock_movement(
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    operation_type: str | None = None,
) -> dict:
    start, end = _resolve_range(date_from, date_to, 7)
    movements = _audits_between(start, end, operation_type)

    by_type: dict = defaultdict(_movement_bucket)
    by_product: dict = defaultdict(_movement_bucket)
    by_user: dict = defaultdict(_movement_bucket)
    by_day: dict = defaultdict(_movement_bucket)
    labels: dict = {}
    for m in movements:
        _add_movement(by_type[m.operation_type], m)
        _add_movement(by_product[m.product_id], m)
        _add_movement(by_user[m.user_id], m)
        _add_movement(by_day[_day_key(m)], m)
        if m.product_id not in labels and m.product is not None:
            labels[m.product_id] = (m.product.sku, m.product.name)
        if ("user", m.user_id) not in labels and m.user is not None:
            labels[("user", m.user_id)] = m.user.username

    operations = sorted(
        (_flatten(b, operation_type=op) for op, b in by_type.items()),
        key=lambda o: -o["total_movements"],
    )
    products = sorted(
        (_flatten(
            b,
            product_id=pid,
            product_sku=labels.get(pid, ("Unknown",))[0],
            product_name=labels.get(pid, ("", "Unknown"))[1],
        ) for pid, b in by_product.items()),
        key=lambda p: -p["total_movements"],
    )[:20]
    users = sorted(
        (_flatten(b, user_id=uid, username=labels.get(("user", uid), "Unknown")) for uid, b in by_user.items()),
        key=lambda u: -u["total_movements"],
    )[:10]
    daily = sorted((_flatten(b, date=d) for d, b in by_day.items()), key=lambda d: d["date"])

    total_increase = sum(m.quantity_change for m in movements if m.quantity_change > 0)
    total_decrease = sum(-m.quantity_change for m in movements if m.quantity_change < 0)

    insights = []
    if operations:
        insights.append(f"{operations[0]['operation_type']} operations account for the majority of stock movements")
    if products:
        insights.append(
            f"Product {products[0]['product_sku']} had the most stock movements "
            f"with {products[0]['total_movements']} transactions"
        )
    if daily:
        avg = sum(d["total_movements"] for d in daily) / len(daily)
        insights.append(f"Average daily stock movements: {avg:.1f} transactions")

    return {
        "report_type": "stock_movement",
        "date_range": {"from": start.isoformat(), "to": end.isoformat()},
        "operation_filter": operation_type or "all",
        "generated_at": to_utc_z(utcnow()),
        "summary": {
            "total_movements": len(movements),
            "total_stock_increase": total_increase,
            "total_stock_decrease": total_decrease,
            "net_stock_change": total_increase - total_decrease,
            "unique_products_affected": len(by_product),
            "unique_users_involved": len(by_user),
            "operation_types_used": len(by_type),
        },
        "operation_breakdown": operations,
        "most_active_products": products,
        "most_active_users": users,
        "daily_breakdown": daily,
        "insights": insights,
    }


# ---------------------------------------------------------------------------
# User activity
# ---------------------------------------------------------------------------

def user_activity(*, date_from: date | None = None, date_to: date | None = None) -> dict:
    start, end = _resolve_range(date_from, date_to, 30)
    users = db.session.query(User).order_by(User.id.asc()).all()
    activities = _audits_between(start, end)

    per_user = {
        u.id: {
            "user_id": u.id,
            "username": u.username,
            "role": u.role,
            "total_activities": 0,
            "activities_by_type": defaultdict(int),
            "products": set(),
            "days": defaultdict(int),
            "first_activity": None,
            "last_activity": None,
        }
        for u in users
    }
    daily: dict = {}
    for a in activities:
        entry = per_user.get(a.user_id)
        if entry is not None:
            entry["total_activities"] += 1
            entry["activities_by_type"][a.operation_type] += 1
            entry["products"].add(a.product_id)
            entry["days"][_day_key(a)] += 1
            if entry["first_activity"] is None or a.created_at < entry["first_activity"]:
                entry["first_activity"] = a.created_at
            if entry["last_activity"] is None or a.created_at > entry["last_activity"]:
                entry["last_activity"] = a.created_at

        day = daily.setdefault(_day_key(a), {
            "date": _day_key(a), "total_activities": 0, "users": set(), "products": set(),
        })
        day["total_activities"] += 1
        day["users"].add(a.user_id)
        day["products"].add(a.product_id)

    rankings = []
    for entry in per_user.values():
        days = entry["days"]
        rankings.append({
            "user_id": entry["user_id"],
            "username": entry["username"],
            "role": entry["role"],
            "total_activities": entry["total_activities"],
            "activities_by_type": dict(entry["activities_by_type"]),
            "unique_products_affected": len(entry["products"]),
            "first_activity": to_utc_z(entry["first_activity"]),
            "last_activity": to_utc_z(entry["last_activity"]),
            "most_active_day": max(days, key=days.get) if days else None,
            "average_daily_activities": round(entry["total_activities"] / len(days), 2) if days else 0,
        })
    rankings.sort(key=lambda r: -r["total_activities"])

    daily_rows = sorted(
        ({
            "date": d["date"],
            "total_activities": d["total_activities"],
            "active_users": len(d["users"]),
            "unique_products": len(d["products"]),
        } for d in daily.values()),
        key=lambda d: d["date"],
    )

    roles: dict = {}
    for r in rankings:
        role = roles.setdefault(r["role"], {
            "role": r["role"], "total_users": 0, "active_users": 0, "total_activities": 0,
        })
        role["total_users"] += 1
        if r["total_activities"] > 0:
            role["active_users"] += 1
            role["total_activities"] += r["total_activities"]
    for role in roles.values():
        role["average_activities"] = (
            round(role["total_activities"] / role["active_users"], 2) if role["active_users"] else 0
        )

    active = [r for r in rankings if r["total_activities"] > 0]
    return {
        "report_type": "user_activity",
        "date_range": {"from": start.isoformat(), "to": end.isoformat()},
        "generated_at": to_utc_z(utcnow()),
        "summary": {
            "total_users": len(users),
            "active_users": len(active),
            "inactive_users": len(users) - len(active),
            "total_activities": len(activities),
            "average_activities_per_user": round(len(activities) / len(active), 2) if active else 0,
            "most_active_user": (
                {"username": active[0]["username"], "activities": active[0]["total_activities"]}
                if active else None
            ),
            "peak_activity_day": max(daily_rows, key=lambda d: d["total_activities"]) if daily_rows else None,
        },
        "user_rankings": rankings[:20],
        "daily_activity_breakdown": daily_rows,
        "role_analysis": list(roles.values()),
    }


# ---------------------------------------------------------------------------
# Low stock alerts
# ---------------------------------------------------------------------------

def urgency_score(quantity: int, reorder_level: int) -> float:
    """100 when out of stock, otherwise shortage/reorder_level scaled to at most 90."""
    if quantity == 0:
        return 100.0
    if reorder_level <= 0:
        return 0.0
    shortage = max(0, reorder_level - quantity)
    return round(min(90.0, shortage / reorder_level * 90), 1)


def recommended_order_quantity(quantity: int, reorder_level: int) -> int:
    return max(reorder_level * 2 - quantity, 0)


def estimate_stockout_days(quantity: int, reorder_level: int) -> int:
    """Rough estimate: assumes daily consumption of 10% of the reorder level."""
    if quantity == 0:
        return 0
    daily_consumption = (reorder_level * 0.1) or 1
    return int(quantity // daily_consumption)


def low_stock_alerts() -> dict:
    products = (
        db.session.query(Product)
        .filter(Product.quantity <= Product.reorder_level)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )

    ranking = []
    categories: dict = {}
    for p in products:
        shortage = max(0, p.reorder_level - p.quantity)
        ranking.append({
            **p.to_dict(),
            "shortage_amount": shortage,
            "urgency_score": urgency_score(p.quantity, p.reorder_level),
            "estimated_stockout_days": estimate_stockout_days(p.quantity, p.reorder_level),
            "recommended_order_quantity": recommended_order_quantity(p.quantity, p.reorder_level),
        })
        cat = categories.setdefault(p.category, {
            "category": p.category,
            "total_items": 0,
            "critical_items": 0,
            "warning_items": 0,
            "total_shortage": 0,
            "estimated_reorder_cost": 0.0,
        })
        cat["total_items"] += 1
        if p.quantity == 0:
            cat["critical_items"] += 1
        else:
            cat["warning_items"] += 1
        cat["total_shortage"] += shortage
        cat["estimated_reorder_cost"] = _money(Decimal(str(cat["estimated_reorder_cost"])) + shortage * p.price)

    ranking.sort(key=lambda r: -r["urgency_score"])
    category_rows = sorted(categories.values(), key=lambda c: -c["critical_items"])

    critical = [r for r in ranking if r["urgency_score"] >= 100]
    high = [r for r in ranking if 70 <= r["urgency_score"] < 100]
    medium = [r for r in ranking if r["urgency_score"] < 70]

    recommendations = []
    if critical:
        recommendations.append({
            "priority": "immediate",
            "action": "emergency_restock",
            "message": f"{len(critical)} products are completely out of stock",
            "items": [r["sku"] for r in critical[:5]],
        })
    if high:
        recommendations.append({
            "priority": "urgent",
            "action": "priority_restock",
            "message": f"{len(high)} products need urgent restocking",
            "items": [r["sku"] for r in high[:10]],
        })
    critical_categories = [c["category"] for c in category_rows if c["critical_items"] > 0]
    if critical_categories:
        recommendations.append({
            "priority": "high",
            "action": "category_review",
            "message": f"{len(critical_categories)} categories have critical stock issues",
            "categories": critical_categories,
        })

    unread = (
        db.session.query(Notification)
        .filter(Notification.is_read.is_(False), Notification.type.in_(("low_stock", "out_of_stock")))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(20)
        .all()
    )

    return {
        "report_type": "low_stock_alert",
        "generated_at": to_utc_z(utcnow()),
        "summary": {
            "total_low_stock_items": len(ranking),
            "critical_items": len(critical),
            "high_urgency_items": len(high),
            "medium_urgency_items": len(medium),
            "categories_affected": len(categories),
            "total_estimated_shortage_value": _money(
                sum((Decimal(r["shortage_amount"]) * Decimal(str(r["price"])) for r in ranking), Decimal("0"))
            ),
            "requires_immediate_action": bool(critical),
        },
        "urgency_ranking": ranking[:50],
        "category_breakdown": category_rows,
        "recent_notifications": [n.to_dict() for n in unread],
        "action_recommendations": recommendations,
    }


# ---------------------------------------------------------------------------
# Executive summary
# ---------------------------------------------------------------------------

def executive_summary() -> dict:
    valuation = inventory_valuation(include_zero_value=True, group_by_category=True)
    alerts = low_stock_alerts()
    sales = sales_performance()
    movement = stock_movement()

    v = valuation["summary"]
    a = alerts["summary"]
    s = sales["summary"]
    m = movement["summary"]

    kpis = {
        "total_inventory_value": v["total_inventory_value"],
        "total_products": v["total_products"],
        "stock_health_percentage": valuation["performance_metrics"]["stock_health_percentage"],
        "items_needing_attention": a["total_low_stock_items"],
        "units_sold_30_days": s["total_quantity_sold"],
        "stock_movements_7_days": m["total_movements"],
        "net_stock_change_7_days": m["net_stock_change"],
    }

    critical_alerts = []
    if a["critical_items"] > 0:
        critical_alerts.append({
            "level": "critical",
            "message": f"{a['critical_items']} products are out of stock",
        })
    if a["high_urgency_items"] > 0:
        critical_alerts.append({
            "level": "warning",
            "message": f"{a['high_urgency_items']} products are close to running out",
        })
    trend = sales["trends"]
    if trend and trend["trend_direction"] == "decreasing":
        critical_alerts.append({
            "level": "info",
            "message": f"Sales volume is down {abs(trend['trend_percentage'])}% versus the previous week",
        })

    return {
        "report_type": "executive_summary",
        "generated_at": to_utc_z(utcnow()),
        "key_metrics": kpis,
        "critical_alerts": critical_alerts,
        "inventory_overview": v,
        "stock_alerts_overview": a,
        "sales_overview": {**s, "trends": trend},
        "movement_overview": m,
        "top_recommendations": (
            alerts["action_recommendations"] + valuation["recommendations"]
        )[:5],
    }
