# Overview: Service-layer operations for bulk exports; writes CSV/XLSX files under UPLOAD_PATH/exports.

from __future__ import annotations

import csv
import os
from collections import OrderedDict
from datetime import date

from flask import current_app
from openpyxl import Workbook
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import InventoryAudit, Product
from ..time_utils import end_of_day, start_of_day, to_utc_z, utcnow
from .file_storage import EXPORTS_DIR, export_expires_at, storage_dir, timestamp_slug

MAX_EXPORT_ROWS = 10000
FILE_TYPES = ("csv", "xlsx")

# (key, title) pairs; key looks up the row dict, title is the header cell.
PRODUCT_COLUMNS = (
    ("sku", "SKU"),
    ("name", "Product Name"),
    ("description", "Description"),
    ("category", "Category"),
    ("price", "Price"),
    ("quantity", "Quantity"),
    ("reorder_level", "Reorder Level"),
    ("location", "Location"),
    ("created_at", "Created Date"),
    ("updated_at", "Last Updated"),
)
PRODUCT_MINIMAL_COLUMNS = (
    ("sku", "SKU"),
    ("name", "Product Name"),
    ("category", "Category"),
    ("price", "Price"),
    ("quantity", "Quantity"),
)
PRODUCT_AUDIT_COLUMNS = (
    ("last_change_date", "Last Stock Change"),
    ("last_change_user", "Last Changed By"),
    ("total_changes", "Total Changes"),
)
AUDIT_COLUMNS = (
    ("id", "Audit ID"),
    ("product_sku", "Product SKU"),
    ("product_name", "Product Name"),
    ("user_username", "User"),
    ("operation_type", "Operation Type"),
    ("old_quantity", "Old Quantity"),
    ("new_quantity", "New Quantity"),
    ("quantity_change", "Quantity Change"),
    ("reason", "Reason"),
    ("created_at", "Date/Time"),
)
LOW_STOCK_COLUMNS = (
    ("sku", "SKU"),
    ("name", "Product Name"),
    ("category", "Category"),
    ("current_quantity", "Current Quantity"),
    ("reorder_level", "Reorder Level"),
    ("shortage", "Shortage Amount"),
    ("status", "Status"),
    ("suggested_order", "Suggested Order Quantity"),
    ("location", "Location"),
    ("last_updated", "Last Updated"),
)
SUMMARY_COLUMNS = (
    ("category", "Category"),
    ("total_products", "Total Products"),
    ("total_quantity", "Total Quantity"),
    ("total_value", "Total Value"),
    ("average_price", "Average Unit Price"),
    ("low_stock_items", "Low Stock Items"),
    ("out_of_stock_items", "Out of Stock Items"),
)


def _require_file_type(file_type: str | None) -> str:
    file_type = (file_type or "csv").lower()
    if file_type not in FILE_TYPES:
        raise ValidationError(f"file_type must be one of: {', '.join(FILE_TYPES)}")
    return file_type


def write_rows(kind: str, columns, rows: list[dict], file_type: str) -> tuple[str, str]:
    """Write rows to exports/<kind>_<timestamp>.<file_type>. Returns (filename, path)."""
    filename = f"{kind}_{timestamp_slug()}.{file_type}"
    path = os.path.join(storage_dir(EXPORTS_DIR), filename)
    keys = [key for key, _ in columns]
    titles = [title for _, title in columns]

    if file_type == "xlsx":
        wb = Workbook()
        sheet = wb.active
        sheet.title = kind[:31]
        sheet.append(titles)
        for row in rows:
            sheet.append([row.get(k) for k in keys])
        wb.save(path)
    else:
        with open(path, "w", encoding="utf-8", newline="") as fh:
            writer = csv.writer(fh)
            writer.writerow(titles)
            for row in rows:
                writer.writerow(["" if row.get(k) is None else row.get(k) for k in keys])

    current_app.logger.info("Exported %s rows to %s", len(rows), filename)
    return filename, path


def _export_result(filename: str, path: str, record_count: int, summary: dict, metadata: dict) -> dict:
    return {
        "filename": filename,
        "record_count": record_count,
        "download_url": f"/api/bulk/download/{filename}",
        "expires_at": export_expires_at(path),
        "export_summary": summary,
        "metadata": {"exported_at": to_utc_z(utcnow()), **metadata},
    }


def export_products(
    *,
    category: str | None = None,
    low_stock_only: bool = False,
    include_audit_data: bool = False,
    format: str = "standard",
    file_type: str = "csv",
) -> dict:
    if format not in ("standard", "minimal"):
        raise ValidationError("format must be one of: standard, minimal")
    file_type = _require_file_type(file_type)

    query = db.session.query(Product)
    if category:
        query = query.filter(Product.category == category)
    if low_stock_only:
        query = query.filter(Product.quantity <= Product.reorder_level)
    products = query.order_by(Product.sku.asc()).limit(MAX_EXPORT_ROWS).all()
    if not products:
        raise ValidationError("No products found matching the specified criteria")

    audit_stats: dict = {}
    if include_audit_data and format == "standard":
        counts = dict(
            db.session.query(InventoryAudit.product_id, func.count(InventoryAudit.id))
            .filter(InventoryAudit.product_id.in_([p.id for p in products]))
            .group_by(InventoryAudit.product_id)
            .all()
        )
        for p in products:
            latest = (
                db.session.query(InventoryAudit)
                .filter(InventoryAudit.product_id == p.id)
                .order_by(InventoryAudit.created_at.desc(), InventoryAudit.id.desc())
                .first()
            )
            audit_stats[p.id] = {
                "last_change_date": to_utc_z(latest.created_at) if latest else None,
                "last_change_user": latest.user.username if latest and latest.user else None,
                "total_changes": counts.get(p.id, 0),
            }

    rows = []
    for p in products:
        row = {
            "sku": p.sku,
            "name": p.name,
            "description": p.description or "",
            "category": p.category,
            "price": float(p.price),
            "quantity": p.quantity,
            "reorder_level": p.reorder_level,
            "location": p.location or "",
            "created_at": to_utc_z(p.created_at),
            "updated_at": to_utc_z(p.updated_at),
        }
        row.update(audit_stats.get(p.id, {}))
        rows.append(row)

    if format == "minimal":
        columns = PRODUCT_MINIMAL_COLUMNS
    elif include_audit_data:
        columns = PRODUCT_COLUMNS + PRODUCT_AUDIT_COLUMNS
    else:
        columns = PRODUCT_COLUMNS

    filename, path = write_rows("products_export", columns, rows, file_type)
    return _export_result(
        filename,
        path,
        len(rows),
        {
            "total_products": len(rows),
            "categories": sorted({r["category"] for r in rows}),
            "total_value": round(float(sum(p.total_value for p in products)), 2),
            "low_stock_items": sum(1 for p in products if p.is_low_stock),
        },
        {
            "format": format,
            "file_type": file_type,
            "filters_applied": {"category": category, "low_stock_only": low_stock_only},
            "includes_audit_data": include_audit_data,
        },
    )


def export_audit_records(
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    product_id: int | None = None,
    user_id: int | None = None,
    operation_type: str | None = None,
    format: str = "detailed",
    file_type: str = "csv",
) -> dict:
    if format not in ("standard", "detailed"):
        raise ValidationError("format must be one of: standard, detailed")
    file_type = _require_file_type(file_type)
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from cannot be later than date_to")

    query = db.session.query(InventoryAudit)
    if date_from:
        query = query.filter(InventoryAudit.created_at >= start_of_day(date_from))
    if date_to:
        query = query.filter(InventoryAudit.created_at <= end_of_day(date_to))
    if product_id is not None:
        query = query.filter(InventoryAudit.product_id == product_id)
    if user_id is not None:
        query = query.filter(InventoryAudit.user_id == user_id)
    if operation_type:
        query = query.filter(InventoryAudit.operation_type == operation_type)
    audits = (
        query.order_by(InventoryAudit.created_at.desc(), InventoryAudit.id.desc())
        .limit(MAX_EXPORT_ROWS)
        .all()
    )
    if not audits:
        raise ValidationError("No audit records found matching the specified criteria")

    rows = []
    for a in audits:
        rows.append({
            "id": a.id,
            "product_sku": a.product.sku if a.product else "N/A",
            "product_name": a.product.name if a.product else "N/A",
            "user_username": a.user.username if a.user else "N/A",
            "user_role": a.user.role if a.user else "N/A",
            "operation_type": a.operation_type,
            "old_quantity": a.old_quantity,
            "new_quantity": a.new_quantity,
            "quantity_change": a.quantity_change,
            "reason": a.reason or "",
            "created_at": to_utc_z(a.created_at),
        })

    columns = AUDIT_COLUMNS + ((("user_role", "User Role"),) if format == "detailed" else ())
    filename, path = write_rows("audit_export", columns, rows, file_type)
    return _export_result(
        filename,
        path,
        len(rows),
        {
            "total_records": len(rows),
            "date_range": {"earliest": rows[-1]["created_at"], "latest": rows[0]["created_at"]},
            "operation_types": sorted({r["operation_type"] for r in rows}),
            "unique_products": len({a.product_id for a in audits}),
            "unique_users": len({a.user_id for a in audits}),
        },
        {
            "format": format,
            "file_type": file_type,
            "filters_applied": {
                "date_from": date_from.isoformat() if date_from else None,
                "date_to": date_to.isoformat() if date_to else None,
                "product_id": product_id,
                "user_id": user_id,
                "operation_type": operation_type,
            },
        },
    )


def export_low_stock(*, include_out_of_stock: bool = True, file_type: str = "csv") -> dict:
    file_type = _require_file_type(file_type)
    query = db.session.query(Product).filter(Product.quantity <= Product.reorder_level)
    if not include_out_of_stock:
        query = query.filter(Product.quantity > 0)
    products = query.order_by(Product.quantity.asc(), Product.sku.asc()).limit(MAX_EXPORT_ROWS).all()
    if not products:
        raise ValidationError("No low stock products found")

    rows = [
        {
            "sku": p.sku,
            "name": p.name,
            "category": p.category,
            "current_quantity": p.quantity,
            "reorder_level": p.reorder_level,
            "shortage": max(0, p.reorder_level - p.quantity),
            "status": "OUT_OF_STOCK" if p.quantity == 0 else "LOW_STOCK",
            "suggested_order": max(p.reorder_level * 2 - p.quantity, 0),
            "location": p.location or "",
            "last_updated": to_utc_z(p.updated_at),
            "price": p.price,
        }
        for p in products
    ]

    filename, path = write_rows("low_stock_report", LOW_STOCK_COLUMNS, rows, file_type)
    out_of_stock = sum(1 for r in rows if r["status"] == "OUT_OF_STOCK")
    return _export_result(
        filename,
        path,
        len(rows),
        {
            "low_stock_items": len(rows) - out_of_stock,
            "out_of_stock_items": out_of_stock,
            "total_shortage": sum(r["shortage"] for r in rows),
            "categories_affected": sorted({r["category"] for r in rows}),
            "estimated_reorder_cost": round(float(sum(r["suggested_order"] * r["price"] for r in rows)), 2),
            "requires_immediate_action": out_of_stock > 0,
        },
        {"file_type": file_type, "includes_out_of_stock": include_out_of_stock},
    )


def export_inventory_summary(*, file_type: str = "csv") -> dict:
    file_type = _require_file_type(file_type)
    products = db.session.query(Product).order_by(Product.category.asc()).limit(MAX_EXPORT_ROWS).all()
    if not products:
        raise ValidationError("No products found for summary report")

    categories: "OrderedDict[str, dict]" = OrderedDict()
    for p in products:
        cat = categories.setdefault(p.category, {
            "category": p.category,
            "total_products": 0,
            "total_quantity": 0,
            "total_value": 0,
            "low_stock_items": 0,
            "out_of_stock_items": 0,
        })
        cat["total_products"] += 1
        cat["total_quantity"] += p.quantity
        cat["total_value"] += p.total_value
        cat["low_stock_items"] += int(p.is_low_stock)
        cat["out_of_stock_items"] += int(p.is_out_of_stock)

    rows = []
    for cat in categories.values():
        total_value = float(cat["total_value"])
        rows.append({
            **cat,
            "total_value": round(total_value, 2),
            "average_price": round(total_value / cat["total_quantity"], 2) if cat["total_quantity"] else 0,
        })

    filename, path = write_rows("inventory_summary", SUMMARY_COLUMNS, rows, file_type)
    return _export_result(
        filename,
        path,
        len(rows),
        {
            "categories": len(rows),
            "total_products": len(products),
            "total_value": round(sum(r["total_value"] for r in rows), 2),
        },
        {"file_type": file_type},
    )
