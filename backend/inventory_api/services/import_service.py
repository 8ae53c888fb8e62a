# Overview: Service-layer operations for CSV product imports; encapsulates parsing, validation and database work.

"""
CSV import pipeline.

upload -> validate_csv_format (headers, row count, samples)
import -> parse every row, then create/update products in batches.

Rows that fail parsing are reported in validation_errors and never written.
Rows that fail processing (existing SKU without update_existing) are reported
in errors. With skip_errors=False the first processing error rolls back the
whole import.
"""
from __future__ import annotations

import csv
import io
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app

from ..errors import AppError, ValidationError
from ..validation import MAX_PRICE
from ..extensions import db
from ..models import InventoryAudit, Product
from .file_storage import remove_quietly, uploaded_path
from .stock_service import record_quantity_change

REQUIRED_HEADERS = ("sku", "name", "category", "price", "quantity")
OPTIONAL_HEADERS = ("description", "reorder_level", "location", "supplier")
TEMPLATE_HEADERS = (
    "sku", "name", "description", "category", "price",
    "quantity", "reorder_level", "location", "supplier",
)
IMPORT_SKU_PATTERN = re.compile(r"^[A-Z0-9_-]{3,20}$", re.IGNORECASE)
MAX_BATCH_SIZE = 1000

TEMPLATE_SAMPLE_ROWS = (
    {
        "sku": "LAPTOP-001",
        "name": "Dell Laptop XPS 13",
        "description": "High-performance ultrabook with SSD",
        "category": "Electronics",
        "price": "1299.99",
        "quantity": "25",
        "reorder_level": "5",
        "location": "Warehouse A",
        "supplier": "Dell Inc.",
    },
    {
        "sku": "BOOK-002",
        "name": "Python Programming Guide",
        "description": "Comprehensive guide to modern Python",
        "category": "Books",
        "price": "39.99",
        "quantity": "100",
        "reorder_level": "10",
        "location": "Warehouse B",
        "supplier": "Tech Publications",
    },
)

FIELD_DESCRIPTIONS = {
    "sku": "Unique product identifier (3-20 chars, letters/numbers/-/_)",
    "name": "Product name (required)",
    "description": "Product description (optional)",
    "category": "Product category (required)",
    "price": "Product price in decimal format, $ and , are ignored (required)",
    "quantity": "Current stock quantity (required)",
    "reorder_level": "Minimum stock level before reorder (optional, defaults to max(5, 10% of quantity))",
    "location": "Storage location (optional, defaults to 'Unknown')",
    "supplier": "Product supplier (optional, informational only)",
}


def _read_rows(path: str) -> tuple[list[str], list[dict]]:
    with open(path, "r", encoding="utf-8-sig", newline="") as fh:
        stream = io.StringIO(fh.read())
    reader = csv.DictReader(stream, restkey="_extra")
    headers = [h.strip().lower() for h in (reader.fieldnames or [])]
    reader.fieldnames = headers
    try:
        rows = [row for row in reader]
    except csv.Error as exc:
        raise ValidationError(f"CSV parsing error: {exc}")
    return headers, rows


def validate_csv_format(path: str) -> dict:
    """Header and size analysis of an uploaded CSV, with up to 3 sample rows."""
    validation = {
        "valid": True,
        "errors": [],
        "warnings": [],
        "headers": [],
        "sample_rows": [],
        "total_rows": 0,
    }
    try:
        headers, rows = _read_rows(path)
    except (ValidationError, UnicodeDecodeError) as exc:
        validation["valid"] = False
        validation["errors"].append(f"CSV parsing error: {exc}")
        return validation

    validation["headers"] = headers
    missing = [h for h in REQUIRED_HEADERS if h not in headers]
    if missing:
        validation["valid"] = False
        validation["errors"].append(f"Missing required headers: {', '.join(missing)}")

    unknown = [h for h in headers if h not in REQUIRED_HEADERS + OPTIONAL_HEADERS]
    if unknown:
        validation["warnings"].append(f"Unknown headers (will be ignored): {', '.join(unknown)}")

    validation["total_rows"] = len(rows)
    validation["sample_rows"] = rows[:3]
    if not rows:
        validation["valid"] = False
        validation["errors"].append("CSV file is empty")
    return validation


def _text(row: dict, key: str) -> str:
    value = row.get(key)
    return str(value).strip() if value is not None else ""


def _parse_non_negative_int(raw: str, message: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(message)
    if value < 0:
        raise ValidationError(message)
    return value


def parse_row(row: dict) -> dict:
    """Validate one CSV row (headers already lowercased) into product fields."""
    missing = [f for f in REQUIRED_HEADERS if not _text(row, f)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    sku = _text(row, "sku")
    if not IMPORT_SKU_PATTERN.match(sku):
        raise ValidationError(
            "SKU must be 3-20 characters and contain only letters, numbers, hyphens, and underscores"
        )

    name = _text(row, "name")
    category = _text(row, "category")
    if len(name) < 2 or len(name) > 255:
        raise ValidationError("Product name must be between 2 and 255 characters")
    if len(category) < 2 or len(category) > 100:
        raise ValidationError("Category must be between 2 and 100 characters")

    try:
        price = Decimal(_text(row, "price").replace("$", "").replace(",", ""))
    except InvalidOperation:
        raise ValidationError("Price must be a valid non-negative number")
    if not price.is_finite() or price < 0:
        raise ValidationError("Price must be a valid non-negative number")
    if price > MAX_PRICE:
        raise ValidationError(f"Price cannot exceed {MAX_PRICE:,}")

    quantity = _parse_non_negative_int(
        _text(row, "quantity"), "Quantity must be a valid non-negative integer"
    )

    reorder_raw = _text(row, "reorder_level")
    if reorder_raw:
        reorder_level = _parse_non_negative_int(
            reorder_raw, "Reorder level must be a valid non-negative integer"
        )
    else:
        reorder_level = max(5, quantity // 10)

    location = _text(row, "location") or "Unknown"
    if len(location) > 100:
        raise ValidationError("Location cannot exceed 100 characters")

    return {
        "sku": sku.upper(),
        "name": name,
        "description": _text(row, "description") or None,
        "category": category,
        "price": price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        "quantity": quantity,
        "reorder_level": reorder_level,
        "location": location,
    }


def _new_results() -> dict:
    return {
        "total_rows": 0,
        "successful_imports": 0,
        "failed_imports": 0,
        "created_products": 0,
        "updated_products": 0,
        "errors": [],
        "imported_products": [],
        "validation_errors": [],
    }


def _process_product(fields: dict, *, user_id: int, update_existing: bool, results: dict) -> None:
    existing = db.session.query(Product).filter(Product.sku == fields["sku"]).first()

    if existing is not None:
        if not update_existing:
            raise ValidationError(
                f"Product with SKU '{fields['sku']}' already exists. Set update_existing=true to update."
            )
        old_quantity = existing.quantity
        for key, value in fields.items():
            if key != "quantity":
                setattr(existing, key, value)
        if old_quantity != fields["quantity"]:
            record_quantity_change(
                existing,
                fields["quantity"],
                user_id=user_id,
                reason="Bulk CSV import - Product updated",
                operation_type="correction",
            )
        results["updated_products"] += 1
        results["imported_products"].append({
            "action": "updated",
            "sku": fields["sku"],
            "name": fields["name"],
            "old_quantity": old_quantity,
            "new_quantity": fields["quantity"],
        })
    else:
        product = Product(**fields)
        db.session.add(product)
        db.session.flush()
        if product.quantity > 0:
            db.session.add(InventoryAudit(
                product_id=product.id,
                user_id=user_id,
                old_quantity=0,
                new_quantity=product.quantity,
                reason="Bulk CSV import - Product created",
                operation_type="purchase",
            ))
        results["created_products"] += 1
        results["imported_products"].append({
            "action": "created",
            "sku": fields["sku"],
            "name": fields["name"],
            "quantity": fields["quantity"],
        })

    results["successful_imports"] += 1


def _recommendations(results: dict) -> list[str]:
    recommendations = []
    if results["validation_errors"]:
        recommendations.append("Fix the rows listed in validation_errors and re-upload them")
    if results["failed_imports"]:
        recommendations.append("Review the rows listed in errors; existing SKUs need update_existing=true")
    if results["total_rows"] and not results["validation_errors"] and not results["failed_imports"]:
        recommendations.append("All rows processed successfully")
    return recommendations


def import_products(
    *,
    filename: str,
    user_id: int,
    update_existing: bool = False,
    skip_errors: bool = True,
    validate_only: bool = False,
    batch_size: int = 100,
) -> dict:
    path = uploaded_path(filename)
    batch_size = min(max(int(batch_size or 100), 1), MAX_BATCH_SIZE)

    try:
        headers, rows = _read_rows(path)
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded")
    missing = [h for h in REQUIRED_HEADERS if h not in headers]
    if missing:
        raise ValidationError(f"Missing required headers: {', '.join(missing)}")

    results = _new_results()
    parsed: list[tuple[int, dict]] = []
    seen: set[str] = set()
    for row_number, row in enumerate(rows, start=1):
        results["total_rows"] += 1
        try:
            fields = parse_row(row)
        except ValidationError as exc:
            results["validation_errors"].append({"row": row_number, "error": exc.message, "data": row})
            continue
        if fields["sku"] in seen:
            results["validation_errors"].append({
                "row": row_number,
                "error": f"Duplicate SKU '{fields['sku']}' found in CSV file",
                "data": row,
            })
            continue
        seen.add(fields["sku"])
        parsed.append((row_number, fields))

    if validate_only:
        results["validation_summary"] = {
            "valid_rows": len(parsed),
            "invalid_rows": len(results["validation_errors"]),
        }
        results["recommendations"] = _recommendations(results)
        return results

    for start in range(0, len(parsed), batch_size):
        for row_number, fields in parsed[start:start + batch_size]:
            try:
                _process_product(fields, user_id=user_id, update_existing=update_existing, results=results)
            except AppError as exc:
                results["failed_imports"] += 1
                results["errors"].append({"row": row_number, "sku": fields["sku"], "error": exc.message})
                if not skip_errors:
                    db.session.rollback()
                    remove_quietly(path)
                    raise ValidationError(
                        f"Import aborted at row {row_number}: {exc.message}",
                        details={"row": row_number, "sku": fields["sku"]},
                    )
        if skip_errors:
            db.session.commit()
    db.session.commit()

    remove_quietly(path)
    results["recommendations"] = _recommendations(results)
    current_app.logger.info(
        "CSV import %s: %s created, %s updated, %s failed, %s invalid",
        filename,
        results["created_products"],
        results["updated_products"],
        results["failed_imports"],
        len(results["validation_errors"]),
    )
    return results


def template_csv() -> str:
    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=list(TEMPLATE_HEADERS))
    writer.writeheader()
    for row in TEMPLATE_SAMPLE_ROWS:
        writer.writerow(row)
    return out.getvalue()


def template_info() -> dict:
    return {
        "headers": list(TEMPLATE_HEADERS),
        "required_fields": list(REQUIRED_HEADERS),
        "optional_fields": list(OPTIONAL_HEADERS),
        "field_descriptions": FIELD_DESCRIPTIONS,
        "sample_data": list(TEMPLATE_SAMPLE_ROWS),
        "import_guidelines": {
            "file_format": "CSV (.csv)",
            "encoding": "UTF-8",
            "max_file_size_bytes": current_app.config["UPLOAD_MAX_SIZE"],
            "max_batch_size": MAX_BATCH_SIZE,
        },
        "best_practices": [
            "Use validate_only=true first to check for errors",
            "Test with small batches before large imports",
            "Ensure SKUs are unique across your inventory",
        ],
    }
