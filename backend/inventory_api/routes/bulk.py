# Overview: Flask API routes for bulk CSV import/export; parses input and returns JSON or file responses.

"""
Bulk operations.

Import flow: POST /upload (multipart "file") -> POST /import {filename}.
Export flow: POST /export/<kind> -> GET /download/<filename> within
EXPORT_RETENTION_HOURS.
"""

import io

from flask import Blueprint, request, g, send_file

from ..decorators import require_auth, require_manager, require_staff_or_manager
from ..responses import envelope
from ..services import export_service, import_service, maintenance_service
from ..services.file_storage import remove_quietly, resolve_download, save_upload
from ..time_utils import to_utc_z, utcnow
from ..validation import ValidationError, coerce_int, parse_bool, parse_date_param

bulk_bp = Blueprint("bulk", __name__, url_prefix="/api/bulk")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


@bulk_bp.post("/upload")
@require_auth
@require_staff_or_manager
def upload_route():
    file = request.files.get("file")
    if file is None or not file.filename:
        raise ValidationError("No CSV file uploaded")

    filename, path = save_upload(file)
    try:
        validation = import_service.validate_csv_format(path)
    except Exception:
        remove_quietly(path)
        raise

    return envelope(
        {
            "file_info": {
                "original_name": file.filename,
                "filename": filename,
                "uploaded_at": to_utc_z(utcnow()),
            },
            "validation": validation,
            "next_steps": {
                "preview": "POST /api/bulk/import with validate_only=true to preview the import",
                "import": "POST /api/bulk/import to perform the import",
                "template": "GET /api/bulk/template to download the CSV template",
            },
        },
        "CSV file uploaded and validated successfully",
    )


@bulk_bp.post("/import")
@require_auth
@require_staff_or_manager
def import_route():
    """
    Body:
    - filename: name returned by /upload (required)
    - update_existing: bool (default false)
    - skip_errors: bool (default true)
    - validate_only: bool (default false)
    - batch_size: int (default 100)
    """
    data = _json_body()
    validate_only = parse_bool(data.get("validate_only"))
    results = import_service.import_products(
        filename=data.get("filename"),
        user_id=g.current_user.id,
        update_existing=parse_bool(data.get("update_existing")),
        skip_errors=parse_bool(data.get("skip_errors"), default=True),
        validate_only=validate_only,
        batch_size=coerce_int("batch_size", data.get("batch_size", 100)),
    )
    success_rate = (
        round(results["successful_imports"] / results["total_rows"] * 100, 1) if results["total_rows"] else 0
    )
    return envelope(
        {"import_results": results, "performance": {"success_rate": success_rate}},
        "CSV validation completed successfully" if validate_only else "Product import completed successfully",
    )


@bulk_bp.get("/template")
@require_auth
@require_staff_or_manager
def template_route():
    content = import_service.template_csv().encode("utf-8")
    return send_file(
        io.BytesIO(content),
        mimetype="text/csv",
        as_attachment=True,
        download_name="product_import_template.csv",
    )


@bulk_bp.get("/template/info")
@require_auth
@require_staff_or_manager
def template_info_route():
    return envelope(import_service.template_info(), "Import template information retrieved successfully")


@bulk_bp.post("/export/products")
@require_auth
@require_staff_or_manager
def export_products_route():
    data = _json_body()
    result = export_service.export_products(
        category=data.get("category") or None,
        low_stock_only=parse_bool(data.get("low_stock_only")),
        include_audit_data=parse_bool(data.get("include_audit_data")),
        format=data.get("format") or "standard",
        file_type=data.get("file_type") or "csv",
    )
    return envelope(result, "Product export completed successfully")


@bulk_bp.post("/export/audit")
@require_auth
@require_staff_or_manager
def export_audit_route():
    data = _json_body()
    product_id = data.get("product_id")
    user_id = data.get("user_id")
    result = export_service.export_audit_records(
        date_from=parse_date_param(data.get("date_from"), "date_from"),
        date_to=parse_date_param(data.get("date_to"), "date_to"),
        product_id=coerce_int("product_id", product_id) if product_id not in (None, "") else None,
        user_id=coerce_int("user_id", user_id) if user_id not in (None, "") else None,
        operation_type=data.get("operation_type") or None,
        format=data.get("format") or "detailed",
        file_type=data.get("file_type") or "csv",
    )
    return envelope(result, "Audit records export completed successfully")


@bulk_bp.post("/export/low-stock")
@require_auth
@require_staff_or_manager
def export_low_stock_route():
    data = _json_body()
    result = export_service.export_low_stock(
        include_out_of_stock=parse_bool(data.get("include_out_of_stock"), default=True),
        file_type=data.get("file_type") or "csv",
    )
    return envelope(result, "Low stock report export completed successfully")


@bulk_bp.post("/export/summary")
@require_auth
@require_staff_or_manager
def export_summary_route():
    data = _json_body()
    result = export_service.export_inventory_summary(file_type=data.get("file_type") or "csv")
    return envelope(result, "Inventory summary export completed successfully")


@bulk_bp.get("/download/<string:filename>")
@require_auth
@require_staff_or_manager
def download_route(filename: str):
    path = resolve_download(filename)
    mimetype = (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        if filename.endswith(".xlsx")
        else "text/csv"
    )
    return send_file(path, mimetype=mimetype, as_attachment=True, download_name=filename)


@bulk_bp.get("/stats")
@require_auth
@require_staff_or_manager
def stats_route():
    return envelope(maintenance_service.file_stats(), "Bulk operations statistics retrieved successfully")


@bulk_bp.post("/cleanup")
@require_auth
@require_manager
def cleanup_route():
    data = _json_body()
    result = maintenance_service.cleanup_files(target=data.get("type") or "all")
    return envelope(result, "File cleanup completed successfully")
