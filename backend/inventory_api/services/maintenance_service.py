# Overview: Service-layer operations for maintenance; encapsulates retention cleanup of files and records.

from __future__ import annotations

from flask import current_app

from ..errors import ValidationError
from . import audit_service, notification_service
from .file_storage import EXPORTS_DIR, TEMP_DIR, list_files, purge_older_than

CLEANUP_TARGETS = ("all", "exports", "temp")


def cleanup_files(*, target: str = "all") -> dict:
    """
    Delete exports older than EXPORT_RETENTION_HOURS and uploads older than
    TEMP_RETENTION_HOURS.
    """
    if target not in CLEANUP_TARGETS:
        raise ValidationError(f"type must be one of: {', '.join(CLEANUP_TARGETS)}")

    deleted = 0
    freed = 0
    if target in ("all", "exports"):
        n, size = purge_older_than(EXPORTS_DIR, current_app.config["EXPORT_RETENTION_HOURS"])
        deleted += n
        freed += size
    if target in ("all", "temp"):
        n, size = purge_older_than(TEMP_DIR, current_app.config["TEMP_RETENTION_HOURS"])
        deleted += n
        freed += size

    current_app.logger.info("File cleanup (%s): %s files removed, %s bytes freed", target, deleted, freed)
    return {"type": target, "deleted_files": deleted, "freed_bytes": freed}


def file_stats() -> dict:
    exports = list_files(EXPORTS_DIR)
    uploads = list_files(TEMP_DIR)
    return {
        "export_files": {
            "count": len(exports),
            "total_size": sum(f["size"] for f in exports),
            "files": exports,
        },
        "uploaded_files": {
            "count": len(uploads),
            "total_size": sum(f["size"] for f in uploads),
            "files": uploads,
        },
        "system_limits": {
            "max_file_size_bytes": current_app.config["UPLOAD_MAX_SIZE"],
            "export_retention_hours": current_app.config["EXPORT_RETENTION_HOURS"],
            "temp_retention_hours": current_app.config["TEMP_RETENTION_HOURS"],
            "supported_formats": ["csv", "xlsx"],
        },
    }


def purge_audit_records(*, days_old: int | None = None) -> int:
    if days_old is None:
        days_old = current_app.config["AUDIT_RETENTION_DAYS"]
    deleted = audit_service.delete_old_records(days_old=days_old)
    current_app.logger.info("Purged %s audit records older than %s days", deleted, days_old)
    return deleted


def purge_read_notifications(*, days_old: int = 30) -> int:
    deleted = notification_service.delete_old_read(days_old=days_old)
    current_app.logger.info("Purged %s read notifications older than %s days", deleted, days_old)
    return deleted
