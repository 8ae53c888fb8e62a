# Overview: Upload/export directories under UPLOAD_PATH; saving, listing, aging and removing bulk files.

from __future__ import annotations

import os
import re
import time
from datetime import datetime, timedelta, timezone

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..errors import GoneError, NotFoundError, ValidationError
from ..time_utils import to_utc_z

TEMP_DIR = "temp"
EXPORTS_DIR = "exports"

DOWNLOAD_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]+\.(csv|xlsx)$")
UPLOAD_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]+\.csv$")


def storage_dir(kind: str) -> str:
    path = os.path.abspath(os.path.join(current_app.config["UPLOAD_PATH"], kind))
    os.makedirs(path, exist_ok=True)
    return path


def timestamp_slug() -> str:
    """UTC timestamp safe for filenames, e.g. 2026-10-19T08-30-00-123456."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")


def save_upload(file: FileStorage) -> tuple[str, str]:
    """Store an uploaded CSV under temp/ with a unique name. Returns (filename, path)."""
    original = secure_filename(file.filename or "")
    if not original:
        raise ValidationError("No CSV file uploaded")
    if not original.lower().endswith(".csv"):
        raise ValidationError("Only CSV files (.csv) are allowed")

    stem, _ = os.path.splitext(original)
    filename = f"{int(time.time() * 1000)}_{stem}.csv"
    path = os.path.join(storage_dir(TEMP_DIR), filename)
    file.save(path)
    return filename, path


def uploaded_path(filename: str | None) -> str:
    if not filename:
        raise ValidationError("filename is required")
    if not UPLOAD_NAME_PATTERN.match(filename):
        raise ValidationError("Invalid filename format")
    path = os.path.join(storage_dir(TEMP_DIR), filename)
    if not os.path.isfile(path):
        raise NotFoundError("Uploaded file")
    return path


def file_age_hours(path: str) -> float:
    return (time.time() - os.path.getmtime(path)) / 3600


def _mtime(path: str) -> datetime:
    return datetime.fromtimestamp(os.path.getmtime(path), tz=timezone.utc)


def export_expires_at(path: str | None = None) -> str:
    hours = current_app.config["EXPORT_RETENTION_HOURS"]
    base = _mtime(path) if path else datetime.now(timezone.utc)
    return to_utc_z(base + timedelta(hours=hours))


def resolve_download(filename: str) -> str:
    """
    Path of an export that is still downloadable.

    Expired files are removed and reported as 410.
    """
    if not DOWNLOAD_NAME_PATTERN.match(filename or ""):
        raise ValidationError("Invalid filename format")
    path = os.path.join(storage_dir(EXPORTS_DIR), filename)
    if not os.path.isfile(path):
        raise NotFoundError("Export file")
    if file_age_hours(path) > current_app.config["EXPORT_RETENTION_HOURS"]:
        os.remove(path)
        raise GoneError("Export file has expired and has been removed")
    return path


def remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def list_files(kind: str) -> list[dict]:
    directory = storage_dir(kind)
    files = []
    for name in sorted(os.listdir(directory)):
        path = os.path.join(directory, name)
        if not os.path.isfile(path):
            continue
        entry = {
            "filename": name,
            "size": os.path.getsize(path),
            "modified_at": to_utc_z(_mtime(path)),
        }
        if kind == EXPORTS_DIR:
            entry["expires_at"] = export_expires_at(path)
        files.append(entry)
    return files


def purge_older_than(kind: str, hours: float) -> tuple[int, int]:
    """Delete files in kind/ older than hours. Returns (files_deleted, bytes_freed)."""
    directory = storage_dir(kind)
    deleted = 0
    freed = 0
    for name in os.listdir(directory):
        path = os.path.join(directory, name)
        if not os.path.isfile(path) or file_age_hours(path) <= hours:
            continue
        size = os.path.getsize(path)
        os.remove(path)
        deleted += 1
        freed += size
    return deleted, freed
