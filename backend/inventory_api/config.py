# backend/inventory_api/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/inventory.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///inventory.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens
    JWT_SECRET = os.environ.get("JWT_SECRET", SECRET_KEY)
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_HOURS = _int_env("JWT_EXPIRES_HOURS", 24)
    JWT_ISSUER = "inventory-management-api"
    JWT_AUDIENCE = "inventory-management-client"

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    # Bulk files (Flask rejects larger request bodies with 413)
    UPLOAD_MAX_SIZE = _int_env("UPLOAD_MAX_SIZE", 10 * 1024 * 1024)
    MAX_CONTENT_LENGTH = UPLOAD_MAX_SIZE
    UPLOAD_PATH = os.environ.get("UPLOAD_PATH", "./uploads")
    EXPORT_RETENTION_HOURS = _int_env("EXPORT_RETENTION_HOURS", 24)
    TEMP_RETENTION_HOURS = _int_env("TEMP_RETENTION_HOURS", 1)

    DEFAULT_REORDER_LEVEL = _int_env("DEFAULT_REORDER_LEVEL", 10)
    AUDIT_RETENTION_DAYS = _int_env("AUDIT_RETENTION_DAYS", 365)

    CORS_ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
        ).split(",")
        if o.strip()
    ]

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
