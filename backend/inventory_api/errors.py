# Overview: Error types raised by services and the app-wide handlers that render them.

"""
Error hierarchy and centralized error handling.

Services raise these exceptions; routes let them propagate and the handlers
registered by register_error_handlers() turn them into the standard error
envelope:

    {"success": false, "message": ..., "data": null,
     "error": {"type", "timestamp", "path", "method", "details"?}}
"""
from __future__ import annotations

from typing import Any

from flask import Flask, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .extensions import db
from .time_utils import utcnow, to_utc_z


class AppError(Exception):
    """Base class for errors that map to an HTTP status."""

    status_code = 500
    error_type = "AppError"

    def __init__(self, message: str = "Internal server error", details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError, ValueError):
    """400-level input problem."""

    status_code = 400
    error_type = "ValidationError"


class AuthenticationError(AppError):
    status_code = 401
    error_type = "AuthenticationError"

    def __init__(self, message: str = "Authentication failed", details: Any = None):
        super().__init__(message, details)


class AuthorizationError(AppError):
    status_code = 403
    error_type = "AuthorizationError"

    def __init__(self, message: str = "Access denied", details: Any = None):
        super().__init__(message, details)


class NotFoundError(AppError):
    """404 for a missing resource; message is '<resource> not found'."""

    status_code = 404
    error_type = "NotFoundError"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")


class ConflictError(AppError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""

    status_code = 409
    error_type = "ConflictError"

    def __init__(self, message: str = "Resource already exists", details: Any = None):
        super().__init__(message, details)


class GoneError(AppError):
    status_code = 410
    error_type = "GoneError"


class DatabaseError(AppError):
    status_code = 500
    error_type = "DatabaseError"

    def __init__(self, message: str = "Database operation failed", details: Any = None):
        super().__init__(message, details)


def error_body(message: str, error_type: str, details: Any = None) -> dict:
    error = {
        "type": error_type,
        "timestamp": to_utc_z(utcnow()),
        "path": request.path,
        "method": request.method,
    }
    if details is not None:
        error["details"] = details
    return {"success": False, "message": message, "data": None, "error": error}


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def handle_app_error(exc: AppError):
        if exc.status_code >= 500:
            current_app.logger.error("%s on %s %s: %s", exc.error_type, request.method, request.path, exc.message)
        return jsonify(error_body(exc.message, exc.error_type, exc.details)), exc.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(exc: IntegrityError):
        db.session.rollback()
        current_app.logger.warning("Integrity error on %s %s: %s", request.method, request.path, exc.orig)
        return jsonify(error_body("Duplicate or conflicting record", "ConflictError")), 409

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc: SQLAlchemyError):
        db.session.rollback()
        current_app.logger.exception("Database error on %s %s", request.method, request.path)
        return jsonify(error_body("Database operation failed", "DatabaseError")), 500

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        if exc.code == 404:
            message = f"Route {request.method} {request.path} not found"
        elif exc.code == 413:
            message = "File size too large"
        else:
            message = exc.description or exc.name
        return jsonify(error_body(message, exc.name.replace(" ", ""))), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify(error_body("Internal server error", "InternalServerError")), 500
