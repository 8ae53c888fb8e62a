# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import AuthenticationError, error_body
from .services import token_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object (re-loaded from the DB)
    - g.token_claims: The decoded JWT claims

    Returns 401 if:
    - No Authorization header
    - Invalid, expired or tampered token
    - The token's user no longer exists
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify(error_body(
                "Access token is missing. Please provide a valid JWT token in Authorization header.",
                "AuthenticationError",
            )), 401

        try:
            context = token_service.validate_token(token)
        except AuthenticationError as e:
            return jsonify(error_body(e.message, e.error_type)), 401

        g.current_user = context.user
        g.token_claims = context.claims

        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """Populate g.current_user when a valid token is sent; never rejects."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = None
        token = _bearer_token()
        if token is not None:
            try:
                g.current_user = token_service.validate_token(token).user
            except AuthenticationError:
                g.current_user = None
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the authenticated user to hold one of roles.

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify(error_body("Authentication required", "AuthenticationError")), 401

            user = g.current_user
            if user.role not in roles:
                return jsonify(error_body(
                    "Insufficient Permissions",
                    "AuthorizationError",
                    {
                        "required_roles": list(roles),
                        "current_role": user.role,
                        "message": f"This action requires {' or '.join(roles)} role. Your current role: {user.role}",
                    },
                )), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


require_manager = require_role("manager")
require_staff_or_manager = require_role("staff", "manager")
