# Overview: Flask API routes for authentication and staff accounts; parses input and returns JSON responses.

"""
Authentication API routes

- register / login are public (register accepts an optional bearer token so
  a manager can create other managers)
- profile, password, refresh, logout and me need a valid token
- user administration is manager only
"""

from flask import Blueprint, request, g, current_app

from ..decorators import optional_auth, require_auth, require_manager
from ..responses import PageOptions, envelope
from ..services import auth_service, token_service
from ..validation import ValidationError

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _session_payload(user) -> tuple[dict, str]:
    token = token_service.generate_token(user)
    return {
        "user": user.to_dict(),
        "token": token,
        "expires_in": token_service.expires_in_label(),
    }, token


@auth_bp.post("/register")
@optional_auth
def register_route():
    data = _json_body()
    user = auth_service.create_user(
        data.get("username"),
        data.get("email"),
        data.get("password"),
        role=data.get("role") or "staff",
        created_by=g.current_user,
    )
    current_app.logger.info("Registered %s account %s", user.role, user.username)
    payload, token = _session_payload(user)
    return envelope(payload, "User registered successfully", 201, token=token)


@auth_bp.post("/login")
def login_route():
    data = _json_body()
    user = auth_service.authenticate(data.get("email"), data.get("password"))
    payload, token = _session_payload(user)
    return envelope(payload, "Login successful", token=token)


@auth_bp.post("/refresh")
@require_auth
def refresh_route():
    payload, token = _session_payload(g.current_user)
    return envelope(payload, "Token refreshed successfully", token=token)


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Tokens are stateless; the client discards its copy."""
    return envelope(None, "Logout successful. Please remove the token from client storage.")


@auth_bp.get("/profile")
@require_auth
def get_profile_route():
    return envelope(g.current_user.to_dict(), "Profile retrieved successfully")


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    user = auth_service.update_profile(g.current_user, _json_body())
    return envelope(user.to_dict(), "Profile updated successfully")


@auth_bp.put("/password")
@require_auth
def change_password_route():
    data = _json_body()
    auth_service.change_password(g.current_user, data.get("current_password"), data.get("new_password"))
    return envelope(None, "Password changed successfully")


@auth_bp.get("/me")
@require_auth
def me_route():
    claims = g.token_claims
    return envelope(
        {
            "user": g.current_user.to_dict(),
            "token_info": {"issued_at": claims.get("iat"), "expires_at": claims.get("exp")},
        },
        "Current user retrieved successfully",
    )


@auth_bp.get("/users")
@require_auth
@require_manager
def list_users_route():
    page = PageOptions.from_args(request.args)
    users, total = auth_service.list_users(
        role=request.args.get("role") or None,
        offset=page.offset,
        limit=page.limit,
        descending=page.descending,
    )
    return envelope([u.to_dict() for u in users], "Users retrieved successfully", page=page, total=total)


@auth_bp.get("/staff")
@require_auth
@require_manager
def list_staff_route():
    return envelope(
        auth_service.list_staff(search=request.args.get("search")),
        "Staff members retrieved successfully",
    )


@auth_bp.put("/users/<int:user_id>/role")
@require_auth
@require_manager
def update_role_route(user_id: int):
    data = _json_body()
    user = auth_service.update_role(actor=g.current_user, user_id=user_id, role=data.get("role"))
    return envelope(user.to_dict(), "User role updated successfully")


@auth_bp.delete("/users/<int:user_id>")
@require_auth
@require_manager
def delete_user_route(user_id: int):
    deleted = auth_service.delete_user(actor=g.current_user, user_id=user_id)
    return envelope(deleted, "User deleted successfully")


@auth_bp.get("/stats")
@require_auth
@require_manager
def user_stats_route():
    return envelope(auth_service.user_stats(), "User statistics retrieved successfully")
