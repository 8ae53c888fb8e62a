# Overview: Service-layer operations for auth and staff accounts; encapsulates business logic and database work.

"""
Authentication and account management.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with at least one letter and one digit
- Common passwords are rejected
- Only managers may create manager accounts
- A manager cannot demote or delete their own account
"""
from __future__ import annotations

import re

import bcrypt
from flask import current_app
from sqlalchemy import func, or_

from ..errors import AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryAudit, User
from ..validation import EMAIL_PATTERN, USER_ROLES, USERNAME_PATTERN

COMMON_PASSWORDS = frozenset({
    "password", "12345678", "qwerty", "abc123", "password123",
    "admin", "letmein", "welcome", "123456789", "password1",
})


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters (maximum 128)
    - At least one letter
    - At least one digit
    - Not a common password

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if len(password) > 128:
        raise PasswordValidationError("Password cannot exceed 128 characters")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if password.lower() in COMMON_PASSWORDS:
        raise PasswordValidationError("Password is too common. Please choose a stronger password")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config["BCRYPT_ROUNDS"])
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def _clean_username(username) -> str:
    username = str(username or "").strip()
    if len(username) < 3 or len(username) > 50:
        raise ValidationError("Username must be between 3 and 50 characters")
    if not USERNAME_PATTERN.match(username):
        raise ValidationError("Username can only contain letters, numbers, and underscores")
    return username


def _clean_email(email) -> str:
    email = str(email or "").strip().lower()
    if not EMAIL_PATTERN.match(email) or len(email) > 255:
        raise ValidationError("Please provide a valid email address")
    return email


def _ensure_unique(*, username: str | None = None, email: str | None = None, exclude_id: int | None = None) -> None:
    if username is not None:
        query = db.session.query(User.id).filter(User.username == username)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first() is not None:
            raise ConflictError("Username already exists")
    if email is not None:
        query = db.session.query(User.id).filter(User.email == email)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first() is not None:
            raise ConflictError("Email already exists")


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = "staff",
    created_by: User | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError / PasswordValidationError: bad input
        AuthorizationError: non-manager attempting to create a manager
        ConflictError: username or email already taken
    """
    role = role or "staff"
    if role not in USER_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(USER_ROLES)}")
    if role == "manager" and (created_by is None or not created_by.is_manager):
        raise AuthorizationError("Only managers can create manager accounts")

    username = _clean_username(username)
    email = _clean_email(email)
    _ensure_unique(username=username, email=email)

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User:
    """
    Authenticate by email and password.

    Raises AuthenticationError with the same message for an unknown email
    and a wrong password.
    """
    if not email or not password:
        raise ValidationError("Email and password are required")
    if not isinstance(email, str) or not isinstance(password, str):
        raise ValidationError("Email and password must be strings")

    user = db.session.query(User).filter(User.email == str(email).strip().lower()).first()
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User")
    return user


def update_profile(user: User, data: dict) -> User:
    """Update username and/or email for the given user."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(data) - {"username", "email"}
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    username = _clean_username(data["username"]) if "username" in data else None
    email = _clean_email(data["email"]) if "email" in data else None
    if username is None and email is None:
        raise ValidationError("At least one of username or email is required")

    _ensure_unique(username=username, email=email, exclude_id=user.id)
    if username is not None:
        user.username = username
    if email is not None:
        user.email = email
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not current_password or not new_password:
        raise ValidationError("Current password and new password are required")
    if not isinstance(current_password, str) or not isinstance(new_password, str):
        raise ValidationError("Passwords must be strings")
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    if current_password == new_password:
        raise ValidationError("New password must be different from current password")

    user.password_hash = hash_password(new_password)
    db.session.commit()


def list_users(
    *,
    role: str | None = None,
    offset: int = 0,
    limit: int = 10,
    descending: bool = True,
) -> tuple[list[User], int]:
    query = db.session.query(User)
    if role:
        if role not in USER_ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(USER_ROLES)}")
        query = query.filter(User.role == role)
    total = query.count()
    order = User.created_at.desc() if descending else User.created_at.asc()
    tie = User.id.desc() if descending else User.id.asc()
    return query.order_by(order, tie).offset(offset).limit(limit).all(), total


def list_staff(*, search: str | None = None) -> dict:
    query = db.session.query(User).filter(User.role == "staff")
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(User.username.ilike(pattern), User.email.ilike(pattern)))
    staff = query.order_by(User.username.asc()).all()

    activity = dict(
        db.session.query(InventoryAudit.user_id, func.count(InventoryAudit.id))
        .filter(InventoryAudit.user_id.in_([u.id for u in staff] or [0]))
        .group_by(InventoryAudit.user_id)
        .all()
    )
    members = [{**u.to_dict(), "total_operations": int(activity.get(u.id, 0))} for u in staff]
    return {
        "staff": members,
        "summary": {
            "total_staff": len(members),
            "active_staff": sum(1 for m in members if m["total_operations"] > 0),
            "search": search or None,
        },
    }


def update_role(*, actor: User, user_id: int, role: str) -> User:
    if role not in USER_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(USER_ROLES)}")
    user = get_user(user_id)
    if user.id == actor.id and role != user.role:
        raise ValidationError("You cannot change your own role")
    user.role = role
    db.session.commit()
    current_app.logger.info("User %s role set to %s by %s", user.username, role, actor.username)
    return user


def delete_user(*, actor: User, user_id: int) -> dict:
    user = get_user(user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot delete your own account")

    audit_count = (
        db.session.query(func.count(InventoryAudit.id)).filter(InventoryAudit.user_id == user.id).scalar()
    )
    if audit_count:
        raise ConflictError("Cannot delete user with existing audit records")

    snapshot = user.to_dict()
    db.session.delete(user)
    db.session.commit()
    current_app.logger.info("User %s deleted by %s", snapshot["username"], actor.username)
    return snapshot


def user_stats() -> dict:
    counts = dict(db.session.query(User.role, func.count(User.id)).group_by(User.role).all())
    total = sum(counts.values())
    distribution = {
        role: {
            "count": int(counts.get(role, 0)),
            "percentage": round(counts.get(role, 0) / total * 100, 1) if total else 0,
        }
        for role in USER_ROLES
    }
    return {
        "total_users": total,
        "staff_count": int(counts.get("staff", 0)),
        "manager_count": int(counts.get("manager", 0)),
        "roles_distribution": distribution,
    }
