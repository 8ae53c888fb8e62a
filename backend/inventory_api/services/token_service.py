# Overview: Service-layer operations for bearer tokens; issues and validates signed JWTs.

"""
Stateless bearer tokens.

Tokens are HS256 JWTs signed with JWT_SECRET and carry the user's id,
username, email and role. Every request re-loads the user from the database,
so a deleted account or a role change takes effect immediately even though
the token itself is still valid.

- Lifetime: JWT_EXPIRES_HOURS (default 24h)
- iss / aud are checked on decode
- Logout is client-side: there is no server revocation list
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta, timezone

import jwt
from flask import current_app

from ..errors import AuthenticationError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow


@dataclass
class TokenContext:
    """Authenticated request context: the live user plus the decoded claims."""
    user: User
    claims: dict


def expires_in_label() -> str:
    return f"{current_app.config['JWT_EXPIRES_HOURS']}h"


def generate_token(user: User) -> str:
    cfg = current_app.config
    now = utcnow().replace(tzinfo=timezone.utc)
    payload = {
        "sub": str(user.id),
        "user_id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(hours=cfg["JWT_EXPIRES_HOURS"]),
        "iss": cfg["JWT_ISSUER"],
        "aud": cfg["JWT_AUDIENCE"],
    }
    return jwt.encode(payload, cfg["JWT_SECRET"], algorithm=cfg["JWT_ALGORITHM"])


def decode_token(token: str) -> dict:
    """
    Verify signature, expiry, issuer and audience.

    Raises AuthenticationError with a client-safe message.
    """
    cfg = current_app.config
    try:
        return jwt.decode(
            token,
            cfg["JWT_SECRET"],
            algorithms=[cfg["JWT_ALGORITHM"]],
            audience=cfg["JWT_AUDIENCE"],
            issuer=cfg["JWT_ISSUER"],
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.ImmatureSignatureError:
        raise AuthenticationError("Token not active yet")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")


def validate_token(token: str) -> TokenContext:
    claims = decode_token(token)
    user_id = claims.get("user_id")
    user = db.session.get(User, user_id) if isinstance(user_id, int) else None
    if user is None:
        raise AuthenticationError("The user associated with this token no longer exists")
    return TokenContext(user=user, claims=claims)
