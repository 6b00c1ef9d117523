# Overview: Service-layer operations for bearer sessions.

"""
Session Token Service

WHY: Every API request carries a bearer token. The token identifies the user
and, through the user's scope columns, the principal the request acts as.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute expiry (SESSION_TTL_HOURS)
- Revocable
- Inactive users are rejected even with a valid token
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..errors import ForbiddenError, NotFoundError
from ..models import SessionToken, User
from ..time_utils import utcnow
from .scope_service import Principal, principal_from_user


def generate_token() -> str:
    """64-character hex string; the plaintext is never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens are high-entropy, so SHA-256 is sufficient (no bcrypt)
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int, ttl_hours: int | None = None) -> tuple[SessionToken, str]:
    """
    Issue a session for an active user.

    Returns (session_record, plaintext_token).

    Raises:
        NotFoundError: user missing
        ForbiddenError: user inactive or with an invalid scope
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found")
    if not user.is_active:
        raise ForbiddenError("User is not active")

    # Fail at issue time rather than on every request
    principal_from_user(user)

    if ttl_hours is None:
        ttl_hours = current_app.config["SESSION_TTL_HOURS"]

    plaintext_token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + timedelta(hours=ttl_hours),
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> Principal | None:
    """
    Resolve a bearer token to its principal.

    Returns None if the token is unknown, expired or revoked, or the user is
    inactive or has no valid scope. Updates last_used_at on success.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return None

    now = utcnow()
    if session.expires_at <= now:
        return None

    user = db.session.query(User).filter_by(id=session.user_id).first()
    if not user or not user.is_active:
        return None

    try:
        principal = principal_from_user(user)
    except ForbiddenError:
        current_app.logger.warning("Session %s belongs to user %s with an invalid scope", session.id, user.id)
        return None

    session.last_used_at = now
    db.session.commit()
    return principal


def revoke_session(token: str) -> bool:
    """Returns True when a live session was revoked."""
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if not session or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
