# Overview: Opaque bearer sessions for the HTTP API.

"""
Session Token Management

Tokens are 32 random bytes sent to the client once; only their SHA-256 hash
is stored. Sessions expire SESSION_TTL_HOURS after creation and are revoked
on logout.
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """Create a session and return it with the plaintext token."""
    token = generate_token()
    ttl = timedelta(hours=int(current_app.config.get("SESSION_TTL_HOURS", 24)))
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        expires_at=utcnow() + ttl,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its active user.

    Returns None for unknown, revoked or expired tokens and for deactivated
    users.
    """
    if not token:
        return None
    session = (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )
    if session is None:
        return None
    if session.expires_at is not None and session.expires_at.replace(tzinfo=None) <= utcnow():
        return None
    user = db.session.get(User, session.user_id)
    if user is None or not user.is_active:
        return None
    return user


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
