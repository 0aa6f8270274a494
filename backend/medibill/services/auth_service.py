# Overview: Password hashing and credential checks.

"""
Authentication

Passwords are hashed with bcrypt. Tests lower BCRYPT_ROUNDS; production keeps
the default cost of 12.
"""

import re

import bcrypt
from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when a password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def authenticate(username: str, password: str) -> User | None:
    """
    Check credentials by username or email.

    Returns the active User on success and stamps last_login_at, else None.
    """
    if not username or not password:
        return None
    user = (
        db.session.query(User)
        .filter(
            db.or_(User.username == username, User.email == username),
            User.is_active.is_(True),
        )
        .first()
    )
    if user is None or not verify_password(password, user.password_hash):
        return None

    # Staff of a deactivated tenant cannot sign in
    if user.created_by is not None and user.created_by != user.id:
        root = db.session.get(User, user.created_by)
        if root is None or not root.is_active:
            return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
