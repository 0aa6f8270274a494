# backend/medibill/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the process working directory unless overridden
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///medibill.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Tax percentage used when a tenant has no "defaultTax" setting
    DEFAULT_TAX_PERCENT = int(os.environ.get("DEFAULT_TAX_PERCENT", "17"))

    # One loyalty point per this many currency units of sale total
    LOYALTY_POINT_VALUE = int(os.environ.get("LOYALTY_POINT_VALUE", "100"))

    # Refunds leave customer loyalty and purchase totals untouched unless enabled
    REFUND_REVERSES_LOYALTY = _env_flag("REFUND_REVERSES_LOYALTY", False)

    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
