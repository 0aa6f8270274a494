from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Setting
from ..money import to_decimal

DEFAULT_TAX_KEY = "defaultTax"

# Keys the settings API accepts; anything else is rejected
KNOWN_KEYS = {
    DEFAULT_TAX_KEY: "Default sales tax percentage",
    "currency": "Display currency code",
    "receiptFooter": "Text printed at the bottom of receipts",
    "lowStockThreshold": "Default minimum stock for new products",
}


def get_setting(tenant_id: int, key: str) -> Setting | None:
    return db.session.query(Setting).filter_by(created_by=tenant_id, key=key).first()


def get_setting_value(tenant_id: int, key: str, default: str | None = None) -> str | None:
    setting = get_setting(tenant_id, key)
    return setting.value if setting else default


def list_settings(tenant_id: int) -> list[Setting]:
    return db.session.query(Setting).filter_by(created_by=tenant_id).order_by(Setting.key).all()


def _normalize_value(key: str, value) -> str:
    if value is None:
        raise ValidationError(f"{key} requires a value")
    if key == DEFAULT_TAX_KEY:
        rate = to_decimal(value, key)
        if rate < 0 or rate > 100:
            raise ValidationError(f"{key} must be between 0 and 100")
        return str(rate)
    return str(value).strip()


def set_setting(tenant_id: int, key: str, value, description: str | None = None) -> Setting:
    """Create or overwrite one setting. Does not commit."""
    if key not in KNOWN_KEYS:
        raise ValidationError(f"Unknown setting: {key}")
    normalized = _normalize_value(key, value)
    setting = get_setting(tenant_id, key)
    if setting is None:
        setting = Setting(created_by=tenant_id, key=key, value=normalized)
        db.session.add(setting)
    else:
        setting.value = normalized
    setting.description = description or setting.description or KNOWN_KEYS[key]
    db.session.flush()
    return setting


def get_tax_rate(tenant_id: int) -> Decimal:
    """
    Tax percentage for a tenant's sales.

    Falls back to DEFAULT_TAX_PERCENT when the setting is missing or unreadable.
    """
    default = Decimal(str(current_app.config.get("DEFAULT_TAX_PERCENT", 17)))
    raw = get_setting_value(tenant_id, DEFAULT_TAX_KEY)
    if raw is None:
        return default
    try:
        return to_decimal(raw, DEFAULT_TAX_KEY)
    except ValidationError:
        current_app.logger.warning("Ignoring unreadable %s=%r for tenant %s", DEFAULT_TAX_KEY, raw, tenant_id)
        return default
