# Overview: Per-tenant settings endpoints.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..responses import fail, internal_error, ok
from ..services import settings_service
from ..services.concurrency import run_atomic
from ..services.tenant_service import require_tenant_id

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
def list_settings():
    try:
        tenant_id = require_tenant_id(g.principal)
        settings = {s.key: s.to_dict() for s in settings_service.list_settings(tenant_id)}
        settings.setdefault(settings_service.DEFAULT_TAX_KEY, {
            "key": settings_service.DEFAULT_TAX_KEY,
            "value": str(settings_service.get_tax_rate(tenant_id)),
            "description": "Default sales tax percentage",
            "updated_at": None,
        })
        return ok(settings)
    except ServiceError as e:
        return fail(e)


@settings_bp.put("")
@require_auth
@require_role(ROLE_ADMIN)
def update_settings():
    """Body: {"key": value, ...}; all keys are written in one transaction."""
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data:
            raise ValidationError("Body must be a non-empty object of settings")
        tenant_id = require_tenant_id(g.principal)

        def _op():
            return [settings_service.set_setting(tenant_id, key, value) for key, value in data.items()]

        saved = run_atomic(_op)
        return ok({s.key: s.to_dict() for s in saved}, message="Settings updated")
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return internal_error()
