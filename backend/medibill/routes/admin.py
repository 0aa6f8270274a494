# Overview: Platform and tenant administration endpoints.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError
from ..models.auth import ROLE_ADMIN, ROLE_SUPERADMIN
from ..responses import fail, internal_error, ok
from ..services import tenant_admin_service

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.post("/tenants")
@require_auth
@require_role(ROLE_SUPERADMIN)
def create_tenant():
    try:
        root = tenant_admin_service.create_tenant(request.get_json(silent=True), principal=g.principal)
        return ok(root.to_dict(), message="Tenant created", status=201)
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to create tenant")
        return internal_error()


@admin_bp.get("/tenants")
@require_auth
@require_role(ROLE_SUPERADMIN)
def list_tenants():
    try:
        return ok([u.to_dict() for u in tenant_admin_service.list_tenants(g.principal)])
    except ServiceError as e:
        return fail(e)


@admin_bp.delete("/tenants/<int:tenant_id>")
@require_auth
@require_role(ROLE_SUPERADMIN)
def delete_tenant(tenant_id: int):
    """Cascade-delete a tenant and every row it owns."""
    try:
        counts = tenant_admin_service.delete_tenant(g.principal, tenant_id)
        return ok(counts, message="Tenant and all associated data deleted")
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to delete tenant %s", tenant_id)
        return internal_error()


@admin_bp.post("/users")
@require_auth
@require_role(ROLE_ADMIN)
def create_staff_user():
    try:
        user = tenant_admin_service.create_staff_user(g.principal, request.get_json(silent=True) or {})
        return ok(user.to_dict(), message="User created", status=201)
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return internal_error()
