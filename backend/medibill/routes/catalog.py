# Overview: Branch, category, supplier and customer endpoints.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from ..responses import fail, internal_error, ok
from ..services import catalog_service

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")

# url segment -> (registry kind, roles allowed to create)
_COLLECTIONS = {
    "branches": ("branch", (ROLE_ADMIN,)),
    "categories": ("category", (ROLE_ADMIN, ROLE_MANAGER)),
    "suppliers": ("supplier", (ROLE_ADMIN, ROLE_MANAGER)),
    "customers": ("customer", (ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)),
}


def _register(segment: str, kind: str, create_roles: tuple[str, ...]) -> None:
    def list_entries():
        rows = catalog_service.list_entries(g.principal, kind, search=request.args.get("search"))
        return ok([row.to_dict() for row in rows])

    def create_entry():
        try:
            row = catalog_service.create_entry(g.principal, kind, request.get_json(silent=True))
            return ok(row.to_dict(), message=f"{kind.capitalize()} created", status=201)
        except ServiceError as e:
            return fail(e)
        except Exception:
            current_app.logger.exception("Failed to create %s", kind)
            return internal_error()

    def get_entry(entry_id: int):
        try:
            return ok(catalog_service.get_entry(g.principal, kind, entry_id).to_dict())
        except ServiceError as e:
            return fail(e)

    catalog_bp.add_url_rule(
        f"/{segment}", f"list_{segment}", require_auth(list_entries), methods=["GET"]
    )
    catalog_bp.add_url_rule(
        f"/{segment}", f"create_{segment}", require_auth(require_role(*create_roles)(create_entry)),
        methods=["POST"],
    )
    catalog_bp.add_url_rule(
        f"/{segment}/<int:entry_id>", f"get_{segment}", require_auth(get_entry), methods=["GET"]
    )


for _segment, (_kind, _roles) in _COLLECTIONS.items():
    _register(_segment, _kind, _roles)
