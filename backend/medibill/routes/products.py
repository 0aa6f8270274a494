# Overview: Product catalog, stock ledger and bulk import endpoints.

"""
Product routes.

MULTI-TENANT: every route resolves the caller's tenant from g.principal; ids
from other tenants answer 404.
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError, ValidationError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..models.inventory import MOVEMENT_TYPES
from ..responses import datetime_arg, fail, int_arg, internal_error, ok, pagination
from ..services import import_service, inventory_service, products_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params: search, category_id, branch_id, low_stock=true,
    include_inactive=true, page (default 1), limit (default 50, max 200).
    """
    try:
        page = int_arg("page", 1, minimum=1)
        limit = int_arg("limit", 50, minimum=1, maximum=200)
        products, total = products_service.list_products(
            g.principal,
            search=request.args.get("search"),
            category_id=int_arg("category_id"),
            branch_id=int_arg("branch_id"),
            low_stock=request.args.get("low_stock") == "true",
            include_inactive=request.args.get("include_inactive") == "true",
            page=page,
            limit=limit,
        )
        return ok([p.to_dict() for p in products], pagination=pagination(page, limit, total))
    except ServiceError as e:
        return fail(e)


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_product():
    try:
        product = products_service.create_product(g.principal, request.get_json(silent=True))
        return ok(product.to_dict(include_relations=True), message="Product created", status=201)
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return internal_error()


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    try:
        product = products_service.get_product(g.principal, product_id)
        return ok(product.to_dict(include_relations=True))
    except ServiceError as e:
        return fail(e)


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_product(product_id: int):
    try:
        product = products_service.update_product(g.principal, product_id, request.get_json(silent=True))
        return ok(product.to_dict(include_relations=True), message="Product updated")
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return internal_error()


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_product(product_id: int):
    try:
        counts = products_service.delete_product(g.principal, product_id)
        return ok(counts, message="Product deleted")
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to delete product %s", product_id)
        return internal_error()


@products_bp.post("/bulk-delete")
@require_auth
@require_role(ROLE_ADMIN)
def bulk_delete_products():
    try:
        data = request.get_json(silent=True) or {}
        result = products_service.bulk_delete_products(g.principal, data.get("product_ids"))
        return ok(result, message=f"{len(result['deleted'])} products deleted")
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to bulk delete products")
        return internal_error()


@products_bp.post("/bulk-import")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def bulk_import_products():
    """Body: {"products": [row, ...]}. Per-row failures are reported, not raised."""
    try:
        data = request.get_json(silent=True) or {}
        result = import_service.bulk_import_products(g.principal, data.get("products"))
        return ok(
            result.to_dict(),
            message=f"Imported {result.success_count} of {result.total} products",
        )
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to bulk import products")
        return internal_error()


@products_bp.patch("/<int:product_id>/stock")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_stock(product_id: int):
    """Body: {"type": "IN"|"OUT"|"ADJUSTMENT", "quantity": int, "reason"?, "reference"?}."""
    try:
        data = request.get_json(silent=True) or {}
        movement_type = data.get("type")
        if movement_type not in MOVEMENT_TYPES or movement_type == "RETURN":
            raise ValidationError("type must be one of IN, OUT, ADJUSTMENT")
        movement = inventory_service.adjust_stock(
            g.principal,
            product_id,
            movement_type,
            data.get("quantity"),
            reason=data.get("reason"),
            reference=data.get("reference"),
        )
        return ok(movement.to_dict(), message="Stock updated")
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to update stock for product %s", product_id)
        return internal_error()


@products_bp.get("/stock-movements")
@require_auth
def list_stock_movements():
    """Query params: product_id, type, branch_id, start, end, page, limit."""
    try:
        page = int_arg("page", 1, minimum=1)
        limit = int_arg("limit", 50, minimum=1, maximum=200)
        movements, total = inventory_service.list_stock_movements(
            g.principal,
            product_id=int_arg("product_id"),
            movement_type=request.args.get("type"),
            branch_id=int_arg("branch_id"),
            start=datetime_arg("start"),
            end=datetime_arg("end", end_of_day=True),
            page=page,
            limit=limit,
        )
        return ok([m.to_dict() for m in movements], pagination=pagination(page, limit, total))
    except ServiceError as e:
        return fail(e)


@products_bp.get("/low-stock")
@require_auth
def low_stock():
    products = inventory_service.low_stock_products(g.principal)
    return ok([p.to_dict() for p in products])


@products_bp.get("/<int:product_id>/reconcile")
@require_auth
def reconcile_product(product_id: int):
    try:
        product = products_service.get_product(g.principal, product_id)
        return ok(inventory_service.reconcile_product(product).to_dict())
    except ServiceError as e:
        return fail(e)


@products_bp.get("/reconcile")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def reconcile_all():
    results = inventory_service.reconcile_tenant(
        g.principal, only_drift=request.args.get("only_drift") == "true"
    )
    return ok([r.to_dict() for r in results])
