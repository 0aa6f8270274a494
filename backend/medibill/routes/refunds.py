# Overview: Refund endpoints.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from ..responses import datetime_arg, fail, int_arg, internal_error, ok, pagination
from ..services import refund_service

refunds_bp = Blueprint("refunds", __name__, url_prefix="/api/refunds")


@refunds_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
def create_refund():
    """Body: sale_id, reason, items[{product_id, quantity, unit_price, reason?}]."""
    try:
        refund = refund_service.create_refund(g.principal, request.get_json(silent=True))
        return ok(refund.to_dict(), message="Refund processed successfully", status=201)
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to create refund")
        return internal_error()


@refunds_bp.get("")
@require_auth
def list_refunds():
    try:
        page = int_arg("page", 1, minimum=1)
        limit = int_arg("limit", 20, minimum=1, maximum=200)
        refunds, total = refund_service.list_refunds(
            g.principal,
            search=request.args.get("search"),
            start=datetime_arg("start"),
            end=datetime_arg("end", end_of_day=True),
            branch_id=int_arg("branch_id"),
            page=page,
            limit=limit,
        )
        return ok([r.to_dict() for r in refunds], pagination=pagination(page, limit, total))
    except ServiceError as e:
        return fail(e)


@refunds_bp.get("/<int:refund_id>")
@require_auth
def get_refund(refund_id: int):
    try:
        return ok(refund_service.get_refund(g.principal, refund_id).to_dict())
    except ServiceError as e:
        return fail(e)
