# Overview: Sale endpoints; creation runs the full transactional sale.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth
from ..errors import ServiceError
from ..responses import datetime_arg, fail, int_arg, internal_error, ok, pagination
from ..services import sales_service

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale():
    """
    Record a sale.

    Body: branch_id, payment_method, items[{product_id, quantity, unit_price,
    batch_number?, expiry_date?}], customer_id?, discount_amount?
    """
    try:
        sale = sales_service.create_sale(g.principal, request.get_json(silent=True))
        return ok(sale.to_dict(), message="Sale created successfully", status=201)
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return internal_error()


@sales_bp.get("")
@require_auth
def list_sales():
    try:
        page = int_arg("page", 1, minimum=1)
        limit = int_arg("limit", 20, minimum=1, maximum=200)
        sales, total = sales_service.list_sales(
            g.principal,
            start=datetime_arg("start"),
            end=datetime_arg("end", end_of_day=True),
            branch_id=int_arg("branch_id"),
            customer_id=int_arg("customer_id"),
            payment_method=request.args.get("payment_method"),
            status=request.args.get("status"),
            page=page,
            limit=limit,
        )
        return ok([s.to_dict(include_items=False) for s in sales], pagination=pagination(page, limit, total))
    except ServiceError as e:
        return fail(e)


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale(sale_id: int):
    try:
        return ok(sales_service.get_sale(g.principal, sale_id).to_dict())
    except ServiceError as e:
        return fail(e)


@sales_bp.get("/receipt/<receipt_number>")
@require_auth
def get_sale_by_receipt(receipt_number: str):
    try:
        return ok(sales_service.get_sale_by_receipt_number(g.principal, receipt_number).to_dict())
    except ServiceError as e:
        return fail(e)
