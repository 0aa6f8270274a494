# Overview: Refund transactions; returns goods to stock against an original sale.

"""
Refund Transaction Engine

One unit of work creates the Refund, its RefundItems, one RETURN movement per
item and flips the original sale to REFUNDED. The cumulative refunded
quantity of a product can never exceed what the sale sold, so repeated
partial refunds cannot inflate stock.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, or_

from ..errors import NotFoundError, ProductNotFound, SaleNotFound, ValidationError
from ..extensions import db
from ..models import Customer, Product, Receipt, Refund, RefundItem, Sale
from ..models.inventory import MOVEMENT_RETURN
from ..models.refunds import REFUND_STATUS_PROCESSED
from ..models.sales import SALE_STATUS_REFUNDED
from ..money import ZERO, quantize
from ..validation import validate_refund_payload
from .concurrency import run_atomic
from .inventory_service import apply_movement
from .notification_service import notify_tenant
from .sales_service import loyalty_points_for
from .tenant_service import Principal, branch_filter, get_scoped, get_scoped_or_404, require_tenant_id, scoped_query


def _refunded_quantities(sale_id: int) -> dict[int, int]:
    rows = (
        db.session.query(RefundItem.product_id, func.coalesce(func.sum(RefundItem.quantity), 0))
        .join(Refund, Refund.id == RefundItem.refund_id)
        .filter(Refund.original_sale_id == sale_id)
        .group_by(RefundItem.product_id)
        .all()
    )
    return {product_id: int(qty) for product_id, qty in rows}


def _check_refundable(sale: Sale, requested: dict[int, int]) -> None:
    sold: dict[int, int] = defaultdict(int)
    for item in sale.items:
        sold[item.product_id] += item.quantity
    already = _refunded_quantities(sale.id)

    errors = []
    for product_id, qty in requested.items():
        if product_id not in sold:
            errors.append(f"Product {product_id} was not part of sale {sale.id}")
            continue
        remaining = sold[product_id] - already.get(product_id, 0)
        if qty > remaining:
            errors.append(
                f"Refund quantity for product {product_id} exceeds refundable quantity "
                f"(requested {qty}, refundable {remaining})"
            )
    if errors:
        raise ValidationError("Refund exceeds original sale", errors=errors)


def _reverse_customer_stats(customer: Customer, amount: Decimal) -> None:
    customer.total_purchases = max(quantize((customer.total_purchases or ZERO) - amount), ZERO)
    customer.loyalty_points = max((customer.loyalty_points or 0) - loyalty_points_for(amount), 0)


def create_refund(principal: Principal, payload: dict) -> Refund:
    """
    Process a refund for a sale in the principal's tenant.

    Raises SaleNotFound, ProductNotFound or ValidationError; nothing is
    written in those cases.
    """
    data = validate_refund_payload(payload)
    tenant_id = require_tenant_id(principal)

    def _op() -> Refund:
        # Serializes concurrent refunds of one sale while the cap is checked
        sale = get_scoped(Sale, data.sale_id, principal, for_update=True)
        if sale is None:
            raise SaleNotFound(data.sale_id)

        products: dict[int, Product] = {}
        requested: dict[int, int] = defaultdict(int)
        for item in data.items:
            product = products.get(item.product_id) or get_scoped(Product, item.product_id, principal)
            if product is None:
                raise ProductNotFound(item.product_id)
            products[product.id] = product
            requested[product.id] += item.quantity
        _check_refundable(sale, requested)

        refund_amount = quantize(sum(
            (Decimal(item.quantity) * item.unit_price for item in data.items), ZERO
        ))
        refund = Refund(
            original_sale_id=sale.id,
            reason=data.reason,
            refund_amount=refund_amount,
            status=REFUND_STATUS_PROCESSED,
            refunded_by=principal.user_id,
            created_by=tenant_id,
        )
        db.session.add(refund)
        db.session.flush()

        for item in data.items:
            item_reason = item.reason or data.reason
            db.session.add(RefundItem(
                refund_id=refund.id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=quantize(item.unit_price),
                total_price=quantize(Decimal(item.quantity) * item.unit_price),
                reason=item_reason,
                created_by=tenant_id,
            ))
            apply_movement(
                products[item.product_id],
                MOVEMENT_RETURN,
                item.quantity,
                reason=f"Refund: {item_reason}",
                reference=f"REF-{refund.id}",
                created_by=tenant_id,
                user_id=principal.user_id,
                refund_id=refund.id,
            )

        sale.status = SALE_STATUS_REFUNDED

        if current_app.config.get("REFUND_REVERSES_LOYALTY") and sale.customer_id is not None:
            customer = db.session.get(Customer, sale.customer_id)
            if customer is not None:
                _reverse_customer_stats(customer, refund_amount)

        db.session.flush()
        return refund

    refund = run_atomic(_op)
    current_app.logger.info(
        "Refund %s processed for sale %s: tenant=%s amount=%s",
        refund.id, refund.original_sale_id, tenant_id, refund.refund_amount,
    )
    notify_tenant(tenant_id, "refund_change", "created", refund.to_dict())
    return refund


def get_refund(principal: Principal, refund_id: int) -> Refund:
    return get_scoped_or_404(Refund, refund_id, principal, not_found=NotFoundError("Refund not found"))


def list_refunds(
    principal: Principal,
    *,
    search: str | None = None,
    start=None,
    end=None,
    branch_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Refund], int]:
    """Refunds in scope. `search` matches the reason or the original receipt number."""
    query = (
        scoped_query(Refund, principal)
        .join(Sale, Sale.id == Refund.original_sale_id)
        .filter(branch_filter(Sale, principal))
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.outerjoin(Receipt, Receipt.sale_id == Sale.id).filter(
            or_(Refund.reason.ilike(pattern), Receipt.receipt_number.ilike(pattern))
        )
    if start is not None:
        query = query.filter(Refund.created_at >= start)
    if end is not None:
        query = query.filter(Refund.created_at <= end)
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)

    total = query.count()
    refunds = (
        query.order_by(Refund.created_at.desc(), Refund.id.desc())
        .offset(max(page - 1, 0) * limit)
        .limit(limit)
        .all()
    )
    return refunds, total
