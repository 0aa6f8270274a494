"""
Sale Transaction Engine

A sale is written in one unit of work: the Sale row, one SaleItem and one OUT
stock movement per line, the customer's running totals and the Receipt. Any
missing product or short stock rolls every row back, so callers either see a
complete sale or nothing at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..errors import NotFoundError, ProductNotFound, SaleNotFound, ValidationError
from ..extensions import db
from ..models import Branch, Customer, Product, Receipt, Sale, SaleItem
from ..models.inventory import MOVEMENT_OUT
from ..money import ZERO, quantize
from ..time_utils import utcnow
from ..validation import SaleLineInput, validate_sale_payload
from . import settings_service
from .concurrency import run_atomic
from .document_service import next_receipt_number
from .inventory_service import apply_movement
from .notification_service import notify_tenant
from .tenant_service import Principal, get_scoped, get_scoped_or_404, require_tenant_id, scoped_query


@dataclass(frozen=True)
class SaleTotals:
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def calculate_totals(items: list[SaleLineInput], tax_rate: Decimal, discount: Decimal = ZERO) -> SaleTotals:
    """
    subtotal = sum(qty * unit_price); tax = subtotal * rate / 100;
    total = subtotal + tax - discount. Each figure is rounded half-up to cents.
    """
    subtotal = quantize(sum((Decimal(i.quantity) * i.unit_price for i in items), ZERO))
    tax_amount = quantize(subtotal * Decimal(tax_rate) / Decimal(100))
    discount = quantize(discount)
    return SaleTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount,
        total_amount=quantize(subtotal + tax_amount - discount),
    )


def loyalty_points_for(amount: Decimal) -> int:
    """One point per LOYALTY_POINT_VALUE of spend; negative spend earns nothing."""
    per_point = Decimal(current_app.config.get("LOYALTY_POINT_VALUE", 100))
    if amount <= 0 or per_point <= 0:
        return 0
    return int(amount // per_point)


def _update_customer_stats(customer: Customer, total: Decimal) -> None:
    earned = max(total, ZERO)
    customer.total_purchases = quantize((customer.total_purchases or ZERO) + earned)
    customer.loyalty_points = (customer.loyalty_points or 0) + loyalty_points_for(total)
    customer.last_visit = utcnow()


def create_sale(principal: Principal, payload: dict) -> Sale:
    """
    Record a completed sale.

    Raises ValidationError for malformed input, NotFoundError for a branch or
    customer outside the tenant, ProductNotFound and InsufficientStockError
    for item problems. None of these leave rows behind.
    """
    data = validate_sale_payload(payload)
    tenant_id = require_tenant_id(principal)

    def _op() -> Sale:
        branch = get_scoped_or_404(
            Branch, data.branch_id, principal, not_found=NotFoundError("Branch not found")
        )
        customer = None
        if data.customer_id is not None:
            customer = get_scoped_or_404(
                Customer, data.customer_id, principal, not_found=NotFoundError("Customer not found")
            )

        tax_rate = settings_service.get_tax_rate(tenant_id)
        totals = calculate_totals(data.items, tax_rate, data.discount_amount)

        sale = Sale(
            customer_id=customer.id if customer else None,
            user_id=principal.user_id,
            branch_id=branch.id,
            created_by=tenant_id,
            subtotal=totals.subtotal,
            tax_rate=tax_rate,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total_amount,
            payment_method=data.payment_method,
            payment_status="COMPLETED",
        )
        db.session.add(sale)
        db.session.flush()

        for line in data.items:
            product = get_scoped(Product, line.product_id, principal)
            if product is None:
                raise ProductNotFound(line.product_id)
            apply_movement(
                product,
                MOVEMENT_OUT,
                line.quantity,
                reason="Sale",
                reference=str(sale.id),
                created_by=tenant_id,
                user_id=principal.user_id,
                sale_id=sale.id,
            )
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                quantity=line.quantity,
                unit_price=quantize(line.unit_price),
                total_price=quantize(Decimal(line.quantity) * line.unit_price),
                batch_number=line.batch_number,
                expiry_date=line.expiry_date,
                created_by=tenant_id,
            ))

        if customer is not None:
            _update_customer_stats(customer, totals.total_amount)

        db.session.add(Receipt(
            sale_id=sale.id,
            receipt_number=next_receipt_number(),
            printed_by=principal.user_id,
            branch_id=branch.id,
            created_by=tenant_id,
        ))
        db.session.flush()
        return sale

    sale = run_atomic(_op)
    current_app.logger.info(
        "Sale %s recorded: tenant=%s branch=%s total=%s items=%s",
        sale.id, tenant_id, sale.branch_id, sale.total_amount, len(data.items),
    )
    notify_tenant(tenant_id, "sale_change", "created", sale.to_dict())
    return sale


def get_sale(principal: Principal, sale_id: int) -> Sale:
    return get_scoped_or_404(Sale, sale_id, principal, not_found=SaleNotFound(sale_id), branch_scoped=True)


def get_sale_by_receipt_number(principal: Principal, receipt_number: str) -> Sale:
    sale = (
        scoped_query(Sale, principal, branch_scoped=True)
        .join(Receipt, Receipt.sale_id == Sale.id)
        .filter(Receipt.receipt_number == receipt_number)
        .first()
    )
    if sale is None:
        raise SaleNotFound()
    return sale


def list_sales(
    principal: Principal,
    *,
    start=None,
    end=None,
    branch_id: int | None = None,
    customer_id: int | None = None,
    payment_method: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Sale], int]:
    if limit < 1 or limit > 200:
        raise ValidationError("limit must be between 1 and 200")
    query = scoped_query(Sale, principal, branch_scoped=True)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    if branch_id is not None:
        query = query.filter(Sale.branch_id == branch_id)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if payment_method:
        query = query.filter(Sale.payment_method == payment_method)
    if status:
        query = query.filter(Sale.status == status)

    total = query.count()
    sales = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset(max(page - 1, 0) * limit)
        .limit(limit)
        .all()
    )
    return sales, total
