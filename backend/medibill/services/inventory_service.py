# Overview: Stock ledger; the only code path that changes Product.stock.

"""
Stock Ledger

Every stock change is one StockMovement row written in the same transaction
as the stock update. Movements are never edited; corrections are new
movements. Callers own the transaction (see concurrency.run_atomic) so a
sale, refund or import can roll its movements back together with
everything else.

OVERSELL PROTECTION: OUT movements decrement with a single conditional
UPDATE ... WHERE stock >= :qty. The affected-row count decides success, so
there is no window between checking and decrementing.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from ..errors import InsufficientStockError, ProductNotFound, ValidationError
from ..extensions import db
from ..models import Product, StockMovement
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_RETURN,
    MOVEMENT_TYPES,
)
from .concurrency import lock_for_update, run_atomic
from .notification_service import notify_tenant
from .tenant_service import (
    Principal,
    branch_filter,
    get_scoped_or_404,
    require_tenant_id,
    scoped_query,
    tenant_filter,
)


def _validate_quantity(movement_type: str, quantity) -> int:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            f"Invalid movement type: {movement_type}",
            errors=[f"type must be one of {', '.join(MOVEMENT_TYPES)}"],
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity < 0:
            raise ValidationError("Adjusted stock cannot be negative")
    elif quantity <= 0:
        raise ValidationError("quantity must be greater than 0")
    return quantity


def assert_sufficient_stock(product: Product, quantity: int) -> None:
    """Raise InsufficientStockError when `quantity` exceeds on-hand stock."""
    if quantity > product.stock:
        raise InsufficientStockError(product.name, product.stock, quantity, product.id)


def apply_movement(
    product: Product,
    movement_type: str,
    quantity: int,
    *,
    reason: str | None,
    reference: str | None = None,
    created_by: int | None = None,
    user_id: int | None = None,
    sale_id: int | None = None,
    refund_id: int | None = None,
) -> StockMovement:
    """
    Append a movement and apply it to `product.stock`.

    Runs inside the caller's transaction and never commits. IN and RETURN
    add, OUT subtracts (raising InsufficientStockError without writing
    anything when stock is short), ADJUSTMENT sets stock to `quantity`.
    """
    quantity = _validate_quantity(movement_type, quantity)
    if product.id is None:
        db.session.flush()

    if movement_type == MOVEMENT_OUT:
        stmt = (
            update(Product)
            .where(Product.id == product.id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if not result.rowcount:
            db.session.refresh(product, attribute_names=["stock"])
            assert_sufficient_stock(product, quantity)
            # Restocked between the guarded update and the refresh
            raise StaleDataError(f"Stock of product {product.id} changed during the update")
        delta = -quantity
    elif movement_type in (MOVEMENT_IN, MOVEMENT_RETURN):
        stmt = (
            update(Product)
            .where(Product.id == product.id)
            .values(stock=Product.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        db.session.execute(stmt)
        delta = quantity
    else:
        current = (
            lock_for_update(db.session.query(Product.stock).filter(Product.id == product.id))
            .scalar()
        )
        stmt = (
            update(Product)
            .where(Product.id == product.id)
            .values(stock=quantity)
            .execution_options(synchronize_session=False)
        )
        db.session.execute(stmt)
        delta = quantity - int(current or 0)

    db.session.refresh(product, attribute_names=["stock"])

    movement = StockMovement(
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        quantity_delta=delta,
        stock_after=product.stock,
        reason=reason,
        reference=reference,
        sale_id=sale_id,
        refund_id=refund_id,
        user_id=user_id,
        created_by=created_by if created_by is not None else product.created_by,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def adjust_stock(
    principal: Principal,
    product_id: int,
    movement_type: str,
    quantity: int,
    *,
    reason: str | None = None,
    reference: str | None = None,
) -> StockMovement:
    """
    Manual stock update from the back office.

    IN adds, OUT subtracts (refusing to go below zero), ADJUSTMENT sets the
    on-hand figure to `quantity`.
    """
    tenant_id = require_tenant_id(principal)

    def _op():
        product = get_scoped_or_404(
            Product, product_id, principal, not_found=ProductNotFound(product_id)
        )
        return apply_movement(
            product,
            movement_type,
            quantity,
            reason=reason or f"Manual {movement_type.lower()}",
            reference=reference,
            created_by=tenant_id,
            user_id=principal.user_id,
        )

    movement = run_atomic(_op)
    notify_tenant(tenant_id, "inventory_change", "stock_updated", movement.to_dict())
    return movement


def list_stock_movements(
    principal: Principal,
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    branch_id: int | None = None,
    start=None,
    end=None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[StockMovement], int]:
    """Movements visible to the principal, newest first, with total count."""
    query = (
        db.session.query(StockMovement)
        .join(Product, Product.id == StockMovement.product_id)
        .filter(tenant_filter(StockMovement, principal))
        .filter(branch_filter(Product, principal))
    )
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    if branch_id is not None:
        query = query.filter(Product.branch_id == branch_id)
    if start is not None:
        query = query.filter(StockMovement.created_at >= start)
    if end is not None:
        query = query.filter(StockMovement.created_at <= end)

    total = query.count()
    rows = (
        query.order_by(StockMovement.id.desc())
        .offset(max(page - 1, 0) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


@dataclass
class ReconciliationResult:
    product_id: int
    product_name: str
    stock: int
    replayed_stock: int
    movement_count: int
    # Movements whose stock_after disagrees with the running replay
    broken_links: list[int]

    @property
    def consistent(self) -> bool:
        return self.stock == self.replayed_stock and not self.broken_links

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "stock": self.stock,
            "replayed_stock": self.replayed_stock,
            "drift": self.stock - self.replayed_stock,
            "movement_count": self.movement_count,
            "broken_links": self.broken_links,
            "consistent": self.consistent,
        }


def replay_stock(product_id: int) -> tuple[int, int, list[int]]:
    """Replay a product's movements from zero in creation order."""
    running = 0
    count = 0
    broken: list[int] = []
    movements = (
        db.session.query(StockMovement.id, StockMovement.quantity_delta, StockMovement.stock_after)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.asc())
    )
    for movement_id, delta, stock_after in movements:
        running += delta
        count += 1
        if stock_after != running:
            broken.append(movement_id)
    return running, count, broken


def reconcile_product(product: Product) -> ReconciliationResult:
    replayed, count, broken = replay_stock(product.id)
    return ReconciliationResult(
        product_id=product.id,
        product_name=product.name,
        stock=product.stock,
        replayed_stock=replayed,
        movement_count=count,
        broken_links=broken,
    )


def reconcile_tenant(principal: Principal, *, only_drift: bool = False) -> list[ReconciliationResult]:
    """Reconcile every product visible to `principal`."""
    products = scoped_query(Product, principal).order_by(Product.id).all()
    results = [reconcile_product(p) for p in products]
    if only_drift:
        results = [r for r in results if not r.consistent]
    return results


def low_stock_products(principal: Principal) -> list[Product]:
    """Active products at or below their minimum stock level."""
    return (
        scoped_query(Product, principal, branch_scoped=True)
        .filter(Product.is_active.is_(True), Product.stock <= Product.min_stock)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )
