# Overview: Product catalog maintenance; stock changes are delegated to the ledger.

from __future__ import annotations

from sqlalchemy import or_

from ..errors import DuplicateConflictError, NotFoundError, ProductNotFound, ValidationError
from ..extensions import db
from ..models import Branch, Category, Product, RefundItem, SaleItem, StockMovement, Supplier
from ..models.inventory import MOVEMENT_ADJUSTMENT, MOVEMENT_IN
from ..validation import validate_product_payload
from .concurrency import run_atomic
from .inventory_service import apply_movement
from .notification_service import notify_tenant
from .tenant_service import Principal, get_scoped_or_404, require_tenant_id, scoped_query, stamp_owner


def list_products(
    principal: Principal,
    *,
    search: str | None = None,
    category_id: int | None = None,
    branch_id: int | None = None,
    low_stock: bool = False,
    include_inactive: bool = False,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Product], int]:
    query = scoped_query(Product, principal, branch_scoped=True)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.barcode.ilike(pattern),
            Product.sku.ilike(pattern),
        ))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if branch_id is not None:
        query = query.filter(Product.branch_id == branch_id)
    if low_stock:
        query = query.filter(Product.stock <= Product.min_stock)

    total = query.count()
    products = (
        query.order_by(Product.name.asc(), Product.id.asc())
        .offset(max(page - 1, 0) * limit)
        .limit(limit)
        .all()
    )
    return products, total


def get_product(principal: Principal, product_id: int) -> Product:
    return get_scoped_or_404(
        Product, product_id, principal, not_found=ProductNotFound(product_id), branch_scoped=True
    )


def _check_references(values: dict, principal: Principal) -> None:
    if values.get("branch_id") is not None:
        get_scoped_or_404(Branch, values["branch_id"], principal, not_found=NotFoundError("Branch not found"))
    if values.get("category_id") is not None:
        get_scoped_or_404(Category, values["category_id"], principal, not_found=NotFoundError("Category not found"))
    if values.get("supplier_id") is not None:
        get_scoped_or_404(Supplier, values["supplier_id"], principal, not_found=NotFoundError("Supplier not found"))


def _check_barcode(tenant_id: int, barcode: str | None, exclude_id: int | None = None) -> None:
    if not barcode:
        return
    query = db.session.query(Product.id).filter(Product.created_by == tenant_id, Product.barcode == barcode)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise DuplicateConflictError(f"Product with barcode {barcode} already exists")


def create_product(principal: Principal, payload: dict) -> Product:
    """Create a product; a non-zero opening stock is booked as an IN movement."""
    values = validate_product_payload(payload)
    tenant_id = require_tenant_id(principal)
    opening_stock = values.pop("stock", 0) or 0
    if values.get("cost_price") is None:
        values.pop("cost_price", None)

    def _op() -> Product:
        _check_references(values, principal)
        _check_barcode(tenant_id, values.get("barcode"))
        product = stamp_owner(Product(**values, stock=0), principal)
        db.session.add(product)
        db.session.flush()
        if opening_stock > 0:
            apply_movement(
                product,
                MOVEMENT_IN,
                opening_stock,
                reason="Initial stock",
                reference=f"PRODUCT-{product.id}",
                created_by=tenant_id,
                user_id=principal.user_id,
            )
        return product

    product = run_atomic(_op)
    notify_tenant(tenant_id, "product_change", "created", product.to_dict())
    return product


def update_product(principal: Principal, product_id: int, payload: dict) -> Product:
    """
    Update catalog fields.

    A changed `stock` value is not written directly: it becomes an
    ADJUSTMENT movement so the trail still reconciles.
    """
    values = validate_product_payload(payload, partial=True)
    tenant_id = require_tenant_id(principal)
    new_stock = values.pop("stock", None)

    def _op() -> Product:
        product = get_scoped_or_404(
            Product, product_id, principal, not_found=ProductNotFound(product_id), branch_scoped=True
        )
        _check_references(values, principal)
        if "barcode" in values:
            _check_barcode(tenant_id, values["barcode"], exclude_id=product.id)
        for key, value in values.items():
            setattr(product, key, value)
        db.session.flush()
        if new_stock is not None and new_stock != product.stock:
            apply_movement(
                product,
                MOVEMENT_ADJUSTMENT,
                new_stock,
                reason="Stock adjusted via product update",
                reference=f"PRODUCT-{product.id}",
                created_by=tenant_id,
                user_id=principal.user_id,
            )
        return product

    product = run_atomic(_op)
    notify_tenant(tenant_id, "product_change", "updated", product.to_dict())
    return product


def _purge_products(product_ids: list[int]) -> dict[str, int]:
    """Delete products and every row that references them. Caller owns the transaction."""
    if not product_ids:
        return {"stock_movements": 0, "sale_items": 0, "refund_items": 0, "products": 0}
    counts = {
        "stock_movements": db.session.query(StockMovement)
        .filter(StockMovement.product_id.in_(product_ids))
        .delete(synchronize_session=False),
        "sale_items": db.session.query(SaleItem)
        .filter(SaleItem.product_id.in_(product_ids))
        .delete(synchronize_session=False),
        "refund_items": db.session.query(RefundItem)
        .filter(RefundItem.product_id.in_(product_ids))
        .delete(synchronize_session=False),
        "products": db.session.query(Product)
        .filter(Product.id.in_(product_ids))
        .delete(synchronize_session=False),
    }
    db.session.expire_all()
    return counts


def delete_product(principal: Principal, product_id: int) -> dict[str, int]:
    tenant_id = require_tenant_id(principal)

    def _op() -> dict[str, int]:
        product = get_scoped_or_404(
            Product, product_id, principal, not_found=ProductNotFound(product_id), branch_scoped=True
        )
        return _purge_products([product.id])

    counts = run_atomic(_op)
    notify_tenant(tenant_id, "product_change", "deleted", {"id": product_id})
    return counts


def bulk_delete_products(principal: Principal, product_ids: list) -> dict:
    """
    Delete every listed product that is in scope.

    Ids outside the tenant are reported back as not found and left untouched.
    """
    if not isinstance(product_ids, list) or not product_ids:
        raise ValidationError("product_ids must be a non-empty list")
    if any(isinstance(pid, bool) or not isinstance(pid, int) for pid in product_ids):
        raise ValidationError("product_ids must contain integers only")
    tenant_id = require_tenant_id(principal)
    requested = sorted(set(product_ids))

    def _op() -> dict:
        found = [
            pid for (pid,) in scoped_query(Product, principal, branch_scoped=True)
            .with_entities(Product.id)
            .filter(Product.id.in_(requested))
            .all()
        ]
        counts = _purge_products(found)
        return {
            "deleted": found,
            "not_found": [pid for pid in requested if pid not in set(found)],
            "counts": counts,
        }

    result = run_atomic(_op)
    if result["deleted"]:
        notify_tenant(tenant_id, "product_change", "bulk_deleted", {"ids": result["deleted"]})
    return result
