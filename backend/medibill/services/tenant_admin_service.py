# Overview: Tenant lifecycle; onboarding roots and staff, and cascade deletion.

"""
Tenant administration

A tenant is rooted at one ADMIN user that owns itself. Staff users and every
business row point back at that root through `created_by`.

CASCADE DELETION: removing a tenant deletes its rows in dependency order
(children before parents) inside one transaction, so a failure part way
leaves the tenant fully intact. Only SUPERADMIN may delete a tenant.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateConflictError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Branch,
    Category,
    Customer,
    Product,
    Receipt,
    Refund,
    RefundItem,
    Sale,
    SaleItem,
    SessionToken,
    Setting,
    StockMovement,
    Supplier,
    User,
)
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER, ROLE_SUPERADMIN
from .auth_service import hash_password
from .concurrency import run_atomic
from .tenant_service import Principal, get_scoped_or_404, require_tenant_id, resolve_tenant_id

STAFF_ROLES = (ROLE_MANAGER, ROLE_CASHIER)


def _require_superadmin(principal: Principal | None) -> None:
    resolve_tenant_id(principal)
    if not principal.is_super:
        raise ForbiddenError("SUPERADMIN role required")


def _check_username_free(username: str) -> None:
    if db.session.query(User.id).filter(User.username == username).first() is not None:
        raise DuplicateConflictError(f"Username '{username}' already exists")


def _user_fields(payload) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    errors = []
    username = (payload.get("username") or "").strip()
    name = (payload.get("name") or "").strip()
    password = payload.get("password") or ""
    if not username:
        errors.append("username is required")
    if not name:
        errors.append("name is required")
    if not password:
        errors.append("password is required")
    if errors:
        raise ValidationError("Validation failed", errors=errors)
    return {
        "username": username,
        "name": name,
        "password": password,
        "email": (payload.get("email") or "").strip() or None,
    }


def create_superadmin(username: str, password: str, name: str = "Super Admin", email: str | None = None) -> User:
    """Bootstrap a platform operator. Used by the CLI only."""
    _check_username_free(username)
    user = User(
        username=username,
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=ROLE_SUPERADMIN,
    )
    db.session.add(user)
    db.session.commit()
    return user


def create_tenant(payload: dict, principal: Principal | None = None) -> User:
    """
    Create a tenant root (ADMIN owning itself).

    `principal` must be a SUPERADMIN when given; the CLI passes None.
    """
    if principal is not None:
        _require_superadmin(principal)
    fields = _user_fields(payload)

    def _op() -> User:
        _check_username_free(fields["username"])
        root = User(
            username=fields["username"],
            name=fields["name"],
            email=fields["email"],
            password_hash=hash_password(fields["password"]),
            role=ROLE_ADMIN,
        )
        db.session.add(root)
        db.session.flush()
        root.created_by = root.id
        db.session.flush()
        return root

    try:
        root = run_atomic(_op)
    except IntegrityError:
        raise DuplicateConflictError(f"Username '{fields['username']}' already exists")
    current_app.logger.info("Tenant %s created for %s", root.id, root.username)
    return root


def create_staff_user(principal: Principal, payload: dict) -> User:
    """Add a MANAGER or CASHIER to the principal's tenant."""
    tenant_id = require_tenant_id(principal)
    if principal.role != ROLE_ADMIN:
        raise ForbiddenError("Only tenant administrators can add staff")
    fields = _user_fields(payload)
    role = payload.get("role", ROLE_CASHIER)
    if role not in STAFF_ROLES:
        raise ValidationError(f"role must be one of {', '.join(STAFF_ROLES)}")
    branch_id = payload.get("branch_id")

    def _op() -> User:
        _check_username_free(fields["username"])
        if branch_id is not None:
            get_scoped_or_404(Branch, branch_id, principal, not_found=NotFoundError("Branch not found"))
        user = User(
            username=fields["username"],
            name=fields["name"],
            email=fields["email"],
            password_hash=hash_password(fields["password"]),
            role=role,
            branch_id=branch_id,
            created_by=tenant_id,
        )
        db.session.add(user)
        db.session.flush()
        return user

    try:
        return run_atomic(_op)
    except IntegrityError:
        raise DuplicateConflictError(f"Username '{fields['username']}' already exists")


def list_tenants(principal: Principal | None = None) -> list[User]:
    if principal is not None:
        _require_superadmin(principal)
    return (
        db.session.query(User)
        .filter(User.role == ROLE_ADMIN)
        .filter(or_(User.created_by == User.id, User.created_by.is_(None)))
        .order_by(User.id)
        .all()
    )


def _get_tenant_root(tenant_id: int) -> User:
    root = db.session.get(User, tenant_id)
    if root is None or root.role != ROLE_ADMIN or root.created_by not in (None, root.id):
        raise NotFoundError(f"Tenant {tenant_id} not found")
    return root


def delete_tenant(principal: Principal, tenant_id: int) -> dict[str, int]:
    """
    Remove a tenant and everything it owns.

    Returns the number of rows deleted per table.
    """
    _require_superadmin(principal)

    def _op() -> dict[str, int]:
        _get_tenant_root(tenant_id)
        return _purge_tenant(tenant_id)

    counts = run_atomic(_op)
    current_app.logger.warning(
        "Tenant %s deleted by user %s: %s", tenant_id, principal.user_id, counts
    )
    return counts


def _purge_tenant(tenant_id: int) -> dict[str, int]:
    def delete(query) -> int:
        return query.delete(synchronize_session=False)

    tenant_user_ids = [
        uid for (uid,) in db.session.query(User.id)
        .filter(or_(User.created_by == tenant_id, User.id == tenant_id))
        .all()
    ]
    product_ids = select(Product.id).where(Product.created_by == tenant_id)
    refund_ids = select(Refund.id).where(
        or_(Refund.created_by == tenant_id, Refund.refunded_by.in_(tenant_user_ids))
    )
    sale_ids = select(Sale.id).where(Sale.created_by == tenant_id)

    counts: dict[str, int] = {}
    counts["refund_items"] = delete(
        db.session.query(RefundItem).filter(
            or_(RefundItem.created_by == tenant_id, RefundItem.refund_id.in_(refund_ids))
        )
    )
    # Movements pointing at a refund or sale go before their parent row
    linked_movements = delete(
        db.session.query(StockMovement).filter(StockMovement.refund_id.in_(refund_ids))
    )
    counts["refunds"] = delete(
        db.session.query(Refund).filter(
            or_(Refund.created_by == tenant_id, Refund.refunded_by.in_(tenant_user_ids))
        )
    )
    counts["sale_items"] = delete(
        db.session.query(SaleItem).filter(
            or_(SaleItem.created_by == tenant_id, SaleItem.sale_id.in_(sale_ids))
        )
    )
    counts["receipts"] = delete(
        db.session.query(Receipt).filter(
            or_(Receipt.created_by == tenant_id, Receipt.sale_id.in_(sale_ids))
        )
    )
    linked_movements += delete(
        db.session.query(StockMovement).filter(StockMovement.sale_id.in_(sale_ids))
    )
    counts["sales"] = delete(db.session.query(Sale).filter(Sale.created_by == tenant_id))
    counts["stock_movements"] = linked_movements + delete(
        db.session.query(StockMovement).filter(
            or_(StockMovement.created_by == tenant_id, StockMovement.product_id.in_(product_ids))
        )
    )
    counts["customers"] = delete(db.session.query(Customer).filter(Customer.created_by == tenant_id))
    counts["products"] = delete(db.session.query(Product).filter(Product.created_by == tenant_id))
    counts["suppliers"] = delete(db.session.query(Supplier).filter(Supplier.created_by == tenant_id))
    counts["categories"] = delete(db.session.query(Category).filter(Category.created_by == tenant_id))
    counts["branches"] = delete(db.session.query(Branch).filter(Branch.created_by == tenant_id))
    counts["settings"] = delete(db.session.query(Setting).filter(Setting.created_by == tenant_id))
    counts["session_tokens"] = delete(
        db.session.query(SessionToken).filter(SessionToken.user_id.in_(tenant_user_ids))
    )
    counts["users"] = delete(db.session.query(User).filter(User.id.in_(tenant_user_ids)))

    db.session.expire_all()
    return counts
