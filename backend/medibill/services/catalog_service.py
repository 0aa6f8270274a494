# Overview: Branches, categories, suppliers and customers owned by a tenant.

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, Category, Customer, Supplier
from ..models.auth import ROLE_MANAGER
from .concurrency import run_atomic
from .notification_service import notify_tenant
from .tenant_service import Principal, get_scoped_or_404, require_tenant_id, scoped_query, stamp_owner

# (model, required fields, optional fields)
_REGISTRY = {
    "branch": (Branch, ("name",), ("address", "phone", "email")),
    "category": (Category, ("name",), ("description",)),
    "supplier": (Supplier, ("name",), ("contact_person", "phone", "email", "address")),
    "customer": (Customer, ("name",), ("phone", "email", "address")),
}


def _clean_payload(kind: str, payload) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    _, required, optional = _REGISTRY[kind]
    values: dict = {}
    errors: list[str] = []
    for key in required:
        value = payload.get(key)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{key} is required")
        else:
            values[key] = value.strip()
    for key in optional:
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            errors.append(f"{key} must be a string")
        else:
            values[key] = value.strip() or None
    if errors:
        raise ValidationError("Validation failed", errors=errors)
    return values


def create_entry(principal: Principal, kind: str, payload) -> object:
    """Create a tenant-owned branch, category, supplier or customer."""
    model = _REGISTRY[kind][0]
    values = _clean_payload(kind, payload)
    tenant_id = require_tenant_id(principal)

    def _op():
        row = stamp_owner(model(**values), principal)
        db.session.add(row)
        db.session.flush()
        return row

    try:
        row = run_atomic(_op)
    except IntegrityError:
        raise DuplicateConflictError(f"{kind.capitalize()} '{values['name']}' already exists")
    if kind == "customer":
        notify_tenant(tenant_id, "customer_change", "created", row.to_dict())
    return row


def list_entries(principal: Principal, kind: str, *, search: str | None = None) -> list:
    model = _REGISTRY[kind][0]
    query = scoped_query(model, principal)
    if search:
        pattern = f"%{search.strip()}%"
        if kind == "customer":
            query = query.filter(or_(model.name.ilike(pattern), model.phone.ilike(pattern)))
        else:
            query = query.filter(model.name.ilike(pattern))
    if kind == "branch" and principal is not None and principal.role == ROLE_MANAGER and principal.branch_id:
        query = query.filter(Branch.id == principal.branch_id)
    return query.order_by(model.name.asc(), model.id.asc()).all()


def get_entry(principal: Principal, kind: str, entry_id: int):
    model = _REGISTRY[kind][0]
    return get_scoped_or_404(model, entry_id, principal, not_found=NotFoundError(f"{kind.capitalize()} not found"))
