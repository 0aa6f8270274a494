# Overview: Bulk catalog import; merges rows into existing products or creates new ones.

from __future__ import annotations

import re
import secrets
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ValidationError
from ..extensions import db
from ..models import Branch, Category, Product, Supplier
from ..models.inventory import MOVEMENT_IN
from ..money import quantize
from .concurrency import run_atomic
from .import_schemas import (
    DEFAULT_SUPPLIER_SENTINEL,
    PRODUCT_IMPORT_SCHEMA,
)
from .inventory_service import apply_movement
from .notification_service import notify_tenant
from .tenant_service import Principal, get_scoped, require_tenant_id

DEFAULT_SELLING_PRICE = Decimal("100.00")
COST_PRICE_RATIO = Decimal("0.70")
DEFAULT_MIN_STOCK = 10
DEFAULT_UNIT_TYPE = "tablets"
DEFAULT_DESCRIPTION = "Imported product"
DEFAULT_CATEGORY_NAME = "Imported Category"
DEFAULT_SUPPLIER_NAME = "Default Supplier"
DEFAULT_BRANCH_NAME = "Default Branch"

MAX_IMPORT_ROWS = 5000
MAX_BARCODE_ATTEMPTS = 20


@dataclass
class ImportResult:
    successful: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)
    total: int = 0

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def skipped_count(self) -> int:
        return sum(1 for f in self.failed if "already exists" in f["error"])

    @property
    def failure_count(self) -> int:
        return len(self.failed) - self.skipped_count

    def to_dict(self) -> dict:
        return {
            "successful": self.successful,
            "failed": self.failed,
            "total": self.total,
            "success_count": self.success_count,
            "skipped_count": self.skipped_count,
            "failure_count": self.failure_count,
        }


def _millis() -> int:
    return int(time.time() * 1000)


def _placeholder_name() -> str:
    return f"Product_{_millis()}_{secrets.token_hex(3)}"


def _generated_barcode() -> str:
    return f"AUTO_{_millis()}_{secrets.token_hex(4).upper()}"


def _generated_sku(name: str) -> str:
    clean = re.sub(r"[^A-Za-z0-9]", "", name).upper()[:6] or "ITEM"
    return f"{clean}{str(_millis())[-6:]}"


def _barcode_taken(tenant_id: int, barcode: str) -> bool:
    return (
        db.session.query(Product.id)
        .filter(Product.created_by == tenant_id, Product.barcode == barcode)
        .first()
        is not None
    )


def _unique_barcode(tenant_id: int, candidate: str | None) -> str:
    barcode = candidate or _generated_barcode()
    for _ in range(MAX_BARCODE_ATTEMPTS):
        if not _barcode_taken(tenant_id, barcode):
            return barcode
        barcode = _generated_barcode()
    raise RuntimeError("Could not generate a unique barcode")


def _resolve_category(row: dict, principal: Principal, tenant_id: int) -> Category:
    category_id = row.get("category_id")
    if isinstance(category_id, int):
        category = get_scoped(Category, category_id, principal)
        if category is not None:
            return category

    # Unknown ids and sentinels such as "auto-create" fall through to a lookup by name
    name = row.get("category_name") or DEFAULT_CATEGORY_NAME
    category = db.session.query(Category).filter_by(created_by=tenant_id, name=name).first()
    if category is None:
        category = Category(name=name, description="Created by bulk import", created_by=tenant_id)
        db.session.add(category)
        db.session.flush()
    return category


def _resolve_supplier(row: dict, principal: Principal, tenant_id: int) -> Supplier:
    supplier_id = row.get("supplier_id")
    if supplier_id is None or supplier_id == DEFAULT_SUPPLIER_SENTINEL:
        supplier = (
            db.session.query(Supplier)
            .filter_by(created_by=tenant_id, name=DEFAULT_SUPPLIER_NAME)
            .order_by(Supplier.id)
            .first()
        )
        if supplier is None:
            supplier = Supplier(name=DEFAULT_SUPPLIER_NAME, created_by=tenant_id)
            db.session.add(supplier)
            db.session.flush()
        return supplier
    if not isinstance(supplier_id, int):
        raise ValueError(f"Invalid supplier reference: {supplier_id!r}")
    supplier = get_scoped(Supplier, supplier_id, principal)
    if supplier is None:
        raise ValueError(f"Supplier with ID {supplier_id} does not exist")
    return supplier


def _resolve_branch(row: dict, principal: Principal, tenant_id: int) -> Branch:
    branch_id = row.get("branch_id")
    if branch_id is None:
        branch = (
            db.session.query(Branch)
            .filter_by(created_by=tenant_id, is_active=True)
            .order_by(Branch.id)
            .first()
        )
        if branch is None:
            branch = Branch(name=DEFAULT_BRANCH_NAME, created_by=tenant_id)
            db.session.add(branch)
            db.session.flush()
        return branch
    branch = get_scoped(Branch, branch_id, principal)
    if branch is None:
        raise ValueError(f"Branch with ID {branch_id} does not exist")
    return branch


def _at_least(value, floor):
    """The value when it clears the floor, otherwise None so a default applies."""
    if value is None or value < floor:
        return None
    return value


def _import_row(row: dict, principal: Principal, tenant_id: int) -> tuple[Product, str]:
    name = row.get("name") or _placeholder_name()
    selling_price = _at_least(row.get("selling_price"), Decimal("0.01")) or DEFAULT_SELLING_PRICE
    cost_price = (
        _at_least(row.get("cost_price"), Decimal("0.01"))
        or quantize(selling_price * COST_PRICE_RATIO)
    )
    stock = _at_least(row.get("stock"), 0) or 0
    min_stock = _at_least(row.get("min_stock"), 0)
    units_per_pack = _at_least(row.get("units_per_pack"), 1)
    requires_prescription = row.get("requires_prescription")

    category = _resolve_category(row, principal, tenant_id)
    supplier = _resolve_supplier(row, principal, tenant_id)
    branch = _resolve_branch(row, principal, tenant_id)

    existing = (
        db.session.query(Product)
        .filter_by(created_by=tenant_id, name=name, branch_id=branch.id)
        .order_by(Product.id)
        .first()
    )
    if existing is not None:
        existing.selling_price = selling_price
        existing.cost_price = cost_price
        existing.description = row.get("description") or existing.description
        existing.unit_type = row.get("unit_type") or existing.unit_type
        existing.units_per_pack = units_per_pack or existing.units_per_pack
        if requires_prescription is not None:
            existing.requires_prescription = requires_prescription
        if stock > 0:
            apply_movement(
                existing,
                MOVEMENT_IN,
                stock,
                reason="Bulk Import - Stock Update",
                reference="BULK_IMPORT_UPDATE",
                created_by=tenant_id,
                user_id=principal.user_id,
            )
        db.session.flush()
        return existing, "updated"

    product = Product(
        name=name,
        description=row.get("description") or DEFAULT_DESCRIPTION,
        sku=row.get("sku") or _generated_sku(name),
        barcode=_unique_barcode(tenant_id, row.get("barcode")),
        cost_price=cost_price,
        selling_price=selling_price,
        stock=0,
        min_stock=min_stock if min_stock is not None else DEFAULT_MIN_STOCK,
        max_stock=_at_least(row.get("max_stock"), 0),
        unit_type=row.get("unit_type") or DEFAULT_UNIT_TYPE,
        units_per_pack=units_per_pack or 1,
        requires_prescription=bool(requires_prescription),
        category_id=category.id,
        supplier_id=supplier.id,
        branch_id=branch.id,
        created_by=tenant_id,
    )
    db.session.add(product)
    db.session.flush()
    if stock > 0:
        apply_movement(
            product,
            MOVEMENT_IN,
            stock,
            reason="Bulk Import",
            reference="BULK_IMPORT",
            created_by=tenant_id,
            user_id=principal.user_id,
        )
    return product, "created"


def _row_label(raw: Any, index: int) -> dict:
    if isinstance(raw, dict):
        label = dict(raw)
        label.setdefault("row", index)
        return label
    return {"row": index, "value": repr(raw)}


def bulk_import_products(principal: Principal, rows: list[dict]) -> ImportResult:
    """
    Import catalog rows for the principal's tenant.

    Each row runs under its own savepoint: a failing row is rolled back and
    reported in `failed` while every other row still lands. Rows that match
    an existing product by name and branch add their stock to it.
    """
    if not isinstance(rows, list) or not rows:
        raise ValidationError("products must be a non-empty list")
    if len(rows) > MAX_IMPORT_ROWS:
        raise ValidationError(f"At most {MAX_IMPORT_ROWS} rows can be imported at once")
    tenant_id = require_tenant_id(principal)

    def _op() -> ImportResult:
        result = ImportResult(total=len(rows))
        for index, raw in enumerate(rows, start=1):
            try:
                with db.session.begin_nested():
                    if not isinstance(raw, dict):
                        raise ValueError("Row must be an object")
                    normalized = PRODUCT_IMPORT_SCHEMA.normalize_row(raw)
                    errors = PRODUCT_IMPORT_SCHEMA.validate_row(normalized)
                    if errors:
                        raise ValueError("; ".join(errors))
                    product, action = _import_row(normalized, principal, tenant_id)
                    entry = product.to_dict()
                    entry["action"] = action
                result.successful.append(entry)
            except (OperationalError, StaleDataError):
                raise
            except Exception as exc:  # noqa: BLE001
                result.failed.append({"product": _row_label(raw, index), "error": str(exc)})
        return result

    result = run_atomic(_op)
    current_app.logger.info(
        "Bulk import for tenant %s: total=%s success=%s skipped=%s failed=%s",
        tenant_id, result.total, result.success_count, result.skipped_count, result.failure_count,
    )
    if result.success_count:
        notify_tenant(tenant_id, "product_change", "bulk_imported", {
            "success_count": result.success_count,
            "failure_count": result.failure_count,
        })
    return result
