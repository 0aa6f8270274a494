from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from ..money import quantize

# Spreadsheet exports arrive in either naming style
FIELD_ALIASES = {
    "name": ("name", "product_name", "productName"),
    "description": ("description",),
    "category_id": ("category_id", "categoryId"),
    "category_name": ("category_name", "categoryName", "category"),
    "supplier_id": ("supplier_id", "supplierId"),
    "branch_id": ("branch_id", "branchId"),
    "cost_price": ("cost_price", "costPrice"),
    "selling_price": ("selling_price", "sellingPrice", "price"),
    "stock": ("stock", "quantity"),
    "min_stock": ("min_stock", "minStock"),
    "max_stock": ("max_stock", "maxStock"),
    "unit_type": ("unit_type", "unitType"),
    "units_per_pack": ("units_per_pack", "unitsPerPack"),
    "barcode": ("barcode",),
    "sku": ("sku",),
    "requires_prescription": ("requires_prescription", "requiresPrescription"),
}

DEFAULT_SUPPLIER_SENTINEL = "default-supplier"


def _pick(raw_row: dict[str, Any], field: str) -> Any:
    for key in FIELD_ALIASES[field]:
        if key in raw_row and raw_row[key] not in (None, ""):
            return raw_row[key]
    return None


def _to_int(value: Any) -> int | None:
    """Whole number, or None when the cell is blank or unreadable."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return None


def _to_money(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return quantize(value) if value.is_finite() else None
    text = str(value).strip().replace("$", "").replace(",", "")
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return quantize(amount)


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_bool(value: Any) -> bool | None:
    # None means the column was absent; merges keep the stored flag
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y"}


def _reference(value: Any) -> int | str | None:
    """Ids stay ints; sentinels such as "default-supplier" stay strings."""
    if value is None or value == "":
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    return text


class ProductImportSchema:
    """
    Normalizes one raw import row.

    Unreadable cells come back as None. Defaults are applied later by the
    import service, so the normalized row still shows which fields the file
    actually supplied.
    """

    def normalize_row(self, raw_row: dict[str, Any]) -> dict[str, Any]:
        return {
            "name": _to_text(_pick(raw_row, "name")),
            "description": _to_text(_pick(raw_row, "description")),
            "category_id": _reference(_pick(raw_row, "category_id")),
            "category_name": _to_text(_pick(raw_row, "category_name")),
            "supplier_id": _reference(_pick(raw_row, "supplier_id")),
            "branch_id": _reference(_pick(raw_row, "branch_id")),
            "cost_price": _to_money(_pick(raw_row, "cost_price")),
            "selling_price": _to_money(_pick(raw_row, "selling_price")),
            "stock": _to_int(_pick(raw_row, "stock")),
            "min_stock": _to_int(_pick(raw_row, "min_stock")),
            "max_stock": _to_int(_pick(raw_row, "max_stock")),
            "unit_type": _to_text(_pick(raw_row, "unit_type")),
            "units_per_pack": _to_int(_pick(raw_row, "units_per_pack")),
            "barcode": _to_text(_pick(raw_row, "barcode")),
            "sku": _to_text(_pick(raw_row, "sku")),
            "requires_prescription": _to_bool(_pick(raw_row, "requires_prescription")),
        }

    def validate_row(self, normalized_row: dict[str, Any]) -> list[str]:
        # Out-of-range numbers fall back to defaults; only references can fail a row
        errors: list[str] = []
        branch_id = normalized_row.get("branch_id")
        if branch_id is not None and not isinstance(branch_id, int):
            errors.append(f"branch_id must be an integer, got {branch_id!r}")
        return errors


PRODUCT_IMPORT_SCHEMA = ProductImportSchema()
