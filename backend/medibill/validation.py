from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from .errors import ValidationError
from .models.sales import PAYMENT_METHODS
from .money import ZERO, to_decimal
from .time_utils import parse_iso_date


@dataclass
class SaleLineInput:
    product_id: int
    quantity: int
    unit_price: Decimal
    batch_number: str | None = None
    expiry_date: date | None = None


@dataclass
class SaleInput:
    branch_id: int
    payment_method: str
    items: list[SaleLineInput]
    customer_id: int | None = None
    discount_amount: Decimal = ZERO


@dataclass
class RefundLineInput:
    product_id: int
    quantity: int
    unit_price: Decimal
    reason: str | None = None


@dataclass
class RefundInput:
    sale_id: int
    reason: str
    items: list[RefundLineInput] = field(default_factory=list)


class _Collector:
    """Accumulate field errors so one response lists every problem."""

    def __init__(self) -> None:
        self.errors: list[str] = []

    def int_field(self, data: dict, key: str, *, label: str | None = None, minimum: int | None = None,
                  required: bool = True) -> int | None:
        label = label or key
        value = data.get(key)
        if value is None or value == "":
            if required:
                self.errors.append(f"{label} is required")
            return None
        if isinstance(value, bool):
            self.errors.append(f"{label} must be an integer")
            return None
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped.lstrip("-").isdigit():
                self.errors.append(f"{label} must be an integer")
                return None
            value = int(stripped)
        elif isinstance(value, float):
            if not value.is_integer():
                self.errors.append(f"{label} must be an integer, not a decimal")
                return None
            value = int(value)
        elif not isinstance(value, int):
            self.errors.append(f"{label} must be an integer")
            return None
        if minimum is not None and value < minimum:
            self.errors.append(f"{label} must be at least {minimum}")
            return None
        return value

    def money_field(self, data: dict, key: str, *, label: str | None = None, positive: bool = False,
                    required: bool = True, default: Decimal | None = None) -> Decimal | None:
        label = label or key
        value = data.get(key)
        if value is None or value == "":
            if required:
                self.errors.append(f"{label} is required")
            return default
        try:
            amount = to_decimal(value, label)
        except ValidationError as exc:
            self.errors.append(exc.message)
            return None
        if positive and amount <= 0:
            self.errors.append(f"{label} must be greater than 0")
            return None
        if not positive and amount < 0:
            self.errors.append(f"{label} cannot be negative")
            return None
        return amount

    def text_field(self, data: dict, key: str, *, label: str | None = None, required: bool = False,
                   max_length: int = 500) -> str | None:
        label = label or key
        value = data.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            if required:
                self.errors.append(f"{label} is required")
            return None
        text = str(value).strip()
        if len(text) > max_length:
            self.errors.append(f"{label} must be at most {max_length} characters")
            return None
        return text

    def raise_if_any(self, message: str = "Validation failed") -> None:
        if self.errors:
            raise ValidationError(message, errors=self.errors)


def _require_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def validate_sale_payload(payload: Any) -> SaleInput:
    """
    Parse a sale request.

    Requires at least one item; quantity >= 1, unit_price > 0 and
    discount_amount >= 0. The discount is not checked against the subtotal.
    """
    data = _require_object(payload)
    c = _Collector()

    branch_id = c.int_field(data, "branch_id", minimum=1)
    customer_id = c.int_field(data, "customer_id", minimum=1, required=False)
    discount = c.money_field(data, "discount_amount", required=False, default=ZERO)

    payment_method = data.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        c.errors.append(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")

    raw_items = data.get("items")
    items: list[SaleLineInput] = []
    if not isinstance(raw_items, list) or not raw_items:
        c.errors.append("items must contain at least one item")
    else:
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                c.errors.append(f"items[{index}] must be an object")
                continue
            product_id = c.int_field(raw, "product_id", label=f"items[{index}].product_id", minimum=1)
            quantity = c.int_field(raw, "quantity", label=f"items[{index}].quantity", minimum=1)
            unit_price = c.money_field(raw, "unit_price", label=f"items[{index}].unit_price", positive=True)
            batch_number = c.text_field(raw, "batch_number", label=f"items[{index}].batch_number", max_length=64)
            expiry_date = None
            if raw.get("expiry_date"):
                try:
                    expiry_date = parse_iso_date(str(raw["expiry_date"]))
                except ValueError:
                    c.errors.append(f"items[{index}].expiry_date must be an ISO date")
            if product_id is not None and quantity is not None and unit_price is not None:
                items.append(SaleLineInput(product_id, quantity, unit_price, batch_number, expiry_date))

    c.raise_if_any()
    return SaleInput(
        branch_id=branch_id,
        payment_method=payment_method,
        items=items,
        customer_id=customer_id,
        discount_amount=discount if discount is not None else ZERO,
    )


def validate_refund_payload(payload: Any) -> RefundInput:
    data = _require_object(payload)
    c = _Collector()

    sale_id = c.int_field(data, "sale_id", minimum=1)
    reason = c.text_field(data, "reason", required=True)

    raw_items = data.get("items")
    items: list[RefundLineInput] = []
    if not isinstance(raw_items, list) or not raw_items:
        c.errors.append("items must contain at least one item")
    else:
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                c.errors.append(f"items[{index}] must be an object")
                continue
            product_id = c.int_field(raw, "product_id", label=f"items[{index}].product_id", minimum=1)
            quantity = c.int_field(raw, "quantity", label=f"items[{index}].quantity", minimum=1)
            unit_price = c.money_field(raw, "unit_price", label=f"items[{index}].unit_price", positive=True)
            item_reason = c.text_field(raw, "reason", label=f"items[{index}].reason")
            if product_id is not None and quantity is not None and unit_price is not None:
                items.append(RefundLineInput(product_id, quantity, unit_price, item_reason))

    c.raise_if_any()
    return RefundInput(sale_id=sale_id, reason=reason, items=items)


# Fields a client may set on a product; stock is excluded and goes through the ledger
PRODUCT_WRITABLE_FIELDS = {
    "name", "description", "sku", "barcode", "cost_price", "selling_price",
    "min_stock", "max_stock", "unit_type", "units_per_pack", "requires_prescription",
    "is_active", "category_id", "supplier_id", "branch_id",
}


def validate_product_payload(payload: Any, *, partial: bool = False) -> dict:
    """
    Parse a product create/update request into column values.

    On create (partial=False) name, selling_price and branch_id are required
    and `stock` is returned separately as the opening balance.
    """
    data = _require_object(payload)
    c = _Collector()
    out: dict[str, Any] = {}

    unknown = set(data) - PRODUCT_WRITABLE_FIELDS - {"stock"}
    if unknown:
        c.errors.append(f"Unknown fields: {', '.join(sorted(unknown))}")

    def present(key: str) -> bool:
        return not partial or key in data

    if present("name"):
        out["name"] = c.text_field(data, "name", required=True, max_length=255)
    if present("selling_price"):
        out["selling_price"] = c.money_field(data, "selling_price", positive=True)
    if present("branch_id"):
        out["branch_id"] = c.int_field(data, "branch_id", minimum=1)

    if "cost_price" in data:
        out["cost_price"] = c.money_field(data, "cost_price")
    for key in ("description", "sku", "barcode", "unit_type"):
        if key in data:
            out[key] = c.text_field(data, key, max_length=500 if key == "description" else 128)
    for key, minimum in (("min_stock", 0), ("max_stock", 0), ("units_per_pack", 1)):
        if key in data:
            out[key] = c.int_field(data, key, minimum=minimum, required=False)
    for key in ("category_id", "supplier_id"):
        if key in data:
            out[key] = c.int_field(data, key, minimum=1, required=False)
    for key in ("requires_prescription", "is_active"):
        if key in data:
            if not isinstance(data[key], bool):
                c.errors.append(f"{key} must be a boolean")
            else:
                out[key] = data[key]

    if "stock" in data:
        out["stock"] = c.int_field(data, "stock", minimum=0)

    c.raise_if_any()
    return out
