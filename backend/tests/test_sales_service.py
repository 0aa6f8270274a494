# Overview: Pytest coverage for the sale transaction engine.

import re
from datetime import datetime
from decimal import Decimal

import pytest

from medibill.errors import (
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    ProductNotFound,
    SaleNotFound,
    UnauthorizedError,
    ValidationError,
)
from medibill.models import Customer, Product, Receipt, Sale, SaleItem, StockMovement
from medibill.services import notification_service, sales_service, settings_service
from medibill.services.concurrency import run_atomic
from medibill.services.document_service import next_receipt_number
from medibill.services.tenant_service import Principal
from medibill.validation import SaleLineInput

from conftest import sale_payload

RECEIPT_PATTERN = re.compile(r"^RCP-\d{8}-\d{3,}$")


def _counts(session):
    return (
        session.query(Sale).count(),
        session.query(SaleItem).count(),
        session.query(Receipt).count(),
        session.query(StockMovement).filter(StockMovement.sale_id.isnot(None)).count(),
    )


class TestCalculateTotals:

    def test_worked_example(self):
        items = [
            SaleLineInput(product_id=1, quantity=2, unit_price=Decimal("50")),
            SaleLineInput(product_id=2, quantity=1, unit_price=Decimal("30")),
        ]
        totals = sales_service.calculate_totals(items, Decimal("10"))

        assert totals.subtotal == Decimal("130.00")
        assert totals.tax_amount == Decimal("13.00")
        assert totals.total_amount == Decimal("143.00")

    def test_rounds_half_up_to_cents(self):
        items = [SaleLineInput(product_id=1, quantity=1, unit_price=Decimal("0.05"))]
        totals = sales_service.calculate_totals(items, Decimal("50"))
        # 0.025 -> 0.03
        assert totals.tax_amount == Decimal("0.03")

    def test_discount_may_exceed_subtotal(self):
        items = [SaleLineInput(product_id=1, quantity=1, unit_price=Decimal("10"))]
        totals = sales_service.calculate_totals(items, Decimal("0"), Decimal("15"))
        assert totals.total_amount == Decimal("-5.00")

    @pytest.mark.parametrize("amount,points", [
        (Decimal("99.99"), 0),
        (Decimal("143.00"), 1),
        (Decimal("250"), 2),
        (Decimal("-5"), 0),
    ])
    def test_loyalty_points(self, app, amount, points):
        assert sales_service.loyalty_points_for(amount) == points


class TestCreateSale:

    def test_round_trip(self, db_session, principal_a, branch_a, product_a, product_a2):
        sale = sales_service.create_sale(
            principal_a, sale_payload(branch_a, (product_a, 2, 50), (product_a2, 1, 30))
        )

        assert sale.subtotal == Decimal("130.00")
        assert sale.tax_amount == Decimal("13.00")
        assert sale.total_amount == Decimal("143.00")
        assert sale.status == "COMPLETED"
        assert len(sale.items) == 2
        db_session.expire_all()
        assert db_session.get(Product, product_a.id).stock == 18
        assert db_session.get(Product, product_a2.id).stock == 4
        assert db_session.query(Receipt).filter_by(sale_id=sale.id).count() == 1
        assert RECEIPT_PATTERN.match(sale.receipt.receipt_number)

    def test_sale_movements_reference_the_sale(self, db_session, principal_a, branch_a, product_a):
        sale = sales_service.create_sale(principal_a, sale_payload(branch_a, (product_a, 3, 50)))

        movement = db_session.query(StockMovement).filter_by(sale_id=sale.id).one()
        assert movement.type == "OUT"
        assert movement.quantity == 3
        assert movement.reason == "Sale"
        assert movement.reference == str(sale.id)
        assert movement.stock_after == 17

    def test_to_dict_uses_string_money(self, db_session, principal_a, branch_a, product_a):
        sale = sales_service.create_sale(principal_a, sale_payload(branch_a, (product_a, 1, "12.5")))
        data = sale.to_dict()

        assert data["subtotal"] == "12.50"
        assert data["tax_amount"] == "1.25"
        assert data["total_amount"] == "13.75"
        assert data["receipt_number"] == sale.receipt.receipt_number
        assert data["items"][0]["unit_price"] == "12.50"

    def test_tax_rate_comes_from_tenant_setting(self, db_session, tenant_a, principal_a, branch_a, product_a):
        run_atomic(lambda: settings_service.set_setting(tenant_a.id, "defaultTax", "5"))
        sale = sales_service.create_sale(principal_a, sale_payload(branch_a, (product_a, 2, 50)))

        assert sale.tax_rate == Decimal("5")
        assert sale.tax_amount == Decimal("5.00")

    def test_discount_is_subtracted(self, db_session, principal_a, branch_a, product_a):
        sale = sales_service.create_sale(
            principal_a, sale_payload(branch_a, (product_a, 2, 50), discount_amount="20")
        )
        assert sale.total_amount == Decimal("90.00")

    def test_customer_stats_updated(self, db_session, principal_a, branch_a, product_a, product_a2, customer_a):
        sales_service.create_sale(
            principal_a,
            sale_payload(branch_a, (product_a, 2, 50), (product_a2, 1, 30), customer_id=customer_a.id),
        )

        db_session.expire_all()
        customer = db_session.get(Customer, customer_a.id)
        assert customer.total_purchases == Decimal("143.00")
        assert customer.loyalty_points == 1
        assert customer.last_visit is not None

    def test_cashier_records_sale_for_tenant(self, db_session, tenant_a, cashier_a, branch_a, product_a):
        sale = sales_service.create_sale(
            Principal.from_user(cashier_a), sale_payload(branch_a, (product_a, 1, 50))
        )
        assert sale.created_by == tenant_a.id
        assert sale.user_id == cashier_a.id


class TestSaleRollback:
    """A failing line leaves no sale, items, receipt or stock change."""

    def test_insufficient_stock_rolls_back_everything(self, db_session, principal_a, branch_a, product_a, product_a2):
        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.create_sale(
                principal_a, sale_payload(branch_a, (product_a, 2, 50), (product_a2, 10, 30))
            )

        assert "Available: 5, Requested: 10" in exc_info.value.message
        assert _counts(db_session) == (0, 0, 0, 0)
        db_session.expire_all()
        assert db_session.get(Product, product_a.id).stock == 20
        assert db_session.get(Product, product_a2.id).stock == 5

    def test_unknown_product_rolls_back(self, db_session, principal_a, branch_a, product_a):
        payload = sale_payload(branch_a, (product_a, 1, 50))
        payload["items"].append({"product_id": 987654, "quantity": 1, "unit_price": "1"})

        with pytest.raises(ProductNotFound):
            sales_service.create_sale(principal_a, payload)

        assert _counts(db_session) == (0, 0, 0, 0)
        db_session.expire_all()
        assert db_session.get(Product, product_a.id).stock == 20

    def test_foreign_product_is_not_found(self, db_session, principal_a, branch_a, product_b):
        with pytest.raises(ProductNotFound):
            sales_service.create_sale(principal_a, sale_payload(branch_a, (product_b, 1, 25)))

        db_session.expire_all()
        assert db_session.get(Product, product_b.id).stock == 10

    def test_foreign_branch_is_not_found(self, db_session, principal_a, branch_b, product_a):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(principal_a, sale_payload(branch_b, (product_a, 1, 50)))

    def test_foreign_customer_is_not_found(self, db_session, principal_b, branch_b, product_b, customer_a):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                principal_b, sale_payload(branch_b, (product_b, 1, 25), customer_id=customer_a.id)
            )

    def test_no_notification_on_failure(self, db_session, tenant_a, principal_a, branch_a, product_a2):
        received = []
        notification_service.hub.subscribe(tenant_a.id, received.append)

        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(principal_a, sale_payload(branch_a, (product_a2, 6, 15)))
        assert received == []


class TestSaleValidation:

    @pytest.mark.parametrize("mutate", [
        lambda p: p.update(items=[]),
        lambda p: p["items"][0].update(quantity=0),
        lambda p: p["items"][0].update(quantity=1.5),
        lambda p: p["items"][0].update(unit_price="0"),
        lambda p: p["items"][0].update(unit_price="abc"),
        lambda p: p.update(payment_method="CHEQUE"),
        lambda p: p.update(discount_amount="-1"),
        lambda p: p.pop("branch_id"),
    ])
    def test_rejected_before_any_write(self, db_session, principal_a, branch_a, product_a, mutate):
        payload = sale_payload(branch_a, (product_a, 1, 50))
        mutate(payload)

        with pytest.raises(ValidationError) as exc_info:
            sales_service.create_sale(principal_a, payload)
        assert exc_info.value.errors
        assert _counts(db_session) == (0, 0, 0, 0)

    def test_all_problems_reported_together(self, db_session, principal_a, branch_a, product_a):
        payload = sale_payload(branch_a, (product_a, 0, 0), payment_method="GOLD")

        with pytest.raises(ValidationError) as exc_info:
            sales_service.create_sale(principal_a, payload)
        assert len(exc_info.value.errors) == 3

    def test_superadmin_cannot_sell(self, db_session, super_principal, branch_a, product_a):
        with pytest.raises(ForbiddenError):
            sales_service.create_sale(super_principal, sale_payload(branch_a, (product_a, 1, 50)))

    def test_anonymous_cannot_sell(self, db_session, branch_a, product_a):
        with pytest.raises(UnauthorizedError):
            sales_service.create_sale(None, sale_payload(branch_a, (product_a, 1, 50)))


class TestReceiptNumbers:

    def test_sequential_per_day(self, db_session):
        day = datetime(2024, 1, 2, 9, 30)
        first = run_atomic(lambda: next_receipt_number(now=day))
        second = run_atomic(lambda: next_receipt_number(now=day))
        other_day = run_atomic(lambda: next_receipt_number(now=datetime(2024, 1, 3)))

        assert first == "RCP-20240102-001"
        assert second == "RCP-20240102-002"
        assert other_day == "RCP-20240103-001"

    def test_sales_get_distinct_receipts(self, db_session, principal_a, branch_a, product_a):
        numbers = {
            sales_service.create_sale(principal_a, sale_payload(branch_a, (product_a, 1, 50))).receipt.receipt_number
            for _ in range(5)
        }
        assert len(numbers) == 5


class TestSaleQueries:

    def test_lookup_by_receipt_number(self, db_session, principal_a, principal_b, branch_a, product_a):
        sale = sales_service.create_sale(principal_a, sale_payload(branch_a, (product_a, 1, 50)))
        number = sale.receipt.receipt_number

        assert sales_service.get_sale_by_receipt_number(principal_a, number).id == sale.id
        with pytest.raises(SaleNotFound):
            sales_service.get_sale_by_receipt_number(principal_b, number)

    def test_get_sale_is_scoped(self, db_session, principal_a, principal_b, branch_a, product_a):
        sale = sales_service.create_sale(principal_a, sale_payload(branch_a, (product_a, 1, 50)))

        assert sales_service.get_sale(principal_a, sale.id).id == sale.id
        with pytest.raises(SaleNotFound):
            sales_service.get_sale(principal_b, sale.id)

    def test_list_filters(self, db_session, principal_a, principal_b, branch_a, product_a):
        sales_service.create_sale(principal_a, sale_payload(branch_a, (product_a, 1, 50)))
        sales_service.create_sale(principal_a, sale_payload(branch_a, (product_a, 1, 50), payment_method="CARD"))

        _, total = sales_service.list_sales(principal_a)
        card, card_total = sales_service.list_sales(principal_a, payment_method="CARD")
        _, other_total = sales_service.list_sales(principal_b)

        assert total == 2
        assert card_total == 1 and card[0].payment_method == "CARD"
        assert other_total == 0

    def test_sale_notifies_own_tenant_only(self, db_session, tenant_a, tenant_b, principal_a, branch_a, product_a):
        received_a, received_b = [], []
        notification_service.hub.subscribe(tenant_a.id, received_a.append)
        notification_service.hub.subscribe(tenant_b.id, received_b.append)

        sale = sales_service.create_sale(principal_a, sale_payload(branch_a, (product_a, 1, 50)))

        assert len(received_a) == 1
        assert received_a[0]["type"] == "sale_change"
        assert received_a[0]["action"] == "created"
        assert received_a[0]["data"]["id"] == sale.id
        assert received_b == []
