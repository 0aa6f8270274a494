# Overview: Pytest coverage for tenant cascade deletion.

"""
Tenant Cascade Deletion Tests

Deleting a tenant must remove every row it owns (including staff users and
their sessions) and must not touch any other tenant.
"""

import pytest

from medibill.errors import DuplicateConflictError, ForbiddenError, NotFoundError
from medibill.models import (
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
from medibill.services import (
    import_service,
    refund_service,
    sales_service,
    session_service,
    tenant_admin_service,
)
from medibill.services.concurrency import run_atomic
from medibill.services.settings_service import set_setting
from medibill.services.tenant_service import Principal

from conftest import sale_payload

TENANT_TABLES = [
    Branch, Category, Customer, Product, Receipt, Refund, RefundItem,
    Sale, SaleItem, Setting, StockMovement, Supplier,
]


@pytest.fixture
def populated_tenant_a(db_session, tenant_a, principal_a, branch_a, cashier_a, customer_a, product_a):
    """Tenant A with every kind of row: sale, refund, import, settings, sessions."""
    sale = sales_service.create_sale(
        principal_a, sale_payload(branch_a, (product_a, 4, 50), customer_id=customer_a.id)
    )
    refund_service.create_refund(principal_a, {
        "sale_id": sale.id,
        "reason": "Wrong item",
        "items": [{"product_id": product_a.id, "quantity": 1, "unit_price": "50"}],
    })
    import_service.bulk_import_products(principal_a, [{"name": "Imported Syrup", "stock": 12}])
    run_atomic(lambda: set_setting(tenant_a.id, "defaultTax", "8"))
    session_service.create_session(tenant_a.id)
    session_service.create_session(cashier_a.id)
    return tenant_a


@pytest.fixture
def populated_tenant_b(db_session, principal_b, branch_b, product_b):
    sales_service.create_sale(principal_b, sale_payload(branch_b, (product_b, 2, 25)))
    return principal_b


def _owned_counts(session, tenant_id):
    return {model.__tablename__: session.query(model).filter_by(created_by=tenant_id).count() for model in TENANT_TABLES}


class TestDeleteTenant:

    def test_removes_every_owned_row(self, db_session, super_principal, populated_tenant_a, cashier_a):
        tenant_id = populated_tenant_a.id
        cashier_id = cashier_a.id
        assert sum(_owned_counts(db_session, tenant_id).values()) > 0

        counts = tenant_admin_service.delete_tenant(super_principal, tenant_id)

        assert all(value == 0 for value in _owned_counts(db_session, tenant_id).values())
        assert db_session.query(User).filter(User.id.in_([tenant_id, cashier_id])).count() == 0
        assert db_session.query(SessionToken).filter(
            SessionToken.user_id.in_([tenant_id, cashier_id])
        ).count() == 0
        assert counts["users"] == 2
        assert counts["sales"] == 1
        assert counts["refunds"] == 1
        assert counts["session_tokens"] == 2
        # opening IN, sale OUT, refund RETURN, imported product IN
        assert counts["stock_movements"] == 4

    def test_other_tenant_untouched(self, db_session, super_principal, populated_tenant_a, populated_tenant_b, tenant_b):
        before = _owned_counts(db_session, tenant_b.id)

        tenant_admin_service.delete_tenant(super_principal, populated_tenant_a.id)

        assert _owned_counts(db_session, tenant_b.id) == before
        assert db_session.get(User, tenant_b.id) is not None
        assert before["sales"] == 1

    def test_receipt_counter_survives(self, db_session, super_principal, populated_tenant_a, principal_b, branch_b, product_b):
        tenant_admin_service.delete_tenant(super_principal, populated_tenant_a.id)

        sale = sales_service.create_sale(principal_b, sale_payload(branch_b, (product_b, 1, 25)))
        assert sale.receipt.receipt_number.endswith("-002")

    def test_deleted_tenant_token_no_longer_authenticates(self, db_session, super_principal, tenant_a):
        _, token = session_service.create_session(tenant_a.id)
        assert session_service.validate_session(token) is not None

        tenant_admin_service.delete_tenant(super_principal, tenant_a.id)

        assert session_service.validate_session(token) is None


class TestDeleteTenantGuards:

    def test_requires_superadmin(self, db_session, principal_a, tenant_b):
        with pytest.raises(ForbiddenError):
            tenant_admin_service.delete_tenant(principal_a, tenant_b.id)
        assert db_session.get(User, tenant_b.id) is not None

    def test_tenant_cannot_delete_itself(self, db_session, principal_a, tenant_a):
        with pytest.raises(ForbiddenError):
            tenant_admin_service.delete_tenant(principal_a, tenant_a.id)

    def test_unknown_tenant(self, db_session, super_principal):
        with pytest.raises(NotFoundError):
            tenant_admin_service.delete_tenant(super_principal, 123456)

    def test_staff_user_is_not_a_tenant(self, db_session, super_principal, cashier_a):
        with pytest.raises(NotFoundError):
            tenant_admin_service.delete_tenant(super_principal, cashier_a.id)


class TestTenantOnboarding:

    def test_create_tenant_owns_itself(self, db_session, super_principal):
        root = tenant_admin_service.create_tenant(
            {"username": "newpharm", "name": "New Pharmacy", "password": "Password123"},
            principal=super_principal,
        )
        assert root.role == "ADMIN"
        assert root.created_by == root.id
        assert [t.id for t in tenant_admin_service.list_tenants(super_principal)] == [root.id]

    def test_duplicate_username(self, db_session, super_principal, tenant_a):
        with pytest.raises(DuplicateConflictError):
            tenant_admin_service.create_tenant(
                {"username": tenant_a.username, "name": "Copy", "password": "Password123"},
                principal=super_principal,
            )

    def test_admin_adds_staff_in_own_tenant(self, db_session, tenant_a, principal_a, branch_a):
        user = tenant_admin_service.create_staff_user(principal_a, {
            "username": "till2", "name": "Till 2", "password": "Password123",
            "role": "CASHIER", "branch_id": branch_a.id,
        })
        assert user.created_by == tenant_a.id
        assert user.branch_id == branch_a.id

    def test_staff_branch_must_be_in_tenant(self, db_session, principal_a, branch_b):
        with pytest.raises(NotFoundError):
            tenant_admin_service.create_staff_user(principal_a, {
                "username": "till3", "name": "Till 3", "password": "Password123",
                "role": "MANAGER", "branch_id": branch_b.id,
            })

    def test_cashier_cannot_add_staff(self, db_session, cashier_a):
        with pytest.raises(ForbiddenError):
            tenant_admin_service.create_staff_user(Principal.from_user(cashier_a), {
                "username": "x1", "name": "X", "password": "Password123",
            })
