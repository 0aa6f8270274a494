# Overview: Pytest coverage for tenant scope resolution and isolation.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: prove that one tenant can never see or change another
tenant's rows, and that lookups outside scope look exactly like misses.
"""

import logging

import pytest

from medibill.errors import ForbiddenError, NotFoundError, ProductNotFound, UnauthorizedError
from medibill.models import Product
from medibill.models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from medibill.services import catalog_service, inventory_service, products_service
from medibill.services.tenant_service import (
    Principal,
    get_scoped_or_404,
    require_tenant_id,
    resolve_tenant_id,
    scoped_query,
    stamp_owner,
)


class TestResolveTenantId:
    """Principal -> tenant id mapping."""

    def test_superadmin_is_unrestricted(self, super_principal):
        assert resolve_tenant_id(super_principal) is None

    def test_self_owned_root_resolves_to_itself(self, tenant_a, principal_a):
        assert resolve_tenant_id(principal_a) == tenant_a.id

    def test_staff_resolves_to_root(self, tenant_a, cashier_a):
        assert resolve_tenant_id(Principal.from_user(cashier_a)) == tenant_a.id

    def test_missing_created_by_falls_back_to_own_id(self):
        assert resolve_tenant_id(Principal(user_id=42, role=ROLE_ADMIN)) == 42

    def test_no_principal_is_unauthorized(self):
        with pytest.raises(UnauthorizedError):
            resolve_tenant_id(None)

    def test_superadmin_cannot_stamp_tenant_rows(self, super_principal):
        with pytest.raises(ForbiddenError):
            require_tenant_id(super_principal)

    def test_stamp_owner_sets_created_by(self, tenant_a, principal_a):
        product = stamp_owner(Product(name="X", branch_id=1), principal_a)
        assert product.created_by == tenant_a.id


class TestScopedReads:
    """Reads only ever return rows of the caller's tenant."""

    def test_scoped_query_hides_other_tenant(self, db_session, principal_a, principal_b, product_a, product_b):
        ids_a = {p.id for p in scoped_query(Product, principal_a).all()}
        ids_b = {p.id for p in scoped_query(Product, principal_b).all()}

        assert ids_a == {product_a.id}
        assert ids_b == {product_b.id}

    def test_no_principal_matches_nothing(self, db_session, product_a, product_b):
        assert scoped_query(Product, None).count() == 0

    def test_superadmin_sees_every_tenant(self, db_session, super_principal, product_a, product_b):
        assert scoped_query(Product, super_principal).count() == 2

    def test_cross_tenant_lookup_is_not_found(self, db_session, principal_a, product_b):
        with pytest.raises(ProductNotFound):
            products_service.get_product(principal_a, product_b.id)

    def test_cross_tenant_and_missing_look_identical(self, db_session, principal_a, product_b):
        with pytest.raises(NotFoundError) as foreign:
            get_scoped_or_404(Product, product_b.id, principal_a)
        with pytest.raises(NotFoundError) as missing:
            get_scoped_or_404(Product, 999999, principal_a)

        assert foreign.value.status_code == missing.value.status_code == 404
        assert foreign.value.message == missing.value.message

    def test_cross_tenant_attempt_is_logged(self, db_session, app, principal_a, product_b, caplog):
        with caplog.at_level(logging.WARNING):
            with pytest.raises(ProductNotFound):
                products_service.get_product(principal_a, product_b.id)

        assert any("Cross-tenant access denied" in r.getMessage() for r in caplog.records)

    def test_plain_miss_is_not_logged(self, db_session, app, principal_a, caplog):
        with caplog.at_level(logging.WARNING):
            with pytest.raises(ProductNotFound):
                products_service.get_product(principal_a, 999999)

        assert not any("Cross-tenant" in r.getMessage() for r in caplog.records)


class TestScopedWrites:
    """Writes cannot reach into another tenant."""

    def test_stock_update_on_foreign_product_fails(self, db_session, principal_a, product_b):
        with pytest.raises(ProductNotFound):
            inventory_service.adjust_stock(principal_a, product_b.id, "IN", 5)

        db_session.expire_all()
        assert db_session.get(Product, product_b.id).stock == 10

    def test_product_in_foreign_branch_rejected(self, db_session, principal_a, branch_b):
        with pytest.raises(NotFoundError):
            products_service.create_product(principal_a, {
                "name": "Sneaky", "selling_price": "1.00", "branch_id": branch_b.id,
            })

    def test_write_without_principal_is_unauthorized(self, db_session, branch_a):
        with pytest.raises(UnauthorizedError):
            products_service.create_product(None, {
                "name": "Orphan", "selling_price": "1.00", "branch_id": branch_a.id,
            })

    def test_bulk_delete_skips_foreign_ids(self, db_session, principal_a, product_a, product_b):
        a_id, b_id = product_a.id, product_b.id
        result = products_service.bulk_delete_products(principal_a, [a_id, b_id])

        assert result["deleted"] == [a_id]
        assert result["not_found"] == [b_id]
        db_session.expire_all()
        assert db_session.get(Product, a_id) is None
        assert db_session.get(Product, b_id) is not None


class TestManagerBranchScope:
    """A manager assigned to a branch sees only that branch's stock."""

    def test_manager_sees_own_branch_products(
        self, db_session, tenant_a, principal_a, manager_a, branch_a, branch_a2, product_a
    ):
        other = products_service.create_product(principal_a, {
            "name": "Harbour Only", "selling_price": "9.99", "branch_id": branch_a2.id,
        })
        manager = Principal.from_user(manager_a)

        products, total = products_service.list_products(manager)
        assert total == 1
        assert [p.id for p in products] == [product_a.id]
        with pytest.raises(ProductNotFound):
            products_service.get_product(manager, other.id)

    def test_admin_sees_every_branch(self, db_session, principal_a, branch_a2, product_a):
        products_service.create_product(principal_a, {
            "name": "Harbour Only", "selling_price": "9.99", "branch_id": branch_a2.id,
        })
        _, total = products_service.list_products(principal_a)
        assert total == 2

    def test_manager_branch_list_is_narrowed(self, db_session, manager_a, branch_a, branch_a2):
        branches = catalog_service.list_entries(Principal.from_user(manager_a), "branch")
        assert [b.id for b in branches] == [branch_a.id]

    def test_cashier_is_not_branch_narrowed(self, db_session, tenant_a, branch_a, branch_a2):
        cashier = Principal(user_id=999, role=ROLE_CASHIER, created_by=tenant_a.id, branch_id=branch_a.id)
        assert len(catalog_service.list_entries(cashier, "branch")) == 2

    def test_manager_without_branch_sees_everything(self, db_session, tenant_a, branch_a, branch_a2):
        manager = Principal(user_id=998, role=ROLE_MANAGER, created_by=tenant_a.id)
        assert len(catalog_service.list_entries(manager, "branch")) == 2
