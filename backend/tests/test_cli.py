from sqlalchemy import update

from medibill.extensions import db
from medibill.models import Product, User


class TestCli:

    def test_tenant_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "tenants", "create", "--username", "clipharm", "--name", "CLI Pharmacy",
            "--password", "Password123",
        ])
        assert result.exit_code == 0, result.output
        assert "PASS Created tenant CLI Pharmacy" in result.output

        listed = runner.invoke(args=["tenants", "list"])
        assert "clipharm" in listed.output

    def test_create_staff_user(self, app, db_session, tenant_a, branch_a):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--tenant-id", str(tenant_a.id), "--username", "night_shift",
            "--name", "Night Shift", "--password", "Password123", "--role", "MANAGER",
            "--branch-id", str(branch_a.id),
        ])

        assert result.exit_code == 0, result.output
        db_session.expire_all()
        user = db_session.query(User).filter_by(username="night_shift").one()
        assert user.created_by == tenant_a.id
        assert user.role == "MANAGER"

    def test_weak_password_is_reported(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            "tenants", "create", "--username", "weakling", "--name", "Weak", "--password", "abc",
        ])
        assert result.exit_code != 0
        assert "at least 8 characters" in result.output

    def test_delete_tenant(self, app, db_session, tenant_a, product_a):
        tenant_id = tenant_a.id
        result = app.test_cli_runner().invoke(args=["tenants", "delete", str(tenant_id), "--yes"])

        assert result.exit_code == 0, result.output
        assert f"PASS Tenant {tenant_id} deleted" in result.output
        db_session.expire_all()
        assert db_session.get(User, tenant_id) is None

    def test_reconcile_clean(self, app, db_session, tenant_a, product_a):
        result = app.test_cli_runner().invoke(args=["stock", "reconcile", "--tenant-id", str(tenant_a.id)])

        assert result.exit_code == 0, result.output
        assert "1 products checked, 0 with drift" in result.output

    def test_reconcile_reports_drift(self, app, db_session, product_a):
        db.session.execute(update(Product).where(Product.id == product_a.id).values(stock=3))
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["stock", "reconcile", "--only-drift"])

        assert result.exit_code == 1
        assert "FAIL" in result.output
        assert "with drift" in result.output
