# Overview: Flask CLI command groups for bootstrap, tenant administration and stock checks.

# Commands (run from the backend directory, FLASK_APP=wsgi.py or --app medibill):
#
# System bootstrap:
# - flask system init-db
#   Create all tables (idempotent).
# - flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask system create-superadmin --username root --password "Password123"
#
# Tenants:
# - flask tenants list
# - flask tenants create --username pharmacy1 --name "City Pharmacy" --password "Password123"
# - flask tenants delete 3 --yes
#   Cascade-delete tenant 3 and every row it owns.
#
# Users:
# - flask users create --tenant-id 3 --username cashier1 --name "Till 1" --password "Password123" --role CASHIER
#
# Stock:
# - flask stock reconcile [--tenant-id 3] [--only-drift]
#   Replay the movement trail and compare with on-hand stock. Exits 1 on drift.

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER, ROLE_SUPERADMIN
from .services import inventory_service, tenant_admin_service
from .services.tenant_service import Principal

# Operator actions from the shell run outside any tenant
SYSTEM_PRINCIPAL = Principal(user_id=0, role=ROLE_SUPERADMIN)


def _tenant_principal(tenant_id: int) -> Principal:
    return Principal(user_id=tenant_id, role=ROLE_ADMIN, created_by=tenant_id)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database schema created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@system_group.command('create-superadmin')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--name', default='Super Admin')
@with_appcontext
def create_superadmin(username, password, name):
    try:
        user = tenant_admin_service.create_superadmin(username, password, name=name)
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created SUPERADMIN {user.username} (ID: {user.id})")


@click.group('tenants')
def tenants_group():
    """Tenant (ADMIN root) management."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    tenants = tenant_admin_service.list_tenants()
    if not tenants:
        click.echo("No tenants found.")
        return
    for root in tenants:
        status = "active" if root.is_active else "inactive"
        click.echo(f"{root.id:>5}  {root.username:<24} {root.name:<32} {status}")


@tenants_group.command('create')
@click.option('--username', prompt=True)
@click.option('--name', prompt=True)
@click.option('--email', default=None)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_tenant(username, name, email, password):
    try:
        root = tenant_admin_service.create_tenant(
            {"username": username, "name": name, "email": email, "password": password}
        )
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created tenant {root.name} (ID: {root.id}, admin: {root.username})")


@tenants_group.command('delete')
@click.argument('tenant_id', type=int)
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def delete_tenant(tenant_id, yes):
    """Cascade-delete a tenant and all of its data."""
    if not yes:
        click.confirm(f"WARN This deletes tenant {tenant_id} and ALL of its data. Continue?", abort=True)
    try:
        counts = tenant_admin_service.delete_tenant(SYSTEM_PRINCIPAL, tenant_id)
    except ServiceError as e:
        raise click.ClickException(e.message)
    for table, count in counts.items():
        click.echo(f"  {table:<16} {count}")
    click.echo(f"PASS Tenant {tenant_id} deleted")


@click.group('users')
def users_group():
    """Staff user management."""


@users_group.command('create')
@click.option('--tenant-id', type=int, required=True)
@click.option('--username', prompt=True)
@click.option('--name', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice([ROLE_MANAGER, ROLE_CASHIER]), default=ROLE_CASHIER)
@click.option('--branch-id', type=int, default=None)
@with_appcontext
def create_user(tenant_id, username, name, password, role, branch_id):
    try:
        user = tenant_admin_service.create_staff_user(
            _tenant_principal(tenant_id),
            {"username": username, "name": name, "password": password, "role": role, "branch_id": branch_id},
        )
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created {user.role} {user.username} (ID: {user.id}) in tenant {tenant_id}")


@click.group('stock')
def stock_group():
    """Stock ledger checks."""


@stock_group.command('reconcile')
@click.option('--tenant-id', type=int, default=None, help='Limit to one tenant')
@click.option('--only-drift', is_flag=True, help='Only print products that disagree')
@with_appcontext
def reconcile(tenant_id, only_drift):
    """Compare on-hand stock with the replayed movement trail."""
    principal = _tenant_principal(tenant_id) if tenant_id else SYSTEM_PRINCIPAL
    results = inventory_service.reconcile_tenant(principal)
    drifted = [r for r in results if not r.consistent]
    for r in (drifted if only_drift else results):
        marker = "OK  " if r.consistent else "FAIL"
        click.echo(
            f"{marker} product={r.product_id} stock={r.stock} replayed={r.replayed_stock} "
            f"movements={r.movement_count} name={r.product_name!r}"
        )
    click.echo(f"{len(results)} products checked, {len(drifted)} with drift")
    if drifted:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
