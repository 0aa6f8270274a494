"""
Pytest fixtures for MediBill backend tests.

Provides an in-memory database, two independent tenants with a branch and a
stocked product each, principals for every role, and a test client.
"""

import pytest

from medibill import create_app
from medibill.extensions import db
from medibill.models import Branch, Customer, User
from medibill.models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER, ROLE_SUPERADMIN
from medibill.services import notification_service, products_service
from medibill.services.auth_service import hash_password
from medibill.services.tenant_service import Principal

PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
        'DB_RETRY_BACKOFF': 0,
        'DEFAULT_TAX_PERCENT': 10,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(autouse=True)
def clear_notifications():
    notification_service.hub.clear()
    yield
    notification_service.hub.clear()


def make_tenant_root(session, username: str, name: str) -> User:
    """ADMIN user that owns itself; the root of one tenant."""
    root = User(
        username=username,
        name=name,
        email=f"{username}@example.com",
        password_hash=hash_password(PASSWORD),
        role=ROLE_ADMIN,
    )
    session.add(root)
    session.flush()
    root.created_by = root.id
    session.commit()
    return root


def make_staff(session, root: User, username: str, role: str, branch_id=None) -> User:
    user = User(
        username=username,
        name=username.title(),
        password_hash=hash_password(PASSWORD),
        role=role,
        branch_id=branch_id,
        created_by=root.id,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A root administrator."""
    return make_tenant_root(db_session, "pharmacy_a", "Pharmacy A")


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B root administrator."""
    return make_tenant_root(db_session, "pharmacy_b", "Pharmacy B")


@pytest.fixture(scope='function')
def superadmin(db_session):
    user = User(
        username="root",
        name="Platform Operator",
        password_hash=hash_password(PASSWORD),
        role=ROLE_SUPERADMIN,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def principal_a(tenant_a):
    return Principal.from_user(tenant_a)


@pytest.fixture(scope='function')
def principal_b(tenant_b):
    return Principal.from_user(tenant_b)


@pytest.fixture(scope='function')
def super_principal(superadmin):
    return Principal.from_user(superadmin)


@pytest.fixture(scope='function')
def branch_a(db_session, tenant_a):
    branch = Branch(name="A Main Street", created_by=tenant_a.id)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_a2(db_session, tenant_a):
    branch = Branch(name="A Harbour", created_by=tenant_a.id)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session, tenant_b):
    branch = Branch(name="B High Street", created_by=tenant_b.id)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def cashier_a(db_session, tenant_a, branch_a):
    return make_staff(db_session, tenant_a, "cashier_a", ROLE_CASHIER, branch_a.id)


@pytest.fixture(scope='function')
def manager_a(db_session, tenant_a, branch_a):
    return make_staff(db_session, tenant_a, "manager_a", ROLE_MANAGER, branch_a.id)


@pytest.fixture(scope='function')
def customer_a(db_session, tenant_a):
    customer = Customer(name="Jane Buyer", phone="555-0100", created_by=tenant_a.id)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def product_a(db_session, principal_a, branch_a):
    """Paracetamol in tenant A with 20 on hand (one IN movement)."""
    return products_service.create_product(principal_a, {
        "name": "Paracetamol 500mg",
        "barcode": "PARA-500",
        "selling_price": "50.00",
        "cost_price": "30.00",
        "branch_id": branch_a.id,
        "stock": 20,
    })


@pytest.fixture(scope='function')
def product_a2(db_session, principal_a, branch_a):
    """Amoxicillin in tenant A with 5 on hand."""
    return products_service.create_product(principal_a, {
        "name": "Amoxicillin 250mg",
        "barcode": "AMOX-250",
        "selling_price": "15.00",
        "branch_id": branch_a.id,
        "stock": 5,
    })


@pytest.fixture(scope='function')
def product_b(db_session, principal_b, branch_b):
    return products_service.create_product(principal_b, {
        "name": "Ibuprofen 200mg",
        "barcode": "IBU-200",
        "selling_price": "25.00",
        "branch_id": branch_b.id,
        "stock": 10,
    })


def sale_payload(branch, *lines, payment_method="CASH", **extra) -> dict:
    """Build a sale request; each line is (product, quantity, unit_price)."""
    payload = {
        "branch_id": branch.id,
        "payment_method": payment_method,
        "items": [
            {"product_id": product.id, "quantity": qty, "unit_price": str(price)}
            for product, qty, price in lines
        ],
    }
    payload.update(extra)
    return payload


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
