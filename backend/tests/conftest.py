"""
Pytest fixtures for back office tests.

Provides an in-memory database, a two-organization tenant tree, users of
every scope, and helpers that issue real bearer tokens.

Tenant tree:
    org_a -> client_a  -> company_a
          -> client_a2 -> company_a2
    org_b -> client_b  -> company_b
"""

from datetime import timedelta

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import (
    Client,
    Company,
    Customer,
    Department,
    Order,
    Organization,
    User,
)
from backoffice.models.auth import (
    SCOPE_CLIENT,
    SCOPE_COMPANY,
    SCOPE_DEPARTMENT,
    SCOPE_ORGANIZATION,
)
from backoffice.services import session_service
from backoffice.services.scope_service import principal_from_user
from backoffice.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
        'REFUND_PAYMENT_GATEWAY': 'stub',
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

        db.session.rollback()


# =============================================================================
# TENANTS
# =============================================================================

def _add(db_session, obj):
    db_session.add(obj)
    db_session.commit()
    return obj


@pytest.fixture(scope='function')
def org_a(db_session):
    return _add(db_session, Organization(name="Org A - Acme Group", code="ORGA", is_active=True))


@pytest.fixture(scope='function')
def org_b(db_session):
    return _add(db_session, Organization(name="Org B - Beta Holdings", code="ORGB", is_active=True))


@pytest.fixture(scope='function')
def client_a(db_session, org_a):
    return _add(db_session, Client(organization_id=org_a.id, name="Client A", code="CLA1"))


@pytest.fixture(scope='function')
def client_a2(db_session, org_a):
    return _add(db_session, Client(organization_id=org_a.id, name="Client A2", code="CLA2"))


@pytest.fixture(scope='function')
def client_b(db_session, org_b):
    return _add(db_session, Client(organization_id=org_b.id, name="Client B", code="CLB1"))


def _company(db_session, client, name, code):
    return _add(db_session, Company(
        client_id=client.id,
        name=name,
        slug=name.lower().replace(" ", "-"),
        code=code,
        status="ACTIVE",
    ))


@pytest.fixture(scope='function')
def company_a(db_session, client_a):
    return _company(db_session, client_a, "Company A", "COA1")


@pytest.fixture(scope='function')
def company_a2(db_session, client_a2):
    return _company(db_session, client_a2, "Company A2", "COA2")


@pytest.fixture(scope='function')
def company_b(db_session, client_b):
    return _company(db_session, client_b, "Company B", "COB1")


@pytest.fixture(scope='function')
def department_a(db_session, company_a):
    return _add(db_session, Department(company_id=company_a.id, name="Support"))


# =============================================================================
# USERS / PRINCIPALS
# =============================================================================

@pytest.fixture(scope='function')
def org_admin_a(db_session, org_a):
    return _add(db_session, User(
        email="admin@orga.test",
        scope_type=SCOPE_ORGANIZATION,
        organization_id=org_a.id,
    ))


@pytest.fixture(scope='function')
def org_admin_b(db_session, org_b):
    return _add(db_session, User(
        email="admin@orgb.test",
        scope_type=SCOPE_ORGANIZATION,
        organization_id=org_b.id,
    ))


@pytest.fixture(scope='function')
def client_admin_a(db_session, client_a):
    """CLIENT user without organization_id (resolved through the client)."""
    return _add(db_session, User(
        email="admin@clienta.test",
        scope_type=SCOPE_CLIENT,
        client_id=client_a.id,
    ))


@pytest.fixture(scope='function')
def company_user_a(db_session, org_a, client_a, company_a):
    return _add(db_session, User(
        email="manager@companya.test",
        scope_type=SCOPE_COMPANY,
        organization_id=org_a.id,
        client_id=client_a.id,
        company_id=company_a.id,
    ))


@pytest.fixture(scope='function')
def company_user_a2(db_session, org_a, client_a2, company_a2):
    return _add(db_session, User(
        email="manager@companya2.test",
        scope_type=SCOPE_COMPANY,
        organization_id=org_a.id,
        client_id=client_a2.id,
        company_id=company_a2.id,
    ))


@pytest.fixture(scope='function')
def department_user_a(db_session, company_a, department_a):
    return _add(db_session, User(
        email="agent@companya.test",
        scope_type=SCOPE_DEPARTMENT,
        company_id=company_a.id,
        department_id=department_a.id,
    ))


@pytest.fixture(scope='function')
def org_principal_a(org_admin_a):
    return principal_from_user(org_admin_a)


@pytest.fixture(scope='function')
def org_principal_b(org_admin_b):
    return principal_from_user(org_admin_b)


@pytest.fixture(scope='function')
def client_principal_a(client_admin_a):
    return principal_from_user(client_admin_a)


@pytest.fixture(scope='function')
def company_principal_a(company_user_a):
    return principal_from_user(company_user_a)


@pytest.fixture(scope='function')
def company_principal_a2(company_user_a2):
    return principal_from_user(company_user_a2)


# =============================================================================
# COMMERCE
# =============================================================================

@pytest.fixture(scope='function')
def customer_a(db_session, company_a):
    return _add(db_session, Customer(company_id=company_a.id, email="jane@example.com", name="Jane"))


@pytest.fixture(scope='function')
def make_order(db_session):
    """Factory: make_order(company, customer, days_ago=0, total_cents=20000)."""
    counter = {"n": 0}

    def _make(company, customer, *, days_ago: float = 0, total_cents: int = 20000):
        counter["n"] += 1
        return _add(db_session, Order(
            company_id=company.id,
            customer_id=customer.id,
            order_number=f"ORD-{counter['n']:04d}",
            status="COMPLETED",
            total_cents=total_cents,
            currency="USD",
            ordered_at=utcnow() - timedelta(days=days_ago),
        ))

    return _make


@pytest.fixture(scope='function')
def order_a(make_order, company_a, customer_a):
    return make_order(company_a, customer_a, days_ago=2)


# =============================================================================
# HTTP HELPERS
# =============================================================================

@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Issue a real bearer token for a user and return the request headers."""
    def _headers(user) -> dict:
        _, token = session_service.create_session(user.id)
        return {'Authorization': f'Bearer {token}'}

    return _headers
