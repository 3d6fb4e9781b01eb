"""
Pytest fixtures for RentDesk backend tests.

Provides test database setup, tenant fixtures, catalog/order factories and
an authenticated test client.
"""

from datetime import datetime

import pytest
from rentdesk import create_app
from rentdesk.extensions import db
from rentdesk.models import Organization, Product, Category
from rentdesk.services import order_service, tenant_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
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


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Rentals", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Hire", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def category_a(db_session, org_a):
    category = Category(org_id=org_a.id, name="Cameras")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def product_a(db_session, org_a, category_a):
    """Create Product in Organization A."""
    product = Product(
        org_id=org_a.id,
        category_id=category_a.id,
        code="CAM-A-001",
        title="Camera A",
        default_rent_cents=100000,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a2(db_session, org_a):
    """Second product in Organization A (no category)."""
    product = Product(
        org_id=org_a.id,
        code="LENS-A-002",
        title="Lens A",
        default_rent_cents=40000,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, org_b):
    """Create Product in Organization B."""
    product = Product(
        org_id=org_b.id,
        code="CAM-B-001",
        title="Camera B",
        default_rent_cents=200000,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def order_a(db_session, org_a):
    """Empty order in Organization A."""
    return order_service.create_order(org_a.id, "Jane Doe", "+1 201-555-0123", actor="tests")


@pytest.fixture(scope='function')
def token_a(db_session, org_a):
    """Plaintext API token for Organization A."""
    _, plaintext = tenant_service.issue_token(org_a.id, "front-desk-a")
    return plaintext


@pytest.fixture(scope='function')
def token_b(db_session, org_b):
    """Plaintext API token for Organization B."""
    _, plaintext = tenant_service.issue_token(org_b.id, "front-desk-b")
    return plaintext


def dt(value: str) -> datetime:
    """Short UTC-naive datetime literal: dt("2024-01-01T10:00")."""
    return datetime.fromisoformat(value)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
