"""
Pytest fixtures for the retailpos backend tests.

Provides the in-memory test database, a per-test clean slate, factory
fixtures for users, products, customers and suppliers, and a test client.
"""

import itertools

import pytest
from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import User
from retailpos.services import catalog_service, customer_service, supplier_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TX_RETRY_ATTEMPTS': 1,
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


def _make_user(db_session, username, role):
    user = User(username=username, name=username.title(), role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cashier(db_session):
    return _make_user(db_session, "cashier", "cashier")


@pytest.fixture(scope='function')
def manager(db_session):
    return _make_user(db_session, "manager", "manager")


def auth_headers(user) -> dict:
    """Helper to create the acting-user header."""
    return {'X-User-Id': str(user.id)}


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    return auth_headers(cashier)


@pytest.fixture(scope='function')
def manager_headers(manager):
    return auth_headers(manager)


def single_tier(price_cents: int = 10000, buying_cents: int | None = None) -> list[dict]:
    return [{
        "unit_type": "single",
        "quantity": 1,
        "buying_price_cents": price_cents // 2 if buying_cents is None else buying_cents,
        "selling_price_cents": price_cents,
        "is_default": True,
    }]


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product with a tier set (single @ 100.00 by default) and opening stock."""
    counter = itertools.count(1)

    def _make(*, quantity=10, price_cents=10000, tiers=None, sku=None, name=None, **thresholds):
        n = next(counter)
        return catalog_service.create_product(
            patch={"sku": sku or f"SKU-{n:03d}", "name": name or f"Product {n}"},
            tiers=tiers or single_tier(price_cents),
            opening_quantity=quantity,
            **thresholds,
        )

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Product P: stock 10, default tier "single" priced 100.00."""
    return make_product(quantity=10, price_cents=10000, name="Product P")


@pytest.fixture(scope='function')
def customer(db_session):
    return customer_service.create_customer(patch={"name": "Customer C", "phone": "+254700111222"})


@pytest.fixture(scope='function')
def supplier(db_session):
    return supplier_service.create_supplier(patch={"name": "Acme Wholesale", "email": "sales@acme.test"})
