"""
Pytest fixtures for OpenStock backend tests.

Provides an in-memory application, a per-test clean database, and small
catalog factories.
"""

import pytest

from openstock import create_app
from openstock.extensions import db
from openstock.services import catalog_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()
    db.session.expunge_all()


@pytest.fixture(scope='function')
def supplier(db_session):
    return catalog_service.create_supplier({"name": "Acme Wholesale", "email": "orders@acme.test"})


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name=..., initial_stock=..., **fields)."""
    counter = {"n": 0}

    def _make(name=None, **fields):
        counter["n"] += 1
        payload = {
            "name": name or f"Product {counter['n']}",
            "cost_price": 10.0,
            "margin_percent": 50,
            "stock_min": 2,
        }
        payload.update(fields)
        return catalog_service.create_product(payload)

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Active product with 10 units booked through the ledger."""
    return make_product(name="Widget", sku="WID-001", initial_stock=10)


@pytest.fixture(scope='function')
def variant(product):
    return catalog_service.create_variant(product.id, {"name": "Blue", "cost_price": 11.0, "initial_stock": 4})
