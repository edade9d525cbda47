"""
Pytest fixtures for SmartBill backend tests.

Provides the application (in-memory SQLite + in-memory cache), a per-test
clean database and cache, service handles and small data factories.
"""

import pytest

from smartbill import create_app
from smartbill.extensions import db, get_services

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "SQLALCHEMY_TRACK_MODIFICATIONS": False,
    "CACHE_BACKEND": "memory",
    "LOG_LEVEL": "DEBUG",
}

USER_ID = 1
OTHER_USER_ID = 2


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def services(app):
    return get_services()


@pytest.fixture(scope='function')
def db_session(app, services):
    """Fresh database and empty cache for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        services.cache.flush()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session, services):
    return services.store


@pytest.fixture(scope='function')
def policy(db_session, services):
    return services.cache_policy


@pytest.fixture(scope='function')
def catalog(db_session, services):
    return services.catalog


@pytest.fixture(scope='function')
def ledger(db_session, services):
    return services.ledger


@pytest.fixture(scope='function')
def billing(db_session, services):
    return services.billing


@pytest.fixture(scope='function')
def make_product(catalog):
    """Factory: create an active product; keyword arguments override defaults."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        payload = {
            "name": f"Product {counter['n']}",
            "category": "Snacks",
            "price_cents": 2500,
            "barcode": f"890100000{counter['n']:04d}",
        }
        payload.update(overrides)
        return catalog.create_product(payload)

    return _make


@pytest.fixture(scope='function')
def stocked(make_product, ledger):
    """Factory: product plus inventory holding `quantity` units."""
    def _stocked(quantity=50, min_stock=10, **product_overrides):
        product = make_product(**product_overrides)
        inventory = ledger.find_or_create(
            product_id=product.id,
            barcode=product.barcode,
            quantity=quantity,
            min_stock=min_stock,
        )
        return product, inventory

    return _stocked


@pytest.fixture(scope='function')
def auth_headers():
    return {"X-User-Id": str(USER_ID)}
