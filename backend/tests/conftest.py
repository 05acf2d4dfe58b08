"""
Pytest fixtures for stockrecon backend tests.

Provides the test application (in-memory SQLite), a clean database per test,
the SQL-backed and in-memory service graphs, and product fixtures.
"""

import pytest
from stockrecon import create_app
from stockrecon.extensions import db
from stockrecon.models import Product, ProductUnit, Sale, SaleItem
from stockrecon.services import build_services

from fakes import InMemoryUnitStore


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STORE_RETRY_BACKOFF': 0,
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
def sql_services(app, db_session):
    """Service graph attached to the test app (SqlUnitStore)."""
    return app.extensions["stockrecon"]


@pytest.fixture(scope='function')
def memory_store():
    return InMemoryUnitStore()


@pytest.fixture(scope='function')
def services(memory_store):
    """Service graph over the in-memory store."""
    return build_services(memory_store, {"BARCODE_PREFIX": "GPMS", "BARCODE_COUNTER_WIDTH": 6})


@pytest.fixture(scope='function')
def phone(memory_store):
    """Serialized product with no units (in-memory)."""
    return memory_store.add_product("Apple", "iPhone 13", stock=0, has_serial=True, threshold=1)


@pytest.fixture(scope='function')
def cable(memory_store):
    """Non-serialized product (in-memory)."""
    return memory_store.add_product("Generic", "USB-C Cable", stock=25, has_serial=False, threshold=5)


@pytest.fixture(scope='function')
def serialized_product(db_session):
    """Serialized product row in SQLite."""
    product = Product(brand="Samsung", model="Galaxy S21", stock=0, has_serial=True, price_cents=40000)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def bulk_product(db_session):
    """Non-serialized product row in SQLite."""
    product = Product(brand="Anker", model="Charger 20W", stock=12, has_serial=False, threshold=3)
    db_session.add(product)
    db_session.commit()
    return product


def add_sql_unit(session, product_id: int, serial: str, status: str = "available") -> ProductUnit:
    """Raw unit insert, bypassing the lifecycle service (used to seed drift)."""
    unit = ProductUnit(product_id=product_id, serial_number=serial, status=status)
    session.add(unit)
    session.commit()
    return unit


def add_sql_sale(session, product_id: int, serial: str | None, status: str = "completed", number: str = "S-0001") -> Sale:
    sale = Sale(sale_number=number, status=status)
    session.add(sale)
    session.flush()
    session.add(SaleItem(sale_id=sale.id, product_id=product_id, serial_number=serial))
    session.commit()
    return sale
