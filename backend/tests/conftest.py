"""
Pytest fixtures for InfoPOS backend tests.

Provides the application on in-memory SQLite, a clean database per test,
a reset event bus per test, and product fixtures for two tenants.
"""

import pytest

from infopos import create_app
from infopos.extensions import db, event_bus
from infopos.models import Product
from infopos import tenant_context
from infopos.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'EVENT_DISPATCH_MODE': 'queued',
        'EVENT_BUS_ENABLED': True,
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


@pytest.fixture(scope='function', autouse=True)
def bus(app):
    """Empty, available, queued event bus for every test."""
    event_bus.reset()
    event_bus.dispatch_mode = 'queued'
    yield event_bus
    event_bus.reset()
    event_bus.dispatch_mode = 'queued'


@pytest.fixture(scope='function', autouse=True)
def no_tenant_leak():
    """Every test starts and ends without a tenant in context."""
    tenant_context.clear()
    yield
    tenant_context.clear()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(tenant_id="t1", **fields) -> committed Product."""
    def _make(tenant_id="t1", **fields):
        now = utcnow()
        values = {
            "name": "Widget",
            "price_cents": 1000,
            "stock_quantity": 5,
            "alert_threshold": 5,
        }
        values.update(fields)
        product = Product(tenant_id=tenant_id, created_at=now, updated_at=now, **values)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def product_t1(make_product):
    """Coffee in tenant t1: 10.00, 20 on hand, alert at 5."""
    return make_product("t1", name="Coffee", sku="COF-1", barcode="400001", price_cents=1000, stock_quantity=20)


@pytest.fixture(scope='function')
def product_t2(make_product):
    """Same SKU in tenant t2: per-tenant uniqueness allows it."""
    return make_product("t2", name="Coffee", sku="COF-1", barcode="400001", price_cents=1200, stock_quantity=7)
