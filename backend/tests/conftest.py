"""
Pytest fixtures for distro backend tests.

Provides the application with a frozen clock and an in-memory notification
sink, a per-test wiped database, a test client, and small factories for
SKUs, stores, distributors, plant stock and wallet credit.
"""

from datetime import datetime

import pytest

from distro import create_app
from distro.extensions import db
from distro.roles import ROLE_PLANT_ADMIN
from distro.services import catalog_service, distributor_service, stock_service, wallet_service
from distro.services.notification_service import RecordingNotificationSink
from distro.time_utils import FrozenClock


START = datetime(2026, 10, 18, 9, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CLOCK': FrozenClock(START),
        'NOTIFICATION_SINK': RecordingNotificationSink(),
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
def clock(app):
    clock = app.config['CLOCK']
    clock.now = START
    return clock


@pytest.fixture(scope='function')
def sink(app):
    sink = app.config['NOTIFICATION_SINK']
    sink.published.clear()
    return sink


@pytest.fixture(scope='function')
def db_session(app, clock, sink):
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
def make_sku(db_session):
    def _make(name="Ghee 1L", price_cents=10000, tax_rate_bps=1800, hsn_code="0405"):
        return catalog_service.add_sku(
            {"name": name, "price_cents": price_cents, "tax_rate_bps": tax_rate_bps, "hsn_code": hsn_code},
            ROLE_PLANT_ADMIN,
        )
    return _make


@pytest.fixture(scope='function')
def make_store(db_session):
    def _make(name="Hyderabad Store", **fields):
        return distributor_service.add_store({"name": name, **fields}, ROLE_PLANT_ADMIN)
    return _make


@pytest.fixture(scope='function')
def make_distributor(db_session):
    def _make(name="Sri Balaji Agencies", balance_cents=0, **fields):
        distributor = distributor_service.add_distributor({"name": name, **fields}, "plant.admin")
        if balance_cents:
            wallet_service.recharge_wallet(distributor.id, balance_cents, "plant.admin", payment_method="Cash")
        return distributor
    return _make


@pytest.fixture(scope='function')
def produce(db_session):
    """Add plant production for one SKU."""
    def _produce(sku, quantity):
        stock_service.add_plant_production([{"sku_id": sku.id, "quantity": quantity}], "plant.admin")
    return _produce


@pytest.fixture(scope='function')
def sku(make_sku):
    return make_sku()


@pytest.fixture(scope='function')
def store(make_store):
    return make_store()


def plant_item(sku):
    return stock_service.get_stock_item(stock_service.plant_location_id(), sku.id)


def actor_headers(actor="plant.admin", role=ROLE_PLANT_ADMIN) -> dict:
    headers = {"X-Actor": actor}
    if role:
        headers["X-Actor-Role"] = role
    return headers
