"""Pytest configuration for catalog tests."""

import pytest

from catalog.aggregate.sync import ProductCountSync
from catalog.core.auth import Caller
from catalog.core.catalog_service import CatalogService
from catalog.core.config import CatalogConfig
from catalog.core.schemas import CategoryCreate, ProductCreate
from catalog.data.database import create_catalog_engine, init_db, make_session_factory, session_scope
from catalog.data.models import User
from catalog.utils.metrics import MetricsCollector

ADMIN_SUBJECT = "user_admin"
CUSTOMER_SUBJECT = "user_customer"


# ---------------------------------------------------------------------------
# Database: a fresh file-backed SQLite database per test
# ---------------------------------------------------------------------------

@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'catalog.db'}"


@pytest.fixture
def engine(database_url):
    engine = create_catalog_engine(database_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory):
    """A session whose work is rolled back at the end of the test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def users(session_factory):
    with session_scope(session_factory) as s:
        s.add_all([
            User(auth_subject=ADMIN_SUBJECT, email="admin@example.com", first_name="Ada", role="admin"),
            User(auth_subject=CUSTOMER_SUBJECT, email="cal@example.com", first_name="Cal", role="customer"),
        ])


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

@pytest.fixture
def config(database_url):
    return CatalogConfig(database_url=database_url)


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def counter_sync(metrics):
    return ProductCountSync(metrics=metrics)


@pytest.fixture
def service(session_factory, config, counter_sync, metrics, users):
    return CatalogService(session_factory, config=config, counter_sync=counter_sync, metrics=metrics)


@pytest.fixture
def admin():
    return Caller(ADMIN_SUBJECT)


@pytest.fixture
def customer():
    return Caller(CUSTOMER_SUBJECT)


@pytest.fixture
def make_product(service, admin):
    """Create a product through the service; returns its id."""
    def _make(name="Linen Shirt", base_price=4900, status="active", **fields):
        return service.create_product(admin, ProductCreate(name=name, base_price=base_price, status=status, **fields))
    return _make


@pytest.fixture
def make_category(service, admin):
    """Create a category through the service; returns its id."""
    def _make(name, parent_id=None, **fields):
        return service.create_category(admin, CategoryCreate(name=name, parent_id=parent_id, **fields))
    return _make
