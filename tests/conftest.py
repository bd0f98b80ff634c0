"""Shared test fixtures for all test modules."""

import contextlib
import uuid

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from paygate.core import database as db_module
from paygate.core.database import Base
from paygate.models.merchant import Merchant, MerchantNetwork

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Well-known default merchant used across all tests
DEFAULT_MERCHANT_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
DEFAULT_WEBHOOK_URL = "https://merchant.example.com/webhooks"
DEFAULT_WEBHOOK_SECRET = "whsec_test_secret"


def _seed_default_merchant(session: Session) -> None:
    """Insert a default merchant accepting TXC, with a webhook endpoint."""
    merchant = session.query(Merchant).filter(Merchant.id == DEFAULT_MERCHANT_ID).first()
    if merchant is None:
        merchant = Merchant(
            id=DEFAULT_MERCHANT_ID,
            name="Default Test Merchant",
            webhook_url=DEFAULT_WEBHOOK_URL,
            webhook_secret=DEFAULT_WEBHOOK_SECRET,
        )
        session.add(merchant)
        session.add(
            MerchantNetwork(merchant_id=DEFAULT_MERCHANT_ID, network="txc", currency="TXC")
        )
        session.commit()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    session = _TestSessionLocal()
    try:
        _seed_default_merchant(session)
    finally:
        session.close()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = db_module.get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def default_merchant_id():
    """Return the default merchant ID for tests."""
    return DEFAULT_MERCHANT_ID
