"""Shared test fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from datetime import datetime
from decimal import Decimal
import uuid

from app.database import Base, get_db
from app.main import app
from app.models.transaction import Transaction


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test using in-memory SQLite."""
    # Use StaticPool to ensure all connections use the same in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_transaction(db_session):
    """Factory that stores a transaction and returns it."""
    def _make(
        merchant,
        amount,
        date,
        user_id="user-123",
        order_id=None,
        description="",
        parent_transaction_id=None,
        link_type=None,
        link_confidence=None,
    ):
        txn = Transaction(
            id=str(uuid.uuid4()),
            hash=uuid.uuid4().hex,
            user_id=user_id,
            date=date,
            amount=Decimal(str(amount)),
            merchant=merchant,
            description=description,
            order_id=order_id,
            parent_transaction_id=parent_transaction_id,
            link_type=link_type,
            link_confidence=link_confidence,
            link_metadata={},
        )
        db_session.add(txn)
        db_session.commit()
        db_session.refresh(txn)
        return txn

    return _make


@pytest.fixture
def amazon_charge(make_transaction):
    """Credit card charge for a five item order, billed the day it was placed."""
    return make_transaction("AMAZON.COM*M12AB34CD", "62.21", datetime(2025, 10, 18))


@pytest.fixture
def amazon_order_items(make_transaction):
    """Five line items (three products, tax, shipping) of one order."""
    items = [
        ("Wireless Mouse", "24.99"),
        ("USB-C Cable", "8.99"),
        ("Phone Case", "18.99"),
        ("Tax", "4.24"),
        ("Shipping", "5.00"),
    ]
    return [
        make_transaction(
            "Amazon", amount, datetime(2025, 10, 18),
            order_id="111-1234567-0000001", description=description,
        )
        for description, amount in items
    ]


@pytest.fixture
def medium_charge(make_transaction):
    """Marketplace charge that only loosely matches its order."""
    return make_transaction("AMZN MKTP US*2K4LM9", "30.00", datetime(2025, 10, 12))


@pytest.fixture
def medium_order_items(make_transaction):
    """Two line items totalling 29.50, placed two days before the medium charge."""
    return [
        make_transaction(
            "Amazon", amount, datetime(2025, 10, 10),
            order_id="111-1234567-0000002", description=description,
        )
        for description, amount in [("Book", "19.50"), ("Notebook", "10.00")]
    ]
