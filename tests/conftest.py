"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta
from typing import Generator
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from kirana_gateway.api.main import create_app
from kirana_gateway.api.dependencies import get_now, get_whatsapp_client
from kirana_gateway.infrastructure.clients.whatsapp import WhatsAppClient
from kirana_gateway.infrastructure.database.models import Base, Customer, Order
from kirana_gateway.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

SHOP_ID = "shop-1"
OTHER_SHOP_ID = "shop-2"

# Monday 2024-03-11 07:00 shop-local time
NOW = datetime(2024, 3, 11, 7, 0)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def whatsapp() -> AsyncMock:
    """WhatsApp client double; background notifications land here"""
    client = AsyncMock(spec=WhatsAppClient)
    client.send_delivery_update.return_value = True
    client.send_invoice_notice.return_value = True
    client.send_payment_receipt.return_value = True
    return client


@pytest.fixture
def client(db: Session, whatsapp: AsyncMock) -> TestClient:
    """Create FastAPI test client with test database, fixed clock and shop header"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            # drop whatever a failed request left uncommitted
            db.rollback()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: NOW
    app.dependency_overrides[get_whatsapp_client] = lambda: whatsapp
    return TestClient(app, headers={"X-Shop-ID": SHOP_ID})


def _add_customer(db: Session, shop_id: str, name: str, mobile: str, order_totals: list, order_ages_days: list) -> Customer:
    customer = Customer(
        shop_id=shop_id,
        name=name,
        mobile=mobile,
        total_orders=len(order_totals),
        total_spent_paise=sum(order_totals),
    )
    db.add(customer)
    db.flush()
    for total, age in zip(order_totals, order_ages_days):
        db.add(
            Order(
                shop_id=shop_id,
                customer_id=customer.id,
                total_paise=total,
                placed_at=NOW - timedelta(days=age),
            )
        )
    db.commit()
    return customer


@pytest.fixture
def customer(db: Session) -> Customer:
    """New customer: 3 recent orders totalling ₹500"""
    return _add_customer(db, SHOP_ID, "Asha", "+91 98765-43210", [20_000, 15_000, 15_000], [2, 5, 9])


@pytest.fixture
def loyal_customer(db: Session) -> Customer:
    """Long-standing customer: 60 orders of ₹1,000 each, 4 in the last month"""
    ages = [1, 7, 14, 21] + [40 + i * 7 for i in range(56)]
    return _add_customer(db, SHOP_ID, "Ravi", "+91 91234 56789", [100_000] * 60, ages)


@pytest.fixture
def foreign_customer(db: Session) -> Customer:
    """Customer belonging to a different shop"""
    return _add_customer(db, OTHER_SHOP_ID, "Meena", "9000000000", [10_000], [3])
