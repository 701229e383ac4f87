import asyncio
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator
from unittest.mock import patch

# Override settings for tests before importing app modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["MONEROO_API_KEY"] = "mnr_test_mock"
os.environ["MONEROO_WEBHOOK_SECRET"] = "mnr_whsec_test_mock"
os.environ["MONEYFUSION_API_URL"] = "https://moneyfusion.test/api/"
os.environ["MONEYFUSION_WEBHOOK_SECRET"] = "mf_whsec_test_mock"
os.environ["RECONCILE_INTERVAL_SECONDS"] = "0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.models import Order, OrderItem, PaymentGatewayTransaction, Product, Vendor, VendorSubscription
from app.models.database import Base, get_db
from app.models.status import TransactionStatus
from app.models.user import User
from app.services.exceptions import GatewayUnreachable
from app.services.gateway_client import GatewayVerification
from app.services.payments import generate_order_number, generate_reference_code
from app.services.security import get_password_hash

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeVerifier:
    """In-memory stand-in for a gateway client.

    ``statuses`` maps transaction id to the status the gateway reports; ``errors``
    maps transaction id to an exception raised instead.
    """

    def __init__(self, statuses=None, default=TransactionStatus.PENDING, errors=None, delay=0.0):
        self.statuses = dict(statuses or {})
        self.default = default
        self.errors = dict(errors or {})
        self.delay = delay
        self.calls: list[str] = []

    async def verify(self, transaction_id: str) -> GatewayVerification:
        self.calls.append(transaction_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if transaction_id in self.errors:
            raise self.errors[transaction_id]
        reported = self.statuses.get(transaction_id, self.default)
        return GatewayVerification(
            success=reported == TransactionStatus.SUCCESS,
            status=reported,
            payload={"data": {"id": transaction_id, "status": reported.value}},
        )


def unreachable(transaction_id: str) -> GatewayUnreachable:
    return GatewayUnreachable(f"Moneroo request failed for {transaction_id}: ConnectError")


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_user(db: Session, email: str, display_name: str, is_admin: bool = False) -> User:
    user = User(
        email=email,
        display_name=display_name,
        hashed_password=get_password_hash("testpassword123"),
        is_admin=is_admin,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_user(db: Session) -> User:
    """Create a customer."""
    return _create_user(db, "test@example.com", "Test User")


@pytest.fixture
def test_user2(db: Session) -> User:
    """Create a second customer."""
    return _create_user(db, "test2@example.com", "Test User 2")


@pytest.fixture
def admin_user(db: Session) -> User:
    return _create_user(db, "admin@example.com", "Admin", is_admin=True)


@pytest.fixture
def vendor(db: Session) -> Vendor:
    owner = _create_user(db, "owner@example.com", "Vendor Owner")
    vendor = Vendor(
        user_id=owner.id,
        business_name="Test Vendor",
        notification_email="vendor@example.com",
    )
    db.add(vendor)
    db.commit()
    db.refresh(vendor)
    return vendor


@pytest.fixture
def product(db: Session, vendor: Vendor) -> Product:
    product = Product(
        vendor_id=vendor.id,
        name="Test E-book",
        price=Decimal("5000.00"),
        currency="XAF",
        is_digital=True,
        digital_file_url="https://files.example.com/ebook.pdf",
        is_active=True,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def make_order(db: Session, test_user: User, product: Product):
    """Factory for orders with one item and (by default) one gateway transaction."""

    def _make(
        *,
        age: timedelta = timedelta(hours=2),
        status: str = "pending",
        payment_status: str = "pending",
        fulfillment_status: str = "pending",
        transaction_status: str | None = "pending",
        transaction_id: str | None = None,
        provider: str = "moneroo",
        quantity: int = 1,
    ) -> Order:
        total = Decimal(product.price) * quantity
        order = Order(
            order_number=generate_order_number(),
            reference_code=generate_reference_code(),
            user_id=test_user.id,
            subtotal=total,
            total_amount=total,
            currency=product.currency,
            status=status,
            payment_status=payment_status,
            fulfillment_status=fulfillment_status,
            created_at=datetime.now(timezone.utc) - age,
        )
        order.items.append(
            OrderItem(
                product_id=product.id,
                vendor_id=product.vendor_id,
                product_name=product.name,
                price=product.price,
                quantity=quantity,
                total=total,
                is_digital=product.is_digital,
                digital_file_url=product.digital_file_url,
            )
        )
        db.add(order)
        db.flush()
        if transaction_status is not None:
            db.add(
                PaymentGatewayTransaction(
                    provider=provider,
                    transaction_id=transaction_id or f"txn_{order.reference_code}",
                    reference_code=order.reference_code,
                    order_id=order.id,
                    amount=total,
                    currency=order.currency,
                    status=transaction_status,
                )
            )
        db.commit()
        db.refresh(order)
        return order

    return _make


@pytest.fixture
def make_subscription(db: Session, vendor: Vendor):
    counter = iter(range(1, 1000))

    def _make(
        *,
        status: str = "pending",
        duration: str = "monthly",
        gateway_transaction_id: str | None = "sub_txn_1",
    ) -> VendorSubscription:
        subscription = VendorSubscription(
            user_id=vendor.user_id,
            plan_id="pro",
            duration=duration,
            amount=Decimal("10000.00"),
            currency="XAF",
            status=status,
            provider="moneroo",
            gateway_transaction_id=gateway_transaction_id,
            transaction_number=f"SUB-{next(counter):04d}",
        )
        db.add(subscription)
        db.commit()
        db.refresh(subscription)
        return subscription

    return _make


@pytest.fixture
def auth_token(client: TestClient, test_user: User) -> str:
    """Get auth token for test user."""
    response = client.post(
        "/api/auth/login",
        json={"email": "test@example.com", "password": "testpassword123"},
    )
    assert response.status_code == 200
    return response.json()["accessToken"]


@pytest.fixture
def auth_headers(auth_token: str) -> dict[str, str]:
    """Get auth headers with token."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def admin_headers(client: TestClient, admin_user: User) -> dict[str, str]:
    response = client.post(
        "/api/auth/login",
        json={"email": "admin@example.com", "password": "testpassword123"},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['accessToken']}"}


@pytest.fixture(autouse=True)
def confirmation_emails():
    """Capture order confirmation emails instead of talking to SMTP."""
    with patch("app.services.payments.send_order_confirmation_email") as mock_send:
        yield mock_send
