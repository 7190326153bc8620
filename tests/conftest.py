"""
Pytest configuration and shared test fixtures.

Provides an in-memory SQLite database with the full schema, seeded users,
products and coupons, JWTs for each user, a mocked notification service
and an async HTTP client bound to the application with its database,
notification and payment dependencies overridden.
"""

import hashlib
import hmac
import json
import os
from datetime import timedelta
from decimal import Decimal
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock

# Settings are cached on first use; configure the environment before any
# application import.
os.environ["APP_ENVIRONMENT"] = "test"
os.environ["APP_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["APP_NOTIFICATIONS_ENABLED"] = "true"
os.environ["APP_RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["APP_RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["APP_RAZORPAY_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["APP_SECRET_KEY"] = "test-secret-key-with-at-least-32-characters"

import pytest
import razorpay
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from storefront.api.deps import DatabaseSession, get_notifications, get_payment_service
from storefront.core.config import Settings, get_settings
from storefront.core.security import create_access_token
from storefront.database.base import Base, utcnow
from storefront.database.connection import get_db
from storefront.database.models import Coupon, DiscountType, Product, User, UserRole
from storefront.main import app
from storefront.services.notifications.service import NotificationService
from storefront.services.orders.service import OrderService
from storefront.services.payments.razorpay_client import RazorpayClient
from storefront.services.payments.service import PaymentService
from storefront.services.returns.service import ReturnService

WEBHOOK_SECRET = "whsec_test_secret"

SHIPPING_ADDRESS = {
    "name": "Asha Verma",
    "phone": "+91 98765 43210",
    "email": "asha@example.com",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}


def sign_webhook(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """HMAC-SHA256 hex digest the gateway sends in X-Razorpay-Signature."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def sign_checkout(gateway_order_id: str, gateway_payment_id: str, secret: str = "rzp_test_secret") -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def webhook_body(event: str, **entities: dict[str, Any]) -> bytes:
    payload = {name: {"entity": entity} for name, entity in entities.items()}
    return json.dumps({"event": event, "payload": payload}).encode("utf-8")


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(str(user.id), role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


# ============================================================================
# Settings
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    return get_settings()


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Fresh in-memory database per test.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ============================================================================
# Seed data
# ============================================================================


@pytest.fixture
async def customer(db_session: AsyncSession) -> User:
    user = User(
        name="Asha Verma",
        email="asha@example.com",
        phone="9876543210",
        role=UserRole.CUSTOMER,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def other_customer(db_session: AsyncSession) -> User:
    user = User(name="Ravi Kumar", email="ravi@example.com", role=UserRole.CUSTOMER)
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def admin(db_session: AsyncSession) -> User:
    user = User(name="Store Admin", email="admin@example.com", role=UserRole.ADMIN)
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def products(db_session: AsyncSession) -> dict[str, Product]:
    """
    Seeded catalogue keyed by slug.

    - ``print``: 1200, 3 in stock
    - ``mug``: 600, 10 in stock
    - ``frame``: 500, 5 in stock
    - ``keychain``: 250, untracked inventory with zero stock
    - ``retired``: inactive
    """
    catalogue = {
        "print": Product(
            name="Canvas Print",
            slug="print",
            price=Decimal("1200.00"),
            images=[{"url": "https://cdn.example.com/print.jpg"}],
            stock=3,
        ),
        "mug": Product(
            name="Photo Mug",
            slug="mug",
            price=Decimal("600.00"),
            images=["https://cdn.example.com/mug.jpg"],
            stock=10,
        ),
        "frame": Product(
            name="Wooden Frame",
            slug="frame",
            price=Decimal("500.00"),
            images=[],
            stock=5,
        ),
        "keychain": Product(
            name="Resin Keychain",
            slug="keychain",
            price=Decimal("250.00"),
            images=[],
            stock=0,
            track_inventory=False,
        ),
        "retired": Product(
            name="Retired Poster",
            slug="retired",
            price=Decimal("300.00"),
            images=[],
            stock=50,
            is_active=False,
        ),
    }
    db_session.add_all(catalogue.values())
    await db_session.commit()
    return catalogue


@pytest.fixture
async def coupons(db_session: AsyncSession) -> dict[str, Coupon]:
    now = utcnow()
    window = {
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=30),
    }
    seeded = {
        "SAVE10": Coupon(
            code="SAVE10",
            description="10% off",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("10"),
            min_order_amount=Decimal("500"),
            max_discount_amount=Decimal("100"),
            **window,
        ),
        "FLAT50": Coupon(
            code="FLAT50",
            description="Flat 50 off",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("50"),
            **window,
        ),
        "BIGSPEND": Coupon(
            code="BIGSPEND",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("200"),
            min_order_amount=Decimal("5000"),
            **window,
        ),
        "EXPIRED": Coupon(
            code="EXPIRED",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("50"),
            valid_from=now - timedelta(days=30),
            valid_until=now - timedelta(days=1),
        ),
        "USEDUP": Coupon(
            code="USEDUP",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("50"),
            usage_limit=5,
            used_count=5,
            **window,
        ),
    }
    db_session.add_all(seeded.values())
    await db_session.commit()
    return seeded


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def notifications() -> AsyncMock:
    """Notification service double; every method reports success."""
    mock = AsyncMock(spec=NotificationService)
    mock.send_order_confirmation.return_value = True
    mock.send_status_update.return_value = True
    mock.notify_operator.return_value = True
    return mock


@pytest.fixture
def order_service(
    db_session: AsyncSession, notifications: AsyncMock, settings: Settings
) -> OrderService:
    return OrderService(db_session, notification_service=notifications, settings=settings)


@pytest.fixture
def return_service(db_session: AsyncSession, settings: Settings) -> ReturnService:
    return ReturnService(db_session, settings=settings)


@pytest.fixture
def razorpay_gateway(settings: Settings) -> RazorpayClient:
    """
    Gateway wrapper around a real SDK client.

    Signature checks run for real; tests patch ``_client.order.create``
    where a network call would happen.
    """
    sdk = razorpay.Client(auth=(settings.razorpay_key_id, settings.razorpay_key_secret))
    return RazorpayClient(settings, client=sdk)


@pytest.fixture
def payment_service(
    db_session: AsyncSession, razorpay_gateway: RazorpayClient, settings: Settings
) -> PaymentService:
    return PaymentService(db_session, gateway=razorpay_gateway, settings=settings)


# ============================================================================
# HTTP client
# ============================================================================


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    notifications: AsyncMock,
    razorpay_gateway: RazorpayClient,
    settings: Settings,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async client for the application with test dependencies.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    def override_payment_service(db: DatabaseSession) -> PaymentService:
        return PaymentService(db, gateway=razorpay_gateway, settings=settings)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifications] = lambda: notifications
    app.dependency_overrides[get_payment_service] = override_payment_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()


@pytest.fixture
def customer_headers(customer: User) -> dict[str, str]:
    return auth_headers(customer)


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return auth_headers(admin)


# ============================================================================
# Helpers exposed as fixtures
# ============================================================================


@pytest.fixture
def shipping_address() -> dict[str, Any]:
    return dict(SHIPPING_ADDRESS)


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def webhook_signer():
    return sign_webhook


@pytest.fixture
def checkout_signer():
    return sign_checkout


@pytest.fixture
def make_webhook_body():
    return webhook_body
