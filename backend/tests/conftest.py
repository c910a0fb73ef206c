"""
Pytest configuration and shared test fixtures.

Settings are pinned through environment variables before the application is
imported. Services are exercised against the in-memory fakes from
``tests.factories`` so that no database, Stripe account or AWS credentials
are needed.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")
os.environ.setdefault("APP_FRONTEND_URL", "https://shop.recycletrade.example")
os.environ.setdefault("APP_ABANDONED_SWEEP_ENABLED", "false")
os.environ.setdefault("APP_STRIPE_SECRET_KEY", "sk_test_fake_key")
os.environ.setdefault("APP_STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("APP_NOTIFICATION_BACKEND", "log")

from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from recycletrade.core.config import get_settings  # noqa: E402
from tests.factories import (  # noqa: E402
    FakeCartRepository,
    FakeOrderRepository,
    FakeProductRepository,
    FakeStripeClient,
    RecordingGateway,
    build_services,
)

get_settings.cache_clear()


@pytest.fixture
def settings():
    """Application settings as seen by the services under test."""
    return get_settings()


@pytest.fixture
def products() -> FakeProductRepository:
    return FakeProductRepository()


@pytest.fixture
def order_repository(products: FakeProductRepository) -> FakeOrderRepository:
    return FakeOrderRepository(products)


@pytest.fixture
def carts() -> FakeCartRepository:
    return FakeCartRepository()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def stripe_client() -> FakeStripeClient:
    return FakeStripeClient()


@pytest.fixture
def services(order_repository, products, carts, gateway, stripe_client):
    """Fully wired order services over the in-memory fakes."""
    return build_services(order_repository, products, carts, gateway, stripe_client)


@pytest.fixture
async def async_client(services) -> AsyncGenerator[AsyncClient, None]:
    """
    Asynchronous client for the FastAPI application.

    Order services are replaced with the in-memory wiring; tests override
    the user dependencies they need through ``app.dependency_overrides``.

    Example:
        async def test_health(async_client):
            response = await async_client.get("/health")
            assert response.status_code == 200
    """
    from recycletrade.api.deps import get_order_services
    from recycletrade.main import app

    app.dependency_overrides[get_order_services] = lambda: services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
