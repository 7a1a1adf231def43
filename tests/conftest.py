"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_stripe_publishable_key")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("CART_STORAGE_BACKEND", "memory")
os.environ.setdefault("CART_COOKIE_SECURE", "false")
os.environ.setdefault("SHIPPING_FLAT_FEE", "8.00")


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Give every test a fresh anonymous cart store and checkout registry."""
    from src.core.storage import reset_key_value_store
    from src.services.checkout_state import reset_checkout_registry

    reset_key_value_store()
    reset_checkout_registry()
    yield
    reset_key_value_store()
    reset_checkout_registry()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client


CATALOG: dict[str, dict[str, Any]] = {
    "A": {"id": "A", "name": "Ceramic Mug", "price": "12.50", "image_url": "/images/mug.jpg", "category": "mug"},
    "B": {"id": "B", "name": "Tea", "price": "3.00", "image_url": None, "category": "tea"},
}


@pytest.fixture
def product_catalog() -> Generator[Any, None, None]:
    """Serve CATALOG in place of the products table for the cart routes.

    Yields:
        ProductService: Service whose get_product reads CATALOG.
    """
    from src.main import app
    from src.services.product_service import ProductService, get_product_service

    service = ProductService(supabase_client=MagicMock())
    service.get_product = AsyncMock(side_effect=lambda product_id: CATALOG.get(product_id))
    app.dependency_overrides[get_product_service] = lambda: service
    yield service
    app.dependency_overrides.pop(get_product_service, None)


@pytest.fixture
def cart_payload(product_catalog: Any) -> dict[str, Any]:
    """What the storefront's add-to-cart button posts for catalog product A."""
    return {"product_id": "A", "quantity": 2}


@pytest.fixture
def checkout_form() -> dict[str, str]:
    """A valid shipping form."""
    return {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "address": "12 Analytical Way",
        "city": "Springfield",
        "state": "IL",
        "zip": "62704",
    }


TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"


@pytest.fixture
def auth_headers() -> Generator[dict[str, str], None, None]:
    """Authorization headers for a signed-in user, with JWT decoding mocked.

    Yields:
        dict: Headers carrying a bearer token.
    """
    import time

    from src.schemas.auth import TokenPayload

    now = int(time.time())
    payload = TokenPayload(
        sub=TEST_USER_ID,
        email="ada@example.com",
        role="authenticated",
        exp=now + 3600,
        iat=now,
    )

    with patch("src.api.deps.decode_jwt", return_value=payload), \
         patch("src.api.middleware.auth.decode_jwt", return_value=payload):
        yield {"Authorization": "Bearer test-token"}
