"""Integration tests for auth endpoints."""

import json
import time
from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient
from jwt.algorithms import ECAlgorithm

from src.api.middleware.auth import get_signing_key
from src.api.middleware.error_handler import ValidationError

USER_ID = "550e8400-e29b-41d4-a716-446655440000"


@pytest.fixture
def signing_key() -> Generator[ec.EllipticCurvePrivateKey, None, None]:
    """An ES256 key pair with the public half configured for token checks."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_jwk = json.loads(ECAlgorithm.to_jwk(private_key.public_key()))

    get_signing_key.cache_clear()
    with patch("src.api.middleware.auth.get_settings") as mock_settings:
        mock_settings.return_value.supabase_signing_key_jwk = json.dumps(public_jwk)
        yield private_key
    get_signing_key.cache_clear()


def create_test_token(private_key: ec.EllipticCurvePrivateKey, exp_offset: int = 3600) -> str:
    now = int(time.time())
    payload = {
        "sub": USER_ID,
        "email": "ada@example.com",
        "role": "authenticated",
        "exp": now + exp_offset,
        "iat": now,
    }
    return jwt.encode(payload, private_key, algorithm="ES256")


@pytest.fixture
def mock_auth_service() -> Generator[MagicMock, None, None]:
    with patch("src.api.routes.auth.AuthService") as mock_cls:
        service = MagicMock()
        service.register = AsyncMock()
        service.login = AsyncMock()
        service.logout = AsyncMock(return_value={"message": "Logged out successfully"})
        service.get_profile = AsyncMock(return_value=None)
        mock_cls.return_value = service
        yield service


class TestTokenVerification:
    """Tests for bearer tokens on protected endpoints."""

    def test_valid_token_is_accepted(self, client: TestClient, signing_key: ec.EllipticCurvePrivateKey) -> None:
        token = create_test_token(signing_key)

        response = client.get("/health/auth", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["user_id"] == USER_ID

    def test_expired_token_is_rejected(self, client: TestClient, signing_key: ec.EllipticCurvePrivateKey) -> None:
        token = create_test_token(signing_key, exp_offset=-3600)

        response = client.get("/health/auth", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert "expired" in response.json()["detail"].lower()

    def test_invalid_format_is_rejected(self, client: TestClient) -> None:
        response = client.get("/health/auth", headers={"Authorization": "InvalidFormat"})

        assert response.status_code == 401

    def test_invalid_token_falls_back_to_anonymous_cart(
        self,
        client: TestClient,
        signing_key: ec.EllipticCurvePrivateKey,
    ) -> None:
        other_key = ec.generate_private_key(ec.SECP256R1())
        token = create_test_token(other_key)

        response = client.get("/api/v1/cart", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert "x-cart-token" in response.headers


class TestRegister:
    def test_register_returns_201(self, client: TestClient, mock_auth_service: MagicMock) -> None:
        mock_auth_service.register.return_value = {
            "user_id": USER_ID,
            "email": "ada@example.com",
            "access_token": None,
            "refresh_token": None,
            "message": "Account created successfully.",
        }

        response = client.post(
            "/api/v1/auth/register",
            json={"email": "ada@example.com", "password": "password123", "first_name": "Ada", "last_name": "Lovelace"},
        )

        assert response.status_code == 201
        assert response.json()["user_id"] == USER_ID
        mock_auth_service.register.assert_called_once_with(
            email="ada@example.com",
            password="password123",
            first_name="Ada",
            last_name="Lovelace",
        )

    def test_duplicate_email_returns_400(self, client: TestClient, mock_auth_service: MagicMock) -> None:
        mock_auth_service.register.side_effect = ValidationError("An account with this email already exists")

        response = client.post(
            "/api/v1/auth/register",
            json={"email": "ada@example.com", "password": "password123", "first_name": "Ada", "last_name": "Lovelace"},
        )

        assert response.status_code == 400
        assert "already exists" in response.json()["detail"]

    def test_short_password_is_422(self, client: TestClient, mock_auth_service: MagicMock) -> None:
        response = client.post(
            "/api/v1/auth/register",
            json={"email": "ada@example.com", "password": "short", "first_name": "Ada", "last_name": "Lovelace"},
        )

        assert response.status_code == 422
        mock_auth_service.register.assert_not_called()


class TestLogin:
    def test_login_returns_tokens(self, client: TestClient, mock_auth_service: MagicMock) -> None:
        mock_auth_service.login.return_value = {
            "access_token": "access-123",
            "refresh_token": "refresh-456",
            "user_id": USER_ID,
            "email": "ada@example.com",
            "expires_in": 3600,
        }

        response = client.post("/api/v1/auth/login", json={"email": "ada@example.com", "password": "password123"})

        assert response.status_code == 200
        assert response.json()["access_token"] == "access-123"

    def test_bad_credentials_return_401(self, client: TestClient, mock_auth_service: MagicMock) -> None:
        mock_auth_service.login.side_effect = ValidationError("Invalid email or password")

        response = client.post("/api/v1/auth/login", json={"email": "ada@example.com", "password": "wrong"})

        assert response.status_code == 401


class TestSignedInEndpoints:
    def test_logout_passes_token(
        self,
        client: TestClient,
        mock_auth_service: MagicMock,
        auth_headers: dict[str, str],
    ) -> None:
        response = client.post("/api/v1/auth/logout", headers=auth_headers)

        assert response.status_code == 200
        mock_auth_service.logout.assert_called_once_with("test-token")

    def test_me_includes_profile(
        self,
        client: TestClient,
        mock_auth_service: MagicMock,
        auth_headers: dict[str, str],
    ) -> None:
        mock_auth_service.get_profile.return_value = {"first_name": "Ada", "last_name": "Lovelace", "role": "customer"}

        response = client.get("/api/v1/auth/me", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "ada@example.com"
        assert data["first_name"] == "Ada"
        assert data["role"] == "customer"

    def test_me_requires_token(self, client: TestClient) -> None:
        response = client.get("/api/v1/auth/me")

        assert response.status_code == 401
