"""Unit tests for FastAPI dependency injection functions."""

import time
from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest
from fastapi import HTTPException, Response

from src.api.deps import (
    CART_TOKEN_HEADER,
    get_cart_owner,
    get_cart_store,
    get_current_user,
    get_optional_user,
)
from src.api.middleware.auth import AuthError, AuthErrorCode
from src.schemas.auth import TokenPayload, UserContext
from src.schemas.cart import CartOwner

USER_ID = "550e8400-e29b-41d4-a716-446655440000"


def make_payload() -> TokenPayload:
    now = int(time.time())
    return TokenPayload(sub=USER_ID, email="test@example.com", role="authenticated", exp=now + 3600, iat=now)


def make_request(headers: dict[str, str] | None = None, cookies: dict[str, str] | None = None) -> MagicMock:
    request = MagicMock()
    request.headers = headers or {}
    request.cookies = cookies or {}
    return request


class TestGetCurrentUser:
    """Tests for get_current_user dependency."""

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_extracts_user_context_correctly(self, mock_decode: MagicMock) -> None:
        mock_decode.return_value = make_payload()

        user = await get_current_user("Bearer valid-token")

        assert isinstance(user, UserContext)
        assert str(user.user_id) == USER_ID
        assert user.email == "test@example.com"
        mock_decode.assert_called_once_with("valid-token")

    @pytest.mark.asyncio
    async def test_raises_401_for_missing_header(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("")

        assert exc_info.value.status_code == 401
        assert "Authorization header required" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_raises_401_for_wrong_scheme(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Basic some-credentials")

        assert exc_info.value.status_code == 401
        assert "Invalid authorization header format" in exc_info.value.detail

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_raises_401_for_expired_token(self, mock_decode: MagicMock) -> None:
        mock_decode.side_effect = AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Bearer expired-token")

        assert exc_info.value.status_code == 401
        assert "expired" in exc_info.value.detail.lower()


class TestGetOptionalUser:
    """Tests for get_optional_user dependency."""

    @pytest.mark.asyncio
    async def test_returns_none_without_header(self) -> None:
        assert await get_optional_user(None) is None
        assert await get_optional_user("") is None

    @pytest.mark.asyncio
    @patch("src.api.middleware.auth.decode_jwt")
    async def test_invalid_token_is_signed_out(self, mock_decode: MagicMock) -> None:
        mock_decode.side_effect = AuthError("Invalid token", AuthErrorCode.INVALID_TOKEN)

        assert await get_optional_user("Bearer invalid-token") is None

    @pytest.mark.asyncio
    @patch("src.api.middleware.auth.decode_jwt")
    async def test_expired_token_is_signed_out(self, mock_decode: MagicMock) -> None:
        mock_decode.side_effect = AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED)

        assert await get_optional_user("Bearer expired-token") is None

    @pytest.mark.asyncio
    @patch("src.api.middleware.auth.decode_jwt")
    async def test_valid_token_returns_user(self, mock_decode: MagicMock) -> None:
        mock_decode.return_value = make_payload()

        user = await get_optional_user("Bearer good-token")

        assert user is not None
        assert user.user_id == UUID(USER_ID)


class TestGetCartOwner:
    """Tests for cart owner resolution."""

    @pytest.mark.asyncio
    async def test_issues_token_for_new_browser(self) -> None:
        response = Response()

        owner = await get_cart_owner(make_request(), response, None)

        assert not owner.is_authenticated
        assert owner.cart_token is not None
        assert len(owner.cart_token) == 64
        assert response.headers[CART_TOKEN_HEADER] == owner.cart_token
        assert "set-cookie" in response.headers

    @pytest.mark.asyncio
    async def test_reuses_header_token(self) -> None:
        response = Response()

        owner = await get_cart_owner(make_request(headers={CART_TOKEN_HEADER: "tok"}), response, None)

        assert owner.cart_token == "tok"
        assert CART_TOKEN_HEADER not in response.headers

    @pytest.mark.asyncio
    async def test_reuses_cookie_token(self, test_settings) -> None:
        request = make_request(cookies={test_settings.cart_cookie_name: "cookie-tok"})

        owner = await get_cart_owner(request, Response(), None)

        assert owner.cart_token == "cookie-tok"

    @pytest.mark.asyncio
    @patch("src.api.middleware.auth.decode_jwt")
    async def test_signed_in_user_owns_cart(self, mock_decode: MagicMock) -> None:
        mock_decode.return_value = make_payload()

        owner = await get_cart_owner(make_request(), Response(), "Bearer good")

        assert owner.user_id == UUID(USER_ID)
        assert owner.key == f"user:{USER_ID}"

    @pytest.mark.asyncio
    @patch("src.api.middleware.auth.decode_jwt")
    async def test_invalid_jwt_falls_back_to_anonymous(self, mock_decode: MagicMock) -> None:
        mock_decode.side_effect = AuthError("bad", AuthErrorCode.INVALID_TOKEN)

        owner = await get_cart_owner(make_request(headers={CART_TOKEN_HEADER: "tok"}), Response(), "Bearer bad")

        assert not owner.is_authenticated
        assert owner.key == "cart:tok"


class TestGetCartStore:
    """Tests for cart store selection."""

    def test_anonymous_cart_uses_key_value_store(self, test_settings) -> None:
        cart = get_cart_store(CartOwner(cart_token="tok"))

        assert cart.key == f"{test_settings.cart_storage_key}:tok"
        assert cart.is_empty

    @patch("src.services.cart_sync_service.get_supabase_client")
    def test_user_cart_uses_remote_store(self, mock_client: MagicMock) -> None:
        response = MagicMock()
        response.data = {"items": [{"product_id": "A", "name": "Mug", "unit_price": "12.50", "image_ref": "", "quantity": 2}]}
        mock_client.return_value.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = response

        cart = get_cart_store(CartOwner(user_id=UUID(USER_ID)))

        assert cart.item_count == 2
        mock_client.return_value.table.assert_called_with("carts")
