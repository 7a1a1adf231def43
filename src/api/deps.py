"""FastAPI dependency injection functions."""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, Response, status

from src.api.middleware.auth import (
    AuthError,
    AuthErrorCode,
    decode_jwt,
    extract_bearer_token,
    user_from_authorization,
)
from src.core.config import get_settings
from src.core.storage import get_key_value_store
from src.schemas.auth import UserContext
from src.schemas.cart import CartOwner
from src.services.cart_service import CartStore
from src.services.cart_sync_service import get_cart_sync_service

CART_TOKEN_HEADER = "x-cart-token"


def get_cart_cookie_config() -> dict:
    """Get cart cookie configuration from settings."""
    settings = get_settings()
    # SameSite=None requires Secure=True; fall back to Lax for local development
    samesite = "none" if settings.cart_cookie_secure else "lax"
    return {
        "key": settings.cart_cookie_name,
        "max_age": settings.cart_cookie_max_age,
        "httponly": True,
        "secure": settings.cart_cookie_secure,
        "samesite": samesite,
        "path": "/",
    }


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    This dependency requires a valid JWT token in the Authorization header.
    Use this for endpoints that require authentication.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = extract_bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_jwt(token)
        return payload.to_user_context()

    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"},
            ) from e

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
) -> UserContext | None:
    """Extract the current user if a valid bearer token is present.

    A missing, malformed or expired token is treated as signed out, so a
    stale session is evaluated like any anonymous visitor.
    """
    return user_from_authorization(authorization)


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
OptionalUser = Annotated[UserContext | None, Depends(get_optional_user)]


# Cart token utility functions


def get_cart_token(request: Request) -> str | None:
    """Extract the anonymous cart token from X-Cart-Token header or cookie.

    Checks header first (works when third-party cookies are blocked),
    then falls back to cookie.
    """
    header_token = request.headers.get(CART_TOKEN_HEADER)
    if header_token:
        return header_token

    config = get_cart_cookie_config()
    return request.cookies.get(config["key"])


def set_cart_cookie(response: Response, token: str) -> None:
    """Set cart cookie on response and mirror it in the response header."""
    config = get_cart_cookie_config()
    response.set_cookie(
        key=config["key"],
        value=token,
        max_age=config["max_age"],
        httponly=config["httponly"],
        secure=config["secure"],
        samesite=config["samesite"],
        path=config["path"],
    )
    response.headers[CART_TOKEN_HEADER] = token


def anonymous_cart_store(token: str) -> CartStore:
    """Cart Store over the per-browser key-value store for one cart token."""
    settings = get_settings()
    return CartStore(get_key_value_store(), f"{settings.cart_storage_key}:{token}")


def user_cart_store(owner: CartOwner) -> CartStore:
    """Cart Store over a signed-in user's remote cart."""
    settings = get_settings()
    remote = get_cart_sync_service().store_for(owner.user_id)
    return CartStore(remote, f"{settings.cart_storage_key}:user:{owner.user_id}")


async def get_cart_owner(
    request: Request,
    response: Response,
    authorization: Annotated[str | None, Header()] = None,
) -> CartOwner:
    """Resolve who owns the cart for this request.

    A valid bearer token selects the user's remote cart. Otherwise the
    anonymous cart token is used, and a new one is issued (cookie plus
    X-Cart-Token response header) when none was sent.
    """
    cart_token = get_cart_token(request)

    # An invalid JWT falls through to the anonymous cart
    user = user_from_authorization(authorization)
    if user is not None:
        return CartOwner(user_id=user.user_id, email=user.email, cart_token=cart_token)

    if not cart_token:
        cart_token = secrets.token_hex(32)
        set_cart_cookie(response, cart_token)

    return CartOwner(cart_token=cart_token)


def get_cart_store(owner: Annotated[CartOwner, Depends(get_cart_owner)]) -> CartStore:
    """Load the owner's cart."""
    if owner.is_authenticated:
        return user_cart_store(owner)
    return anonymous_cart_store(owner.cart_token)


CartOwnerDep = Annotated[CartOwner, Depends(get_cart_owner)]
CartDep = Annotated[CartStore, Depends(get_cart_store)]
