"""Cart API routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.api.deps import CartDep, CurrentUser, anonymous_cart_store, get_cart_token, user_cart_store
from src.schemas.cart import (
    AddCartItemRequest,
    CartMergeResponse,
    CartOwner,
    CartResponse,
    SetQuantityRequest,
)
from src.services.cart_service import CartStore
from src.services.cart_sync_service import get_cart_sync_service
from src.services.product_service import ProductNotFoundError, ProductService, get_product_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cart", tags=["cart"])


def cart_response(cart: CartStore) -> CartResponse:
    """Render a Cart Store as its API response."""
    return CartResponse(
        items=[
            {**line.to_dict(), "unit_price": line.unit_price, "line_total": line.line_total}
            for line in cart.lines
        ],
        totals=cart.compute_totals().to_dict(),
        item_count=cart.item_count,
    )


@router.get(
    "",
    response_model=CartResponse,
    summary="Get cart",
    description="Returns the current cart with derived totals. Anonymous carts are keyed by cart token.",
)
async def get_cart(cart: CartDep) -> CartResponse:
    """Return the current cart and its totals."""
    return cart_response(cart)


@router.post(
    "/items",
    response_model=CartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add item",
    description=(
        "Adds a catalog product. Name, price and image are read from the catalog. "
        "If the product is already in the cart its quantity accumulates."
    ),
)
async def add_item(
    data: AddCartItemRequest,
    cart: CartDep,
    product_service: ProductService = Depends(get_product_service),
) -> CartResponse:
    """Add a product to the cart.

    Raises:
        HTTPException: 404 if the product is not in the catalog, 400 if the
            item is rejected by the cart.
    """
    try:
        name, unit_price, image_ref = await product_service.resolve_for_cart(data.product_id)
    except ProductNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e

    try:
        cart.add_item(
            product_id=data.product_id,
            name=name,
            unit_price=unit_price,
            image_ref=image_ref,
            quantity=data.quantity,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return cart_response(cart)


@router.put(
    "/items/{product_id}",
    response_model=CartResponse,
    summary="Set quantity",
    description="Sets a line's quantity exactly. Zero or less removes the line.",
)
async def set_quantity(product_id: str, data: SetQuantityRequest, cart: CartDep) -> CartResponse:
    """Set the quantity of a cart line.

    Raises:
        HTTPException: 404 if a positive quantity targets a product not in the cart.
    """
    changed = cart.set_quantity(product_id, data.quantity)
    if not changed and data.quantity > 0:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product {product_id} is not in the cart",
        )
    return cart_response(cart)


@router.delete(
    "/items/{product_id}",
    response_model=CartResponse,
    summary="Remove item",
    description="Removes a line. Removing a product that is not in the cart is a no-op.",
)
async def remove_item(product_id: str, cart: CartDep) -> CartResponse:
    cart.remove_item(product_id)
    return cart_response(cart)


@router.delete(
    "",
    response_model=CartResponse,
    summary="Clear cart",
)
async def clear_cart(cart: CartDep) -> CartResponse:
    cart.clear()
    return cart_response(cart)


@router.post(
    "/merge",
    response_model=CartMergeResponse,
    summary="Merge anonymous cart on sign-in",
    description=(
        "Moves lines from the browser's anonymous cart into the signed-in user's cart. "
        "Products already in the user's cart keep their quantity. The anonymous cart is emptied."
    ),
)
async def merge_cart(user: CurrentUser, request: Request) -> CartMergeResponse:
    """Merge the anonymous cart named by the cart token into the user's cart."""
    owner = CartOwner(user_id=user.user_id, email=user.email)
    remote = user_cart_store(owner)

    merged = 0
    token = get_cart_token(request)
    if token:
        local = anonymous_cart_store(token)
        merged = await get_cart_sync_service().merge_on_sign_in(remote, local)
    else:
        logger.debug("No cart token on merge for user %s", user.user_id)

    response = cart_response(remote)
    return CartMergeResponse(**response.model_dump(), merged_lines=merged)
