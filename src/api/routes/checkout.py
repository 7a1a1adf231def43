"""Checkout and order API routes."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from src.api.deps import CartDep, CartOwnerDep, CurrentUser
from src.schemas.checkout import (
    CheckoutApprovalResponse,
    CheckoutCancelResponse,
    CheckoutForm,
    CheckoutStartResponse,
    CheckoutStatusResponse,
    OrderListResponse,
    OrderResponse,
    PaymentErrorReport,
    PaymentErrorResponse,
)
from src.services.checkout_service import CheckoutService
from src.services.order_service import OrderService

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.get(
    "",
    response_model=CheckoutStatusResponse,
    summary="Checkout status",
    description="Current checkout state, totals, and whether the submit control should be enabled.",
)
async def checkout_status(owner: CartOwnerDep, cart: CartDep) -> CheckoutStatusResponse:
    service = CheckoutService()
    return CheckoutStatusResponse(**service.checkout_status(owner, cart))


@router.post(
    "",
    response_model=CheckoutStartResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit shipping form",
    description=(
        "Validates the shipping form, creates a Pending order from a snapshot of the cart, "
        "then creates the payment the widget will confirm."
    ),
    responses={
        409: {"description": "A checkout is already in progress for this cart"},
        422: {"description": "Empty cart or invalid field"},
        502: {"description": "Order or payment could not be created; safe to retry"},
    },
)
async def start_checkout(
    data: CheckoutForm,
    owner: CartOwnerDep,
    cart: CartDep,
) -> CheckoutStartResponse:
    """Start a checkout attempt.

    Args:
        data: Shipping form values.
        owner: Cart owner (user or cart token).
        cart: The owner's cart.

    Returns:
        CheckoutStartResponse: Pending order id and the payment request.
    """
    service = CheckoutService()
    result = await service.start_checkout(owner, cart, data)
    return CheckoutStartResponse(**result)


@router.post(
    "/approve",
    response_model=CheckoutApprovalResponse,
    summary="Capture approved payment",
    description=(
        "Captures the payment the widget authorized, marks the order Paid, clears the cart "
        "and returns the confirmation redirect."
    ),
    responses={
        409: {"description": "No checkout is awaiting approval"},
        502: {"description": "Capture failed, or captured but the order needs reconciliation"},
    },
)
async def approve_checkout(owner: CartOwnerDep, cart: CartDep) -> CheckoutApprovalResponse:
    service = CheckoutService()
    result = await service.approve(owner, cart)
    return CheckoutApprovalResponse(**result)


@router.post(
    "/cancel",
    response_model=CheckoutCancelResponse,
    summary="Cancel checkout",
    description="The user closed the payment widget. The pending order is marked Failed (cancelled).",
)
async def cancel_checkout(owner: CartOwnerDep) -> CheckoutCancelResponse:
    service = CheckoutService()
    result = await service.cancel(owner)
    return CheckoutCancelResponse(**result)


@router.post(
    "/error",
    response_model=PaymentErrorResponse,
    summary="Report widget error",
    description="Records an error reported by the payment widget and returns the retry message.",
)
async def report_payment_error(data: PaymentErrorReport, owner: CartOwnerDep) -> PaymentErrorResponse:
    service = CheckoutService()
    message = await service.fail(owner, data.reason, data.code)
    return PaymentErrorResponse(message=message, state="idle")


# Orders router - mounted separately at /orders
orders_router = APIRouter(prefix="/orders", tags=["orders"])


@orders_router.get(
    "",
    response_model=OrderListResponse,
    summary="List my orders",
    description="Returns all orders for the signed-in user, newest first.",
)
async def list_orders(user: CurrentUser) -> OrderListResponse:
    service = OrderService()
    orders = await service.list_orders_for_user(user.user_id)
    return OrderListResponse(items=[OrderResponse(**order) for order in orders])


@orders_router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
    description="Returns a single order for the confirmation page. Only accessible by the order owner.",
)
async def get_order(order_id: UUID, owner: CartOwnerDep) -> OrderResponse:
    """Get a single order by ID.

    Args:
        order_id: The order's UUID.
        owner: Signed-in user or anonymous cart token.

    Returns:
        OrderResponse: The order data.

    Raises:
        HTTPException: 404 if order not found.
        HTTPException: 403 if not authorized to view this order.
    """
    service = OrderService()

    can_access = await service.can_access_order(
        order_id=order_id,
        user_id=owner.user_id,
        cart_token=owner.cart_token,
    )

    if not can_access:
        order = await service.get_order(order_id)
        if not order:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Order not found",
            )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to view this order",
        )

    order = await service.get_order(order_id)
    return OrderResponse(**order)
