"""Order model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict
from uuid import UUID

from src.models.cart import StoredCartLine


# Order status values matching the orders.status column
OrderStatus = Literal["Pending", "Paid", "Failed"]

# Why a pending order was moved to Failed
FailureReason = Literal["cancelled", "payment_error", "expired"]


class OrderCustomer(TypedDict):
    """Shipping contact captured from the checkout form."""

    name: str
    first_name: str
    last_name: str
    email: str
    address: str
    city: str
    state: str
    zip: str


class OrderTotals(TypedDict):
    """Totals snapshot, stored as decimal strings."""

    subtotal: str
    shipping: str
    total: str


class Order(TypedDict):
    """Orders table row representation.

    items and totals are a frozen copy of the cart at submission time.
    """

    id: UUID
    user_id: UUID | None
    cart_token: str | None
    customer: OrderCustomer
    items: list[StoredCartLine]
    totals: OrderTotals
    currency: str
    status: OrderStatus
    payment_reference: str | None
    failure_reason: FailureReason | None
    created_at: datetime
    paid_at: datetime | None
    updated_at: datetime


class OrderCreate(TypedDict, total=False):
    """Data required to create a new pending order."""

    user_id: str | None
    cart_token: str | None
    customer: OrderCustomer
    items: list[StoredCartLine]
    totals: OrderTotals
    currency: str
    status: OrderStatus
    payment_reference: str | None
    created_at: str


class OrderUpdate(TypedDict, total=False):
    """Fields that can change after an order is created."""

    status: OrderStatus
    payment_reference: str
    failure_reason: FailureReason
    paid_at: str
