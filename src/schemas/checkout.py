"""Checkout and order Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.schemas.cart import TotalsSchema


OrderStatus = Literal["Pending", "Paid", "Failed"]


class CheckoutForm(BaseModel):
    """Shipping form submitted via POST /checkout.

    Fields default to empty so the checkout service, not request parsing,
    decides which field is reported first.
    """

    first_name: str = Field(default="", max_length=100, description="First name")
    last_name: str = Field(default="", max_length=100, description="Last name")
    email: str = Field(default="", max_length=255, description="Email address")
    address: str = Field(default="", max_length=255, description="Street address")
    city: str = Field(default="", max_length=100, description="City")
    state: str = Field(default="", max_length=50, description="Two-letter state code")
    zip: str = Field(default="", max_length=10, description="ZIP code")


class CustomerSchema(BaseModel):
    """Validated shipping contact stored on the order."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    first_name: str
    last_name: str
    email: str
    address: str
    city: str
    state: str
    zip: str


class OrderLineItemSchema(BaseModel):
    """Schema for a single line item in an order snapshot."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str = Field(description="Product ID")
    name: str = Field(description="Product name")
    unit_price: Decimal = Field(description="Unit price")
    image_ref: str = Field(default="", description="Product image")
    quantity: int = Field(ge=1, description="Quantity ordered")


class PaymentBreakdown(BaseModel):
    """Amount breakdown handed to the payment widget."""

    item_total: Decimal
    shipping: Decimal


class PaymentLineItem(BaseModel):
    """Line item handed to the payment widget."""

    sku: str
    name: str
    unit_amount: Decimal
    quantity: int


class PaymentRequestSchema(BaseModel):
    """What the payment widget is asked to charge, built from the order snapshot."""

    currency: str
    amount: Decimal
    amount_minor: int = Field(description="amount in cents")
    breakdown: PaymentBreakdown
    items: list[PaymentLineItem]


class CheckoutStartResponse(BaseModel):
    """Response for POST /checkout once the pending order exists."""

    order_id: UUID = Field(description="Pending order UUID")
    state: str = Field(description="Checkout state")
    payment_handle: str = Field(description="Stripe PaymentIntent ID")
    client_secret: str | None = Field(default=None, description="Stripe client secret for the widget")
    publishable_key: str | None = Field(default=None, description="Stripe publishable key")
    payment: PaymentRequestSchema = Field(description="Amounts the widget will charge")


class CheckoutApprovalResponse(BaseModel):
    """Response for POST /checkout/approve after the order is finalized."""

    order_id: UUID
    status: OrderStatus
    transaction_id: str
    redirect_url: str = Field(description="Confirmation page keyed by order id")


class CheckoutCancelResponse(BaseModel):
    """Response for POST /checkout/cancel."""

    state: str
    order_id: UUID | None = None


class PaymentErrorReport(BaseModel):
    """Error reported by the payment widget via POST /checkout/error."""

    reason: str = Field(default="", max_length=1000, description="Widget error text")
    code: str | None = Field(default=None, max_length=100, description="External error code")


class PaymentErrorResponse(BaseModel):
    """User-facing message for a widget error."""

    message: str
    state: str


class CheckoutStatusResponse(BaseModel):
    """Response for GET /checkout."""

    state: str
    submit_enabled: bool
    order_id: UUID | None = None
    transaction_id: str | None = Field(default=None, description="Captured payment awaiting confirmation")
    totals: TotalsSchema


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Order unique identifier")
    user_id: UUID | None = Field(default=None, description="Owning user ID")
    customer: CustomerSchema = Field(description="Shipping contact")
    items: list[OrderLineItemSchema] = Field(description="Cart snapshot")
    totals: TotalsSchema = Field(description="Totals snapshot")
    currency: str = Field(default="usd", description="Currency code")
    status: OrderStatus = Field(description="Order status")
    payment_reference: str | None = Field(default=None, description="External transaction ID")
    failure_reason: str | None = Field(default=None, description="Why the order failed")
    created_at: datetime = Field(description="Creation timestamp")
    paid_at: datetime | None = Field(default=None, description="Payment timestamp")


class OrderListResponse(BaseModel):
    """Schema for order list API responses."""

    model_config = ConfigDict(from_attributes=True)

    items: list[OrderResponse] = Field(description="List of orders")
