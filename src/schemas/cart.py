"""Cart Pydantic schemas for API request/response models."""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CartOwner(BaseModel):
    """Who a cart (and any checkout attempt on it) belongs to.

    Signed-in users own a remote cart keyed by user_id. Anonymous browsers
    own a cart keyed by an opaque cart token from cookie or header.
    """

    model_config = ConfigDict(frozen=True)

    user_id: UUID | None = Field(default=None, description="Signed-in user ID")
    cart_token: str | None = Field(default=None, description="Anonymous cart token")
    email: str | None = Field(default=None, description="Signed-in user's email")

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def key(self) -> str:
        """Stable key for per-owner state such as checkout attempts."""
        if self.user_id is not None:
            return f"user:{self.user_id}"
        return f"cart:{self.cart_token}"


class AddCartItemRequest(BaseModel):
    """Schema for adding a product via POST /cart/items.

    Name, price and image come from the catalog, never from the client.
    """

    product_id: str = Field(min_length=1, max_length=128, description="Product ID")
    quantity: int = Field(default=1, ge=1, le=999, description="Quantity to add")


class SetQuantityRequest(BaseModel):
    """Schema for PUT /cart/items/{product_id}. Zero or less removes the line."""

    quantity: int = Field(le=999, description="New exact quantity")


class CartLineSchema(BaseModel):
    """Schema for a single cart line."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str = Field(description="Product ID")
    name: str = Field(description="Product name")
    unit_price: Decimal = Field(description="Unit price")
    image_ref: str = Field(description="Product image URL or path")
    quantity: int = Field(ge=1, description="Quantity")
    line_total: Decimal = Field(description="unit_price x quantity")


class TotalsSchema(BaseModel):
    """Schema for derived cart totals."""

    model_config = ConfigDict(from_attributes=True)

    subtotal: Decimal = Field(description="Sum of line totals")
    shipping: Decimal = Field(description="Flat shipping fee, zero for an empty cart")
    total: Decimal = Field(description="subtotal + shipping")


class CartResponse(BaseModel):
    """Schema for cart API responses."""

    items: list[CartLineSchema] = Field(description="Cart lines in insertion order")
    totals: TotalsSchema = Field(description="Derived totals")
    item_count: int = Field(description="Total quantity across lines (header bubble)")


class CartMergeResponse(CartResponse):
    """Schema for the sign-in merge response."""

    merged_lines: int = Field(description="Lines moved from the anonymous cart")
