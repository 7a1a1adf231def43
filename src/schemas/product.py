"""Product Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ProductResponse(BaseModel):
    """Schema for product API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Product unique identifier")
    name: str = Field(description="Product name")
    price: Decimal = Field(description="Unit price in the store currency")
    image_url: str | None = Field(default=None, description="Product image URL or path")
    short_description: str | None = Field(default=None, description="One-line description")
    scent_notes: str | None = Field(default=None, description="Scent notes")
    category: str | None = Field(default=None, description="Product category")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")


class ProductListResponse(BaseModel):
    """Schema for product list responses."""

    products: list[ProductResponse]


class FeaturedProductResponse(BaseModel):
    """The homepage's featured product, if one is set and still exists."""

    product: ProductResponse | None = None
