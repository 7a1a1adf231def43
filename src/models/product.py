"""Product model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict


class Product(TypedDict):
    """Product table row representation.

    Represents a product stored in the products table. Price is stored as
    a decimal string in the store currency.
    """

    id: str
    name: str
    price: str
    image_url: str | None
    short_description: str | None
    scent_notes: str | None
    category: str | None
    created_at: datetime


class HomepageContent(TypedDict, total=False):
    """The site_content row keyed "homepage"."""

    key: str
    featured_product_id: str | None
