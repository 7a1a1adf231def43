"""Cart model type definitions for storage and database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class StoredCartLine(TypedDict):
    """Structure for a single cart line as serialized into storage.

    unit_price is kept as a decimal string so no precision is lost.
    """

    product_id: str
    name: str
    unit_price: str
    image_ref: str
    quantity: int


class CartDocument(TypedDict):
    """Carts table row representation.

    One remote cart per signed-in user, mirrored from the Cart Store.
    """

    user_id: UUID
    items: list[StoredCartLine]
    updated_at: datetime
