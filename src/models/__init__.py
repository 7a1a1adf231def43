"""Database model type definitions."""

from src.models.cart import CartDocument, StoredCartLine
from src.models.order import Order, OrderCreate, OrderCustomer, OrderStatus, OrderTotals, OrderUpdate
from src.models.product import HomepageContent, Product
from src.models.profile import UserProfile, UserProfileCreate

__all__ = [
    "CartDocument",
    "StoredCartLine",
    "HomepageContent",
    "Order",
    "OrderCreate",
    "OrderCustomer",
    "OrderStatus",
    "OrderTotals",
    "OrderUpdate",
    "Product",
    "UserProfile",
    "UserProfileCreate",
]
