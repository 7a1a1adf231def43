"""Product catalog reads: the source of truth for names and prices."""

import logging
from decimal import Decimal, InvalidOperation

from supabase import Client

from src.core.supabase import get_supabase_client
from src.models.product import Product

logger = logging.getLogger(__name__)


class ProductNotFoundError(LookupError):
    """No purchasable product with the requested id."""


class ProductService:
    """Service for catalog lookups."""

    TABLE = "products"
    SITE_CONTENT_TABLE = "site_content"

    def __init__(self, supabase_client: Client | None = None):
        """Initialize product service.

        Args:
            supabase_client: Optional Supabase client for testing.
        """
        self._supabase_client = supabase_client

    @property
    def supabase(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    async def get_product(self, product_id: str) -> Product | None:
        """Get a product by ID.

        Args:
            product_id: Product document ID.

        Returns:
            Product or None if not found.
        """
        result = (
            self.supabase.table(self.TABLE)
            .select("*")
            .eq("id", product_id)
            .maybe_single()
            .execute()
        )
        return result.data if result and result.data else None

    async def list_products(self, category: str | None = None, limit: int = 100) -> list[Product]:
        """List catalog products, optionally filtered by category."""
        query = self.supabase.table(self.TABLE).select("*")
        if category:
            query = query.eq("category", category)
        result = query.order("name").limit(limit).execute()
        return result.data or []

    async def get_featured_product(self) -> Product | None:
        """The product picked on the homepage's site content row.

        Returns None when no product is featured or the featured id no
        longer exists.
        """
        result = (
            self.supabase.table(self.SITE_CONTENT_TABLE)
            .select("featured_product_id")
            .eq("key", "homepage")
            .maybe_single()
            .execute()
        )
        content = result.data if result and result.data else {}
        featured_id = content.get("featured_product_id")
        if not featured_id:
            return None

        product = await self.get_product(featured_id)
        if product is None:
            logger.warning("Featured product %s not found", featured_id)
        return product

    async def resolve_for_cart(self, product_id: str) -> tuple[str, Decimal, str]:
        """Catalog name, unit price and image for a cart line.

        Raises:
            ProductNotFoundError: Unknown product or unusable price.
        """
        product = await self.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")

        try:
            price = Decimal(str(product["price"]))
        except (KeyError, InvalidOperation) as e:
            logger.error("Product %s has no valid price: %s", product_id, product.get("price"))
            raise ProductNotFoundError(f"Product {product_id} is not available") from e
        if price < 0:
            raise ProductNotFoundError(f"Product {product_id} is not available")

        return product["name"], price, product.get("image_url") or ""


def get_product_service() -> ProductService:
    """Dependency provider for ProductService."""
    return ProductService()
