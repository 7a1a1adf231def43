"""Unit tests for ProductService."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from src.services.product_service import ProductNotFoundError, ProductService

MUG = {"id": "A", "name": "Ceramic Mug", "price": "12.50", "image_url": "/images/mug.jpg"}


@pytest.fixture
def mock_supabase() -> MagicMock:
    """Create a mock Supabase client."""
    return MagicMock()


@pytest.fixture
def product_service(mock_supabase: MagicMock) -> ProductService:
    return ProductService(supabase_client=mock_supabase)


def make_response(data: object) -> MagicMock:
    response = MagicMock()
    response.data = data
    return response


def single_row(mock_supabase: MagicMock, data: object) -> None:
    mock_supabase.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = (
        make_response(data)
    )


def table_with_row(data: object) -> MagicMock:
    table = MagicMock()
    table.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = make_response(data)
    return table

class TestGetProduct:
    @pytest.mark.asyncio
    async def test_returns_row(self, product_service: ProductService, mock_supabase: MagicMock) -> None:
        single_row(mock_supabase, MUG)

        product = await product_service.get_product("A")

        assert product == MUG
        mock_supabase.table.assert_called_with("products")
        mock_supabase.table.return_value.select.return_value.eq.assert_called_with("id", "A")

    @pytest.mark.asyncio
    async def test_missing_returns_none(self, product_service: ProductService, mock_supabase: MagicMock) -> None:
        single_row(mock_supabase, None)

        assert await product_service.get_product("Z") is None


class TestListProducts:
    @pytest.mark.asyncio
    async def test_filters_by_category(self, product_service: ProductService, mock_supabase: MagicMock) -> None:
        query = mock_supabase.table.return_value.select.return_value
        query.eq.return_value.order.return_value.limit.return_value.execute.return_value = make_response([MUG])

        products = await product_service.list_products(category="mug", limit=10)

        assert products == [MUG]
        query.eq.assert_called_once_with("category", "mug")
        query.eq.return_value.order.return_value.limit.assert_called_once_with(10)


class TestResolveForCart:
    @pytest.mark.asyncio
    async def test_uses_catalog_values(self, product_service: ProductService, mock_supabase: MagicMock) -> None:
        single_row(mock_supabase, MUG)

        name, price, image = await product_service.resolve_for_cart("A")

        assert (name, price, image) == ("Ceramic Mug", Decimal("12.50"), "/images/mug.jpg")

    @pytest.mark.asyncio
    async def test_unknown_product_raises(self, product_service: ProductService, mock_supabase: MagicMock) -> None:
        single_row(mock_supabase, None)

        with pytest.raises(ProductNotFoundError):
            await product_service.resolve_for_cart("Z")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", [None, "n/a", "-1.00"])
    async def test_unusable_price_raises(
        self,
        product_service: ProductService,
        mock_supabase: MagicMock,
        price: object,
    ) -> None:
        single_row(mock_supabase, {**MUG, "price": price})

        with pytest.raises(ProductNotFoundError):
            await product_service.resolve_for_cart("A")


class TestFeaturedProduct:
    @pytest.mark.asyncio
    async def test_reads_homepage_content(self, product_service: ProductService) -> None:
        product_service.supabase.table.side_effect = lambda name: {
            "site_content": table_with_row({"featured_product_id": "A"}),
            "products": table_with_row(MUG),
        }[name]

        assert await product_service.get_featured_product() == MUG

    @pytest.mark.asyncio
    async def test_nothing_featured(self, product_service: ProductService, mock_supabase: MagicMock) -> None:
        single_row(mock_supabase, {"featured_product_id": None})

        assert await product_service.get_featured_product() is None

    @pytest.mark.asyncio
    async def test_featured_product_deleted(self, product_service: ProductService) -> None:
        product_service.supabase.table.side_effect = lambda name: {
            "site_content": table_with_row({"featured_product_id": "gone"}),
            "products": table_with_row(None),
        }[name]

        assert await product_service.get_featured_product() is None
