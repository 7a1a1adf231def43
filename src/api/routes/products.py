"""Product catalog API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.schemas.product import FeaturedProductResponse, ProductListResponse, ProductResponse
from src.services.product_service import ProductService, get_product_service

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=ProductListResponse)
async def list_products(
    category: Annotated[str | None, Query(description="Filter by category")] = None,
    limit: Annotated[int, Query(ge=1, le=100, description="Maximum results")] = 100,
    product_service: ProductService = Depends(get_product_service),
) -> ProductListResponse:
    """List catalog products. Products are publicly readable."""
    products = await product_service.list_products(category=category, limit=limit)
    return ProductListResponse(products=[ProductResponse(**p) for p in products])


@router.get("/featured", response_model=FeaturedProductResponse)
async def get_featured_product(
    product_service: ProductService = Depends(get_product_service),
) -> FeaturedProductResponse:
    """Return the product featured on the homepage, or null when none is set."""
    product = await product_service.get_featured_product()
    return FeaturedProductResponse(product=ProductResponse(**product) if product else None)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    product_service: ProductService = Depends(get_product_service),
) -> ProductResponse:
    """Get a product by ID."""
    product = await product_service.get_product(product_id)
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found",
        )

    return ProductResponse(**product)
