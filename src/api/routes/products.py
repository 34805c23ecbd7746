"""Product catalog API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from src.api.deps import AdminUser
from src.api.middleware.error_handler import NotFoundError
from src.schemas.product import (
    Pagination,
    ProductCreate,
    ProductEnvelope,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)
from src.services.product_service import ProductService, get_product_service

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=ProductListResponse)
async def list_products(
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    limit: Annotated[int, Query(ge=1, le=100, description="Results per page")] = 8,
    brand: Annotated[str | None, Query(description="Filter by brand, or 'all'")] = None,
    sort: Annotated[str | None, Query(description="price-low, price-high or name; newest first otherwise")] = None,
    product_service: ProductService = Depends(get_product_service),
) -> ProductListResponse:
    """List products with brand filter, sorting and pagination.

    Products are publicly readable.
    """
    result = await product_service.list_products(page=page, limit=limit, brand=brand, sort=sort)
    products = [ProductResponse(**p) for p in result["products"]]

    return ProductListResponse(
        count=len(products),
        pagination=Pagination(**result["pagination"]),
        data=products,
    )


@router.get("/search", response_model=ProductListResponse)
async def search_products(
    q: Annotated[str, Query(min_length=1, max_length=200, description="Search term")],
    product_service: ProductService = Depends(get_product_service),
) -> ProductListResponse:
    """Search products by name, brand or description."""
    products = [ProductResponse(**p) for p in await product_service.search_products(q)]
    return ProductListResponse(count=len(products), data=products)


@router.get("/{product_id}", response_model=ProductEnvelope)
async def get_product(
    product_id: UUID,
    product_service: ProductService = Depends(get_product_service),
) -> ProductEnvelope:
    """Get a product by ID."""
    product = await product_service.get_product(product_id)
    if not product:
        raise NotFoundError(f"Product not found with id of {product_id}")

    return ProductEnvelope(data=ProductResponse(**product))


@router.post("", response_model=ProductEnvelope, status_code=status.HTTP_201_CREATED)
async def create_product(
    data: ProductCreate,
    admin: AdminUser,
    product_service: ProductService = Depends(get_product_service),
) -> ProductEnvelope:
    """Create a new product. Admin only."""
    product = await product_service.create_product(data.model_dump())
    return ProductEnvelope(data=ProductResponse(**product))


@router.put("/{product_id}", response_model=ProductEnvelope)
async def update_product(
    product_id: UUID,
    data: ProductUpdate,
    admin: AdminUser,
    product_service: ProductService = Depends(get_product_service),
) -> ProductEnvelope:
    """Update a product. Admin only."""
    product = await product_service.update_product(product_id, data.model_dump(exclude_unset=True))
    if not product:
        raise NotFoundError(f"Product not found with id of {product_id}")

    return ProductEnvelope(data=ProductResponse(**product))


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: UUID,
    admin: AdminUser,
    product_service: ProductService = Depends(get_product_service),
) -> None:
    """Delete a product. Admin only."""
    deleted = await product_service.delete_product(product_id)
    if not deleted:
        raise NotFoundError(f"Product not found with id of {product_id}")
