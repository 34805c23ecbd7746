"""Product Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProductBase(BaseModel):
    """Base product fields shared across schemas."""

    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    brand: str = Field(..., min_length=1, max_length=100, description="Brand name")
    price: float = Field(..., ge=0, description="List price")
    price_vnd: float = Field(..., ge=0, description="Price in VND, used for carts and payments")
    image: str | None = Field(default=None, description="Product image URL")
    description: str | None = Field(default=None, description="Product description")
    sizes: list[float] = Field(default_factory=list, description="Available sizes")
    in_stock: bool = Field(default=True, description="Whether the product can be ordered")


class ProductCreate(ProductBase):
    """Schema for creating a new product."""

    model_config = ConfigDict(from_attributes=True)


class ProductUpdate(BaseModel):
    """Schema for updating a product. Omitted fields are left unchanged."""

    model_config = ConfigDict(from_attributes=True)

    name: str | None = Field(default=None, min_length=1, max_length=255, description="Product name")
    brand: str | None = Field(default=None, min_length=1, max_length=100, description="Brand name")
    price: float | None = Field(default=None, ge=0, description="List price")
    price_vnd: float | None = Field(default=None, ge=0, description="Price in VND")
    image: str | None = Field(default=None, description="Product image URL")
    description: str | None = Field(default=None, description="Product description")
    sizes: list[float] | None = Field(default=None, description="Available sizes")
    in_stock: bool | None = Field(default=None, description="Whether the product can be ordered")


class ProductResponse(ProductBase):
    """Schema for product API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Product unique identifier")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")


class Pagination(BaseModel):
    """Page-based pagination info."""

    model_config = ConfigDict(from_attributes=True)

    current: int = Field(description="Current page (1-based)")
    total_pages: int = Field(description="Number of pages")
    total: int = Field(description="Number of matching products")


class ProductEnvelope(BaseModel):
    """Single product response envelope."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Request succeeded")
    data: ProductResponse = Field(description="The product")


class ProductListResponse(BaseModel):
    """Schema for paginated product list response."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Request succeeded")
    count: int = Field(description="Number of products on this page")
    pagination: Pagination | None = Field(default=None, description="Pagination info")
    data: list[ProductResponse] = Field(description="List of products")
