"""Cart Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CartItemSchema(BaseModel):
    """Schema for a cart line."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Cart item ID")
    product_id: str = Field(description="Product UUID")
    quantity: int = Field(ge=1, description="Quantity")
    size: float = Field(description="Shoe size")
    price: float = Field(description="Unit price in VND when added")


class AddCartItemRequest(BaseModel):
    """Schema for POST /cart/items."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    product_id: UUID = Field(alias="productId", description="Product UUID")
    size: float = Field(gt=0, description="Shoe size")
    quantity: int = Field(default=1, ge=1, le=100, description="Quantity to add")


class UpdateCartItemRequest(BaseModel):
    """Schema for PUT /cart/items/{item_id}."""

    model_config = ConfigDict(from_attributes=True)

    quantity: int = Field(ge=1, le=100, description="New quantity")


class CartResponse(BaseModel):
    """Schema for a cart."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Cart ID")
    user_id: UUID = Field(description="Owner user ID")
    items: list[CartItemSchema] = Field(default_factory=list, description="Cart items")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")


class CartEnvelope(BaseModel):
    """Cart response envelope."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Request succeeded")
    data: CartResponse = Field(description="The cart")
