"""Order Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# Order status literal type for validation
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentMethod = Literal["payos", "cod"]


class OrderItemSchema(BaseModel):
    """Schema for a single line item in an order."""

    model_config = ConfigDict(from_attributes=True)

    product_id: str = Field(description="Product UUID")
    name: str = Field(description="Product name at order time")
    price: float = Field(ge=0, description="Unit price in VND at order time")
    quantity: int = Field(ge=1, description="Quantity ordered")
    size: float = Field(description="Shoe size")


class OrderCreateRequest(BaseModel):
    """Schema for placing an order from the current cart via POST /orders."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    shipping_address: dict[str, Any] | None = Field(
        default=None,
        alias="shippingAddress",
        description="Delivery address",
    )
    phone: str | None = Field(default=None, max_length=32, description="Contact phone number")
    payment_method: PaymentMethod | None = Field(
        default=None,
        alias="paymentMethod",
        description="Intended payment method",
    )


class OrderStatusUpdate(BaseModel):
    """Schema for the admin fulfillment status update."""

    model_config = ConfigDict(from_attributes=True)

    status: OrderStatus = Field(description="New lifecycle status")


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Order unique identifier")
    user_id: UUID = Field(description="Owner user ID")
    items: list[OrderItemSchema] = Field(description="Order line items")
    total_price: float = Field(description="Total in VND")
    status: str = Field(description="Order lifecycle status")
    is_paid: bool = Field(default=False, description="Whether payment has been confirmed")
    paid_at: datetime | None = Field(default=None, description="Payment confirmation timestamp")
    payment_method: str | None = Field(default=None, description="Payment method")
    payment_link_id: str | None = Field(default=None, description="payOS payment link ID")
    payment_link_code: int | None = Field(default=None, description="payOS order code")
    checkout_url: str | None = Field(default=None, description="payOS checkout URL")
    qr_code: str | None = Field(default=None, description="QR payload or QR image URL")
    transaction_info: dict[str, Any] | None = Field(default=None, description="Confirming transaction details")
    payment_info: dict[str, Any] | None = Field(default=None, description="Payment audit metadata")
    shipping_address: dict[str, Any] | None = Field(default=None, description="Delivery address")
    phone: str | None = Field(default=None, description="Contact phone number")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")


class OrderEnvelope(BaseModel):
    """Single order response envelope."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Request succeeded")
    data: OrderResponse = Field(description="The order")


class OrderListResponse(BaseModel):
    """Order list response envelope."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Request succeeded")
    count: int = Field(description="Number of orders returned")
    data: list[OrderResponse] = Field(description="List of orders")
