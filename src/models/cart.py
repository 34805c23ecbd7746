"""Cart model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class CartItem(TypedDict):
    """A line in a user's cart.

    ``price`` is the product's VND price at the time the item was added.
    """

    id: str
    product_id: str
    quantity: int
    size: float
    price: float


class Cart(TypedDict):
    """Cart table row representation. One cart per user."""

    id: UUID
    user_id: UUID
    items: list[CartItem]
    updated_at: datetime
