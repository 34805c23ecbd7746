"""Order model type definitions for database operations."""

from datetime import datetime
from typing import Any, Literal, TypedDict
from uuid import UUID


# Order status values matching the database check constraint
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]

# Statuses an order only reaches after it has been paid for
POST_PAYMENT_STATUSES: frozenset[str] = frozenset({"processing", "shipped", "delivered"})

PaymentMethod = Literal["payos", "cod"]

# How a payment confirmation was obtained, kept for audits
ConfirmationSource = Literal["webhook", "poll", "poll_heuristic", "manual"]


class OrderItem(TypedDict):
    """Structure for a single line item in an order.

    Captured from the cart when the order is created and never
    recomputed from live product data.
    """

    product_id: str
    name: str
    price: float
    quantity: int
    size: float


class TransactionInfo(TypedDict, total=False):
    """Advisory record of the confirming transaction."""

    transaction_id: str | None
    amount: int | None
    description: str | None
    time: str | None
    transactions: list[dict[str, Any]]


class PaymentInfo(TypedDict, total=False):
    """Payment audit metadata.

    ``updated_manually``/``updated_by``/``updated_at`` are only written by
    the manual override so it can be told apart from gateway confirmation.
    """

    buyer_id: str
    confirmation_source: ConfirmationSource
    updated_manually: bool
    updated_by: str
    updated_at: str


class Order(TypedDict):
    """Order table row representation.

    Represents an order stored in the orders table.
    Maps directly to the database schema.
    """

    id: UUID
    user_id: UUID
    items: list[OrderItem]
    total_price: float
    shipping_address: dict[str, Any] | None
    phone: str | None
    status: OrderStatus
    payment_method: PaymentMethod | None
    is_paid: bool
    paid_at: datetime | None
    payment_link_id: str | None
    payment_link_code: int | None
    checkout_url: str | None
    qr_code: str | None
    transaction_info: TransactionInfo | None
    payment_info: PaymentInfo | None
    created_at: datetime
    updated_at: datetime


class OrderCreate(TypedDict, total=False):
    """Data required to create a new order."""

    user_id: str
    items: list[OrderItem]
    total_price: float
    shipping_address: dict[str, Any] | None
    phone: str | None
    status: OrderStatus
    payment_method: PaymentMethod | None
    is_paid: bool


class PaymentLinkUpdate(TypedDict, total=False):
    """Link metadata written after a checkout link is created."""

    payment_method: PaymentMethod
    payment_link_id: str
    payment_link_code: int
    checkout_url: str
    qr_code: str
