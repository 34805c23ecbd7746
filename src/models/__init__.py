"""Database model type definitions."""

from src.models.cart import Cart, CartItem
from src.models.order import Order, OrderItem, OrderStatus, PaymentInfo, TransactionInfo
from src.models.product import Brand, Product

__all__ = [
    "Brand",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentInfo",
    "Product",
    "TransactionInfo",
]
