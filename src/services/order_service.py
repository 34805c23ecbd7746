"""Order business logic: placing orders from carts and order management."""

import logging
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import (
    AuthorizationError,
    EmptyCartError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from src.models.order import Order, OrderItem, OrderStatus, PaymentMethod
from src.schemas.auth import UserContext
from src.services.cart_service import CartService
from src.services.order_repository import OrderRepository

logger = logging.getLogger(__name__)


class OrderService:
    """Service for order placement and order management."""

    def __init__(
        self,
        repository: OrderRepository | None = None,
        cart_service: CartService | None = None,
    ) -> None:
        """Initialize order service.

        Args:
            repository: Optional order repository for testing.
            cart_service: Optional cart service for testing.
        """
        self.repository = repository or OrderRepository()
        self.cart_service = cart_service or CartService()

    async def create_order_from_cart(
        self,
        user: UserContext,
        shipping_address: dict[str, Any] | None = None,
        phone: str | None = None,
        payment_method: PaymentMethod | None = None,
    ) -> Order:
        """Turn the user's cart into a pending order and empty the cart.

        Line items and the total are snapshotted from the cart and never
        recomputed. The cart is only emptied if it is still the version the
        order was built from; otherwise, or if emptying fails, the new order
        is cancelled, so the same cart cannot be ordered twice.

        Raises:
            EmptyCartError: If the cart has no items.
            ValidationError: If a cart item's product no longer exists.
            InvalidStateError: If the cart changed while the order was placed.
        """
        cart, lines = await self.cart_service.get_checkout(user.user_id)
        if not cart or not lines:
            raise EmptyCartError()

        items: list[OrderItem] = []
        for line in lines:
            product = line.get("product")
            if not product:
                raise ValidationError(f"Product {line['product_id']} in cart is no longer available")
            items.append(
                {
                    "product_id": str(line["product_id"]),
                    "name": product["name"],
                    "price": float(line["price"]),
                    "quantity": int(line["quantity"]),
                    "size": float(line["size"]),
                }
            )

        total_price = sum(item["price"] * item["quantity"] for item in items)

        order = await self.repository.create_order(
            {
                "user_id": str(user.user_id),
                "items": items,
                "total_price": total_price,
                "shipping_address": shipping_address,
                "phone": phone,
                "payment_method": payment_method,
                "status": "pending",
                "is_paid": False,
            }
        )

        try:
            cleared = await self.cart_service.clear_cart(user.user_id, snapshot=cart)
        except Exception as e:
            logger.error("Failed to clear cart after creating order %s: %s", order["id"], e)
            await self.repository.mark_cancelled(order["id"])
            raise

        if cleared is None:
            logger.warning("Cart of user %s changed while order %s was placed; cancelling it", user.user_id, order["id"])
            await self.repository.mark_cancelled(order["id"])
            raise InvalidStateError("Cart changed while the order was being placed", error_type="cart_changed")

        logger.info("Created order %s for user %s (%d items, total %s)", order["id"], user.user_id, len(items), total_price)
        return order

    async def get_order(self, order_id: UUID | str, user: UserContext) -> Order:
        """Get an order the caller owns, or any order for admins.

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the caller is neither owner nor admin.
        """
        order = await self.repository.get_order(order_id)
        if not order:
            raise NotFoundError(f"Order not found with id of {order_id}")

        if not user.can_access(order["user_id"]):
            raise AuthorizationError("Not authorized to access this order")

        return order

    async def list_my_orders(self, user: UserContext) -> list[Order]:
        """Get the caller's orders, newest first."""
        return await self.repository.list_orders_for_user(user.user_id)

    async def list_all_orders(self) -> list[Order]:
        """Get every order (admin)."""
        return await self.repository.list_orders()

    async def update_status(self, order_id: UUID | str, status: OrderStatus) -> Order:
        """Move an order through the fulfillment lifecycle (admin).

        Payment fields are never touched here. A cancelled order stays
        cancelled.

        Raises:
            NotFoundError: If the order does not exist.
            InvalidStateError: If the order is cancelled.
        """
        order = await self.repository.get_order(order_id)
        if not order:
            raise NotFoundError(f"Order not found with id of {order_id}")

        if order.get("status") == "cancelled" and status != "cancelled":
            raise InvalidStateError("Cancelled orders cannot be reopened", error_type="order_cancelled")

        updated = await self.repository.update_status(order_id, status)
        if not updated:
            raise NotFoundError(f"Order not found with id of {order_id}")

        logger.info("Order %s status %s -> %s", order_id, order.get("status"), status)
        return updated


def get_order_service() -> OrderService:
    """Get order service instance.

    Returns:
        OrderService: Order service instance.
    """
    return OrderService()
