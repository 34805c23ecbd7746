"""Cart service: one cart per user, stored as a JSON list of items."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from supabase import Client

from src.api.middleware.error_handler import NotFoundError, ValidationError
from src.core.supabase import get_supabase_client
from src.models.cart import Cart, CartItem
from src.services.product_service import ProductService

logger = logging.getLogger(__name__)

TABLE = "carts"


class CartService:
    """Service for shopping cart operations."""

    def __init__(
        self,
        supabase_client: Client | None = None,
        product_service: ProductService | None = None,
    ):
        """Initialize cart service.

        Args:
            supabase_client: Optional Supabase client for testing.
            product_service: Optional product service for testing.
        """
        self._supabase_client = supabase_client
        self._product_service = product_service

    @property
    def supabase(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    @property
    def product_service(self) -> ProductService:
        """Get product service."""
        if self._product_service is None:
            self._product_service = ProductService(self.supabase)
        return self._product_service

    async def _find_cart(self, user_id: UUID | str) -> Cart | None:
        result = (
            self.supabase.table(TABLE)
            .select("*")
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def _require_cart(self, user_id: UUID | str) -> Cart:
        cart = await self._find_cart(user_id)
        if not cart:
            raise NotFoundError("Cart not found")
        return cart

    async def _save_items(self, cart: Cart, items: list[CartItem]) -> Cart:
        result = (
            self.supabase.table(TABLE)
            .update(
                {
                    "items": items,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            )
            .eq("id", str(cart["id"]))
            .execute()
        )
        if not result.data:
            raise Exception("Failed to update cart")
        return result.data[0]

    async def _empty_if_unchanged(self, cart: Cart, expected_updated_at: str | None) -> Cart | None:
        """Empty the cart only if nobody wrote to it since ``expected_updated_at``."""
        query = (
            self.supabase.table(TABLE)
            .update({"items": [], "updated_at": datetime.now(timezone.utc).isoformat()})
            .eq("id", str(cart["id"]))
        )
        if expected_updated_at is None:
            query = query.is_("updated_at", "null")
        else:
            query = query.eq("updated_at", expected_updated_at)

        result = query.execute()
        return result.data[0] if result.data else None

    async def get_cart(self, user_id: UUID | str) -> Cart:
        """Get the user's cart, creating an empty one on first access."""
        cart = await self._find_cart(user_id)
        if cart:
            return cart

        result = self.supabase.table(TABLE).insert({"user_id": str(user_id), "items": []}).execute()
        if not result.data:
            raise Exception("Failed to create cart")

        logger.info("Created cart for user %s", user_id)
        return result.data[0]

    async def add_item(self, user_id: UUID | str, product_id: UUID | str, size: float, quantity: int = 1) -> Cart:
        """Add a product to the cart.

        The unit price is the product's VND price at this moment. Adding
        the same product and size again increases the quantity.

        Raises:
            NotFoundError: If the product does not exist.
            ValidationError: If the size is not offered for the product.
        """
        product = await self.product_service.get_product(product_id)
        if not product:
            raise NotFoundError(f"Product not found with id of {product_id}")

        size = float(size)
        if size not in [float(s) for s in product.get("sizes") or []]:
            raise ValidationError(f"Size {size:g} is not available for this product")

        cart = await self.get_cart(user_id)
        items: list[CartItem] = list(cart.get("items") or [])

        for item in items:
            if item["product_id"] == str(product_id) and float(item["size"]) == size:
                item["quantity"] += quantity
                break
        else:
            items.append(
                {
                    "id": str(uuid4()),
                    "product_id": str(product_id),
                    "quantity": quantity,
                    "size": size,
                    "price": float(product["price_vnd"]),
                }
            )

        return await self._save_items(cart, items)

    async def update_item(self, user_id: UUID | str, item_id: str, quantity: int) -> Cart:
        """Set the quantity of a cart item.

        Raises:
            NotFoundError: If the cart or the item does not exist.
        """
        cart = await self._require_cart(user_id)
        items: list[CartItem] = list(cart.get("items") or [])

        for item in items:
            if item["id"] == item_id:
                item["quantity"] = quantity
                break
        else:
            raise NotFoundError("Item not found in cart")

        return await self._save_items(cart, items)

    async def remove_item(self, user_id: UUID | str, item_id: str) -> Cart:
        """Remove an item from the cart. Unknown item IDs are ignored.

        Raises:
            NotFoundError: If the user has no cart.
        """
        cart = await self._require_cart(user_id)
        items = [item for item in cart.get("items") or [] if item["id"] != item_id]
        return await self._save_items(cart, items)

    async def clear_cart(self, user_id: UUID | str, snapshot: Cart | None = None) -> Cart | None:
        """Remove every item from the cart.

        With a ``snapshot`` (a cart row read earlier) the cart is only
        emptied if it has not been written since; None means another
        request got there first.

        Raises:
            NotFoundError: If the user has no cart.
        """
        cart = await self._require_cart(user_id)
        if snapshot is None:
            return await self._save_items(cart, [])
        return await self._empty_if_unchanged(cart, snapshot.get("updated_at"))

    async def get_checkout(self, user_id: UUID | str) -> tuple[Cart | None, list[dict[str, Any]]]:
        """Get the cart row and its items joined with their current product rows.

        Items whose product no longer exists come back with ``product`` None.
        The cart row is returned so the caller can clear exactly this
        version of the cart later.
        """
        cart = await self._find_cart(user_id)
        if not cart:
            return None, []

        lines = []
        for item in cart.get("items") or []:
            product = await self.product_service.get_product(item["product_id"])
            lines.append({**item, "product": product})
        return cart, lines


def get_cart_service() -> CartService:
    """Get cart service instance.

    Returns:
        CartService: Cart service instance.
    """
    return CartService()
