"""Shopping cart API routes."""

from fastapi import APIRouter, Depends

from src.api.deps import CurrentUser
from src.schemas.cart import AddCartItemRequest, CartEnvelope, CartResponse, UpdateCartItemRequest
from src.services.cart_service import CartService, get_cart_service

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartEnvelope, summary="Get cart")
async def get_cart(
    user: CurrentUser,
    cart_service: CartService = Depends(get_cart_service),
) -> CartEnvelope:
    """Get the caller's cart, creating it if needed."""
    cart = await cart_service.get_cart(user.user_id)
    return CartEnvelope(data=CartResponse(**cart))


@router.post("/items", response_model=CartEnvelope, summary="Add item to cart")
async def add_cart_item(
    data: AddCartItemRequest,
    user: CurrentUser,
    cart_service: CartService = Depends(get_cart_service),
) -> CartEnvelope:
    """Add a product in a given size to the cart.

    Raises:
        NotFoundError: 404 if the product does not exist.
        ValidationError: 422 if the size is not available.
    """
    cart = await cart_service.add_item(user.user_id, data.product_id, data.size, data.quantity)
    return CartEnvelope(data=CartResponse(**cart))


@router.put("/items/{item_id}", response_model=CartEnvelope, summary="Update cart item")
async def update_cart_item(
    item_id: str,
    data: UpdateCartItemRequest,
    user: CurrentUser,
    cart_service: CartService = Depends(get_cart_service),
) -> CartEnvelope:
    """Set the quantity of a cart item."""
    cart = await cart_service.update_item(user.user_id, item_id, data.quantity)
    return CartEnvelope(data=CartResponse(**cart))


@router.delete("/items/{item_id}", response_model=CartEnvelope, summary="Remove cart item")
async def remove_cart_item(
    item_id: str,
    user: CurrentUser,
    cart_service: CartService = Depends(get_cart_service),
) -> CartEnvelope:
    """Remove an item from the cart."""
    cart = await cart_service.remove_item(user.user_id, item_id)
    return CartEnvelope(data=CartResponse(**cart))


@router.delete("", response_model=CartEnvelope, summary="Clear cart")
async def clear_cart(
    user: CurrentUser,
    cart_service: CartService = Depends(get_cart_service),
) -> CartEnvelope:
    """Remove every item from the cart."""
    cart = await cart_service.clear_cart(user.user_id)
    return CartEnvelope(data=CartResponse(**cart))
