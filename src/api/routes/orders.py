"""Order API routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from src.api.deps import AdminUser, CurrentUser
from src.schemas.order import (
    OrderCreateRequest,
    OrderEnvelope,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
)
from src.services.order_service import OrderService, get_order_service

router = APIRouter(prefix="/orders", tags=["orders"])


def _order_list(orders: list[dict]) -> OrderListResponse:
    return OrderListResponse(count=len(orders), data=[OrderResponse(**o) for o in orders])


@router.post(
    "",
    response_model=OrderEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    description="Creates a pending order from the current cart and empties the cart.",
)
async def create_order(
    data: OrderCreateRequest,
    user: CurrentUser,
    order_service: OrderService = Depends(get_order_service),
) -> OrderEnvelope:
    """Place an order from the caller's cart.

    Raises:
        EmptyCartError: 400 if the cart is empty.
    """
    order = await order_service.create_order_from_cart(
        user,
        shipping_address=data.shipping_address,
        phone=data.phone,
        payment_method=data.payment_method,
    )
    return OrderEnvelope(data=OrderResponse(**order))


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List all orders",
    description="Lists every order. Admin only.",
)
async def list_orders(
    admin: AdminUser,
    order_service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """List all orders for the admin console."""
    return _order_list(await order_service.list_all_orders())


@router.get(
    "/mine",
    response_model=OrderListResponse,
    summary="List my orders",
    description="Lists the caller's orders, newest first.",
)
async def list_my_orders(
    user: CurrentUser,
    order_service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """List the caller's orders."""
    return _order_list(await order_service.list_my_orders(user))


@router.get(
    "/{order_id}",
    response_model=OrderEnvelope,
    summary="Get order",
    description="Gets an order. Owner or admin only.",
)
async def get_order(
    order_id: UUID,
    user: CurrentUser,
    order_service: OrderService = Depends(get_order_service),
) -> OrderEnvelope:
    """Get an order by ID."""
    order = await order_service.get_order(order_id, user)
    return OrderEnvelope(data=OrderResponse(**order))


@router.put(
    "/{order_id}/status",
    response_model=OrderEnvelope,
    summary="Update order status",
    description="Moves an order through fulfillment. Admin only. Payment fields are not affected.",
)
async def update_order_status(
    order_id: UUID,
    data: OrderStatusUpdate,
    admin: AdminUser,
    order_service: OrderService = Depends(get_order_service),
) -> OrderEnvelope:
    """Update an order's lifecycle status."""
    order = await order_service.update_status(order_id, data.status)
    return OrderEnvelope(data=OrderResponse(**order))
