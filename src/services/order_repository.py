"""Order persistence on the Supabase orders table.

Every payment-state write is a conditional update ("... WHERE is_paid =
false"), so two concurrent writers racing to mark the same order paid
collapse into a single effective write. A write that matched no rows
returns None; the caller re-reads to see the winner's state.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

import httpx
from supabase import Client
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.core.supabase import get_supabase_client
from src.models.order import Order, OrderCreate, OrderStatus, PaymentInfo, PaymentLinkUpdate, TransactionInfo

logger = logging.getLogger(__name__)

TABLE = "orders"

# Reads are retried on connection-level failures; writes never are
MAX_READ_ATTEMPTS = 3
MIN_WAIT_SECONDS = 0.2
MAX_WAIT_SECONDS = 2

retry_read = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(MAX_READ_ATTEMPTS),
    wait=wait_exponential(multiplier=0.2, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
    reraise=True,
)


class OrderRepository:
    """Data access for orders."""

    def __init__(self, supabase_client: Client | None = None):
        """Initialize order repository.

        Args:
            supabase_client: Optional Supabase client for testing.
        """
        self._supabase_client = supabase_client

    @property
    def supabase(self) -> Client:
        """Get Supabase client."""
        if self._supabase_client is None:
            self._supabase_client = get_supabase_client()
        return self._supabase_client

    @retry_read
    async def get_order(self, order_id: UUID | str) -> Order | None:
        """Get an order by ID.

        Args:
            order_id: The order's UUID.

        Returns:
            Order | None: The order data or None if not found.
        """
        response = (
            self.supabase.table(TABLE)
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    @retry_read
    async def get_order_by_link_code(self, order_code: int) -> Order | None:
        """Get the order that owns a provider order code."""
        response = (
            self.supabase.table(TABLE)
            .select("*")
            .eq("payment_link_code", order_code)
            .limit(1)
            .execute()
        )

        return response.data[0] if response.data else None

    @retry_read
    async def is_order_code_in_use(self, order_code: int) -> bool:
        """Check whether a provider order code is already assigned."""
        response = (
            self.supabase.table(TABLE)
            .select("id")
            .eq("payment_link_code", order_code)
            .limit(1)
            .execute()
        )

        return bool(response.data)

    async def create_order(self, data: OrderCreate) -> Order:
        """Insert a new order.

        Raises:
            Exception: If the insert returns no row.
        """
        response = self.supabase.table(TABLE).insert(dict(data)).execute()
        if not response.data:
            raise Exception("Failed to create order")
        return response.data[0]

    @retry_read
    async def list_orders_for_user(self, user_id: UUID | str) -> list[Order]:
        """Get all orders for a user, newest first."""
        response = (
            self.supabase.table(TABLE)
            .select("*")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .execute()
        )

        return response.data or []

    @retry_read
    async def list_orders(self) -> list[Order]:
        """Get all orders, newest first."""
        response = self.supabase.table(TABLE).select("*").order("created_at", desc=True).execute()
        return response.data or []

    @retry_read
    async def list_unpaid_linked_orders(self, limit: int = 100) -> list[Order]:
        """Get unpaid, non-cancelled orders that have a payment link."""
        response = (
            self.supabase.table(TABLE)
            .select("*")
            .eq("is_paid", False)
            .neq("status", "cancelled")
            .not_.is_("payment_link_id", "null")
            .order("created_at")
            .limit(limit)
            .execute()
        )

        return response.data or []

    async def attach_payment_link(self, order_id: UUID | str, link: PaymentLinkUpdate) -> Order | None:
        """Store link metadata on an order that is still unpaid.

        Returns:
            Order | None: Updated order, or None if the order got paid meanwhile.
        """
        response = (
            self.supabase.table(TABLE)
            .update(dict(link))
            .eq("id", str(order_id))
            .eq("is_paid", False)
            .execute()
        )

        return response.data[0] if response.data else None

    async def mark_paid(
        self,
        order_id: UUID | str,
        paid_at: datetime,
        transaction_info: TransactionInfo | None = None,
        payment_info: PaymentInfo | None = None,
        allow_cancelled: bool = False,
    ) -> Order | None:
        """Set is_paid=true on an order that is not paid yet.

        Args:
            order_id: The order's UUID.
            paid_at: Payment timestamp, written once.
            transaction_info: Optional confirming transaction record.
            payment_info: Optional payment audit metadata (full replacement).
            allow_cancelled: Also match cancelled orders (manual override only).

        Returns:
            Order | None: Updated order, or None if another writer got there first.
        """
        update_data: dict[str, Any] = {
            "is_paid": True,
            "paid_at": paid_at.isoformat(),
        }
        if transaction_info is not None:
            update_data["transaction_info"] = transaction_info
        if payment_info is not None:
            update_data["payment_info"] = payment_info

        query = (
            self.supabase.table(TABLE)
            .update(update_data)
            .eq("id", str(order_id))
            .eq("is_paid", False)
        )
        if not allow_cancelled:
            query = query.neq("status", "cancelled")

        response = query.execute()
        return response.data[0] if response.data else None

    async def mark_cancelled(self, order_id: UUID | str) -> Order | None:
        """Set status=cancelled on an order that is neither paid nor cancelled.

        Returns:
            Order | None: Updated order, or None if nothing matched.
        """
        response = (
            self.supabase.table(TABLE)
            .update({"status": "cancelled"})
            .eq("id", str(order_id))
            .eq("is_paid", False)
            .neq("status", "cancelled")
            .execute()
        )

        return response.data[0] if response.data else None

    async def update_status(self, order_id: UUID | str, status: OrderStatus) -> Order | None:
        """Set the lifecycle status of an order (admin fulfillment flow)."""
        response = (
            self.supabase.table(TABLE)
            .update({"status": status})
            .eq("id", str(order_id))
            .execute()
        )

        return response.data[0] if response.data else None


def get_order_repository() -> OrderRepository:
    """Get order repository instance.

    Returns:
        OrderRepository: Order repository instance.
    """
    return OrderRepository()
