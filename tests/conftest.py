"""Pytest configuration and fixtures."""

import asyncio
import copy
import os
from collections.abc import Callable, Generator
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")
os.environ.setdefault("PAYOS_CLIENT_ID", "test-client-id")
os.environ.setdefault("PAYOS_API_KEY", "test-api-key")
os.environ.setdefault("PAYOS_CHECKSUM_KEY", "test-checksum-key")

OWNER_ID = "550e8400-e29b-41d4-a716-446655440000"
OTHER_USER_ID = "770e8400-e29b-41d4-a716-446655440000"
ADMIN_ID = "990e8400-e29b-41d4-a716-446655440000"
ORDER_ID = "660e8400-e29b-41d4-a716-446655440000"
PRODUCT_ID = "880e8400-e29b-41d4-a716-446655440000"


def build_order(**overrides: Any) -> dict[str, Any]:
    """Build an orders row with sensible defaults."""
    order = {
        "id": ORDER_ID,
        "user_id": OWNER_ID,
        "items": [
            {
                "product_id": PRODUCT_ID,
                "name": "Air Max 90",
                "price": 2500000.0,
                "quantity": 1,
                "size": 42.0,
            }
        ],
        "total_price": 2500000.0,
        "status": "pending",
        "is_paid": False,
        "paid_at": None,
        "payment_method": None,
        "payment_link_id": None,
        "payment_link_code": None,
        "checkout_url": None,
        "qr_code": None,
        "transaction_info": None,
        "payment_info": None,
        "shipping_address": {"street": "1 Le Loi", "city": "Ho Chi Minh City"},
        "phone": "0901234567",
        "created_at": "2026-01-05T10:00:00+00:00",
        "updated_at": "2026-01-05T10:00:00+00:00",
    }
    order.update(overrides)
    return order


def build_linked_order(**overrides: Any) -> dict[str, Any]:
    """Build an unpaid order that already has a payment link."""
    linked = {
        "payment_method": "payos",
        "payment_link_id": "plink_123",
        "payment_link_code": 123456,
        "checkout_url": "https://pay.payos.vn/web/plink_123",
        "qr_code": "000201010212",
    }
    linked.update(overrides)
    return build_order(**linked)


class FakeOrderRepository:
    """In-memory order store with the same conditional-write semantics as OrderRepository."""

    def __init__(self, orders: list[dict[str, Any]] | None = None) -> None:
        self.orders: dict[str, dict[str, Any]] = {str(o["id"]): copy.deepcopy(o) for o in orders or []}
        self.writes: list[tuple[str, str]] = []

    def _find(self, order_id: Any) -> dict[str, Any] | None:
        return self.orders.get(str(order_id))

    async def get_order(self, order_id: Any) -> dict[str, Any] | None:
        order = self._find(order_id)
        return copy.deepcopy(order) if order else None

    async def get_order_by_link_code(self, order_code: int) -> dict[str, Any] | None:
        for order in self.orders.values():
            if order.get("payment_link_code") == order_code:
                return copy.deepcopy(order)
        return None

    async def is_order_code_in_use(self, order_code: int) -> bool:
        return any(o.get("payment_link_code") == order_code for o in self.orders.values())

    async def list_unpaid_linked_orders(self, limit: int = 100) -> list[dict[str, Any]]:
        matches = [
            copy.deepcopy(o)
            for o in self.orders.values()
            if not o["is_paid"] and o["status"] != "cancelled" and o.get("payment_link_id")
        ]
        return matches[:limit]

    async def attach_payment_link(self, order_id: Any, link: dict[str, Any]) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        order = self._find(order_id)
        if order is None or order["is_paid"]:
            return None
        order.update(link)
        self.writes.append(("attach_payment_link", str(order_id)))
        return copy.deepcopy(order)

    async def mark_paid(
        self,
        order_id: Any,
        paid_at: datetime,
        transaction_info: dict[str, Any] | None = None,
        payment_info: dict[str, Any] | None = None,
        allow_cancelled: bool = False,
    ) -> dict[str, Any] | None:
        # Yield first so concurrent callers interleave between read and write
        await asyncio.sleep(0)
        order = self._find(order_id)
        if order is None or order["is_paid"]:
            return None
        if order["status"] == "cancelled" and not allow_cancelled:
            return None

        order["is_paid"] = True
        order["paid_at"] = paid_at.isoformat()
        if transaction_info is not None:
            order["transaction_info"] = transaction_info
        if payment_info is not None:
            order["payment_info"] = payment_info
        self.writes.append(("mark_paid", str(order_id)))
        return copy.deepcopy(order)

    async def mark_cancelled(self, order_id: Any) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        order = self._find(order_id)
        if order is None or order["is_paid"] or order["status"] == "cancelled":
            return None
        order["status"] = "cancelled"
        self.writes.append(("mark_cancelled", str(order_id)))
        return copy.deepcopy(order)


def make_gateway() -> MagicMock:
    """Build a payment gateway double with async operations."""
    from src.core.payos import PaymentGatewayMetrics

    gateway = MagicMock()
    gateway.create_link = AsyncMock()
    gateway.query_link = AsyncMock()
    gateway.cancel_link = AsyncMock()
    gateway.verify_webhook = MagicMock()
    gateway.metrics = PaymentGatewayMetrics()
    return gateway


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    get_settings.cache_clear()


@pytest.fixture
def owner() -> Any:
    """The user who placed the test order."""
    from src.schemas.auth import UserContext

    return UserContext(user_id=UUID(OWNER_ID), email="owner@example.com", role="authenticated")


@pytest.fixture
def other_user() -> Any:
    """A user who does not own the test order."""
    from src.schemas.auth import UserContext

    return UserContext(user_id=UUID(OTHER_USER_ID), email="other@example.com", role="authenticated")


@pytest.fixture
def admin_user() -> Any:
    """An admin user."""
    from src.schemas.auth import UserContext

    return UserContext(user_id=UUID(ADMIN_ID), email="admin@example.com", role="admin")


@pytest.fixture
def order_factory() -> Callable[..., dict[str, Any]]:
    """Factory for unlinked order rows."""
    return build_order


@pytest.fixture
def linked_order_factory() -> Callable[..., dict[str, Any]]:
    """Factory for order rows that already carry a payment link."""
    return build_linked_order


@pytest.fixture
def fake_repository() -> Callable[..., FakeOrderRepository]:
    """Factory for in-memory order repositories."""
    return lambda *orders: FakeOrderRepository(list(orders))


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Payment gateway double."""
    return make_gateway()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Dependency overrides set by a test are cleared afterwards.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
