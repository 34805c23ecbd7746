"""Integration tests for payment API endpoints."""

import json
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from src.api.deps import get_current_user, get_payment_service
from src.core.payos import GatewayRejectedError, PaymentLink, PaymentLinkInfo, WebhookEvent, WebhookVerificationError
from src.main import app
from src.services.payment_service import PaymentService
from tests.conftest import ORDER_ID, FakeOrderRepository, build_linked_order, build_order

BASE = f"/api/v1/payment/{ORDER_ID}"
WEBHOOK_URL = "/api/v1/payment/webhook"
WEBHOOK_BODY = json.dumps(
    {"code": "00", "desc": "success", "data": {"orderCode": 123456}, "signature": "sig"}
).encode()


@pytest.fixture
def use_orders(
    client: TestClient, mock_gateway: MagicMock, test_settings: Any
) -> Callable[..., FakeOrderRepository]:
    """Route the payment endpoints to an in-memory order store."""

    def _use(*orders: dict[str, Any]) -> FakeOrderRepository:
        repository = FakeOrderRepository(list(orders))
        service = PaymentService(mock_gateway, repository, test_settings)
        app.dependency_overrides[get_payment_service] = lambda: service
        return repository

    return _use


@pytest.fixture
def as_user() -> Callable[[Any], None]:
    def _as(user: Any) -> None:
        app.dependency_overrides[get_current_user] = lambda: user

    return _as


class TestWebhook:
    """Tests for POST /api/v1/payment/webhook."""

    def test_paid_webhook_marks_order_paid(
        self, client: TestClient, use_orders: Callable, mock_gateway: MagicMock
    ) -> None:
        repository = use_orders(build_linked_order())
        mock_gateway.verify_webhook.return_value = WebhookEvent(order_code=123456, status="PAID", transaction_id="FT1")

        response = client.post(WEBHOOK_URL, content=WEBHOOK_BODY)

        assert response.status_code == 200
        data = response.json()
        assert data["error"] == 0
        assert data["message"] == "Webhook processed successfully"
        assert data["data"]["order_code"] == 123456
        assert repository.orders[ORDER_ID]["is_paid"] is True

    def test_needs_no_authentication(
        self, client: TestClient, use_orders: Callable, mock_gateway: MagicMock
    ) -> None:
        use_orders()
        mock_gateway.verify_webhook.return_value = WebhookEvent(order_code=999, status="PAID")

        response = client.post(WEBHOOK_URL, content=WEBHOOK_BODY)

        assert response.status_code == 200
        assert response.json()["message"] == "Webhook received but no matching order"

    def test_bad_signature_still_returns_200(
        self, client: TestClient, use_orders: Callable, mock_gateway: MagicMock
    ) -> None:
        repository = use_orders(build_linked_order())
        mock_gateway.verify_webhook.side_effect = WebhookVerificationError("bad signature")

        response = client.post(WEBHOOK_URL, content=WEBHOOK_BODY)

        assert response.status_code == 200
        assert response.json() == {
            "error": 0,
            "message": "Webhook received but verification failed",
            "data": None,
        }
        assert repository.writes == []

    def test_internal_error_still_returns_200(
        self, client: TestClient, use_orders: Callable, mock_gateway: MagicMock
    ) -> None:
        use_orders(build_linked_order())
        mock_gateway.verify_webhook.side_effect = RuntimeError("unexpected")

        response = client.post(WEBHOOK_URL, content=WEBHOOK_BODY)

        assert response.status_code == 200
        assert response.json()["error"] == -1

    def test_garbage_body(self, client: TestClient, use_orders: Callable) -> None:
        use_orders()

        response = client.post(WEBHOOK_URL, content=b"<xml/>")

        assert response.status_code == 200
        assert response.json()["error"] == 0


class TestCreateLink:
    """Tests for POST /api/v1/payment/{order_id}/create-link."""

    @staticmethod
    def _link(**kwargs: Any) -> PaymentLink:
        return PaymentLink(
            link_id="plink_new",
            order_code=kwargs["order_code"],
            checkout_url="https://pay.payos.vn/web/plink_new",
            amount=kwargs["amount"],
            qr_code="000201010212",
            bin="970422",
            account_number="0123456789",
            account_name="SNEAKER SHOP",
        )

    def test_creates_link(
        self,
        client: TestClient,
        use_orders: Callable,
        as_user: Callable,
        mock_gateway: MagicMock,
        owner: Any,
    ) -> None:
        repository = use_orders(build_order())
        as_user(owner)
        mock_gateway.create_link.side_effect = self._link

        response = client.post(f"{BASE}/create-link", json={"returnUrl": "https://shop.vn/thanks"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["checkout_url"] == "https://pay.payos.vn/web/plink_new"
        assert data["data"]["qr_code"] == "000201010212"
        assert data["data"]["amount"] == 2500000
        assert data["data"]["bank_account"]["account_number"] == "0123456789"
        assert mock_gateway.create_link.await_args.kwargs["return_url"] == "https://shop.vn/thanks"
        assert repository.orders[ORDER_ID]["payment_link_id"] == "plink_new"

    def test_works_without_body(
        self,
        client: TestClient,
        use_orders: Callable,
        as_user: Callable,
        mock_gateway: MagicMock,
        owner: Any,
    ) -> None:
        use_orders(build_order())
        as_user(owner)
        mock_gateway.create_link.side_effect = self._link

        response = client.post(f"{BASE}/create-link")

        assert response.status_code == 200

    def test_already_paid(
        self, client: TestClient, use_orders: Callable, as_user: Callable, owner: Any
    ) -> None:
        use_orders(build_linked_order(is_paid=True))
        as_user(owner)

        response = client.post(f"{BASE}/create-link")

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "already_paid"
        assert data["message"] == "Order is already paid"

    def test_relink_after_paying_previous_link(
        self,
        client: TestClient,
        use_orders: Callable,
        as_user: Callable,
        mock_gateway: MagicMock,
        owner: Any,
    ) -> None:
        repository = use_orders(build_linked_order())
        as_user(owner)
        mock_gateway.query_link.return_value = PaymentLinkInfo(status="PAID", amount=2500000, amount_paid=2500000)

        response = client.post(f"{BASE}/create-link")

        assert response.status_code == 400
        assert response.json()["error"] == "already_paid"
        assert repository.orders[ORDER_ID]["is_paid"] is True
        mock_gateway.create_link.assert_not_awaited()

    def test_other_user_is_forbidden(
        self, client: TestClient, use_orders: Callable, as_user: Callable, other_user: Any
    ) -> None:
        use_orders(build_order())
        as_user(other_user)

        response = client.post(f"{BASE}/create-link")

        assert response.status_code == 403

    def test_unknown_order(self, client: TestClient, use_orders: Callable, as_user: Callable, owner: Any) -> None:
        use_orders()
        as_user(owner)

        response = client.post(f"{BASE}/create-link")

        assert response.status_code == 404

    def test_requires_authentication(self, client: TestClient, use_orders: Callable) -> None:
        use_orders(build_order())

        response = client.post(f"{BASE}/create-link")

        assert response.status_code == 401

    def test_provider_failure_is_502(
        self,
        client: TestClient,
        use_orders: Callable,
        as_user: Callable,
        mock_gateway: MagicMock,
        owner: Any,
    ) -> None:
        use_orders(build_order())
        as_user(owner)
        mock_gateway.create_link.side_effect = GatewayRejectedError("Invalid amount", code="20")

        response = client.post(f"{BASE}/create-link")

        assert response.status_code == 502
        assert response.json()["error"] == "payment_provider_error"


class TestCheck:
    """Tests for GET /api/v1/payment/{order_id}/check."""

    def test_recovers_missed_webhook(
        self,
        client: TestClient,
        use_orders: Callable,
        as_user: Callable,
        mock_gateway: MagicMock,
        owner: Any,
    ) -> None:
        repository = use_orders(build_linked_order())
        as_user(owner)
        mock_gateway.query_link.return_value = PaymentLinkInfo(status="PAID", amount=2500000, amount_paid=2500000)

        response = client.get(f"{BASE}/check")

        assert response.status_code == 200
        data = response.json()
        assert data["is_paid"] is True
        assert data["payment_status"] == "paid"
        assert data["raw_status"] == "PAID"
        assert data["order"]["is_paid"] is True
        assert repository.orders[ORDER_ID]["payment_info"]["confirmation_source"] == "poll"

    def test_provider_unreachable(
        self,
        client: TestClient,
        use_orders: Callable,
        as_user: Callable,
        mock_gateway: MagicMock,
        owner: Any,
    ) -> None:
        use_orders(build_linked_order())
        as_user(owner)
        mock_gateway.query_link.return_value = PaymentLinkInfo.error("payOS query_link timed out")

        response = client.get(f"{BASE}/check")

        assert response.status_code == 200
        data = response.json()
        assert data["is_paid"] is False
        assert data["payment_status"] == "unknown"
        assert data["error_message"] == "payOS query_link timed out"

    def test_no_payment_link(self, client: TestClient, use_orders: Callable, as_user: Callable, owner: Any) -> None:
        use_orders(build_order())
        as_user(owner)

        response = client.get(f"{BASE}/check")

        assert response.status_code == 400
        assert response.json()["error"] == "no_payment_link"

    def test_other_user_is_forbidden(
        self,
        client: TestClient,
        use_orders: Callable,
        as_user: Callable,
        mock_gateway: MagicMock,
        other_user: Any,
    ) -> None:
        use_orders(build_linked_order())
        as_user(other_user)

        response = client.get(f"{BASE}/check")

        assert response.status_code == 403
        mock_gateway.query_link.assert_not_awaited()

    def test_invalid_order_id(self, client: TestClient, use_orders: Callable, as_user: Callable, owner: Any) -> None:
        use_orders()
        as_user(owner)

        response = client.get("/api/v1/payment/not-a-uuid/check")

        assert response.status_code == 422


class TestForceUpdate:
    """Tests for PUT /api/v1/payment/{order_id}/force-update."""

    def test_manual_override(
        self,
        client: TestClient,
        use_orders: Callable,
        as_user: Callable,
        mock_gateway: MagicMock,
        admin_user: Any,
    ) -> None:
        repository = use_orders(build_linked_order())
        as_user(admin_user)
        mock_gateway.query_link.return_value = PaymentLinkInfo(status="PENDING")

        response = client.put(f"{BASE}/force-update")

        assert response.status_code == 200
        data = response.json()
        assert data["is_paid"] is True
        assert data["source"] == "manual"
        assert data["message"] == "Payment status force-updated"
        assert repository.orders[ORDER_ID]["payment_info"]["updated_by"] == str(admin_user.user_id)

    def test_already_paid(self, client: TestClient, use_orders: Callable, as_user: Callable, owner: Any) -> None:
        use_orders(build_linked_order(is_paid=True))
        as_user(owner)

        response = client.put(f"{BASE}/force-update")

        assert response.status_code == 200
        assert response.json()["source"] == "already_paid"

    def test_other_user_is_forbidden(
        self, client: TestClient, use_orders: Callable, as_user: Callable, other_user: Any
    ) -> None:
        repository = use_orders(build_linked_order())
        as_user(other_user)

        response = client.put(f"{BASE}/force-update")

        assert response.status_code == 403
        assert repository.orders[ORDER_ID]["is_paid"] is False


class TestCancel:
    """Tests for DELETE /api/v1/payment/{order_id}/cancel."""

    def test_cancels_with_reason(
        self,
        client: TestClient,
        use_orders: Callable,
        as_user: Callable,
        mock_gateway: MagicMock,
        owner: Any,
    ) -> None:
        repository = use_orders(build_linked_order())
        as_user(owner)

        response = client.request("DELETE", f"{BASE}/cancel", json={"cancelReason": "Wrong size"})

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Payment cancelled successfully"
        assert data["order"]["status"] == "cancelled"
        mock_gateway.cancel_link.assert_awaited_once_with("plink_123", "Wrong size")
        assert repository.orders[ORDER_ID]["status"] == "cancelled"

    def test_paid_order(self, client: TestClient, use_orders: Callable, as_user: Callable, owner: Any) -> None:
        use_orders(build_linked_order(is_paid=True))
        as_user(owner)

        response = client.delete(f"{BASE}/cancel")

        assert response.status_code == 400
        assert response.json()["error"] == "already_paid"

    def test_provider_refusal(
        self,
        client: TestClient,
        use_orders: Callable,
        as_user: Callable,
        mock_gateway: MagicMock,
        owner: Any,
    ) -> None:
        repository = use_orders(build_linked_order())
        as_user(owner)
        mock_gateway.cancel_link.side_effect = GatewayRejectedError("Payment link is paid", code="231")

        response = client.delete(f"{BASE}/cancel")

        assert response.status_code == 502
        assert repository.orders[ORDER_ID]["status"] == "pending"
