"""Payment link and reconciliation business logic.

Webhooks, status checks and manual overrides all end up in ``_apply``,
which asks ``decide_transition`` what to do and then performs the write
as a conditional update on the order store.
"""

import json
import logging
import secrets
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote
from uuid import UUID

from src.api.middleware.error_handler import (
    AlreadyPaidError,
    APIError,
    AuthorizationError,
    NoPaymentLinkError,
    NotFoundError,
    OrderCancelledError,
    PaymentProviderError,
)
from src.core.config import Settings, get_settings
from src.core.payos import (
    GatewayRejectedError,
    PaymentGatewayClient,
    PaymentGatewayError,
    PaymentLink,
    PaymentLinkInfo,
    WebhookEvent,
    WebhookVerificationError,
)
from src.models.order import Order, PaymentInfo, TransactionInfo
from src.schemas.auth import UserContext
from src.services.order_repository import OrderRepository
from src.services.payment_state import (
    Action,
    Confidence,
    Outcome,
    PaymentSignal,
    SignalSource,
    Transition,
    decide_transition,
    display_status,
    signal_from_link_info,
    signal_from_webhook,
)

logger = logging.getLogger(__name__)

MAX_ORDER_CODE_ATTEMPTS = 5
DEFAULT_CANCEL_REASON = "Cancelled by user"
SUPERSEDED_LINK_REASON = "Superseded by a new payment link"

# Webhook acknowledgement messages
ACK_PROCESSED = "Webhook processed successfully"
ACK_VERIFICATION_FAILED = "Webhook received but verification failed"
ACK_NO_MATCHING_ORDER = "Webhook received but no matching order"
ACK_ERROR = "Error processing webhook, but acknowledged"


@dataclass
class CreatedLink:
    """Result of creating a payment link for an order."""

    order: Order
    link: PaymentLink
    qr_code: str


@dataclass
class ApplyResult:
    """Result of applying a signal to an order."""

    order: Order
    transition: Transition
    applied: bool


@dataclass
class ReconcileResult:
    """Result of checking an order against the provider."""

    order: Order
    payment_status: str
    raw_status: str | None = None
    error_message: str | None = None
    heuristic: bool = False

    @property
    def is_paid(self) -> bool:
        return bool(self.order.get("is_paid"))


@dataclass
class ForceUpdateResult:
    """Result of a force-update request."""

    order: Order
    message: str
    source: str


def synthesize_qr_code(checkout_url: str, base_url: str) -> str:
    """Build a QR image URL that encodes the checkout URL."""
    return f"{base_url}{quote(checkout_url, safe='')}"


def parse_buyer_id(description: str | None) -> str | None:
    """Extract ``buyerId`` from a JSON-encoded payment description.

    Most descriptions are plain text, so a parse failure only gets logged.
    """
    if not description:
        return None

    try:
        data = json.loads(description)
    except (TypeError, ValueError):
        logger.info("Payment description is not structured data: %r", description)
        return None

    if isinstance(data, dict) and data.get("buyerId"):
        return str(data["buyerId"])
    return None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PaymentService:
    """Service for payOS payment links and payment reconciliation."""

    def __init__(
        self,
        gateway: PaymentGatewayClient,
        repository: OrderRepository | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize payment service.

        Args:
            gateway: Payment gateway client shared by the application.
            repository: Optional order repository for testing.
            settings: Optional settings for testing.
        """
        self.gateway = gateway
        self.repository = repository or OrderRepository()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_authorized(self, order_id: UUID | str, user: UserContext) -> Order:
        """Load an order the caller owns (or any order for admins).

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the caller is neither owner nor admin.
        """
        order = await self.repository.get_order(order_id)
        if not order:
            raise NotFoundError(f"Order not found with id of {order_id}")

        if not user.can_access(order["user_id"]):
            logger.warning("User %s denied access to order %s", user.user_id, order_id)
            raise AuthorizationError("Not authorized to access this order")

        return order

    async def _generate_order_code(self) -> int:
        """Pick a random provider order code that no other order uses."""
        low = self.settings.payos_order_code_min
        high = self.settings.payos_order_code_max

        for _ in range(MAX_ORDER_CODE_ATTEMPTS):
            order_code = low + secrets.randbelow(high - low + 1)
            if not await self.repository.is_order_code_in_use(order_code):
                return order_code
            logger.warning("Order code %s already in use, drawing another", order_code)

        raise APIError("Could not allocate a payment order code", error_type="order_code_exhausted")

    def _describe(self, order_code: int) -> str:
        return f"Order {order_code}"[: self.settings.payos_description_max_length]

    async def _cancel_link_quietly(self, link_id: str, reason: str) -> None:
        """Best-effort cancellation of a link nobody should pay anymore."""
        try:
            await self.gateway.cancel_link(link_id, reason)
            logger.info("Cancelled payment link %s: %s", link_id, reason)
        except PaymentGatewayError as e:
            logger.warning("Could not cancel payment link %s: %s", link_id, e.message)

    async def _settle_previous_link(self, order: Order, link_id: str) -> Order | None:
        """Mark the order paid if a link it used to carry was paid.

        Returns the paid order, or None when the link is not known to be
        paid. A cancelled or expired link never cancels the order here:
        the shopper is asking for a fresh link.
        """
        info = await self.gateway.query_link(link_id)
        if info.is_error:
            logger.warning("Could not check previous link %s of order %s: %s", link_id, order["id"], info.error_message)
            return None

        signal = signal_from_link_info(info, order)
        if signal.outcome is not Outcome.PAID:
            return None

        logger.warning("Previous link %s of order %s was paid (%s)", link_id, order["id"], info.status)
        result = await self._apply(
            order,
            signal,
            transaction_info=self._poll_transaction(info),
            payment_info=self._poll_payment_info(info, signal),
        )
        return result.order if result.order.get("is_paid") else None

    async def _apply(
        self,
        order: Order,
        signal: PaymentSignal,
        transaction_info: TransactionInfo | None = None,
        payment_info: PaymentInfo | None = None,
    ) -> ApplyResult:
        """Apply a signal to an order through a conditional write."""
        transition = decide_transition(order, signal)
        order_id = order["id"]

        if transition.action is Action.NO_CHANGE:
            logger.info("Order %s unchanged: %s", order_id, transition.reason)
            return ApplyResult(order=order, transition=transition, applied=False)

        if transition.action is Action.MARK_PAID:
            if signal.confidence is Confidence.HEURISTIC:
                logger.warning("Marking order %s paid on a low-confidence signal: %s", order_id, transition.reason)

            merged_info: PaymentInfo = {**(order.get("payment_info") or {}), **(payment_info or {})}
            updated = await self.repository.mark_paid(
                order_id,
                paid_at=_now(),
                transaction_info=transaction_info,
                payment_info=merged_info,
                allow_cancelled=signal.source is SignalSource.MANUAL,
            )
        else:
            updated = await self.repository.mark_cancelled(order_id)

        if updated is None:
            # Another writer changed the order between our read and write
            current = await self.repository.get_order(order_id) or order
            logger.info(
                "Order %s was updated concurrently; %s skipped (is_paid=%s, status=%s)",
                order_id,
                transition.action.value,
                current.get("is_paid"),
                current.get("status"),
            )
            return ApplyResult(order=current, transition=transition, applied=False)

        logger.info("Order %s: %s (%s)", order_id, transition.action.value, transition.reason)
        return ApplyResult(order=updated, transition=transition, applied=True)

    # ------------------------------------------------------------------
    # Create link
    # ------------------------------------------------------------------

    async def create_link(
        self,
        order_id: UUID | str,
        user: UserContext,
        return_url: str | None = None,
        cancel_url: str | None = None,
    ) -> CreatedLink:
        """Create a payOS checkout link for an order.

        A second call replaces the stored link and cancels the previous one
        at the provider. If the previous link turns out to be paid, either
        before the new link is made or because payOS refuses to cancel it,
        the order is marked paid from that link and AlreadyPaidError is
        raised instead.

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the caller may not access the order.
            AlreadyPaidError: If the order is already paid.
            OrderCancelledError: If the order has been cancelled.
            PaymentProviderError: If the provider call fails.
        """
        order = await self._load_authorized(order_id, user)

        if order.get("is_paid"):
            raise AlreadyPaidError()
        if order.get("status") == "cancelled":
            raise OrderCancelledError()

        previous_link_id = order.get("payment_link_id")
        if previous_link_id and await self._settle_previous_link(order, previous_link_id):
            raise AlreadyPaidError()

        order_code = await self._generate_order_code()
        amount = int(round(float(order["total_price"])))
        client_url = self.settings.client_url.rstrip("/")

        try:
            link = await self.gateway.create_link(
                order_code=order_code,
                amount=amount,
                description=self._describe(order_code),
                cancel_url=cancel_url or f"{client_url}/order-cancel/{order_id}",
                return_url=return_url or f"{client_url}/order-success/{order_id}",
            )
        except PaymentGatewayError as e:
            logger.error("Failed to create payment link for order %s: %s", order_id, e.message)
            raise PaymentProviderError("Failed to create payment link") from e

        qr_code = link.qr_code or synthesize_qr_code(link.checkout_url, self.settings.qr_fallback_base_url)

        updated = await self.repository.attach_payment_link(
            order_id,
            {
                "payment_method": "payos",
                "payment_link_id": link.link_id,
                "payment_link_code": link.order_code,
                "checkout_url": link.checkout_url,
                "qr_code": qr_code,
            },
        )
        if updated is None:
            # The order got paid while the link was being created
            await self._cancel_link_quietly(link.link_id, SUPERSEDED_LINK_REASON)
            raise AlreadyPaidError()

        if previous_link_id and previous_link_id != link.link_id:
            try:
                await self.gateway.cancel_link(previous_link_id, SUPERSEDED_LINK_REASON)
                logger.info("Cancelled payment link %s: %s", previous_link_id, SUPERSEDED_LINK_REASON)
            except GatewayRejectedError as e:
                # Refused usually means the old link was paid in the meantime
                logger.warning("payOS refused to cancel previous link %s: %s", previous_link_id, e.message)
                if await self._settle_previous_link(updated, previous_link_id):
                    await self._cancel_link_quietly(link.link_id, SUPERSEDED_LINK_REASON)
                    raise AlreadyPaidError() from e
            except PaymentGatewayError as e:
                logger.warning("Could not cancel payment link %s: %s", previous_link_id, e.message)

        logger.info("Created payment link %s (code %s) for order %s", link.link_id, link.order_code, order_id)
        return CreatedLink(order=updated, link=link, qr_code=qr_code)

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    async def ingest_webhook(self, raw_body: bytes) -> dict[str, Any]:
        """Process a provider webhook and build its acknowledgement.

        Always returns an acknowledgement, whatever went wrong, so the
        provider does not keep retrying or disable the endpoint.
        """
        try:
            return await self._process_webhook(raw_body)
        except Exception:
            logger.exception("Unexpected error processing payment webhook")
            return {"error": -1, "message": ACK_ERROR}

    async def _process_webhook(self, raw_body: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(raw_body or b"null")
        except ValueError:
            logger.warning("Payment webhook body is not valid JSON")
            return {"error": 0, "message": ACK_VERIFICATION_FAILED}

        try:
            event = self.gateway.verify_webhook(payload)
        except WebhookVerificationError as e:
            logger.warning("Payment webhook rejected: %s", e.message)
            return {"error": 0, "message": ACK_VERIFICATION_FAILED}

        data = asdict(event)
        order = await self.repository.get_order_by_link_code(event.order_code)
        if not order:
            logger.warning("Payment webhook for unknown order code %s (status %s)", event.order_code, event.status)
            return {"error": 0, "message": ACK_NO_MATCHING_ORDER, "data": data}

        await self._apply(
            order,
            signal_from_webhook(event),
            transaction_info=self._webhook_transaction(event),
            payment_info={"confirmation_source": "webhook"},
        )
        return {"error": 0, "message": ACK_PROCESSED, "data": data}

    @staticmethod
    def _webhook_transaction(event: WebhookEvent) -> TransactionInfo:
        return {
            "transaction_id": event.transaction_id,
            "amount": event.amount,
            "description": event.description,
            "time": event.time,
        }

    # ------------------------------------------------------------------
    # Status check
    # ------------------------------------------------------------------

    async def query_and_reconcile(self, order_id: UUID | str, user: UserContext) -> ReconcileResult:
        """Ask the provider about an order's link and apply what it says.

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the caller may not access the order.
            NoPaymentLinkError: If the order has no link and is not paid.
        """
        order = await self._load_authorized(order_id, user)

        if order.get("is_paid"):
            return ReconcileResult(order=order, payment_status="paid")

        if not order.get("payment_link_id"):
            raise NoPaymentLinkError()

        return await self.reconcile_order(order)

    async def reconcile_order(self, order: Order) -> ReconcileResult:
        """Reconcile a linked order with the provider, without authorization.

        Used by the status check and by the background poller.
        """
        info = await self.gateway.query_link(order["payment_link_id"])
        if info.is_error:
            logger.warning("payOS status unavailable for order %s: %s", order["id"], info.error_message)
        signal = signal_from_link_info(info, order)
        heuristic = signal.confidence is Confidence.HEURISTIC

        transaction_info = self._poll_transaction(info) if signal.outcome is Outcome.PAID else None
        result = await self._apply(
            order,
            signal,
            transaction_info=transaction_info,
            payment_info=self._poll_payment_info(info, signal),
        )
        return ReconcileResult(
            order=result.order,
            payment_status=display_status(result.order, signal),
            raw_status=info.status,
            error_message=info.error_message,
            heuristic=heuristic and result.applied,
        )

    @staticmethod
    def _poll_payment_info(info: PaymentLinkInfo, signal: PaymentSignal) -> PaymentInfo:
        heuristic = signal.confidence is Confidence.HEURISTIC
        payment_info: PaymentInfo = {"confirmation_source": "poll_heuristic" if heuristic else "poll"}
        if signal.outcome is Outcome.PAID:
            buyer_id = parse_buyer_id(info.description)
            if buyer_id:
                payment_info["buyer_id"] = buyer_id
        return payment_info

    @staticmethod
    def _poll_transaction(info: PaymentLinkInfo) -> TransactionInfo:
        first = info.transactions[0] if info.transactions else {}
        transaction: TransactionInfo = {
            "transaction_id": first.get("reference"),
            "amount": info.amount_paid if info.amount_paid is not None else info.amount,
            "description": info.description,
            "time": first.get("transactionDateTime"),
        }
        if info.transactions:
            transaction["transactions"] = info.transactions
        return transaction

    # ------------------------------------------------------------------
    # Force update
    # ------------------------------------------------------------------

    async def force_update(self, order_id: UUID | str, user: UserContext) -> ForceUpdateResult:
        """Mark an order paid, trying the provider first.

        This is the one path allowed to mark a cancelled order paid. The
        audit fields record who did it and when.

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the caller may not access the order.
        """
        order = await self._load_authorized(order_id, user)

        if order.get("is_paid"):
            return ForceUpdateResult(order=order, message="Order was already marked as paid", source="already_paid")

        if order.get("payment_link_id"):
            reconciled = await self.reconcile_order(order)
            if reconciled.is_paid:
                return ForceUpdateResult(
                    order=reconciled.order,
                    message="Payment status updated from gateway data",
                    source="gateway",
                )
            order = reconciled.order

        now = _now()
        signal = PaymentSignal(
            outcome=Outcome.PAID,
            source=SignalSource.MANUAL,
            reason=f"manual override by {user.user_id}",
        )
        result = await self._apply(
            order,
            signal,
            payment_info={
                "confirmation_source": "manual",
                "updated_manually": True,
                "updated_by": str(user.user_id),
                "updated_at": now.isoformat(),
            },
        )
        if not result.applied:
            # Someone else settled the order between our read and write
            winner = (result.order.get("payment_info") or {}).get("confirmation_source") or "concurrent"
            logger.info("Order %s was settled by %s before the manual override", order["id"], winner)
            return ForceUpdateResult(order=result.order, message="Order was already marked as paid", source=winner)

        logger.warning("Order %s force-updated to paid by %s", order["id"], user.user_id)
        return ForceUpdateResult(order=result.order, message="Payment status force-updated", source="manual")

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancel_payment(self, order_id: UUID | str, user: UserContext, reason: str | None = None) -> Order:
        """Cancel an order's payment link and the order with it.

        The local order is only cancelled after the provider confirms.

        Raises:
            NotFoundError: If the order does not exist.
            AuthorizationError: If the caller may not access the order.
            NoPaymentLinkError: If the order has no link.
            AlreadyPaidError: If the order is already paid.
            PaymentProviderError: If the provider refuses or cannot be reached.
        """
        order = await self._load_authorized(order_id, user)

        if not order.get("payment_link_id"):
            raise NoPaymentLinkError()
        if order.get("is_paid"):
            raise AlreadyPaidError("Cannot cancel a paid order")

        try:
            await self.gateway.cancel_link(order["payment_link_id"], reason or DEFAULT_CANCEL_REASON)
        except GatewayRejectedError as e:
            logger.error("Provider refused to cancel link for order %s: %s", order_id, e.message)
            raise PaymentProviderError("Payment provider refused to cancel the payment") from e
        except PaymentGatewayError as e:
            logger.error("Failed to cancel link for order %s: %s", order_id, e.message)
            raise PaymentProviderError("Error cancelling payment") from e

        updated = await self.repository.mark_cancelled(order_id)
        if updated is not None:
            logger.info("Order %s cancelled by %s", order_id, user.user_id)
            return updated

        current = await self.repository.get_order(order_id) or order
        if current.get("is_paid"):
            raise AlreadyPaidError("Order was paid before it could be cancelled")
        return current
