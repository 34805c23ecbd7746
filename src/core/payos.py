"""payOS payment gateway client with timing, bounded latency and metrics.

The client wraps the payOS SDK and normalizes its results into plain data
classes. It never touches local order state: persisting anything is the
caller's job, and only after a definitive response from the provider.
"""

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

import requests
from payos import PaymentData, PayOS
from payos.custom_error import PayOSError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Retry configuration (status queries only)
MAX_RETRIES = 3
MIN_WAIT_SECONDS = 0.5
MAX_WAIT_SECONDS = 4

# Latency thresholds for logging (milliseconds)
SLOW_CALL_THRESHOLD_MS = 2000
VERY_SLOW_CALL_THRESHOLD_MS = 5000

# Status values reported by the provider
STATUS_PAID = "PAID"
STATUS_PENDING = "PENDING"
STATUS_CANCELLED = "CANCELLED"
STATUS_ERROR = "ERROR"

# Webhook "code" value payOS uses for a successful payment
WEBHOOK_SUCCESS_CODE = "00"


class PaymentGatewayError(Exception):
    """Base class for payment gateway failures."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class GatewayUnavailableError(PaymentGatewayError):
    """Network failure, timeout or unexpected SDK failure."""


class GatewayRejectedError(PaymentGatewayError):
    """The provider refused the request (invalid data, already paid, ...)."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class WebhookVerificationError(PaymentGatewayError):
    """Webhook payload is malformed or its signature does not match."""


@dataclass
class PaymentLink:
    """A checkout link created at the provider."""

    link_id: str
    order_code: int
    checkout_url: str
    amount: int
    description: str | None = None
    status: str | None = None
    qr_code: str | None = None
    bin: str | None = None
    account_number: str | None = None
    account_name: str | None = None

    @property
    def bank_account_info(self) -> dict[str, str] | None:
        """Bank transfer details when the provider returned them."""
        if not self.account_number:
            return None
        return {
            "bin": self.bin or "",
            "account_number": self.account_number,
            "account_name": self.account_name or "",
        }


@dataclass
class PaymentLinkInfo:
    """Current state of a checkout link as reported by the provider.

    A status of ``ERROR`` is a sentinel: the provider could not be asked,
    and callers must treat the payment state as unknown.
    """

    status: str
    amount: int | None = None
    amount_paid: int | None = None
    description: str | None = None
    transactions: list[dict[str, Any]] = field(default_factory=list)
    error_message: str | None = None

    @property
    def is_error(self) -> bool:
        return self.status == STATUS_ERROR

    @classmethod
    def error(cls, message: str) -> "PaymentLinkInfo":
        """Build the sentinel returned when the provider cannot be reached."""
        return cls(status=STATUS_ERROR, error_message=message)


@dataclass
class WebhookEvent:
    """Verified webhook data normalized from the provider payload."""

    order_code: int
    status: str
    transaction_id: str | None = None
    amount: int | None = None
    description: str | None = None
    time: str | None = None
    link_id: str | None = None


class PaymentGatewayMetrics:
    """Tracks payment gateway call metrics for monitoring."""

    def __init__(self, max_samples: int = 500):
        self._samples: list[dict] = []
        self._max_samples = max_samples
        self._total_calls = 0
        self._total_errors = 0

    def record_call(self, operation: str, latency_ms: float, error: str | None = None) -> None:
        """Record a gateway call."""
        self._total_calls += 1
        if error:
            self._total_errors += 1

        self._samples.append(
            {
                "operation": operation,
                "latency_ms": round(latency_ms, 2),
                "error": error,
                "timestamp": time.time(),
            }
        )
        if len(self._samples) > self._max_samples:
            self._samples = self._samples[-self._max_samples:]

    def get_stats(self) -> dict:
        """Get aggregated stats grouped by operation."""
        by_op: dict[str, list[dict]] = defaultdict(list)
        for sample in self._samples:
            by_op[sample["operation"]].append(sample)

        operations = {}
        for op, samples in by_op.items():
            latencies = sorted(s["latency_ms"] for s in samples)
            total = len(latencies)
            operations[op] = {
                "count": total,
                "error_count": sum(1 for s in samples if s.get("error")),
                "avg_ms": round(sum(latencies) / total, 2),
                "p95_ms": round(latencies[min(int(total * 0.95), total - 1)], 2),
            }

        return {
            "total_calls": self._total_calls,
            "total_errors": self._total_errors,
            "operations": operations,
        }


def _to_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, dict):
        return dict(obj)
    if hasattr(obj, "__dict__"):
        return {k: v for k, v in vars(obj).items() if not k.startswith("_")}
    return {"value": obj}


class PaymentGatewayClient:
    """Adapter around the payOS SDK.

    Every SDK call runs in a worker thread and is bounded by
    ``timeout_seconds``. Provider refusals become ``GatewayRejectedError``;
    anything else (network, timeout, SDK bug) becomes
    ``GatewayUnavailableError``.
    """

    def __init__(
        self,
        sdk: Any,
        timeout_seconds: float = 10.0,
        metrics: PaymentGatewayMetrics | None = None,
    ) -> None:
        self._sdk = sdk
        self._timeout = timeout_seconds
        self.metrics = metrics or PaymentGatewayMetrics()

    async def _call(self, operation: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        start_time = time.perf_counter()
        error_msg = None

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs),
                timeout=self._timeout,
            )

        except PayOSError as e:
            error_msg = f"PayOSError: {e}"
            raise GatewayRejectedError(str(e), code=getattr(e, "code", None)) from e

        except asyncio.TimeoutError as e:
            error_msg = f"timeout after {self._timeout}s"
            raise GatewayUnavailableError(f"payOS {operation} timed out") from e

        except requests.RequestException as e:
            error_msg = f"{type(e).__name__}: {e}"
            raise GatewayUnavailableError(f"payOS {operation} failed: {type(e).__name__}") from e

        except Exception as e:
            error_msg = f"{type(e).__name__}: {e}"
            raise GatewayUnavailableError(f"payOS {operation} failed unexpectedly") from e

        finally:
            latency_ms = (time.perf_counter() - start_time) * 1000
            self.metrics.record_call(operation, latency_ms, error_msg)

            log_msg = f"payOS {operation}: latency={latency_ms:.2f}ms"
            if error_msg:
                logger.error(log_msg + f", error={error_msg}")
            elif latency_ms > VERY_SLOW_CALL_THRESHOLD_MS:
                logger.warning(f"VERY SLOW payOS call: {log_msg}")
            elif latency_ms > SLOW_CALL_THRESHOLD_MS:
                logger.warning(f"SLOW payOS call: {log_msg}")
            else:
                logger.info(log_msg)

    async def create_link(
        self,
        order_code: int,
        amount: int,
        description: str,
        cancel_url: str,
        return_url: str,
    ) -> PaymentLink:
        """Create a checkout link. Never retried.

        Raises:
            GatewayUnavailableError: Network failure or timeout.
            GatewayRejectedError: The provider refused the request.
        """
        payment_data = PaymentData(
            orderCode=order_code,
            amount=amount,
            description=description,
            cancelUrl=cancel_url,
            returnUrl=return_url,
        )
        result = await self._call("create_link", self._sdk.createPaymentLink, paymentData=payment_data)

        return PaymentLink(
            link_id=result.paymentLinkId,
            order_code=int(result.orderCode),
            checkout_url=result.checkoutUrl,
            amount=int(result.amount),
            description=getattr(result, "description", None),
            status=getattr(result, "status", None),
            qr_code=getattr(result, "qrCode", None) or None,
            bin=getattr(result, "bin", None),
            account_number=getattr(result, "accountNumber", None),
            account_name=getattr(result, "accountName", None),
        )

    async def _fetch_link(self, link_id: str) -> Any:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(GatewayUnavailableError),
            stop=stop_after_attempt(MAX_RETRIES),
            wait=wait_exponential(multiplier=0.5, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
            reraise=True,
        ):
            with attempt:
                return await self._call("query_link", self._sdk.getPaymentLinkInformation, link_id)

    async def query_link(self, link_id: str) -> PaymentLinkInfo:
        """Get the current state of a checkout link.

        Never raises: any failure is reported as the ``ERROR`` sentinel.
        """
        if not link_id:
            return PaymentLinkInfo.error("Invalid payment link ID")

        try:
            result = await self._fetch_link(link_id)
        except PaymentGatewayError as e:
            logger.warning("Could not query payment link %s: %s", link_id, e.message)
            return PaymentLinkInfo.error(e.message)

        transactions = [_to_dict(t) for t in (getattr(result, "transactions", None) or [])]
        return PaymentLinkInfo(
            status=str(getattr(result, "status", None) or "UNKNOWN").upper(),
            amount=getattr(result, "amount", None),
            amount_paid=getattr(result, "amountPaid", None),
            description=getattr(result, "description", None),
            transactions=transactions,
        )

    async def cancel_link(self, link_id: str, reason: str) -> PaymentLinkInfo:
        """Cancel a checkout link. Never retried.

        Raises:
            GatewayUnavailableError: Network failure or timeout.
            GatewayRejectedError: The provider refused (e.g. link already paid).
        """
        result = await self._call(
            "cancel_link",
            self._sdk.cancelPaymentLink,
            link_id,
            cancellationReason=reason,
        )
        return PaymentLinkInfo(
            status=str(getattr(result, "status", None) or STATUS_CANCELLED).upper(),
            amount=getattr(result, "amount", None),
            amount_paid=getattr(result, "amountPaid", None),
        )

    def verify_webhook(self, payload: Any) -> WebhookEvent:
        """Verify the webhook signature and normalize its data.

        Raises:
            WebhookVerificationError: Payload malformed or signature mismatch.
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            raise WebhookVerificationError("Webhook payload has no data object")

        try:
            data = self._sdk.verifyPaymentWebhookData(payload)
        except Exception as e:
            raise WebhookVerificationError(f"Webhook verification failed: {e}") from e

        if data is None:
            raise WebhookVerificationError("Webhook verification returned no data")

        order_code = getattr(data, "orderCode", None)
        if order_code is None:
            raise WebhookVerificationError("Webhook data has no order code")

        # payOS signals success through the signed data.code; an explicit status wins.
        # The top-level "code" sits outside the signature and is never trusted.
        signed = payload["data"]
        status = getattr(data, "status", None) or signed.get("status")
        if not status:
            code = str(getattr(data, "code", None) or signed.get("code") or "")
            status = STATUS_PAID if code == WEBHOOK_SUCCESS_CODE else f"CODE_{code or 'UNKNOWN'}"

        return WebhookEvent(
            order_code=int(order_code),
            status=str(status).upper(),
            transaction_id=getattr(data, "reference", None) or payload["data"].get("transactionId"),
            amount=getattr(data, "amount", None),
            description=getattr(data, "description", None),
            time=getattr(data, "transactionDateTime", None),
            link_id=getattr(data, "paymentLinkId", None),
        )


def create_payment_gateway(settings: Settings | None = None) -> PaymentGatewayClient:
    """Build the gateway client. Called once at application startup.

    If payOS credentials are not configured, calls will fail at the
    provider and surface as gateway errors.
    """
    settings = settings or get_settings()
    if not settings.is_payos_configured:
        logger.warning("payOS credentials not configured. Payment features will not work.")

    sdk = PayOS(
        client_id=settings.payos_client_id,
        api_key=settings.payos_api_key,
        checksum_key=settings.payos_checksum_key,
    )
    return PaymentGatewayClient(sdk, timeout_seconds=settings.payos_timeout_seconds)
