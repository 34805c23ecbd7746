"""Payment Pydantic schemas for payOS link, status and webhook endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.schemas.order import OrderResponse


class CreateLinkRequest(BaseModel):
    """Schema for POST /payment/{order_id}/create-link."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    return_url: str | None = Field(
        default=None,
        alias="returnUrl",
        description="Where payOS sends the buyer after paying",
    )
    cancel_url: str | None = Field(
        default=None,
        alias="cancelUrl",
        description="Where payOS sends the buyer after cancelling",
    )


class CancelPaymentRequest(BaseModel):
    """Schema for DELETE /payment/{order_id}/cancel."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    cancel_reason: str | None = Field(
        default=None,
        alias="cancelReason",
        max_length=255,
        description="Reason forwarded to payOS",
    )


class BankAccountInfo(BaseModel):
    """Bank transfer details for a payment link."""

    model_config = ConfigDict(from_attributes=True)

    bin: str = Field(description="Bank identification number")
    account_number: str = Field(description="Receiving account number")
    account_name: str = Field(description="Receiving account holder")


class PaymentLinkData(BaseModel):
    """Payment link details returned to the client."""

    model_config = ConfigDict(from_attributes=True)

    checkout_url: str = Field(description="payOS checkout page URL")
    qr_code: str = Field(description="QR payload or QR image URL")
    payment_link_id: str = Field(description="payOS payment link ID")
    order_code: int = Field(description="payOS order code")
    amount: int = Field(description="Amount in VND")
    bank_account: BankAccountInfo | None = Field(default=None, description="Bank transfer details if provided")


class PaymentLinkResponse(BaseModel):
    """Response for payment link creation."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Request succeeded")
    data: PaymentLinkData = Field(description="Payment link details")


class PaymentCheckResponse(BaseModel):
    """Response for a payment status check."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Request succeeded")
    is_paid: bool = Field(description="Whether the order is paid")
    payment_status: str = Field(description="paid, pending, cancelled or unknown")
    raw_status: str | None = Field(default=None, description="Status reported by payOS")
    error_message: str | None = Field(default=None, description="Why payOS could not be queried")
    heuristic: bool = Field(default=False, description="Payment was inferred, not confirmed by payOS")
    order: OrderResponse = Field(description="The order after reconciliation")


class ForceUpdateResponse(BaseModel):
    """Response for a forced payment status update."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Request succeeded")
    message: str = Field(description="What happened")
    source: str = Field(description="already_paid, gateway, manual, or the confirmation source of a concurrent writer (webhook, poll)")
    is_paid: bool = Field(description="Whether the order is paid")
    order: OrderResponse = Field(description="The updated order")


class CancelPaymentResponse(BaseModel):
    """Response for a payment cancellation."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Request succeeded")
    message: str = Field(default="Payment cancelled successfully", description="What happened")
    order: OrderResponse = Field(description="The cancelled order")


class WebhookAck(BaseModel):
    """Acknowledgement returned to payOS for every webhook delivery."""

    model_config = ConfigDict(from_attributes=True)

    error: int = Field(description="0 when handled, -1 when an internal error occurred")
    message: str = Field(description="Processing outcome")
    data: dict[str, Any] | None = Field(default=None, description="Verified webhook data")
