"""Payment API routes for payOS checkout links, webhooks and reconciliation."""

from uuid import UUID

from fastapi import APIRouter, Body, Request, status

from src.api.deps import CurrentUser, PaymentServiceDep
from src.schemas.order import OrderResponse
from src.schemas.payment import (
    BankAccountInfo,
    CancelPaymentRequest,
    CancelPaymentResponse,
    CreateLinkRequest,
    ForceUpdateResponse,
    PaymentCheckResponse,
    PaymentLinkData,
    PaymentLinkResponse,
    WebhookAck,
)

router = APIRouter(prefix="/payment", tags=["payment"])


@router.post(
    "/webhook",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Handle payOS webhook",
    description="Receives payment notifications from payOS. Always answers 200 so payOS does not retry.",
)
async def handle_payos_webhook(
    request: Request,
    payment_service: PaymentServiceDep,
) -> WebhookAck:
    """Handle payOS webhook events.

    The signature is checked against the payload with the checksum key.
    Verification failures and internal errors are acknowledged too.

    Args:
        request: FastAPI request object (for raw body access).
        payment_service: Payment service.

    Returns:
        WebhookAck: Acknowledgement for payOS.
    """
    payload = await request.body()
    ack = await payment_service.ingest_webhook(payload)
    return WebhookAck(**ack)


@router.post(
    "/{order_id}/create-link",
    response_model=PaymentLinkResponse,
    summary="Create payOS payment link",
    description="Creates a payOS checkout link and QR code for an unpaid order.",
)
async def create_payment_link(
    order_id: UUID,
    user: CurrentUser,
    payment_service: PaymentServiceDep,
    data: CreateLinkRequest | None = Body(default=None),
) -> PaymentLinkResponse:
    """Create a payment link for an order.

    Raises:
        NotFoundError: 404 if the order does not exist.
        AuthorizationError: 403 if the caller is neither owner nor admin.
        InvalidStateError: 400 if the order is paid or cancelled.
        PaymentProviderError: 502 if payOS fails.
    """
    data = data or CreateLinkRequest()
    created = await payment_service.create_link(
        order_id,
        user,
        return_url=data.return_url,
        cancel_url=data.cancel_url,
    )

    bank_info = created.link.bank_account_info
    return PaymentLinkResponse(
        data=PaymentLinkData(
            checkout_url=created.link.checkout_url,
            qr_code=created.qr_code,
            payment_link_id=created.link.link_id,
            order_code=created.link.order_code,
            amount=created.link.amount,
            bank_account=BankAccountInfo(**bank_info) if bank_info else None,
        )
    )


@router.get(
    "/{order_id}/check",
    response_model=PaymentCheckResponse,
    summary="Check payment status",
    description="Asks payOS for the order's payment status and updates the order accordingly.",
)
async def check_payment_status(
    order_id: UUID,
    user: CurrentUser,
    payment_service: PaymentServiceDep,
) -> PaymentCheckResponse:
    """Reconcile an order with payOS.

    Raises:
        NotFoundError: 404 if the order does not exist.
        AuthorizationError: 403 if the caller is neither owner nor admin.
        NoPaymentLinkError: 400 if the order has no payment link.
    """
    result = await payment_service.query_and_reconcile(order_id, user)

    return PaymentCheckResponse(
        is_paid=result.is_paid,
        payment_status=result.payment_status,
        raw_status=result.raw_status,
        error_message=result.error_message,
        heuristic=result.heuristic,
        order=OrderResponse(**result.order),
    )


@router.put(
    "/{order_id}/force-update",
    response_model=ForceUpdateResponse,
    summary="Force payment status update",
    description="Checks payOS once more, then marks the order paid manually.",
)
async def force_update_payment(
    order_id: UUID,
    user: CurrentUser,
    payment_service: PaymentServiceDep,
) -> ForceUpdateResponse:
    """Mark an order paid, recording who did it.

    Raises:
        NotFoundError: 404 if the order does not exist.
        AuthorizationError: 403 if the caller is neither owner nor admin.
    """
    result = await payment_service.force_update(order_id, user)

    return ForceUpdateResponse(
        message=result.message,
        source=result.source,
        is_paid=bool(result.order.get("is_paid")),
        order=OrderResponse(**result.order),
    )


@router.delete(
    "/{order_id}/cancel",
    response_model=CancelPaymentResponse,
    summary="Cancel payment",
    description="Cancels the order's payOS payment link and the order.",
)
async def cancel_payment(
    order_id: UUID,
    user: CurrentUser,
    payment_service: PaymentServiceDep,
    data: CancelPaymentRequest | None = Body(default=None),
) -> CancelPaymentResponse:
    """Cancel an order's payment.

    Raises:
        NotFoundError: 404 if the order does not exist.
        AuthorizationError: 403 if the caller is neither owner nor admin.
        InvalidStateError: 400 if the order has no link or is paid.
        PaymentProviderError: 502 if payOS refuses or fails.
    """
    reason = data.cancel_reason if data else None
    order = await payment_service.cancel_payment(order_id, user, reason)

    return CancelPaymentResponse(order=OrderResponse(**order))
