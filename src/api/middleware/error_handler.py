"""Application errors and the middleware that renders them as error envelopes."""

import logging
from typing import Any, Callable

from fastapi import HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from src.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for errors that reach the client.

    Subclasses pin ``status_code`` and ``error_type``; the message is the
    only thing a client ever sees of the failure.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "api_error"
    default_message: str = "Request failed"

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        error_type: str | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type
        self.details = details
        super().__init__(self.message)


class NotFoundError(APIError):
    """Order, product, cart or cart item does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"
    default_message = "Resource not found"


class ValidationError(APIError):
    """Request is well-formed but not acceptable, e.g. an unavailable size."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_type = "validation_error"
    default_message = "Validation error"


class AuthorizationError(APIError):
    """Caller is neither the owner nor an admin."""

    status_code = status.HTTP_403_FORBIDDEN
    error_type = "authorization_error"
    default_message = "Access denied"


class InvalidStateError(APIError):
    """The order or cart is not in a state that allows the operation."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "invalid_state"
    default_message = "Invalid state for this operation"


class AlreadyPaidError(InvalidStateError):
    error_type = "already_paid"
    default_message = "Order is already paid"


class NoPaymentLinkError(InvalidStateError):
    error_type = "no_payment_link"
    default_message = "This order has no associated payment link"


class OrderCancelledError(InvalidStateError):
    error_type = "order_cancelled"
    default_message = "Order has been cancelled"


class EmptyCartError(InvalidStateError):
    error_type = "empty_cart"
    default_message = "No items in cart"


class PaymentProviderError(APIError):
    """payOS failed or refused on a user-initiated path (create link, cancel).

    Passive paths (webhook, status check) never raise this.
    """

    status_code = status.HTTP_502_BAD_GATEWAY
    error_type = "payment_provider_error"
    default_message = "Payment service temporarily unavailable"


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Render the standard error envelope."""
    body = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Turn exceptions escaping a route into error envelopes.

    APIError and HTTPException keep their status and message. Anything else
    is logged with its traceback and answered with a generic 500, so raw
    payOS or Supabase errors never reach the client.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: The handler's response or an error envelope.
    """
    request_id = request.headers.get("X-Request-ID")
    path = request.url.path

    try:
        return await call_next(request)

    except APIError as e:
        logger.warning(
            "%s on %s: %s",
            e.error_type,
            path,
            e.message,
            extra={"request_id": request_id, "status_code": e.status_code},
        )
        return create_error_response(e.error_type, e.message, e.status_code, e.details, request_id)

    except HTTPException as e:
        logger.warning("HTTP %s on %s: %s", e.status_code, path, e.detail, extra={"request_id": request_id})
        return create_error_response("http_error", str(e.detail), e.status_code, request_id=request_id)

    except Exception:
        logger.exception("Unhandled exception on %s", path, extra={"request_id": request_id})
        return create_error_response(
            "internal_error",
            "An unexpected error occurred",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )
