"""Liveness, readiness and metrics endpoints, mounted at the root."""

from fastapi import APIRouter, Depends, Response, status

from src.api.deps import get_payment_gateway
from src.api.middleware.latency_logging import get_latency_stats
from src.core.config import get_settings
from src.core.payos import PaymentGatewayClient
from src.core.supabase import check_database_connection
from src.schemas.common import (
    DependencyCheck,
    HealthResponse,
    HealthStatus,
    MetricsResponse,
    ReadinessResponse,
)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, summary="Liveness check")
async def health_check() -> HealthResponse:
    """Report that the process is up. Checks no dependencies."""
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "Database unreachable or payOS not configured"}},
    summary="Readiness check",
)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Check the orders table and the payOS credentials.

    payOS itself is not called; only its credentials are checked.
    """
    db_result = await check_database_connection()
    payos_configured = get_settings().is_payos_configured

    readiness = ReadinessResponse.from_checks(
        [
            DependencyCheck(
                name="database",
                healthy=db_result["healthy"],
                latency_ms=db_result.get("latency_ms"),
                error=db_result.get("error"),
            ),
            DependencyCheck(
                name="payos",
                healthy=payos_configured,
                error=None if payos_configured else "payOS credentials not configured",
            ),
        ]
    )
    if not readiness.is_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return readiness


@router.get("/health/metrics", response_model=MetricsResponse, summary="Latency metrics")
async def metrics(
    gateway: PaymentGatewayClient = Depends(get_payment_gateway),
) -> MetricsResponse:
    """Return request latency and payOS call stats for this process."""
    return MetricsResponse(
        requests=get_latency_stats().get_stats(),
        payment_gateway=gateway.metrics.get_stats(),
    )
