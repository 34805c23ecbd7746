"""Schemas shared by all routers: health probes, metrics and the error envelope."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

API_VERSION = "0.1.0"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Liveness probe response. Never touches Supabase or payOS."""

    status: HealthStatus
    timestamp: datetime = Field(default_factory=utc_now)
    version: str = API_VERSION


class DependencyCheck(BaseModel):
    """Outcome of probing one dependency (``database`` or ``payos``)."""

    name: str = Field(description="Dependency name")
    healthy: bool
    latency_ms: float | None = Field(default=None, description="Probe duration, when the probe makes a call")
    error: str | None = Field(default=None, description="Why the dependency is unhealthy")


class ReadinessResponse(BaseModel):
    """Readiness probe response; unhealthy as soon as one check fails."""

    status: HealthStatus
    timestamp: datetime = Field(default_factory=utc_now)
    checks: list[DependencyCheck] = Field(default_factory=list)

    @classmethod
    def from_checks(cls, checks: list[DependencyCheck]) -> "ReadinessResponse":
        healthy = all(check.healthy for check in checks)
        return cls(status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY, checks=checks)

    @property
    def is_healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY


class MetricsResponse(BaseModel):
    """In-process stats served by /health/metrics."""

    requests: dict[str, Any] = Field(description="Request latency stats from the latency middleware")
    payment_gateway: dict[str, Any] = Field(description="payOS call counts, latencies and errors")


class ErrorDetail(BaseModel):
    """One entry of ``ErrorResponse.details``, e.g. a field that failed validation."""

    loc: list[str] | None = None
    msg: str
    type: str = "error"


class ErrorResponse(BaseModel):
    """Error envelope returned by every non-webhook route.

    Raw payOS and Supabase errors never appear here; they are only logged.
    """

    success: bool = False
    error: str = Field(description="Machine-readable error type, e.g. already_paid")
    message: str = Field(description="Human-readable description")
    details: list[ErrorDetail] | None = None
    request_id: str | None = Field(default=None, description="X-Request-ID of the failing request")
    timestamp: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_exception(
        cls,
        error_type: str,
        message: str,
        details: list[dict[str, Any]] | None = None,
        request_id: str | None = None,
    ) -> "ErrorResponse":
        """Build the envelope from an APIError's fields.

        Args:
            error_type: Error category, e.g. ``payment_provider_error``.
            message: Client-safe message.
            details: Raw detail dicts; anything without ``msg`` is stringified.
            request_id: Optional request ID for tracing.

        Returns:
            ErrorResponse: The envelope.
        """
        return cls(
            error=error_type,
            message=message,
            details=[
                ErrorDetail(loc=d.get("loc"), msg=d.get("msg", str(d)), type=d.get("type", "error"))
                for d in details
            ]
            if details
            else None,
            request_id=request_id,
        )
