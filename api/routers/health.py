"""Health check endpoints for the prwatch API.

This module provides endpoints for monitoring application health,
readiness, and liveness. Used by orchestration systems like Kubernetes.
"""

from enum import Enum

import structlog
from fastapi import APIRouter
from pydantic import BaseModel, Field

from api.dependencies import WebhookIngressDep

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class HealthResponse(BaseModel):
    """Response model for health check endpoints.

    Attributes:
        status: Overall health status.
        message: Optional status message.
    """

    status: HealthStatus = Field(..., description="Health status")
    message: str | None = Field(None, description="Optional status message")


class ReadinessResponse(BaseModel):
    """Response model for readiness check.

    Attributes:
        status: Overall readiness status.
        checks: Individual component check results.
    """

    status: HealthStatus = Field(..., description="Overall readiness status")
    checks: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="Individual component check results",
    )


@router.get(
    "",
    response_model=HealthResponse,
    summary="Basic health check",
    description="Returns basic health status of the API.",
)
async def health_check() -> HealthResponse:
    """Basic health check endpoint.

    Returns:
        HealthResponse with healthy status.
    """
    return HealthResponse(
        status=HealthStatus.HEALTHY,
        message="prwatch API is running",
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check",
    description="Reports whether webhook processing is configured.",
)
async def readiness_check(ingress: WebhookIngressDep) -> ReadinessResponse:
    """Readiness check endpoint.

    The API is degraded when the ingress is missing, and when it cannot
    review pull requests automatically.

    Args:
        ingress: Webhook ingress, None when not configured.

    Returns:
        ReadinessResponse with check results for each component.
    """
    checks: dict[str, dict[str, str]] = {}

    if ingress is None:
        checks["webhook_ingress"] = {
            "status": "unhealthy",
            "message": "Webhook secret not configured",
        }
    else:
        checks["webhook_ingress"] = {"status": "healthy"}
        if ingress.config.auto_process and not ingress.can_review:
            checks["review_orchestrator"] = {
                "status": "unhealthy",
                "message": "Analyzer not configured",
            }
        else:
            checks["review_orchestrator"] = {"status": "healthy"}

    healthy = all(check["status"] == "healthy" for check in checks.values())
    return ReadinessResponse(
        status=HealthStatus.HEALTHY if healthy else HealthStatus.DEGRADED,
        checks=checks,
    )


@router.get(
    "/live",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Checks if the application process is alive.",
)
async def liveness_check() -> HealthResponse:
    """Liveness check endpoint.

    Returns:
        HealthResponse with alive status.
    """
    return HealthResponse(status=HealthStatus.HEALTHY)
