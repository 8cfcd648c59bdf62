"""GitHub webhook endpoints for the prwatch API.

This module receives GitHub webhook deliveries at ``POST /webhook/github``,
applies request-level checks (content type, rate limit, size), hands the
raw body to the webhook ingress and maps its outcome to an HTTP status.
"""

import time
import uuid
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from api.dependencies import RateLimiterDep, SettingsDep, WebhookIngressDep
from integrations.github.models import WebhookResult

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["Webhooks"])


class WebhookStatusResponse(BaseModel):
    """Response model for the webhook endpoint status.

    Attributes:
        status: Endpoint status.
        message: Status message.
        timestamp: Current server time.
        methods: Supported HTTP methods.
    """

    status: str = Field(..., description="Endpoint status")
    message: str = Field(..., description="Status message")
    timestamp: datetime = Field(..., description="Server time")
    methods: list[str] = Field(..., description="Supported methods")


def status_code_for(result: WebhookResult) -> int:
    """Map an ingress outcome to an HTTP status code.

    Args:
        result: Ingress result.

    Returns:
        403 for filtered events, 400 for unknown kinds and malformed
        bodies, 401 for other failures and 200 on success.
    """
    error = result.error or ""
    if "not allowed" in error:
        return status.HTTP_403_FORBIDDEN
    if "Unknown event type" in error or "Invalid payload" in error:
        return status.HTTP_400_BAD_REQUEST
    if not result.success:
        return status.HTTP_401_UNAUTHORIZED
    return status.HTTP_200_OK


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (
        request.client.host if request.client else "unknown"
    )


@router.get(
    "/github",
    response_model=WebhookStatusResponse,
    summary="Webhook endpoint status",
    description="Returns whether the GitHub webhook endpoint is active.",
)
async def webhook_status() -> WebhookStatusResponse:
    """Report webhook endpoint status."""
    return WebhookStatusResponse(
        status="ok",
        message="GitHub Webhook endpoint is active",
        timestamp=datetime.now(UTC),
        methods=["GET", "POST"],
    )


@router.post(
    "/github",
    summary="Receive GitHub webhook",
    description="Verifies and processes a GitHub webhook delivery.",
    responses={
        status.HTTP_200_OK: {"description": "Delivery processed"},
        status.HTTP_400_BAD_REQUEST: {"description": "Malformed or unknown delivery"},
        status.HTTP_401_UNAUTHORIZED: {"description": "Signature verification failed"},
        status.HTTP_403_FORBIDDEN: {"description": "Event or repository not allowed"},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"description": "Payload too large"},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"description": "Not JSON"},
        status.HTTP_429_TOO_MANY_REQUESTS: {"description": "Rate limit exceeded"},
    },
)
async def receive_github_webhook(
    request: Request,
    settings: SettingsDep,
    ingress: WebhookIngressDep,
    rate_limiter: RateLimiterDep,
) -> JSONResponse:
    """Receive a GitHub webhook delivery.

    Args:
        request: The incoming HTTP request.
        settings: Application settings.
        ingress: Webhook ingress, None when webhooks are not configured.
        rate_limiter: Per-client request limiter.

    Returns:
        JSON response with the processing outcome.
    """
    start_time = time.perf_counter()

    delivery_id = request.headers.get("x-github-delivery") or str(uuid.uuid4())
    event_type = request.headers.get("x-github-event")
    signature = request.headers.get("x-hub-signature-256")
    content_type = request.headers.get("content-type", "")
    client = _client_address(request)

    log = logger.bind(delivery_id=delivery_id, event_type=event_type, client=client)
    log.info("webhook_request_received")

    if content_type.split(";")[0].strip().lower() != "application/json":
        log.warning("webhook_invalid_content_type", content_type=content_type)
        return _error(
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            "Invalid content type. Expected application/json",
        )

    if not rate_limiter.allow(client):
        log.warning("webhook_rate_limited")
        return _error(status.HTTP_429_TOO_MANY_REQUESTS, "Rate limit exceeded")

    content_length = request.headers.get("content-length")
    if (
        content_length
        and content_length.isdigit()
        and int(content_length) > settings.webhook_max_payload_bytes
    ):
        log.warning(
            "webhook_payload_too_large",
            content_length=content_length,
            max_size=settings.webhook_max_payload_bytes,
        )
        return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "Payload too large")

    body = await request.body()
    if not body.strip():
        log.warning("webhook_empty_payload")
        return _error(status.HTTP_400_BAD_REQUEST, "Empty payload")

    if ingress is None:
        log.error("webhook_ingress_unavailable")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    result = await ingress.handle_request(body, signature, delivery_id, event_type or "")
    processing_time_ms = (time.perf_counter() - start_time) * 1000

    if result.success:
        log.info(
            "webhook_processed",
            action=result.action,
            repository=result.repository,
            review_succeeded=result.review_result.success if result.review_result else None,
            processing_time_ms=round(processing_time_ms, 2),
        )
    else:
        log.warning(
            "webhook_processing_failed",
            error=result.error,
            processing_time_ms=round(processing_time_ms, 2),
        )

    content: dict[str, object] = {
        "success": result.success,
        "eventId": result.event_id,
        "eventType": result.event_type,
        "action": result.action,
        "repository": result.repository,
        "processingTimeMs": round(processing_time_ms, 2),
    }
    if result.error:
        content["error"] = result.error
    if result.review_result is not None:
        content["reviewId"] = result.review_result.review_id
        content["reviewSucceeded"] = result.review_result.success

    return JSONResponse(status_code=status_code_for(result), content=content)
