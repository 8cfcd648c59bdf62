"""Custom middleware for the prwatch API.

This module provides middleware components for request logging
and response timing.
"""

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

RequestHandler = Callable[[Request], Awaitable[Response]]


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs all incoming requests and outgoing responses.

    Webhook deliveries are logged with their GitHub delivery id so that
    request logs can be matched with ingress logs.
    """

    async def dispatch(self, request: Request, call_next: RequestHandler) -> Response:
        """Process the request and log details.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or route handler.

        Returns:
            The HTTP response.
        """
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        log = logger.bind(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            delivery_id=request.headers.get("x-github-delivery"),
        )
        log.info(
            "request_started",
            client_host=request.client.host if request.client else None,
        )

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            log.exception("request_failed", error=str(e))
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        log_level = "info" if response.status_code < 400 else "warning"
        getattr(log, log_level)(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        # Add request ID to response headers for tracing
        response.headers["X-Request-ID"] = request_id

        return response


class TimingMiddleware(BaseHTTPMiddleware):
    """Middleware that adds an X-Response-Time header to every response."""

    async def dispatch(self, request: Request, call_next: RequestHandler) -> Response:
        """Process the request and add timing header.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or route handler.

        Returns:
            The HTTP response with timing header.
        """
        start_time = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        return response
