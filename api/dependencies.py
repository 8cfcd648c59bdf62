"""Dependency injection setup for the prwatch API.

This module provides FastAPI dependency functions for injecting
the webhook ingress, the review store and the rate limiter into
route handlers.
"""

import time
from collections.abc import AsyncGenerator
from typing import Annotated

import structlog
from fastapi import Depends

from core.events.bus import NotificationBus
from core.llm.analyzer import ClaudeAnalyzer
from core.llm.client import ClaudeClient, LLMConfig
from core.review.capabilities import ReviewStore
from core.review.orchestrator import ReviewOrchestrator
from core.review.store import InMemoryReviewStore
from integrations.github.client import GitHubClient
from integrations.github.webhooks import WebhookIngress

from .config import Settings, get_settings

logger = structlog.get_logger(__name__)

# Type aliases for dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]


class RateLimiter:
    """Fixed-window request counter keyed by client address."""

    def __init__(self, max_requests: int, window_seconds: float = 60.0) -> None:
        """Initialize the limiter.

        Args:
            max_requests: Requests allowed per client per window.
            window_seconds: Window length.
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        # Client -> (count, window reset time)
        self._windows: dict[str, tuple[int, float]] = {}

    def allow(self, client: str) -> bool:
        """Count a request and report whether it is within the limit."""
        now = time.monotonic()
        count, reset_at = self._windows.get(client, (0, 0.0))

        if reset_at < now:
            self._windows[client] = (1, now + self.window_seconds)
            return True

        if count >= self.max_requests:
            return False

        self._windows[client] = (count + 1, reset_at)
        return True


# Global instances for resource management
_bus: NotificationBus | None = None
_store: ReviewStore | None = None
_github_client: GitHubClient | None = None
_llm_client: ClaudeClient | None = None
_orchestrator: ReviewOrchestrator | None = None
_ingress: WebhookIngress | None = None
_rate_limiter: RateLimiter | None = None


async def init_dependencies(settings: Settings) -> None:
    """Initialize global dependencies on application startup.

    The ingress is left unset when no webhook secret is configured, and
    automatic review is disabled when no Anthropic API key is configured.

    Args:
        settings: Application settings instance.
    """
    global _bus, _store, _github_client, _llm_client, _orchestrator, _ingress, _rate_limiter

    _bus = NotificationBus()
    _store = InMemoryReviewStore()
    _rate_limiter = RateLimiter(settings.webhook_rate_limit_per_minute)
    _github_client = GitHubClient(settings.github_client_config())

    if settings.anthropic_api_key:
        _llm_client = ClaudeClient(
            settings.anthropic_api_key,
            LLMConfig(model=settings.analyzer_model),
        )
        _orchestrator = ReviewOrchestrator(
            source=_github_client,
            analyzer=ClaudeAnalyzer(_llm_client),
            store=_store,
            config=settings.orchestrator_config(),
        )
    else:
        logger.warning("analyzer_not_configured", reason="ANTHROPIC_API_KEY is not set")

    try:
        webhook_config = settings.webhook_config()
    except ValueError as e:
        logger.warning("webhook_ingress_not_configured", error=str(e))
    else:
        _ingress = WebhookIngress(webhook_config, orchestrator=_orchestrator, bus=_bus)


async def shutdown_dependencies() -> None:
    """Cleanup dependencies on application shutdown.

    Closes HTTP clients and releases resources.
    """
    global _bus, _store, _github_client, _llm_client, _orchestrator, _ingress, _rate_limiter

    if _github_client is not None:
        await _github_client.close()
        _github_client = None

    if _llm_client is not None:
        await _llm_client.close()
        _llm_client = None

    _bus = None
    _store = None
    _orchestrator = None
    _ingress = None
    _rate_limiter = None


async def get_webhook_ingress() -> AsyncGenerator[WebhookIngress | None, None]:
    """Get the webhook ingress.

    Yields:
        The shared WebhookIngress, or None if webhooks are not configured.
    """
    yield _ingress


async def get_review_store() -> AsyncGenerator[ReviewStore, None]:
    """Get the review store.

    Yields:
        The shared ReviewStore instance.

    Raises:
        RuntimeError: If dependencies have not been initialized.
    """
    if _store is None:
        raise RuntimeError(
            "Review store not initialized. Ensure init_dependencies() was called on startup."
        )
    yield _store


async def get_rate_limiter() -> AsyncGenerator[RateLimiter, None]:
    """Get the webhook rate limiter.

    Yields:
        The shared RateLimiter instance.

    Raises:
        RuntimeError: If dependencies have not been initialized.
    """
    if _rate_limiter is None:
        raise RuntimeError(
            "Rate limiter not initialized. Ensure init_dependencies() was called on startup."
        )
    yield _rate_limiter


# Type aliases for commonly used dependencies
WebhookIngressDep = Annotated[WebhookIngress | None, Depends(get_webhook_ingress)]
ReviewStoreDep = Annotated[ReviewStore, Depends(get_review_store)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
