"""Entry point for the prwatch background worker.

Polls the configured repositories and reviews new and updated pull
requests until interrupted with SIGINT or SIGTERM.
"""

import asyncio
import signal
import sys

import structlog

from api.config import Settings, get_settings
from core.events.bus import NotificationBus
from core.llm.analyzer import ClaudeAnalyzer
from core.llm.client import ClaudeClient, LLMConfig
from core.logging import configure_logging
from core.monitor.poller import PollerError, RepositoryPoller
from core.review.orchestrator import ReviewOrchestrator
from core.review.store import InMemoryReviewStore
from integrations.github.client import GitHubClient

from .worker import ReviewWorker

logger = structlog.get_logger(__name__)


async def run(settings: Settings) -> int:
    """Run the worker until a termination signal arrives.

    Args:
        settings: Application settings.

    Returns:
        Process exit code.
    """
    if not settings.anthropic_api_key:
        logger.error("worker_not_configured", reason="ANTHROPIC_API_KEY is not set")
        return 1

    try:
        poller_config = settings.poller_config()
    except ValueError as e:
        logger.error("invalid_poller_configuration", error=str(e))
        return 1

    bus = NotificationBus()
    source = GitHubClient(settings.github_client_config())
    llm_client = ClaudeClient(settings.anthropic_api_key, LLMConfig(model=settings.analyzer_model))
    orchestrator_config = settings.orchestrator_config()
    orchestrator = ReviewOrchestrator(
        source=source,
        analyzer=ClaudeAnalyzer(llm_client),
        store=None if orchestrator_config.dry_run else InMemoryReviewStore(),
        config=orchestrator_config,
    )
    poller = RepositoryPoller(source, poller_config, bus)
    worker = ReviewWorker(poller, orchestrator, bus)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await worker.start()
        logger.info("worker_started", interval_ms=poller_config.poll_interval_ms)
        await stop.wait()
        logger.info("shutdown_signal_received")
        return 0
    except PollerError as e:
        logger.error("worker_start_failed", error=str(e))
        return 1
    finally:
        await worker.shutdown()
        await source.close()
        await llm_client.close()


def main() -> None:
    """Console script entry point."""
    settings = get_settings()
    configure_logging(settings.log_level)
    sys.exit(asyncio.run(run(settings)))


if __name__ == "__main__":
    main()
