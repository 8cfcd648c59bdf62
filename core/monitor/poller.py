"""Poll-based pull request watcher.

This module provides the RepositoryPoller, which lists open pull requests
for each monitored repository on a fixed interval, diffs the result against
an in-memory ledger of last-seen update timestamps, and publishes one
notification per observed transition.

Detection relies solely on the ``updated_at`` timestamp reported by the
source. Two edits that land within the same timestamp resolution are seen
as one.
"""

import asyncio
from datetime import datetime

import structlog

from core.events.bus import NotificationBus
from core.events.models import Channel, PollerErrorEvent, PullRequestDetected
from core.review.capabilities import SourceRepository

from .models import DetectedPullRequest, MonitoredRepository, PollerConfig

logger = structlog.get_logger(__name__)


class PollerError(Exception):
    """Raised when the poller cannot start."""

    pass


class RepositoryPoller:
    """Watches repositories for new and updated open pull requests.

    Publishes on ``new_pr``, ``updated_pr`` and ``error``. Closed or merged
    pull requests silently leave the ledger.

    Attributes:
        config: Poller configuration as given at construction.
        bus: Notification bus the poller publishes on.
    """

    def __init__(
        self,
        source: SourceRepository,
        config: PollerConfig,
        bus: NotificationBus | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            source: Source of open pull request listings.
            config: Poller configuration.
            bus: Bus to publish on. A private bus is created if not provided.
        """
        self.config = config
        self.bus = bus or NotificationBus()
        self._source = source
        self._repositories: list[MonitoredRepository] = list(config.repositories)
        # Key: owner/repo/number, value: last seen updated_at
        self._seen: dict[str, datetime] = {}
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._poll_lock = asyncio.Lock()
        self._logger = logger.bind(component="repository_poller")

    @property
    def is_running(self) -> bool:
        """Whether recurring polling is active."""
        return self._running

    @property
    def repositories(self) -> list[MonitoredRepository]:
        """Copy of the monitored repository list."""
        return list(self._repositories)

    @property
    def tracked_pr_count(self) -> int:
        """Number of pull requests in the ledger."""
        return len(self._seen)

    async def start(self) -> None:
        """Poll once, then keep polling every ``poll_interval_ms``.

        Raises:
            PollerError: If no repositories are configured.
        """
        if self._running:
            return

        if not self._repositories:
            raise PollerError("No repositories configured to monitor")

        self._running = True
        self._logger.info(
            "poller_starting",
            repositories=[r.full_name for r in self._repositories],
            interval_ms=self.config.poll_interval_ms,
        )

        try:
            await self.poll()
        except BaseException:
            self._running = False
            raise

        # stop() may have run during the first poll
        if not self._running or self._task is not None:
            return
        self._task =asyncio.get_running_loop().create_task(self._run_schedule())

    def stop(self) -> None:
        """Cancel recurring polling. Safe to call repeatedly."""
        if not self._running:
            return

        if self._task is not None:
            self._task.cancel()
            self._task = None

        self._running = False
        self._logger.info("poller_stopped")

    async def _run_schedule(self) -> None:
        interval = self.config.poll_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                await self.poll()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.error("scheduled_poll_failed", error=str(e))
                self.bus.publish(
                    Channel.ERROR,
                    PollerErrorEvent(error=str(e) or "Unknown polling error"),
                )

    async def poll(self) -> None:
        """Run one poll cycle over every monitored repository, in order.

        Cycles never overlap: a manual call made while a scheduled cycle is
        running waits for it to finish.
        """
        async with self._poll_lock:
            for repo in list(self._repositories):
                await self._poll_repository(repo)

    async def _poll_repository(self, repo: MonitoredRepository) -> None:
        try:
            pull_requests = await self._source.list_open_pull_requests(repo.owner, repo.name)
        except Exception as e:
            self._logger.warning(
                "repository_poll_failed",
                repository=repo.full_name,
                error=str(e),
            )
            self.bus.publish(
                Channel.ERROR,
                PollerErrorEvent(error=str(e) or type(e).__name__, repository=repo),
            )
            return

        current_keys: set[str] = set()
        for pr in pull_requests:
            key = pr.ledger_key
            current_keys.add(key)
            previous = self._seen.get(key)

            if previous is None:
                self._seen[key] = pr.updated_at
                self._emit(Channel.NEW_PR, pr)
            elif previous != pr.updated_at:
                self._seen[key] = pr.updated_at
                self._emit(Channel.UPDATED_PR, pr)

        # Anything no longer listed is closed or merged; drop without notice
        stale = [
            key
            for key in self._seen
            if key.startswith(repo.ledger_prefix) and key not in current_keys
        ]
        for key in stale:
            del self._seen[key]

        self._logger.debug(
            "repository_polled",
            repository=repo.full_name,
            open_prs=len(pull_requests),
            dropped=len(stale),
        )

    def _emit(self, channel: Channel, pr: DetectedPullRequest) -> None:
        self._logger.info(
            "pull_request_detected",
            kind=channel.value,
            repository=f"{pr.owner}/{pr.repo}",
            pull_number=pr.number,
        )
        self.bus.publish(channel, PullRequestDetected(type=channel, pr=pr))

    def add_repository(self, repo: MonitoredRepository) -> bool:
        """Start monitoring a repository.

        Returns:
            False if the repository was already monitored.
        """
        if any(r.owner == repo.owner and r.name == repo.name for r in self._repositories):
            return False
        self._repositories.append(repo)
        return True

    def remove_repository(self, repo: MonitoredRepository) -> bool:
        """Stop monitoring a repository and forget its pull requests.

        Returns:
            True if the repository was monitored.
        """
        before = len(self._repositories)
        self._repositories = [
            r for r in self._repositories if not (r.owner == repo.owner and r.name == repo.name)
        ]

        for key in [k for k in self._seen if k.startswith(repo.ledger_prefix)]:
            del self._seen[key]

        return len(self._repositories) != before

    def clear_seen(self) -> None:
        """Forget every pull request so the next poll reports all as new."""
        self._seen.clear()
