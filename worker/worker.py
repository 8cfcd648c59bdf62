"""Background review worker.

This module provides the ReviewWorker, which listens for ``new_pr`` and
``updated_pr`` notifications from the repository poller, queues them and
reviews them one at a time through the orchestrator.
"""

import asyncio
from collections.abc import Callable

import structlog

from core.events.bus import NotificationBus
from core.events.models import Channel, PollerErrorEvent, PullRequestDetected, ReviewCompleted
from core.monitor.models import DetectedPullRequest
from core.monitor.poller import RepositoryPoller
from core.review.models import ProcessPRParams, ProcessPRResult, StatusUpdate
from core.review.orchestrator import ReviewOrchestrator

logger = structlog.get_logger(__name__)


class ReviewWorker:
    """Consumes detected pull requests and reviews them sequentially.

    Attributes:
        bus: Notification bus shared with the poller.
        processed_count: Pull requests reviewed so far.
        skipped_count: Pull requests dropped because of shutdown.
    """

    def __init__(
        self,
        poller: RepositoryPoller,
        orchestrator: ReviewOrchestrator,
        bus: NotificationBus | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            poller: Source of ``new_pr``/``updated_pr`` notifications.
            orchestrator: Runs the reviews.
            bus: Bus to subscribe and publish on. Defaults to the poller's bus.
        """
        self.bus = bus or poller.bus
        self.processed_count = 0
        self.skipped_count = 0
        self._poller = poller
        self._orchestrator = orchestrator
        self._queue: asyncio.Queue[DetectedPullRequest] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._current: asyncio.Task[ProcessPRResult] | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._shutting_down = False
        self._logger = logger.bind(component="review_worker")

    @property
    def queue_size(self) -> int:
        """Pull requests waiting to be reviewed."""
        return self._queue.qsize()

    @property
    def is_shutting_down(self) -> bool:
        """Whether shutdown has begun."""
        return self._shutting_down

    async def start(self) -> None:
        """Subscribe to the bus, start the consumer and start polling.

        Raises:
            PollerError: If the poller has no repositories to monitor.
        """
        self._unsubscribers = [
            self.bus.subscribe(Channel.NEW_PR, self._on_detected),
            self.bus.subscribe(Channel.UPDATED_PR, self._on_detected),
            self.bus.subscribe(Channel.ERROR, self._on_error),
        ]
        self._consumer = asyncio.get_running_loop().create_task(self._consume())

        self._logger.info(
            "worker_starting",
            repositories=[r.full_name for r in self._poller.repositories],
        )
        await self._poller.start()

    async def shutdown(self) -> None:
        """Stop polling, finish the in-progress review and stop consuming.

        Queued pull requests that were not started are skipped.
        """
        if self._shutting_down:
            return

        self._logger.info("worker_shutting_down", queued=self._queue.qsize())
        self._poller.stop()
        self._shutting_down = True

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        if self._current is not None and not self._current.done():
            self._logger.info("waiting_for_in_progress_review")
            await asyncio.wait({self._current})

        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        while not self._queue.empty():
            pr = self._queue.get_nowait()
            self._skip(pr)

        self._logger.info(
            "worker_stopped",
            processed=self.processed_count,
            skipped=self.skipped_count,
        )

    def _on_detected(self, payload: PullRequestDetected) -> None:
        if self._shutting_down:
            self._skip(payload.pr)
            return

        self._logger.info(
            "pull_request_queued",
            kind=payload.type.value,
            repository=f"{payload.pr.owner}/{payload.pr.repo}",
            pull_number=payload.pr.number,
        )
        self._queue.put_nowait(payload.pr)

    def _on_error(self, payload: PollerErrorEvent) -> None:
        self._logger.error(
            "poller_error",
            repository=payload.repository.full_name if payload.repository else None,
            error=payload.error,
        )

    def _skip(self, pr: DetectedPullRequest) -> None:
        self.skipped_count += 1
        self._logger.info(
            "pull_request_skipped_during_shutdown",
            repository=f"{pr.owner}/{pr.repo}",
            pull_number=pr.number,
        )

    async def _consume(self) -> None:
        while True:
            pr = await self._queue.get()
            try:
                if self._shutting_down:
                    self._skip(pr)
                    continue

                self._current = asyncio.ensure_future(self.process(pr))
                # Shielded so that shutdown can let the review finish
                await asyncio.shield(self._current)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.exception(
                    "review_crashed",
                    repository=f"{pr.owner}/{pr.repo}",
                    pull_number=pr.number,
                    error=str(e),
                )
            finally:
                self._current = None
                self._queue.task_done()

    async def process(self, pr: DetectedPullRequest) -> ProcessPRResult:
        """Review one detected pull request and announce the outcome.

        Args:
            pr: Pull request reported by the poller.

        Returns:
            The orchestrator result.
        """
        params = ProcessPRParams(
            owner=pr.owner,
            repo=pr.repo,
            pull_number=pr.number,
            pr_title=pr.title,
            pr_description=pr.body,
            author_name=pr.author_login,
        )
        log = self._logger.bind(owner=pr.owner, repo=pr.repo, pull_number=pr.number)

        def on_status(update: StatusUpdate) -> None:
            log.info(
                "review_status",
                phase=update.phase.value,
                progress=update.progress,
                message=update.message,
            )

        result = await self._orchestrator.process_pr(params, on_status=on_status)
        self.processed_count += 1

        if result.success:
            log.info(
                "review_succeeded",
                review_id=result.review_id,
                duration_ms=round(result.duration_ms, 2),
            )
        else:
            log.warning(
                "review_unsuccessful",
                error_code=result.error_code.value if result.error_code else None,
                error=result.error,
            )

        self.bus.publish(
            Channel.REVIEW_COMPLETED,
            ReviewCompleted(owner=pr.owner, repo=pr.repo, pull_number=pr.number, result=result),
        )
        return result

    async def join(self) -> None:
        """Wait until every queued pull request has been handled."""
        await self._queue.join()
