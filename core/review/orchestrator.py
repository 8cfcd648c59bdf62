"""Review orchestrator.

This module turns an ``(owner, repo, pull_number)`` triple into a persisted
review: it fetches the diff with retry, submits it to the analyzer, maps
the verdict onto review records and saves them, reporting each phase to
an optional status callback.
"""

import asyncio
import time
from collections.abc import Callable

import structlog

from .capabilities import Analyzer, ReviewStore, SourceRepository
from .models import (
    AnalysisComment,
    AnalysisContext,
    AnalysisResult,
    Approval,
    CommentDraft,
    CommentSeverity,
    OrchestratorConfig,
    ProcessPRErrorCode,
    ProcessPRParams,
    ProcessPRResult,
    PullRequestDiff,
    PullRequestFile,
    ReviewDraft,
    ReviewPhase,
    ReviewStatus,
    StatusUpdate,
)

logger = structlog.get_logger(__name__)

StatusCallback = Callable[[StatusUpdate], None]
BatchProgressCallback = Callable[[int, int, ProcessPRResult], None]

# Case-insensitive markers of errors that retrying cannot fix
NON_RETRYABLE_MARKERS = ("not found", "invalid", "expired")

NO_CHANGES_SUMMARY = "No reviewable code changes found"

DEFAULT_AUTHOR_ID = "system"
DEFAULT_AUTHOR_NAME = "AI Reviewer"

APPROVAL_STATUS = {
    Approval.APPROVE.value: ReviewStatus.APPROVED,
    Approval.REQUEST_CHANGES.value: ReviewStatus.CHANGES_REQUESTED,
    Approval.COMMENT.value: ReviewStatus.IN_PROGRESS,
}

SEVERITY_MAP = {
    "CRITICAL": CommentSeverity.CRITICAL,
    "WARNING": CommentSeverity.WARNING,
    "SUGGESTION": CommentSeverity.SUGGESTION,
    "INFO": CommentSeverity.INFO,
}


class _StageError(Exception):
    """Internal: a phase failed with a known error code."""

    def __init__(
        self,
        code: ProcessPRErrorCode,
        message: str,
        analysis_result: AnalysisResult | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.analysis_result = analysis_result


def is_retryable(error: Exception) -> bool:
    """Whether a diff fetch error is worth another attempt."""
    message = str(error).lower()
    return not any(marker in message for marker in NON_RETRYABLE_MARKERS)


def map_approval_to_status(approval: str) -> ReviewStatus:
    """Map an analyzer verdict to a review status; unknown verdicts are IN_PROGRESS."""
    return APPROVAL_STATUS.get(str(approval).lower(), ReviewStatus.IN_PROGRESS)


def map_severity(severity: str) -> CommentSeverity:
    """Normalize an analyzer severity; unknown values become INFO."""
    return SEVERITY_MAP.get(str(severity).upper(), CommentSeverity.INFO)


def format_comment_content(comment: AnalysisComment) -> str:
    """Comment text, followed by the suggested fix when there is one."""
    content = comment.text
    if comment.suggestion:
        content += f"\n\n**Suggested fix:**\n{comment.suggestion}"
    return content


def attribute_comments(
    comments: list[AnalysisComment],
    files: list[PullRequestFile],
) -> list[AnalysisComment]:
    """Attach a file path to comments that lack one.

    Searches the comment text for each filename (case-insensitive) and uses
    the first match, falling back to the first file. Best-effort: a filename
    that is a substring of another, or that the text mentions in passing,
    will be misattributed.

    Args:
        comments: Comments returned for a combined multi-file diff.
        files: Files that were part of the combined diff, in order.

    Returns:
        Comments with ``file_path`` populated.
    """
    if not files:
        return comments

    mapped: list[AnalysisComment] = []
    for comment in comments:
        if comment.file_path:
            mapped.append(comment)
            continue

        text = comment.text.lower()
        file_path = next(
            (f.filename for f in files if f.filename and f.filename.lower() in text),
            files[0].filename,
        )
        mapped.append(comment.model_copy(update={"file_path": file_path}))

    return mapped


def combine_patches(files: list[PullRequestFile]) -> str:
    """Concatenate patches, each preceded by a ``### <filename>`` marker."""
    return "\n\n".join(f"### {f.filename}\n{f.patch}" for f in files)


class ReviewOrchestrator:
    """Runs the fetch → review → save workflow for pull requests.

    Attributes:
        config: Orchestrator configuration.
    """

    def __init__(
        self,
        source: SourceRepository,
        analyzer: Analyzer,
        store: ReviewStore | None = None,
        config: OrchestratorConfig | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            source: Diff source.
            analyzer: Analysis backend.
            store: Review persistence. Required unless ``config.dry_run``.
            config: Orchestrator configuration. Uses defaults if not provided.

        Raises:
            ValueError: If no store is given outside dry-run mode.
        """
        self.config = config or OrchestratorConfig()
        if store is None and not self.config.dry_run:
            raise ValueError("A review store is required unless dry_run is enabled")

        self._source = source
        self._analyzer = analyzer
        self._store = store
        self._in_flight: dict[tuple[str, str, int], asyncio.Task[ProcessPRResult]] = {}
        # Status callbacks of every caller waiting on a coalesced run
        self._watchers: dict[tuple[str, str, int], list[StatusCallback]] = {}
        self._logger = logger.bind(component="review_orchestrator")

    @property
    def in_flight_count(self) -> int:
        """Number of coalesced requests currently running."""
        return len(self._in_flight)

    async def process_pr(
        self,
        params: ProcessPRParams,
        on_status: StatusCallback | None = None,
    ) -> ProcessPRResult:
        """Review one pull request.

        Never raises; every failure is reported through the result.

        With ``coalesce_in_flight`` enabled, a caller that joins a running
        review receives the status updates issued after it joined.

        Args:
            params: Pull request identity and metadata.
            on_status: Called before each phase starts.

        Returns:
            ProcessPRResult.
        """
        if not self.config.coalesce_in_flight:
            return await self._run(params, on_status)

        key = params.key
        task = self._in_flight.get(key)
        if task is None:
            watchers: list[StatusCallback] = []
            self._watchers[key] = watchers
            task = asyncio.ensure_future(
                self._run(params, lambda update: self._notify(watchers, update))
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda _t: self._forget(key))
        else:
            self._logger.info(
                "coalescing_in_flight_request",
                owner=params.owner,
                repo=params.repo,
                pull_number=params.pull_number,
            )
        if on_status:
            self._watchers[key].append(on_status)

        # Shield so one cancelled waiter does not cancel the shared work
        return await asyncio.shield(task)

    async def process_batch(
        self,
        batch: list[ProcessPRParams],
        on_progress: BatchProgressCallback | None = None,
    ) -> list[ProcessPRResult]:
        """Review pull requests one after another.

        Args:
            batch: Requests to process, in order.
            on_progress: Called with ``(index, total, result)`` after each
                item, ``index`` starting at 1.

        Returns:
            One result per request, in input order.
        """
        results: list[ProcessPRResult] = []
        total = len(batch)

        for index, params in enumerate(batch, start=1):
            result = await self.process_pr(params)
            results.append(result)
            if on_progress:
                on_progress(index, total, result)

        self._logger.info(
            "batch_completed",
            total=total,
            succeeded=sum(1 for r in results if r.success),
        )
        return results

    def _notify(self, watchers: list[StatusCallback], update: StatusUpdate) -> None:
        for callback in list(watchers):
            try:
                callback(update)
            except Exception as e:
                self._logger.warning("status_callback_failed", phase=update.phase.value, error=str(e))

    def _forget(self, key: tuple[str, str, int]) -> None:
        self._in_flight.pop(key, None)
        self._watchers.pop(key, None)

    async def _run(
        self,
        params: ProcessPRParams,
        on_status: StatusCallback | None,
    ) -> ProcessPRResult:
        start_time = time.perf_counter()
        log = self._logger.bind(
            owner=params.owner,
            repo=params.repo,
            pull_number=params.pull_number,
        )

        def report(phase: ReviewPhase, message: str, progress: int | None = None) -> None:
            if not on_status:
                return
            try:
                on_status(StatusUpdate(phase=phase, message=message, progress=progress))
            except Exception as e:
                log.warning("status_callback_failed", phase=phase.value, error=str(e))

        def elapsed_ms() -> float:
            return (time.perf_counter() - start_time) * 1000

        try:
            report(
                ReviewPhase.FETCHING_DIFF,
                f"Fetching diff for {params.owner}/{params.repo}#{params.pull_number}",
                10,
            )
            log.info("fetching_diff")
            diff = await self._fetch_diff_with_retry(params)
            log.info(
                "diff_fetched",
                file_count=len(diff.files),
                total_changes=diff.total_changes,
            )

            report(ReviewPhase.REVIEWING, "Analyzing code changes", 40)
            analysis = await self._analyze(diff, params)
            log.info(
                "analysis_completed",
                score=analysis.score,
                comments=len(analysis.comments),
                approval=analysis.approval,
            )

            report(ReviewPhase.SAVING, "Saving review", 80)
            review_id: str | None = None
            if self.config.dry_run:
                log.info("dry_run_skipping_save")
            else:
                review_id = await self._save(params, analysis)
                log.info("review_saved", review_id=review_id)

            report(ReviewPhase.COMPLETED, "Review completed successfully", 100)
            duration_ms = elapsed_ms()
            log.info("review_completed", review_id=review_id, duration_ms=round(duration_ms, 2))

            return ProcessPRResult(
                success=True,
                review_id=review_id,
                analysis_result=analysis,
                duration_ms=duration_ms,
            )

        except _StageError as e:
            log.error("review_failed", error_code=e.code.value, error=e.message)
            report(ReviewPhase.FAILED, e.message)
            return ProcessPRResult(
                success=False,
                error=e.message,
                error_code=e.code,
                analysis_result=e.analysis_result,
                duration_ms=elapsed_ms(),
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            log.exception("review_unexpected_error", error=message)
            report(ReviewPhase.FAILED, message)
            return ProcessPRResult(
                success=False,
                error=message,
                error_code=ProcessPRErrorCode.UNKNOWN,
                duration_ms=elapsed_ms(),
            )

    async def _fetch_diff_with_retry(self, params: ProcessPRParams) -> PullRequestDiff:
        """Fetch the diff, retrying transient failures with linear backoff.

        Raises:
            _StageError: DIFF_FETCH_FAILED with the last error.
        """
        last_error = "Diff fetch failed"

        for attempt in range(1, self.config.max_retries + 1):
            try:
                return await self._source.fetch_diff(params.owner, params.repo, params.pull_number)
            except Exception as e:
                last_error = str(e) or type(e).__name__

                if not is_retryable(e):
                    self._logger.warning(
                        "diff_fetch_not_retryable",
                        attempt=attempt,
                        error=last_error,
                    )
                    break

                if attempt < self.config.max_retries:
                    delay_ms = self.config.retry_delay_ms * attempt
                    self._logger.warning(
                        "diff_fetch_retrying",
                        attempt=attempt,
                        delay_ms=delay_ms,
                        error=last_error,
                    )
                    await asyncio.sleep(delay_ms / 1000)

        raise _StageError(ProcessPRErrorCode.DIFF_FETCH_FAILED, last_error)

    async def _analyze(self, diff: PullRequestDiff, params: ProcessPRParams) -> AnalysisResult:
        """Submit reviewable patches to the analyzer.

        Raises:
            _StageError: AI_REVIEW_FAILED if the analyzer fails.
        """
        reviewable = [f for f in diff.files if f.patch]

        if not reviewable:
            return AnalysisResult(
                summary=NO_CHANGES_SUMMARY,
                comments=[],
                approval=Approval.APPROVE.value,
                score=10,
            )

        if len(reviewable) == 1:
            diff_text = reviewable[0].patch or ""
            file_path: str | None = reviewable[0].filename
        else:
            diff_text = combine_patches(reviewable)
            file_path = None

        context = AnalysisContext(
            file_path=file_path,
            pr_title=params.pr_title,
            pr_description=params.pr_description,
        )

        try:
            result = await self._analyzer.submit(diff_text, context)
        except Exception as e:
            raise _StageError(
                ProcessPRErrorCode.AI_REVIEW_FAILED, str(e) or type(e).__name__
            ) from e

        return result.model_copy(
            update={"comments": attribute_comments(result.comments, reviewable)}
        )

    def build_review_draft(self, params: ProcessPRParams, analysis: AnalysisResult) -> ReviewDraft:
        """Map an analysis result onto a review record."""
        author_id = params.author_id or DEFAULT_AUTHOR_ID
        author_name = params.author_name or DEFAULT_AUTHOR_NAME

        return ReviewDraft(
            title=params.pr_title or f"PR #{params.pull_number}",
            description=analysis.summary,
            status=map_approval_to_status(analysis.approval),
            source_type="pull_request",
            source_id=f"{params.owner}/{params.repo}#{params.pull_number}",
            source_url=f"https://github.com/{params.owner}/{params.repo}/pull/{params.pull_number}",
            author_id=author_id,
            author_name=author_name,
            comments=[
                CommentDraft(
                    content=format_comment_content(comment),
                    file_path=comment.file_path,
                    line_start=comment.line,
                    line_end=comment.line,
                    severity=map_severity(comment.severity),
                    author_id=author_id,
                    author_name=author_name,
                )
                for comment in analysis.comments
            ],
        )

    async def _save(self, params: ProcessPRParams, analysis: AnalysisResult) -> str:
        """Persist the review.

        Raises:
            _StageError: DB_SAVE_FAILED, carrying the analysis result.
        """
        assert self._store is not None
        draft = self.build_review_draft(params, analysis)

        try:
            stored = await self._store.create_review(draft)
        except Exception as e:
            raise _StageError(
                ProcessPRErrorCode.DB_SAVE_FAILED,
                str(e) or type(e).__name__,
                analysis_result=analysis,
            ) from e

        return stored.id
