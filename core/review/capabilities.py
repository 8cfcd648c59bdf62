"""External capabilities consumed by the pipeline.

The poller and the orchestrator depend only on these abstract classes.
Concrete implementations live in ``integrations.github`` (source),
``core.llm`` (analyzer) and ``core.review.store`` (store).
"""

from abc import ABC, abstractmethod

from core.monitor.models import DetectedPullRequest

from .models import AnalysisContext, AnalysisResult, PullRequestDiff, ReviewDraft, StoredReview


class SourceRepositoryError(Exception):
    """Base exception for source repository failures."""

    pass


class AuthenticationError(SourceRepositoryError):
    """Credentials are missing, invalid or expired."""

    pass


class PermissionDeniedError(SourceRepositoryError):
    """Credentials lack access to the resource."""

    pass


class NotFoundError(SourceRepositoryError):
    """Repository or pull request does not exist."""

    pass


class RateLimitError(SourceRepositoryError):
    """Upstream rate limit exceeded."""

    pass


class AnalyzerError(Exception):
    """Analysis backend failed or returned a malformed verdict."""

    pass


class ReviewStoreError(Exception):
    """Review could not be persisted or read."""

    pass


class SourceRepository(ABC):
    """Lists pull requests and fetches their diffs."""

    @abstractmethod
    async def list_open_pull_requests(self, owner: str, repo: str) -> list[DetectedPullRequest]:
        """List open pull requests of a repository.

        Args:
            owner: Repository owner.
            repo: Repository name.

        Returns:
            Open pull requests, most recently updated first.

        Raises:
            SourceRepositoryError: On any failure, classified by subclass.
        """

    @abstractmethod
    async def fetch_diff(self, owner: str, repo: str, number: int) -> PullRequestDiff:
        """Fetch the changed files of a pull request.

        Args:
            owner: Repository owner.
            repo: Repository name.
            number: Pull request number.

        Returns:
            PullRequestDiff with per-file patches and totals.

        Raises:
            SourceRepositoryError: On any failure, classified by subclass.
        """


class Analyzer(ABC):
    """Turns a diff into a structured verdict."""

    @abstractmethod
    async def submit(self, diff_text: str, context: AnalysisContext) -> AnalysisResult:
        """Analyze a diff.

        Args:
            diff_text: Patch text, or several patches each preceded by a
                ``### <filename>`` marker line.
            context: File and pull request context.

        Returns:
            AnalysisResult.

        Raises:
            AnalyzerError: If the backend fails or its answer is unusable.
        """


class ReviewStore(ABC):
    """Persists review records."""

    @abstractmethod
    async def create_review(self, draft: ReviewDraft) -> StoredReview:
        """Persist a review and its comments.

        Raises:
            ReviewStoreError: If the write fails.
        """

    @abstractmethod
    async def get_review(self, review_id: str) -> StoredReview | None:
        """Fetch a review by id."""

    @abstractmethod
    async def list_reviews(self) -> list[StoredReview]:
        """List all reviews, newest first."""
