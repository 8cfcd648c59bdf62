"""Pydantic models for review orchestration.

This module defines the diff, analysis and persistence records that flow
through the review orchestrator, together with its request/response pair
and configuration.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FileStatus(str, Enum):
    """File change status in a pull request."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class PullRequestFile(BaseModel):
    """One changed file of a pull request."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(..., description="File path")
    status: FileStatus = Field(default=FileStatus.MODIFIED, description="Change status")
    additions: int = Field(default=0, description="Lines added")
    deletions: int = Field(default=0, description="Lines deleted")
    changes: int = Field(default=0, description="Total changes")
    patch: str | None = Field(None, description="Diff patch, absent for binary files")


class PullRequestDiff(BaseModel):
    """All changed files of a pull request plus totals."""

    model_config = ConfigDict(frozen=True)

    files: list[PullRequestFile] = Field(default_factory=list, description="Changed files")
    total_additions: int = Field(default=0, description="Lines added")
    total_deletions: int = Field(default=0, description="Lines deleted")
    total_changes: int = Field(default=0, description="Total changes")

    @classmethod
    def from_files(cls, files: list[PullRequestFile]) -> "PullRequestDiff":
        """Build a diff and compute its totals."""
        return cls(
            files=files,
            total_additions=sum(f.additions for f in files),
            total_deletions=sum(f.deletions for f in files),
            total_changes=sum(f.changes for f in files),
        )


class Approval(str, Enum):
    """Analyzer verdicts."""

    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"
    COMMENT = "comment"


class ReviewStatus(str, Enum):
    """Status of a persisted review."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    CLOSED = "CLOSED"


class CommentSeverity(str, Enum):
    """Severity of a persisted review comment."""

    INFO = "INFO"
    SUGGESTION = "SUGGESTION"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AnalysisContext(BaseModel):
    """Context submitted to the analyzer alongside a diff."""

    model_config = ConfigDict(frozen=True)

    file_path: str | None = Field(None, description="File under review, single-file diffs")
    pr_title: str | None = Field(None, description="Pull request title")
    pr_description: str | None = Field(None, description="Pull request description")


class AnalysisComment(BaseModel):
    """A single finding returned by the analyzer.

    ``severity`` is kept as the analyzer reported it; normalization happens
    when the comment is persisted.
    """

    model_config = ConfigDict(frozen=True)

    line: int = Field(default=0, description="Line number in the diff")
    severity: str = Field(default="INFO", description="Reported severity")
    category: str = Field(default="correctness", description="Finding category")
    text: str = Field(..., description="Comment text")
    suggestion: str | None = Field(None, description="Suggested fix")
    file_path: str | None = Field(None, description="Attributed file")


class AnalysisResult(BaseModel):
    """Structured verdict returned by the analyzer."""

    model_config = ConfigDict(frozen=True)

    summary: str = Field(..., description="Overall assessment")
    comments: list[AnalysisComment] = Field(default_factory=list, description="Findings")
    approval: str = Field(default=Approval.COMMENT.value, description="Verdict")
    score: int = Field(default=5, ge=1, le=10, description="Overall score")
    model: str | None = Field(None, description="Model that produced the verdict")
    duration_ms: float = Field(default=0.0, description="Analysis time")


class CommentDraft(BaseModel):
    """A review comment ready to be persisted."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(..., description="Comment body")
    file_path: str | None = Field(None, description="File path")
    line_start: int = Field(default=0, description="First line")
    line_end: int = Field(default=0, description="Last line")
    severity: CommentSeverity = Field(default=CommentSeverity.INFO, description="Severity")
    author_id: str = Field(..., description="Author identifier")
    author_name: str = Field(..., description="Author display name")


class ReviewDraft(BaseModel):
    """A review ready to be persisted."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., description="Review title")
    description: str = Field(default="", description="Review summary")
    status: ReviewStatus = Field(..., description="Review status")
    source_type: str = Field(default="pull_request", description="Kind of reviewed source")
    source_id: str = Field(..., description="owner/repo#number")
    source_url: str = Field(..., description="Pull request URL")
    author_id: str = Field(..., description="Author identifier")
    author_name: str = Field(..., description="Author display name")
    comments: list[CommentDraft] = Field(default_factory=list, description="Comments")


class StoredReview(ReviewDraft):
    """A persisted review."""

    id: str = Field(..., description="Generated identifier")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Creation time"
    )


class ReviewPhase(str, Enum):
    """Orchestrator phases, in execution order."""

    FETCHING_DIFF = "fetching_diff"
    REVIEWING = "reviewing"
    SAVING = "saving"
    COMPLETED = "completed"
    FAILED = "failed"


class StatusUpdate(BaseModel):
    """Progress report passed to the status callback."""

    model_config = ConfigDict(frozen=True)

    phase: ReviewPhase = Field(..., description="Phase about to start")
    message: str = Field(..., description="Human-readable message")
    progress: int | None = Field(None, ge=0, le=100, description="Percent complete")


class ProcessPRErrorCode(str, Enum):
    """Machine-readable failure codes of ``process_pr``."""

    DIFF_FETCH_FAILED = "DIFF_FETCH_FAILED"
    AI_REVIEW_FAILED = "AI_REVIEW_FAILED"
    DB_SAVE_FAILED = "DB_SAVE_FAILED"
    UNKNOWN = "UNKNOWN"


class ProcessPRParams(BaseModel):
    """Identifies the pull request to review."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., min_length=1, description="Repository owner")
    repo: str = Field(..., min_length=1, description="Repository name")
    pull_number: int = Field(..., ge=1, description="Pull request number")
    pr_title: str | None = Field(None, description="Title for the review record")
    pr_description: str | None = Field(None, description="Description passed to analysis")
    author_id: str | None = Field(None, description="Author id for the review record")
    author_name: str | None = Field(None, description="Author display name")

    @property
    def key(self) -> tuple[str, str, int]:
        """Target identity used for in-flight coalescing."""
        return (self.owner, self.repo, self.pull_number)


class ProcessPRResult(BaseModel):
    """Outcome of one orchestration."""

    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="Whether the review completed")
    review_id: str | None = Field(None, description="Persisted review id")
    analysis_result: AnalysisResult | None = Field(None, description="Analyzer verdict")
    error: str | None = Field(None, description="Failure message")
    error_code: ProcessPRErrorCode | None = Field(None, description="Failure code")
    duration_ms: float = Field(..., ge=0, description="Time from entry to return")

    @model_validator(mode="after")
    def _success_excludes_error(self) -> "ProcessPRResult":
        if self.success and (self.error is not None or self.error_code is not None):
            raise ValueError("successful result cannot carry an error")
        if not self.success and (self.error is None or self.error_code is None):
            raise ValueError("failed result requires error and error_code")
        return self


class OrchestratorConfig(BaseModel):
    """Configuration for the review orchestrator."""

    model_config = ConfigDict(frozen=True)

    dry_run: bool = Field(default=False, description="Skip persistence")
    max_retries: int = Field(default=3, ge=1, description="Diff fetch attempts")
    retry_delay_ms: int = Field(default=1000, ge=0, description="Base retry delay")
    coalesce_in_flight: bool = Field(
        default=False, description="Share one outcome between concurrent identical requests"
    )
