"""Review orchestration for prwatch.

This module provides the orchestrator that converts a pull request into a
persisted review, the capabilities it consumes, and an in-memory store.
"""

from core.review.capabilities import (
    Analyzer,
    AnalyzerError,
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ReviewStore,
    ReviewStoreError,
    SourceRepository,
    SourceRepositoryError,
)
from core.review.models import (
    AnalysisComment,
    AnalysisContext,
    AnalysisResult,
    Approval,
    CommentDraft,
    CommentSeverity,
    FileStatus,
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
    StoredReview,
)
from core.review.orchestrator import ReviewOrchestrator
from core.review.store import InMemoryReviewStore

__all__ = [
    # Orchestrator
    "ReviewOrchestrator",
    "InMemoryReviewStore",
    # Capabilities
    "Analyzer",
    "AnalyzerError",
    "AuthenticationError",
    "NotFoundError",
    "PermissionDeniedError",
    "RateLimitError",
    "ReviewStore",
    "ReviewStoreError",
    "SourceRepository",
    "SourceRepositoryError",
    # Models
    "AnalysisComment",
    "AnalysisContext",
    "AnalysisResult",
    "Approval",
    "CommentDraft",
    "CommentSeverity",
    "FileStatus",
    "OrchestratorConfig",
    "ProcessPRErrorCode",
    "ProcessPRParams",
    "ProcessPRResult",
    "PullRequestDiff",
    "PullRequestFile",
    "ReviewDraft",
    "ReviewPhase",
    "ReviewStatus",
    "StatusUpdate",
    "StoredReview",
]
