"""Pydantic models for the GitHub integration.

This module defines the webhook event kinds the ingress understands,
the review-triggering pull request actions, and the configuration and
result records of webhook handling and API access.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from core.review.models import ProcessPRResult


class WebhookEventType(str, Enum):
    """GitHub webhook event kinds known to the ingress."""

    PING = "ping"
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    PULL_REQUEST_REVIEW = "pull_request_review"
    PULL_REQUEST_REVIEW_COMMENT = "pull_request_review_comment"
    ISSUE_COMMENT = "issue_comment"
    INSTALLATION = "installation"

    @classmethod
    def classify(cls, value: str | None) -> "WebhookEventType | None":
        """Map an event-type header to a known kind, or None."""
        try:
            return cls(value)
        except ValueError:
            return None


class PullRequestAction(str, Enum):
    """Pull request webhook actions that trigger a review."""

    OPENED = "opened"
    EDITED = "edited"
    SYNCHRONIZE = "synchronize"
    REOPENED = "reopened"
    READY_FOR_REVIEW = "ready_for_review"


REVIEW_TRIGGER_ACTIONS = frozenset(a.value for a in PullRequestAction)

# Kinds that concern a pull request and are announced on ``pr_event``
PR_RELATED_EVENTS = frozenset(
    {
        WebhookEventType.PULL_REQUEST,
        WebhookEventType.PULL_REQUEST_REVIEW,
        WebhookEventType.PULL_REQUEST_REVIEW_COMMENT,
    }
)


class SignatureVerification(BaseModel):
    """Outcome of webhook signature verification."""

    model_config = ConfigDict(frozen=True)

    valid: bool = Field(..., description="Whether the signature matched")
    error: str | None = Field(None, description="Failure reason")


class WebhookConfig(BaseModel):
    """Configuration for the webhook ingress."""

    model_config = ConfigDict(frozen=True)

    secret: str = Field(..., min_length=1, description="Shared webhook secret")
    allowed_events: frozenset[WebhookEventType] = Field(
        default=frozenset(WebhookEventType),
        description="Event kinds accepted for processing",
    )
    allowed_repositories: frozenset[str] | None = Field(
        None, description="owner/name allow-list, None allows all"
    )
    auto_process: bool = Field(
        default=True, description="Run the orchestrator for review-triggering events"
    )
    delivery_history_size: int = Field(
        default=1000, ge=0, description="Delivery ids remembered for retry detection"
    )


class WebhookResult(BaseModel):
    """Result of handling one webhook request."""

    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="Whether the ingress accepted the event")
    event_id: str = Field(..., description="Delivery identifier")
    event_type: str = Field(..., description="Event kind header")
    action: str | None = Field(None, description="Event action")
    repository: str | None = Field(None, description="Repository full name")
    processing_time_ms: float = Field(default=0.0, description="Handling time")
    error: str | None = Field(None, description="Failure reason")
    review_result: ProcessPRResult | None = Field(
        None, description="Orchestrator outcome when a review ran"
    )


class GitHubClientConfig(BaseModel):
    """Configuration for the GitHub client."""

    model_config = ConfigDict(frozen=True)

    # GitHub App authentication
    app_id: int | None = Field(None, description="GitHub App ID")
    private_key: str | None = Field(None, description="GitHub App private key (PEM)")
    installation_id: int | None = Field(None, description="Installation ID")

    # Personal access token authentication
    access_token: str | None = Field(None, description="Personal access token")

    # API settings
    base_url: str = Field(default="https://api.github.com", description="API base URL")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    per_page: int = Field(default=100, ge=1, le=100, description="Page size")
    max_pages: int = Field(default=30, ge=1, description="Pagination limit")
