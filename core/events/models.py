"""Pydantic models for in-process notifications.

This module defines the notification channels and the payloads that
are published on them by the poller, the webhook ingress and the worker.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from core.monitor.models import DetectedPullRequest, MonitoredRepository
from core.review.models import ProcessPRResult


class Channel(str, Enum):
    """Named notification channels."""

    NEW_PR = "new_pr"
    UPDATED_PR = "updated_pr"
    ERROR = "error"
    WEBHOOK_RECEIVED = "webhook_received"
    PR_EVENT = "pr_event"
    REVIEW_COMPLETED = "review_completed"


class WebhookDelivery(BaseModel):
    """One authenticated inbound webhook notification.

    Attributes:
        type: Event kind from the event-type header.
        id: Delivery identifier.
        payload: Parsed JSON body.
        delivered_at: Time the ingress accepted the delivery.
        is_retry: Whether this delivery id was seen before.
        attempt: How many times this delivery id has been seen.
    """

    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Event kind")
    id: str = Field(..., description="Delivery identifier")
    payload: dict[str, Any] = Field(default_factory=dict, description="Parsed body")
    delivered_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Acceptance time"
    )
    is_retry: bool = Field(default=False, description="Seen before")
    attempt: int = Field(default=1, ge=1, description="Sighting count")


class PullRequestDetected(BaseModel):
    """Payload for ``new_pr`` and ``updated_pr``."""

    model_config = ConfigDict(frozen=True)

    type: Channel = Field(..., description="NEW_PR or UPDATED_PR")
    pr: DetectedPullRequest = Field(..., description="Detected pull request")


class PollerErrorEvent(BaseModel):
    """Payload for poller ``error`` notifications."""

    model_config = ConfigDict(frozen=True)

    error: str = Field(..., description="Error message")
    repository: MonitoredRepository | None = Field(None, description="Failing repository")


class WebhookReceived(BaseModel):
    """Payload for ``webhook_received``."""

    model_config = ConfigDict(frozen=True)

    delivery: WebhookDelivery = Field(..., description="Accepted delivery")


class PullRequestEventNotice(BaseModel):
    """Payload for ``pr_event``."""

    model_config = ConfigDict(frozen=True)

    delivery_id: str = Field(..., description="Delivery identifier")
    event_type: str = Field(..., description="Event kind")
    action: str | None = Field(None, description="Event action")
    repository: str | None = Field(None, description="Repository full name")
    pull_number: int | None = Field(None, description="Pull request number")
    triggers_review: bool = Field(default=False, description="Action is review-triggering")


class ReviewCompleted(BaseModel):
    """Payload for ``review_completed``."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., description="Repository owner")
    repo: str = Field(..., description="Repository name")
    pull_number: int = Field(..., description="Pull request number")
    result: ProcessPRResult = Field(..., description="Orchestrator outcome")
