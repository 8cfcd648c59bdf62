"""GitHub integration for prwatch.

This module provides:
- GitHub API client implementing the source repository capability
- Webhook signature verification
- Webhook ingress that dispatches pull request events for review
"""

from .client import GitHubClient
from .models import (
    PR_RELATED_EVENTS,
    REVIEW_TRIGGER_ACTIONS,
    GitHubClientConfig,
    PullRequestAction,
    SignatureVerification,
    WebhookConfig,
    WebhookEventType,
    WebhookResult,
)
from .signature import compute_signature, verify_signature
from .webhooks import WebhookIngress

__all__ = [
    # Client
    "GitHubClient",
    "GitHubClientConfig",
    # Signature
    "SignatureVerification",
    "compute_signature",
    "verify_signature",
    # Webhooks
    "WebhookIngress",
    "WebhookConfig",
    "WebhookEventType",
    "WebhookResult",
    "PullRequestAction",
    "REVIEW_TRIGGER_ACTIONS",
    "PR_RELATED_EVENTS",
]
