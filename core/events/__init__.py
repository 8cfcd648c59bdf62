"""Notification bus for prwatch.

This module provides the in-process publish/subscribe mechanism that
decouples change detection from review processing.
"""

from core.events.bus import NotificationBus, Subscriber
from core.events.models import (
    Channel,
    PollerErrorEvent,
    PullRequestDetected,
    PullRequestEventNotice,
    ReviewCompleted,
    WebhookDelivery,
    WebhookReceived,
)

__all__ = [
    # Bus
    "NotificationBus",
    "Subscriber",
    # Models
    "Channel",
    "PollerErrorEvent",
    "PullRequestDetected",
    "PullRequestEventNotice",
    "ReviewCompleted",
    "WebhookDelivery",
    "WebhookReceived",
]
