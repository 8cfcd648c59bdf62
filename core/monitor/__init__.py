"""Repository monitoring for prwatch.

This package polls repositories for open pull requests and publishes
``new_pr``/``updated_pr`` notifications. The poller itself lives in
``core.monitor.poller``; only the data models are re-exported here
because ``core.review.capabilities`` depends on them.
"""

from core.monitor.models import (
    DetectedPullRequest,
    MonitoredRepository,
    PollerConfig,
    PullRequestState,
)

__all__ = [
    "DetectedPullRequest",
    "MonitoredRepository",
    "PollerConfig",
    "PullRequestState",
]
