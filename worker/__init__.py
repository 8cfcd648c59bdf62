"""Background worker for prwatch.

This module wires the repository poller to the review orchestrator.
"""

from worker.worker import ReviewWorker

__all__ = ["ReviewWorker"]
