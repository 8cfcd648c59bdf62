"""Pytest configuration and shared fixtures for prwatch tests.

This module provides in-memory fakes for the source repository, the
analyzer and the review store, plus factories for pull requests, diffs
and signed webhook bodies.
"""

import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from core.monitor.models import DetectedPullRequest, MonitoredRepository
from core.review.capabilities import Analyzer, SourceRepository
from core.review.models import (
    AnalysisContext,
    AnalysisResult,
    PullRequestDiff,
    PullRequestFile,
)
from core.review.store import InMemoryReviewStore
from integrations.github.signature import compute_signature

WEBHOOK_SECRET = "It's a Secret to Everybody"

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeSource(SourceRepository):
    """Source repository backed by dicts and queued outcomes."""

    def __init__(self) -> None:
        self.pull_requests: dict[str, list[DetectedPullRequest]] = {}
        self.list_errors: dict[str, Exception] = {}
        self.diff_outcomes: list[PullRequestDiff | Exception] = []
        self.default_diff = PullRequestDiff()
        self.list_calls: list[str] = []
        self.fetch_calls: list[tuple[str, str, int]] = []

    async def list_open_pull_requests(self, owner: str, repo: str) -> list[DetectedPullRequest]:
        full_name = f"{owner}/{repo}"
        self.list_calls.append(full_name)
        if full_name in self.list_errors:
            raise self.list_errors[full_name]
        return list(self.pull_requests.get(full_name, []))

    async def fetch_diff(self, owner: str, repo: str, number: int) -> PullRequestDiff:
        self.fetch_calls.append((owner, repo, number))
        if self.diff_outcomes:
            outcome = self.diff_outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return self.default_diff


class FakeAnalyzer(Analyzer):
    """Analyzer returning a fixed result or raising a fixed error."""

    def __init__(
        self,
        result: AnalysisResult | None = None,
        error: Exception | None = None,
    ) -> None:
        self.result = result or AnalysisResult(
            summary="Looks reasonable",
            comments=[],
            approval="comment",
            score=7,
        )
        self.error = error
        self.calls: list[tuple[str, AnalysisContext]] = []

    async def submit(self, diff_text: str, context: AnalysisContext) -> AnalysisResult:
        self.calls.append((diff_text, context))
        if self.error is not None:
            raise self.error
        return self.result


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_pr(
    number: int = 1,
    owner: str = "acme",
    repo: str = "widgets",
    updated_minutes: int = 0,
    **overrides: Any,
) -> DetectedPullRequest:
    """Build a DetectedPullRequest updated ``updated_minutes`` after BASE_TIME."""
    fields: dict[str, Any] = {
        "id": 1000 + number,
        "number": number,
        "title": f"Change #{number}",
        "body": "Description",
        "owner": owner,
        "repo": repo,
        "html_url": f"https://github.com/{owner}/{repo}/pull/{number}",
        "author_login": "octocat",
        "created_at": BASE_TIME,
        "updated_at": BASE_TIME + timedelta(minutes=updated_minutes),
    }
    fields.update(overrides)
    return DetectedPullRequest(**fields)


def make_diff(*files: tuple[str, str | None]) -> PullRequestDiff:
    """Build a diff from ``(filename, patch)`` pairs."""
    return PullRequestDiff.from_files(
        [
            PullRequestFile(filename=name, patch=patch, additions=1, deletions=0, changes=1)
            for name, patch in files
        ]
    )


def signed_body(payload: dict[str, Any], secret: str = WEBHOOK_SECRET) -> tuple[bytes, str]:
    """Serialize a payload and sign it."""
    body = json.dumps(payload).encode("utf-8")
    return body, compute_signature(body, secret)


def pull_request_payload(
    action: str = "synchronize",
    number: int = 7,
    owner: str = "acme",
    name: str = "widgets",
) -> dict[str, Any]:
    """Minimal ``pull_request`` webhook payload."""
    return {
        "action": action,
        "number": number,
        "pull_request": {
            "number": number,
            "title": "Add caching",
            "body": "Caches lookups",
            "user": {"id": 42, "login": "octocat"},
        },
        "repository": {
            "name": name,
            "full_name": f"{owner}/{name}",
            "owner": {"login": owner},
        },
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def source() -> FakeSource:
    """Empty fake source repository."""
    return FakeSource()


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    """Fake analyzer with a neutral verdict."""
    return FakeAnalyzer()


@pytest.fixture
def store() -> InMemoryReviewStore:
    """Empty in-memory review store."""
    return InMemoryReviewStore()


@pytest.fixture
def repository() -> MonitoredRepository:
    """The default monitored repository."""
    return MonitoredRepository(owner="acme", name="widgets")


@pytest.fixture
def pr_factory() -> Callable[..., DetectedPullRequest]:
    """Factory for detected pull requests."""
    return make_pr


@pytest.fixture
def diff_factory() -> Callable[..., PullRequestDiff]:
    """Factory for pull request diffs."""
    return make_diff


@pytest.fixture
def sign() -> Callable[..., tuple[bytes, str]]:
    """Serialize and sign a webhook payload."""
    return signed_body


@pytest.fixture
def pr_payload() -> Callable[..., dict[str, Any]]:
    """Factory for ``pull_request`` webhook payloads."""
    return pull_request_payload


@pytest.fixture
def webhook_secret() -> str:
    """Secret the signing fixture uses."""
    return WEBHOOK_SECRET
