"""Pydantic models for repository polling.

This module defines the monitored repository set, the pull request
records produced by a poll, and the poller configuration.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PullRequestState(str, Enum):
    """Pull request states reported by the list endpoint."""

    OPEN = "open"
    CLOSED = "closed"


class MonitoredRepository(BaseModel):
    """A repository watched by the poller."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., min_length=1, description="Repository owner")
    name: str = Field(..., min_length=1, description="Repository name")

    @property
    def full_name(self) -> str:
        """Owner and name joined as ``owner/name``."""
        return f"{self.owner}/{self.name}"

    @property
    def ledger_prefix(self) -> str:
        """Prefix shared by all ledger keys of this repository."""
        return f"{self.owner}/{self.name}/"

    @classmethod
    def parse(cls, value: str) -> "MonitoredRepository":
        """Parse an ``owner/name`` string.

        Raises:
            ValueError: If the string is not of the form ``owner/name``.
        """
        owner, sep, name = value.strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Invalid repository '{value}': expected owner/name")
        return cls(owner=owner, name=name)


class DetectedPullRequest(BaseModel):
    """An open pull request as seen by one poll."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="PR ID")
    number: int = Field(..., description="PR number within the repository")
    title: str = Field(..., description="PR title")
    body: str | None = Field(None, description="PR description")
    state: PullRequestState = Field(default=PullRequestState.OPEN, description="PR state")
    draft: bool = Field(default=False, description="Is draft")
    owner: str = Field(..., description="Repository owner")
    repo: str = Field(..., description="Repository name")
    html_url: str = Field(..., description="PR URL")
    diff_url: str = Field(default="", description="Diff URL")
    head_ref: str = Field(default="", description="Head branch")
    base_ref: str = Field(default="", description="Base branch")
    author_login: str = Field(default="unknown", description="PR author")
    created_at: datetime = Field(..., description="Creation time")
    updated_at: datetime = Field(..., description="Last update time")

    @property
    def ledger_key(self) -> str:
        """Key of this PR in the seen-PR ledger."""
        return f"{self.owner}/{self.repo}/{self.number}"


class PollerConfig(BaseModel):
    """Configuration for the repository poller."""

    model_config = ConfigDict(frozen=True)

    repositories: list[MonitoredRepository] = Field(
        default_factory=list, description="Repositories to monitor"
    )
    poll_interval_ms: int = Field(
        default=60_000, ge=1_000, description="Milliseconds between poll cycles"
    )

    @field_validator("repositories")
    @classmethod
    def _no_duplicates(cls, value: list[MonitoredRepository]) -> list[MonitoredRepository]:
        seen: set[tuple[str, str]] = set()
        for repo in value:
            key = (repo.owner, repo.name)
            if key in seen:
                raise ValueError(f"Duplicate repository: {repo.full_name}")
            seen.add(key)
        return value
