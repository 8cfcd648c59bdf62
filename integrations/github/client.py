"""GitHub API client for prwatch.

This module provides an async client for the GitHub REST API that
implements the SourceRepository capability: listing open pull requests
and fetching their changed files. Authentication is via personal access
token or GitHub App installation token.
"""

import time
from datetime import datetime
from typing import Any

import httpx
import jwt
import structlog

from core.monitor.models import DetectedPullRequest, PullRequestState
from core.review.capabilities import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    SourceRepository,
    SourceRepositoryError,
)
from core.review.models import FileStatus, PullRequestDiff, PullRequestFile

from .models import GitHubClientConfig

logger = structlog.get_logger(__name__)

API_VERSION = "2022-11-28"


class GitHubClient(SourceRepository):
    """Async GitHub API client.

    Supports authentication via GitHub App or personal access token.
    Failures are raised as SourceRepositoryError subclasses.
    """

    def __init__(
        self,
        config: GitHubClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            config: Client configuration.
            transport: Optional httpx transport, used by tests.
        """
        self.config = config
        self._transport = transport
        self._logger = logger.bind(component="github_client")
        self._http_client: httpx.AsyncClient | None = None
        self._installation_token: str | None = None
        self._token_expires_at: float = 0

    async def __aenter__(self) -> "GitHubClient":
        """Enter async context."""
        await self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Exit async context."""
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                transport=self._transport,
                headers={
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": API_VERSION,
                },
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _generate_jwt(self) -> str:
        """Generate a JWT for GitHub App authentication.

        Returns:
            JWT token string.
        """
        if not self.config.app_id or not self.config.private_key:
            raise AuthenticationError("GitHub App credentials not configured")

        now = int(time.time())
        payload = {
            "iat": now - 60,  # Issued 60 seconds ago
            "exp": now + 600,  # Expires in 10 minutes
            "iss": str(self.config.app_id),
        }

        token: str = jwt.encode(payload, self.config.private_key, algorithm="RS256")
        return token

    async def _get_installation_token(self) -> str:
        """Get or refresh installation access token.

        Returns:
            Installation access token.
        """
        # Return cached token if still valid
        if self._installation_token and time.time() < self._token_expires_at - 60:
            return self._installation_token

        if not self.config.installation_id:
            raise AuthenticationError("Installation ID not configured")

        client = await self._ensure_client()
        jwt_token = self._generate_jwt()

        response = await client.post(
            f"/app/installations/{self.config.installation_id}/access_tokens",
            headers={"Authorization": f"Bearer {jwt_token}"},
        )
        if response.status_code >= 400:
            raise AuthenticationError(
                f"Authentication failed: could not obtain installation token "
                f"({response.status_code})"
            )

        data = response.json()
        token: str = data["token"]
        self._installation_token = token
        # Token expires in 1 hour, cache expiry time
        self._token_expires_at = time.time() + 3600

        self._logger.debug("obtained_installation_token")
        return token

    async def _get_auth_header(self) -> dict[str, str]:
        """Get authorization header for API requests."""
        if self.config.access_token:
            return {"Authorization": f"Bearer {self.config.access_token}"}
        elif self.config.app_id:
            token = await self._get_installation_token()
            return {"Authorization": f"Bearer {token}"}
        else:
            return {}

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        resource: str = "Resource",
    ) -> httpx.Response:
        """Make an authenticated API request.

        Args:
            method: HTTP method.
            path: API path or absolute URL.
            params: Query parameters.
            resource: Description used in not-found messages.

        Returns:
            The successful response.

        Raises:
            SourceRepositoryError: Classified by status code.
        """
        client = await self._ensure_client()
        headers = await self._get_auth_header()

        try:
            response = await client.request(method, path, params=params, headers=headers)

            if response.status_code == 401 and self.config.app_id and not self.config.access_token:
                # Installation token expired, refresh once
                self._installation_token = None
                headers = await self._get_auth_header()
                response = await client.request(method, path, params=params, headers=headers)
        except httpx.TransportError as e:
            raise SourceRepositoryError(f"Network error: {e}") from e

        if response.status_code >= 400:
            raise self._classify_error(response, resource)

        return response

    def _classify_error(self, response: httpx.Response, resource: str) -> SourceRepositoryError:
        """Map an error response onto the source error taxonomy."""
        status = response.status_code

        if status == 401:
            return AuthenticationError("Authentication failed: invalid or expired GitHub token")
        if status == 403:
            if response.headers.get("x-ratelimit-remaining") == "0":
                return RateLimitError("GitHub API rate limit exceeded")
            return PermissionDeniedError("Permission denied or rate limit exceeded")
        if status == 404:
            return NotFoundError(f"{resource} not found")
        if status == 429:
            return RateLimitError("GitHub API rate limit exceeded")

        return SourceRepositoryError(f"GitHub API error ({status}): {response.text[:500]}")

    async def _get_paginated(
        self,
        path: str,
        params: dict[str, Any],
        resource: str,
    ) -> list[dict[str, Any]]:
        """Follow ``Link: rel=next`` headers and collect every item."""
        items: list[dict[str, Any]] = []
        url: str | None = path
        query: dict[str, Any] | None = {**params, "per_page": self.config.per_page}

        for _ in range(self.config.max_pages):
            if url is None:
                break
            response = await self._request("GET", url, params=query, resource=resource)
            page = response.json()
            if not isinstance(page, list):
                raise SourceRepositoryError(f"Unexpected response for {resource}")
            items.extend(page)

            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            query = None

        return items

    # SourceRepository

    async def list_open_pull_requests(self, owner: str, repo: str) -> list[DetectedPullRequest]:
        """List open pull requests, most recently updated first.

        Args:
            owner: Repository owner.
            repo: Repository name.

        Returns:
            Open pull requests.
        """
        data = await self._get_paginated(
            f"/repos/{owner}/{repo}/pulls",
            params={"state": "open", "sort": "updated", "direction": "desc"},
            resource=f"Repository {owner}/{repo}",
        )
        return [self._parse_pull_request(pr, owner, repo) for pr in data]

    async def fetch_diff(self, owner: str, repo: str, number: int) -> PullRequestDiff:
        """Fetch the changed files of a pull request.

        Args:
            owner: Repository owner.
            repo: Repository name.
            number: PR number.

        Returns:
            PullRequestDiff with patches and totals.
        """
        data = await self._get_paginated(
            f"/repos/{owner}/{repo}/pulls/{number}/files",
            params={},
            resource=f"Pull request {owner}/{repo}#{number}",
        )
        files = [self._parse_file(f) for f in data]

        self._logger.debug(
            "fetched_pull_request_files",
            owner=owner,
            repo=repo,
            pull_number=number,
            files=len(files),
        )
        return PullRequestDiff.from_files(files)

    # Parsing helpers

    def _parse_file(self, data: dict[str, Any]) -> PullRequestFile:
        """Parse file data."""
        try:
            status = FileStatus(data.get("status", "modified"))
        except ValueError:
            status = FileStatus.CHANGED

        return PullRequestFile(
            filename=data["filename"],
            status=status,
            additions=data.get("additions", 0),
            deletions=data.get("deletions", 0),
            changes=data.get("changes", 0),
            patch=data.get("patch"),
        )

    def _parse_pull_request(
        self, data: dict[str, Any], owner: str, repo: str
    ) -> DetectedPullRequest:
        """Parse pull request data from the list endpoint."""
        state = PullRequestState.CLOSED if data.get("state") == "closed" else PullRequestState.OPEN
        user = data.get("user") or {}

        return DetectedPullRequest(
            id=data["id"],
            number=data["number"],
            title=data.get("title", ""),
            body=data.get("body"),
            state=state,
            draft=bool(data.get("draft", False)),
            owner=owner,
            repo=repo,
            html_url=data.get("html_url", ""),
            diff_url=data.get("diff_url") or "",
            head_ref=(data.get("head") or {}).get("ref", ""),
            base_ref=(data.get("base") or {}).get("ref", ""),
            author_login=user.get("login", "unknown"),
            created_at=_parse_timestamp(data["created_at"]),
            updated_at=_parse_timestamp(data["updated_at"]),
        )


def _parse_timestamp(value: str) -> datetime:
    """Parse a GitHub ISO 8601 timestamp (``...Z``)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
