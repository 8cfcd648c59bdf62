"""Settings management for prwatch.

This module provides centralized configuration management using pydantic-settings.
All configuration is loaded from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.monitor.models import MonitoredRepository, PollerConfig
from core.review.models import OrchestratorConfig
from integrations.github.models import GitHubClientConfig, WebhookConfig, WebhookEventType


def _split_csv(value: str | None) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        app_name: Name of the application.
        app_version: Application version.
        log_level: Logging level.
        api_prefix: API route prefix.

        github_token: Personal access token for the GitHub API.
        github_api_url: GitHub API base URL.
        github_app_id: GitHub App ID (alternative to a token).
        github_private_key: GitHub App private key.
        github_installation_id: GitHub App installation ID.

        github_webhook_secret: Shared secret for webhook signatures.
        webhook_allowed_events: Comma-separated event kinds, empty for all.
        webhook_allowed_repositories: Comma-separated owner/name, empty for all.
        webhook_auto_process: Review pull requests on webhook delivery.
        webhook_max_payload_bytes: Largest accepted webhook body.
        webhook_rate_limit_per_minute: Webhook requests allowed per client.

        pr_monitor_repositories: Comma-separated owner/name to poll.
        pr_monitor_poll_interval_ms: Polling interval.

        review_dry_run: Skip persisting reviews.
        review_max_retries: Diff fetch attempts.
        review_retry_delay_ms: Base delay between diff fetch attempts.

        anthropic_api_key: Anthropic API key for Claude.
        analyzer_model: Claude model used for reviews.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="prwatch", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    log_level: str = Field(default="INFO", description="Logging level")
    api_prefix: str = Field(default="/api", description="API route prefix")

    # GitHub API access
    github_token: str | None = Field(default=None, description="GitHub personal access token")
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub API base URL",
    )
    github_app_id: int | None = Field(default=None, description="GitHub App ID")
    github_private_key: str | None = Field(default=None, description="GitHub App private key")
    github_installation_id: int | None = Field(
        default=None,
        description="GitHub App installation ID",
    )

    # Webhook ingress
    github_webhook_secret: str | None = Field(
        default=None,
        description="Shared secret for webhook signatures",
    )
    webhook_allowed_events: str = Field(
        default="",
        description="Comma-separated event kinds, empty allows all",
    )
    webhook_allowed_repositories: str = Field(
        default="",
        description="Comma-separated owner/name, empty allows all",
    )
    webhook_auto_process: bool = Field(
        default=True,
        description="Review pull requests on webhook delivery",
    )
    webhook_max_payload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted webhook body in bytes",
    )
    webhook_rate_limit_per_minute: int = Field(
        default=100,
        description="Webhook requests allowed per client per minute",
    )

    # Repository poller
    pr_monitor_repositories: str = Field(
        default="",
        description="Comma-separated owner/name to poll",
    )
    pr_monitor_poll_interval_ms: int = Field(
        default=60_000,
        description="Polling interval in milliseconds",
    )

    # Review orchestration
    review_dry_run: bool = Field(default=False, description="Skip persisting reviews")
    review_max_retries: int = Field(default=3, description="Diff fetch attempts")
    review_retry_delay_ms: int = Field(
        default=1000,
        description="Base delay between diff fetch attempts",
    )

    # Analyzer
    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key for Claude",
    )
    analyzer_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model used for reviews",
    )

    def monitored_repositories(self) -> list[MonitoredRepository]:
        """Parse ``pr_monitor_repositories``.

        Raises:
            ValueError: If an entry is not ``owner/name``.
        """
        return [MonitoredRepository.parse(item) for item in _split_csv(self.pr_monitor_repositories)]

    def poller_config(self) -> PollerConfig:
        """Build the repository poller configuration."""
        return PollerConfig(
            repositories=self.monitored_repositories(),
            poll_interval_ms=self.pr_monitor_poll_interval_ms,
        )

    def webhook_config(self) -> WebhookConfig:
        """Build the webhook ingress configuration.

        Raises:
            ValueError: If the webhook secret is not set or an event kind is unknown.
        """
        if not self.github_webhook_secret:
            raise ValueError("GITHUB_WEBHOOK_SECRET is not configured")

        events = _split_csv(self.webhook_allowed_events)
        repositories = _split_csv(self.webhook_allowed_repositories)

        return WebhookConfig(
            secret=self.github_webhook_secret,
            allowed_events=(
                frozenset(WebhookEventType(e) for e in events)
                if events
                else frozenset(WebhookEventType)
            ),
            allowed_repositories=frozenset(repositories) if repositories else None,
            auto_process=self.webhook_auto_process,
        )

    def orchestrator_config(self) -> OrchestratorConfig:
        """Build the review orchestrator configuration."""
        return OrchestratorConfig(
            dry_run=self.review_dry_run,
            max_retries=self.review_max_retries,
            retry_delay_ms=self.review_retry_delay_ms,
        )

    def github_client_config(self) -> GitHubClientConfig:
        """Build the GitHub client configuration."""
        return GitHubClientConfig(
            app_id=self.github_app_id,
            private_key=self.github_private_key,
            installation_id=self.github_installation_id,
            access_token=self.github_token,
            base_url=self.github_api_url,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Uses lru_cache to ensure settings are loaded once and reused.

    Returns:
        The application settings instance.
    """
    return Settings()
