"""Tests for the repository poller."""

import asyncio
from typing import Any
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from core.events import Channel, NotificationBus, PollerErrorEvent, PullRequestDetected
from core.monitor import MonitoredRepository, PollerConfig
from core.monitor.poller import PollerError, RepositoryPoller
from core.review.capabilities import AuthenticationError, RateLimitError

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def bus() -> NotificationBus:
    """Fresh notification bus."""
    return NotificationBus()


@pytest.fixture
def events(bus: NotificationBus) -> dict[Channel, list[Any]]:
    """Payloads published on the poller channels, by channel."""
    sink: dict[Channel, list[Any]] = {
        Channel.NEW_PR: [],
        Channel.UPDATED_PR: [],
        Channel.ERROR: [],
    }
    for channel, received in sink.items():
        bus.subscribe(channel, received.append)
    return sink


@pytest.fixture
def poller(source, repository, bus) -> RepositoryPoller:
    """Poller watching acme/widgets."""
    return RepositoryPoller(source, PollerConfig(repositories=[repository]), bus)


# =============================================================================
# Config Tests
# =============================================================================


class TestPollerConfig:
    """Tests for PollerConfig validation."""

    def test_defaults(self):
        """Test default interval."""
        config = PollerConfig()
        assert config.poll_interval_ms == 60_000
        assert config.repositories == []

    def test_interval_minimum(self):
        """Test intervals under one second are rejected."""
        with pytest.raises(ValidationError):
            PollerConfig(poll_interval_ms=999)

    def test_duplicate_repositories_rejected(self):
        """Test duplicate owner/name pairs are rejected."""
        repo = MonitoredRepository(owner="acme", name="widgets")
        with pytest.raises(ValidationError, match="Duplicate repository"):
            PollerConfig(repositories=[repo, MonitoredRepository(owner="acme", name="widgets")])

    def test_parse_repository(self):
        """Test parsing owner/name strings."""
        repo = MonitoredRepository.parse(" acme/widgets ")
        assert repo.owner == "acme"
        assert repo.name == "widgets"
        assert repo.full_name == "acme/widgets"

    @pytest.mark.parametrize("value", ["acme", "acme/", "/widgets", "a/b/c"])
    def test_parse_repository_invalid(self, value):
        """Test malformed repository strings."""
        with pytest.raises(ValueError):
            MonitoredRepository.parse(value)


# =============================================================================
# Change Detection Tests
# =============================================================================


class TestChangeDetection:
    """Tests for ledger diffing across poll cycles."""

    @pytest.mark.asyncio
    async def test_new_pr_reported_once(self, poller, source, events, pr_factory):
        """Test an unchanged list yields exactly one new_pr over two polls."""
        source.pull_requests["acme/widgets"] = [pr_factory(1)]

        await poller.poll()
        await poller.poll()

        assert len(events[Channel.NEW_PR]) == 1
        assert events[Channel.UPDATED_PR] == []
        payload = events[Channel.NEW_PR][0]
        assert isinstance(payload, PullRequestDetected)
        assert payload.type == Channel.NEW_PR
        assert payload.pr.number == 1

    @pytest.mark.asyncio
    async def test_update_detected(self, poller, source, events, pr_factory):
        """Test a changed updated_at yields one updated_pr and no second new_pr."""
        source.pull_requests["acme/widgets"] = [pr_factory(1)]
        await poller.poll()

        source.pull_requests["acme/widgets"] = [pr_factory(1, updated_minutes=5)]
        await poller.poll()
        await poller.poll()

        assert len(events[Channel.NEW_PR]) == 1
        assert len(events[Channel.UPDATED_PR]) == 1
        assert events[Channel.UPDATED_PR][0].type == Channel.UPDATED_PR

    @pytest.mark.asyncio
    async def test_closed_pr_leaves_ledger_silently(self, poller, source, events, pr_factory):
        """Test a disappeared PR is dropped without an event."""
        source.pull_requests["acme/widgets"] = [pr_factory(1), pr_factory(2)]
        await poller.poll()
        assert poller.tracked_pr_count == 2

        source.pull_requests["acme/widgets"] = [pr_factory(2)]
        await poller.poll()

        assert poller.tracked_pr_count == 1
        assert len(events[Channel.NEW_PR]) == 2
        assert events[Channel.UPDATED_PR] == []
        assert events[Channel.ERROR] == []

    @pytest.mark.asyncio
    async def test_reopened_pr_is_new_again(self, poller, source, events, pr_factory):
        """Test a PR that left and came back is reported as new."""
        source.pull_requests["acme/widgets"] = [pr_factory(1)]
        await poller.poll()
        source.pull_requests["acme/widgets"] = []
        await poller.poll()
        source.pull_requests["acme/widgets"] = [pr_factory(1)]
        await poller.poll()

        assert len(events[Channel.NEW_PR]) == 2

    @pytest.mark.asyncio
    async def test_cleanup_scoped_to_repository(self, source, bus, events, pr_factory):
        """Test cleanup of one repository keeps other repositories' entries."""
        poller = RepositoryPoller(
            source,
            PollerConfig(
                repositories=[
                    MonitoredRepository(owner="acme", name="widgets"),
                    MonitoredRepository(owner="acme", name="gadgets"),
                ]
            ),
            bus,
        )
        source.pull_requests["acme/widgets"] = [pr_factory(1)]
        source.pull_requests["acme/gadgets"] = [pr_factory(1, repo="gadgets")]
        await poller.poll()

        source.pull_requests["acme/widgets"] = []
        await poller.poll()

        assert poller.tracked_pr_count == 1
        assert source.list_calls == ["acme/widgets", "acme/gadgets"] * 2

    @pytest.mark.asyncio
    async def test_clear_seen_reports_everything_again(self, poller, source, events, pr_factory):
        """Test clearing the ledger."""
        source.pull_requests["acme/widgets"] = [pr_factory(1)]
        await poller.poll()

        poller.clear_seen()
        await poller.poll()

        assert len(events[Channel.NEW_PR]) == 2


# =============================================================================
# Error Handling Tests
# =============================================================================


class TestPollErrors:
    """Tests for per-repository failure isolation."""

    @pytest.mark.asyncio
    async def test_fetch_failure_emits_error(self, poller, source, events):
        """Test a failing listing publishes an error scoped to the repository."""
        source.list_errors["acme/widgets"] = AuthenticationError(
            "Authentication failed: invalid or expired GitHub token"
        )

        await poller.poll()

        assert len(events[Channel.ERROR]) == 1
        payload = events[Channel.ERROR][0]
        assert isinstance(payload, PollerErrorEvent)
        assert payload.repository == MonitoredRepository(owner="acme", name="widgets")
        assert "Authentication failed" in payload.error

    @pytest.mark.asyncio
    async def test_failure_does_not_abort_cycle(self, source, bus, events, pr_factory):
        """Test other repositories are still polled after one fails."""
        poller = RepositoryPoller(
            source,
            PollerConfig(
                repositories=[
                    MonitoredRepository(owner="acme", name="broken"),
                    MonitoredRepository(owner="acme", name="widgets"),
                ]
            ),
            bus,
        )
        source.list_errors["acme/broken"] = RateLimitError("GitHub API rate limit exceeded")
        source.pull_requests["acme/widgets"] = [pr_factory(3)]

        await poller.poll()

        assert len(events[Channel.ERROR]) == 1
        assert len(events[Channel.NEW_PR]) == 1

    @pytest.mark.asyncio
    async def test_failure_keeps_ledger(self, poller, source, events, pr_factory):
        """Test a failed poll does not drop the repository's entries."""
        source.pull_requests["acme/widgets"] = [pr_factory(1)]
        await poller.poll()

        source.list_errors["acme/widgets"] = RuntimeError("connection reset")
        await poller.poll()
        del source.list_errors["acme/widgets"]
        await poller.poll()

        assert poller.tracked_pr_count == 1
        assert len(events[Channel.NEW_PR]) == 1


# =============================================================================
# Lifecycle Tests
# =============================================================================


class TestLifecycle:
    """Tests for start, stop and the monitored set."""

    @pytest.mark.asyncio
    async def test_start_requires_repositories(self, source):
        """Test starting with nothing to monitor fails."""
        poller = RepositoryPoller(source, PollerConfig())
        with pytest.raises(PollerError, match="No repositories configured to monitor"):
            await poller.start()
        assert poller.is_running is False

    @pytest.mark.asyncio
    async def test_start_polls_immediately(self, poller, source, events, pr_factory):
        """Test start runs one poll before returning."""
        source.pull_requests["acme/widgets"] = [pr_factory(1)]

        await poller.start()
        try:
            assert poller.is_running is True
            assert len(events[Channel.NEW_PR]) == 1
        finally:
            poller.stop()

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, poller, source):
        """Test a second start does not poll again."""
        await poller.start()
        await poller.start()
        poller.stop()

        assert source.list_calls == ["acme/widgets"]

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, poller):
        """Test stop can be called repeatedly."""
        await poller.start()
        poller.stop()
        poller.stop()
        assert poller.is_running is False

    def test_stop_before_start(self, poller):
        """Test stop on a poller that never started."""
        poller.stop()
        assert poller.is_running is False

    def test_private_bus_by_default(self, source, repository):
        """Test the poller creates its own bus when none is given."""
        poller = RepositoryPoller(source, PollerConfig(repositories=[repository]))
        assert isinstance(poller.bus, NotificationBus)

    def test_add_repository(self, poller):
        """Test adding repositories, ignoring duplicates."""
        assert poller.add_repository(MonitoredRepository(owner="acme", name="gadgets")) is True
        assert poller.add_repository(MonitoredRepository(owner="acme", name="gadgets")) is False
        assert [r.full_name for r in poller.repositories] == ["acme/widgets", "acme/gadgets"]

    @pytest.mark.asyncio
    async def test_remove_repository_purges_ledger(self, poller, source, pr_factory):
        """Test removing a repository forgets its pull requests."""
        source.pull_requests["acme/widgets"] = [pr_factory(1), pr_factory(2)]
        await poller.poll()

        removed = poller.remove_repository(MonitoredRepository(owner="acme", name="widgets"))

        assert removed is True
        assert poller.tracked_pr_count == 0
        assert poller.repositories == []

    def test_remove_unknown_repository(self, poller):
        """Test removing a repository that is not monitored."""
        assert poller.remove_repository(MonitoredRepository(owner="x", name="y")) is False

    def test_repositories_is_a_copy(self, poller):
        """Test callers cannot mutate the monitored set through the property."""
        poller.repositories.clear()
        assert len(poller.repositories) == 1

    @pytest.mark.asyncio
    async def test_overlapping_polls_are_serialized(self, poller, source, pr_factory):
        """Test concurrent polls do not interleave."""
        source.pull_requests["acme/widgets"] = [pr_factory(1)]
        active = 0
        peak = 0
        original = source.list_open_pull_requests

        async def slow_list(owner: str, repo: str):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await original(owner, repo)

        source.list_open_pull_requests = slow_list

        await asyncio.gather(poller.poll(), poller.poll(), poller.poll())

        assert peak == 1
        assert poller.tracked_pr_count == 1

    @pytest.mark.asyncio
    async def test_stop_during_first_poll(self, poller, source, pr_factory):
        """Test stop while start is still polling leaves no schedule behind."""
        source.pull_requests["acme/widgets"] = [pr_factory(1)]
        original = source.list_open_pull_requests

        async def slow_list(owner: str, repo: str):
            await asyncio.sleep(0.05)
            return await original(owner, repo)

        source.list_open_pull_requests = slow_list

        starting = asyncio.create_task(poller.start())
        await asyncio.sleep(0.01)
        poller.stop()
        await starting

        assert poller.is_running is False
        assert poller._task is None

        source.list_open_pull_requests = original
        await poller.start()
        assert poller.is_running is True
        poller.stop()
        assert poller._task is None


# =============================================================================
# Schedule Tests
# =============================================================================


class TestSchedule:
    """Tests for the recurring poll cycle."""

    @pytest.fixture
    def scheduled(self, source, repository, bus) -> RepositoryPoller:
        """Poller with a one-second interval."""
        config = PollerConfig(repositories=[repository], poll_interval_ms=1000)
        return RepositoryPoller(source, config, bus)

    @staticmethod
    def sleeps(cycles: int) -> tuple[list[float], Any]:
        """Sleep replacement that lets ``cycles`` sleeps through, then blocks."""
        real_sleep = asyncio.sleep
        delays: list[float] = []
        blocked = asyncio.Event()

        async def fake_sleep(delay: float, *args: Any) -> None:
            delays.append(delay)
            if len(delays) > cycles:
                await blocked.wait()
            await real_sleep(0)

        return delays, fake_sleep

    @pytest.mark.asyncio
    async def test_polls_again_after_interval(self, scheduled, source):
        """Test each cycle waits poll_interval_ms and polls again."""
        delays, fake_sleep = self.sleeps(cycles=2)
        real_sleep = asyncio.sleep

        with patch("core.monitor.poller.asyncio.sleep", fake_sleep):
            await scheduled.start()
            for _ in range(20):
                await real_sleep(0)
            scheduled.stop()
            await real_sleep(0)

        assert delays == [1.0, 1.0, 1.0]
        assert source.list_calls == ["acme/widgets"] * 3

    @pytest.mark.asyncio
    async def test_unexpected_cycle_failure_is_published(self, scheduled, source, events):
        """Test an exception escaping a cycle becomes an error event and polling continues."""
        original = source.list_open_pull_requests
        calls = 0

        async def flaky_list(owner: str, repo: str):
            nonlocal calls
            calls += 1
            if calls == 2:
                # Not a DetectedPullRequest, so the ledger update fails
                return [object()]
            return await original(owner, repo)

        source.list_open_pull_requests = flaky_list
        delays, fake_sleep = self.sleeps(cycles=2)
        real_sleep = asyncio.sleep

        with patch("core.monitor.poller.asyncio.sleep", fake_sleep):
            await scheduled.start()
            for _ in range(20):
                await real_sleep(0)
            scheduled.stop()
            await real_sleep(0)

        assert calls == 3
        assert len(events[Channel.ERROR]) == 1
        error = events[Channel.ERROR][0]
        assert "ledger_key" in error.error
        assert error.repository is None
