"""Tests for the duplicated-job guard."""

from domain import Package
import pytest

from messaging import DedupGuard, Envelope, HandlerResult, InMemoryBroker, PackagePurge, Producer, Router
from messaging.messages import Command
from processor.handlers.base import CommandHandler


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class RecordingHandler(CommandHandler):
    message_type = PackagePurge

    def __init__(self, producer, dedup, results):
        super().__init__(producer, dedup)
        self.results = list(results)
        self.calls = 0

    def process(self, command, envelope):
        self.calls += 1
        return self.results.pop(0)


class TestDedupGuard:
    """Window expiry, eviction and stats."""

    def test_key_expires_after_window(self):
        clock = FakeClock()
        guard = DedupGuard(window=10, clock=clock)
        guard.remember("PackageDiscovery:acme/widget")

        clock.now = 109.9
        assert guard.is_duplicate("PackageDiscovery:acme/widget")
        clock.now = 110.0
        assert not guard.is_duplicate("PackageDiscovery:acme/widget")
        assert guard.stats()["total_entries"] == 0

    def test_keys_are_independent(self):
        """A guard shared by several handlers keeps one entry per key."""
        guard = DedupGuard(window=10, clock=FakeClock())
        guard.remember("PackageDiscovery:acme/widget")
        assert not guard.is_duplicate("PackagePurge:acme/widget")
        assert not guard.is_duplicate("PackageDiscovery:acme/core")

    def test_forget_and_clear(self):
        guard = DedupGuard(window=10, clock=FakeClock())
        guard.remember("a")
        guard.remember("b")
        guard.forget("a")
        assert not guard.is_duplicate("a")
        guard.clear()
        assert not guard.is_duplicate("b")

    def test_oldest_entries_are_evicted(self):
        clock = FakeClock()
        guard = DedupGuard(window=60, clock=clock, max_entries=2)
        for index, key in enumerate(("a", "b", "c")):
            clock.now = 100.0 + index
            guard.remember(key)
        assert not guard.is_duplicate("a")
        assert guard.is_duplicate("b")
        assert guard.is_duplicate("c")

    def test_default_window(self):
        assert DedupGuard().window == 10.0


class TestCommandHandlerGuard:
    """Handlers remember a key only after an accepted job."""

    def _handler(self, results, clock=None):
        router = Router()
        producer = Producer(InMemoryBroker(), router)
        guard = DedupGuard(window=10, clock=clock or FakeClock())
        return RecordingHandler(producer, guard, results)

    def test_second_delivery_is_rejected(self):
        handler = self._handler([HandlerResult.ACCEPT, HandlerResult.ACCEPT])
        command = PackagePurge("acme/widget")

        assert handler.handle(command, None) is HandlerResult.ACCEPT
        assert handler.handle(command, None) is HandlerResult.REJECT
        assert handler.calls == 1

    def test_force_bypasses_guard(self):
        handler = self._handler([HandlerResult.ACCEPT, HandlerResult.ACCEPT])
        handler.handle(PackagePurge("acme/widget"), None)
        assert handler.handle(PackagePurge("acme/widget", force=True), None) is HandlerResult.ACCEPT
        assert handler.calls == 2

    def test_requeued_job_is_retried(self):
        """A REQUEUE outcome does not arm the guard."""
        handler = self._handler([HandlerResult.REQUEUE, HandlerResult.ACCEPT])
        assert handler.handle(PackagePurge("acme/widget"), None) is HandlerResult.REQUEUE
        assert handler.handle(PackagePurge("acme/widget"), None) is HandlerResult.ACCEPT

    def test_window_elapsed_runs_again(self):
        clock = FakeClock()
        handler = self._handler([HandlerResult.ACCEPT, HandlerResult.ACCEPT], clock=clock)
        handler.handle(PackagePurge("acme/widget"), None)
        clock.now += 11
        assert handler.handle(PackagePurge("acme/widget"), None) is HandlerResult.ACCEPT

    def test_key_includes_package_state(self):
        """UpdateDependencyStatus keys carry the latest version."""
        from messaging import UpdateDependencyStatus  # pylint: disable=import-outside-toplevel
        first = UpdateDependencyStatus(Package(name="acme/core", latest_version="1.0.0", id=1))
        second = UpdateDependencyStatus(Package(name="acme/core", latest_version="1.1.0", id=1))
        assert first.dedup_key() != second.dedup_key()

    def test_window_follows_delivery_timestamps(self):
        """Deliveries are compared by their own timestamps, not by processing time."""
        clock = FakeClock(now=5000.0)
        handler = self._handler([HandlerResult.ACCEPT, HandlerResult.ACCEPT], clock=clock)
        command = PackagePurge("acme/widget")

        assert handler.handle(command, Envelope(command, timestamp=100.0)) is HandlerResult.ACCEPT
        assert handler.handle(command, Envelope(command, timestamp=109.0)) is HandlerResult.REJECT
        assert handler.handle(command, Envelope(command, timestamp=110.5)) is HandlerResult.ACCEPT
        assert handler.calls == 2

    def test_version_status_is_never_deduplicated(self):
        from processor.handlers import UpdateVersionStatusHandler  # pylint: disable=import-outside-toplevel
        assert UpdateVersionStatusHandler.deduplicate is False
        assert RecordingHandler.deduplicate is True


class TestGuardTimestamps:
    """Explicit timestamps take precedence over the clock."""

    def test_is_duplicate_at(self):
        guard = DedupGuard(window=10, clock=FakeClock(now=0.0))
        guard.remember("a", at=50.0)
        assert guard.is_duplicate("a", at=59.9)
        assert not guard.is_duplicate("a", at=60.0)


class TestCommandContract:
    """Commands must name their dedup key."""

    def test_command_is_abstract(self):
        with pytest.raises(TypeError):
            Command()  # pylint: disable=abstract-class-instantiated
