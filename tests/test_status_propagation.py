"""Tests for the status cascade: latest version, dependency and version status."""

from unittest.mock import MagicMock

import pytest

from domain import Dependency, DependencyStatus, Package, Version, VersionStatus
from messaging import (
    CheckDependencyStatus,
    DedupGuard,
    DependencyUpdated,
    HandlerResult,
    PackageDiscovery,
    PackagePurge,
    PackageUpdated,
    UpdateDependencyStatus,
    UpdateVersionStatus,
    VersionCreated,
)
from processor.app import build_application
from processor.handlers import UpdateDependencyStatusHandler
from processor.listeners import PackageUpdatedListener, VersionCreatedListener


def _registry(packages):
    """Mock client serving {name: [releases]} for tags and nothing for branches."""
    client = MagicMock()

    def get_metadata_v2(view, mirror=None):
        if view.endswith("~dev"):
            return []
        return [dict(record, name=view) for record in packages[view]]

    client.get_metadata_v2.side_effect = get_metadata_v2
    return client


def _run(app, command):
    app.producer.send_command(command)
    return app.consumer.process(app.broker.get(app.router.queue_for(type(command))))


def _queued(app, queue):
    """Decoded messages waiting on queue (drained)."""
    from messaging import Envelope  # pylint: disable=import-outside-toplevel
    messages = []
    while True:
        delivery = app.broker.get(queue)
        if delivery is None:
            return messages
        messages.append(Envelope.from_delivery(delivery).message)
        app.broker.ack(delivery)


@pytest.fixture
def registry():
    return _registry({
        "acme/core": [{"version": "1.5.0", "version_normalized": "1.5.0.0"}],
        "acme/app": [
            {"version": "1.0.0", "version_normalized": "1.0.0.0", "require": {"acme/core": "^1.0"}},
            {"version": "0.9.0", "version_normalized": "0.9.0.0", "require": {"acme/core": "^0.5"}},
        ],
    })


class TestFullCascade:
    """Discovery followed by a full drain settles every status."""

    def test_statuses_settle(self, registry):
        app = build_application(client=registry)
        app.store.packages.create("acme/app")
        app.store.packages.create("acme/core")
        app.producer.send_command(PackageDiscovery("acme/app"))
        app.producer.send_command(PackageDiscovery("acme/core"))

        assert app.drain() > 0

        assert app.store.packages.get("acme/core").latest_version == "1.5.0"
        app_pkg = app.store.packages.get("acme/app")
        versions = {v.number: v for v in app.store.versions.find({"package_id": app_pkg.id})}
        statuses = {
            d.constraint: d.status for d in app.store.dependencies.find({"name": "acme/core"})
        }
        assert statuses == {"^1.0": DependencyStatus.UP_TO_DATE, "^0.5": DependencyStatus.OUTDATED}
        assert versions["1.0.0"].status is VersionStatus.UP_TO_DATE
        assert versions["0.9.0"].status is VersionStatus.OUTDATED
        core = app.store.versions.find({"package_id": app.store.packages.get("acme/core").id})
        assert core[0].status is VersionStatus.NO_DEPS
        assert app.broker.pending() == 0
        assert app.broker.dead_letters == []

    def test_unknown_target_stays_unknown(self):
        """Dependencies on untracked packages are UNKNOWN and so is their version."""
        client = _registry({"acme/app": [
            {"version": "1.0.0", "version_normalized": "1.0.0.0", "require": {"other/lib": "^1.0"}},
        ]})
        app = build_application(client=client)
        app.store.packages.create("acme/app")
        app.producer.send_command(PackageDiscovery("acme/app"))

        app.drain()

        dependency = app.store.dependencies.find({"name": "other/lib"})[0]
        assert dependency.status is DependencyStatus.UNKNOWN
        assert app.store.versions.get(dependency.version_id).status is VersionStatus.UNKNOWN

    def test_dependencies_resolved_by_separate_discoveries(self):
        """Each sibling dependency that settles recomputes its version again."""
        client = _registry({
            "acme/app": [{"version": "1.0.0", "version_normalized": "1.0.0.0",
                          "require": {"acme/core": "^1.0", "acme/util": "^1.0"}}],
            "acme/core": [{"version": "1.5.0", "version_normalized": "1.5.0.0"}],
            "acme/util": [{"version": "1.2.0", "version_normalized": "1.2.0.0"}],
        })
        app = build_application(client=client)
        for name in ("acme/app", "acme/core", "acme/util"):
            app.store.packages.create(name)

        for name in ("acme/app", "acme/core", "acme/util"):
            app.producer.send_command(PackageDiscovery(name))
            app.drain()

        app_pkg = app.store.packages.get("acme/app")
        [version] = app.store.versions.find({"package_id": app_pkg.id})
        statuses = {d.name: d.status for d in app.store.dependencies.find({"version_id": version.id})}
        assert statuses == {"acme/core": DependencyStatus.UP_TO_DATE, "acme/util": DependencyStatus.UP_TO_DATE}
        assert version.status is VersionStatus.UP_TO_DATE
        assert app.broker.dead_letters == []

    def test_replayed_events_do_not_write(self, registry):
        """Redelivered updates find nothing to change."""
        app = build_application(client=registry, dedup=DedupGuard(window=0))
        app.store.packages.create("acme/app")
        app.store.packages.create("acme/core")
        for name in ("acme/app", "acme/core"):
            app.producer.send_command(PackageDiscovery(name))
        app.drain()
        writes = app.store.writes

        dependency = app.store.dependencies.find({"name": "acme/core"})[0]
        app.producer.send_event(DependencyUpdated(dependency, changed=("status",)))
        app.producer.send_command(CheckDependencyStatus(dependency))
        app.producer.send_command(UpdateDependencyStatus(app.store.packages.get("acme/core")))
        app.drain()

        assert app.store.writes == writes
        assert app.broker.dead_letters == []


class TestLatestVersion:
    """VersionCreated only ever moves latest_version forward."""

    def _setup(self, latest):
        app = build_application(client=MagicMock())
        package = app.store.packages.create("acme/core", latest_version=latest)
        listener = VersionCreatedListener(app.store.packages, app.producer)
        return app, package, listener

    def _created(self, package, number, normalized, release=True):
        return VersionCreated(Version(package_id=package.id, number=number, normalized=normalized, release=release, id=99))

    def test_older_tag_is_ignored(self):
        app, package, listener = self._setup("1.2.0")
        listener.handle(self._created(package, "1.1.0", "1.1.0.0"), None)
        assert app.store.packages.get("acme/core").latest_version == "1.2.0"
        assert app.broker.size("package-events") == 0

    def test_newer_tag_advances(self):
        app, package, listener = self._setup("1.2.0")
        listener.handle(self._created(package, "1.3.0", "1.3.0.0"), None)
        assert app.store.packages.get("acme/core").latest_version == "1.3.0"
        [event] = _queued(app, "package-events")
        assert isinstance(event, PackageUpdated)
        assert "latest_version" in event.changed

    @pytest.mark.parametrize("number,normalized,release", [
        ("2.0.0-beta", "2.0.0.0-beta", True),
        ("3.0.0-RC1", "3.0.0.0-RC1", True),
        ("dev-main", "dev-main", False),
    ])
    def test_unstable_versions_are_ignored(self, number, normalized, release):
        app, package, listener = self._setup("1.2.0")
        listener.handle(self._created(package, number, normalized, release), None)
        assert app.store.packages.get("acme/core").latest_version == "1.2.0"

    def test_first_stable_tag_sets_latest(self):
        app, package, listener = self._setup("")
        listener.handle(self._created(package, "0.1.0", "0.1.0.0"), None)
        assert app.store.packages.get("acme/core").latest_version == "0.1.0"


class TestPackageUpdatedListener:
    """Only a moved latest version fans out."""

    def test_other_changes_are_ignored(self):
        producer = MagicMock()
        listener = PackageUpdatedListener(producer)
        package = Package(name="acme/core", latest_version="1.0.0", id=1)

        listener.handle(PackageUpdated(package, changed=("description",)), None)
        listener.handle(PackageUpdated(package.with_latest_version(""), changed=("latest_version",)), None)
        producer.send_command.assert_not_called()

        listener.handle(PackageUpdated(package, changed=("latest_version",)), None)
        producer.send_command.assert_called_once_with(UpdateDependencyStatus(package=package))


class TestUpdateDependencyStatus:
    """Bulk re-evaluation of every dependency on a package."""

    def _seed(self, app, constraints, latest="1.5.0"):
        app.store.packages.create("acme/core", latest_version=latest)
        owner = app.store.packages.create("acme/app")
        version = app.store.versions.create(owner.id, "1.0.0", "1.0.0.0", release=True)
        for index, constraint in enumerate(constraints):
            app.store.dependencies.create(version.id, "acme/core", constraint, development=bool(index % 2))
        return version

    def test_empty_latest_is_rejected(self):
        app = build_application(client=MagicMock())
        self._seed(app, ["^1.0"], latest="")
        result = _run(app, UpdateDependencyStatus(app.store.packages.get("acme/core")))
        assert result is HandlerResult.REJECT

    def test_pages_cover_every_dependency(self):
        app = build_application(client=MagicMock())
        owner_versions = [self._seed(app, ["^1.0", "^2.0"])]
        for index in range(2, 6):
            version = app.store.versions.create(owner_versions[0].package_id, f"1.0.{index}", f"1.0.{index}.0", release=True)
            app.store.dependencies.create(version.id, "acme/core", "^1.0")
        handler = UpdateDependencyStatusHandler(
            app.store.packages, app.store.dependencies, app.producer, DedupGuard(), page_size=2
        )

        result = handler.handle(UpdateDependencyStatus(app.store.packages.get("acme/core")), None)

        assert result is HandlerResult.ACCEPT
        statuses = [d.status for d in app.store.dependencies.find({"name": "acme/core"})]
        assert statuses.count(DependencyStatus.UP_TO_DATE) == 5
        assert statuses.count(DependencyStatus.OUTDATED) == 1
        assert app.broker.size("dependency-events") == 6

    def test_invalid_constraint_is_skipped(self):
        """One unparseable constraint does not stop the batch."""
        app = build_application(client=MagicMock())
        self._seed(app, ["not a range", "^1.0"])
        result = _run(app, UpdateDependencyStatus(app.store.packages.get("acme/core")))
        assert result is HandlerResult.ACCEPT
        statuses = {d.constraint: d.status for d in app.store.dependencies.all()}
        assert statuses == {"not a range": DependencyStatus.UNKNOWN, "^1.0": DependencyStatus.UP_TO_DATE}


class TestUpdateVersionStatus:
    """Aggregation over require dependencies only."""

    def setup_method(self):
        """Set up a tracked release without dependencies."""
        self.app = build_application(client=MagicMock())
        owner = self.app.store.packages.create("acme/app")
        self.version = self.app.store.versions.create(owner.id, "1.0.0", "1.0.0.0", release=True)

    def test_development_dependencies_are_ignored(self):
        app, version = self.app, self.version
        dev = app.store.dependencies.create(
            version.id, "acme/testkit", "^1.0", development=True, status=DependencyStatus.OUTDATED
        )

        assert _run(app, UpdateVersionStatus(dev)) is HandlerResult.ACCEPT
        assert app.store.versions.get(version.id).status is VersionStatus.NO_DEPS

    def test_worst_status_wins(self):
        app, version = self.app, self.version
        app.store.dependencies.create(version.id, "acme/a", "^1.0", status=DependencyStatus.UP_TO_DATE)
        insecure = app.store.dependencies.create(version.id, "acme/b", "^1.0", status=DependencyStatus.INSECURE)

        _run(app, UpdateVersionStatus(insecure))

        assert app.store.versions.get(version.id).status is VersionStatus.INSECURE

    def test_missing_version_is_accepted(self):
        app = self.app
        orphan = Dependency(version_id=404, name="acme/a", constraint="^1.0", id=1)
        assert _run(app, UpdateVersionStatus(orphan)) is HandlerResult.ACCEPT


class TestPackagePurge:
    """Purge removes the package and everything under it."""

    def test_purge(self):
        app = build_application(client=MagicMock())
        package = app.store.packages.create("acme/app")
        version = app.store.versions.create(package.id, "1.0.0", "1.0.0.0", release=True)
        app.store.dependencies.create(version.id, "acme/a", "^1.0")

        assert _run(app, PackagePurge("acme/app")) is HandlerResult.ACCEPT
        assert app.store.packages.all() == []
        assert app.store.dependencies.all() == []

    def test_missing_package_is_accepted(self):
        app = build_application(client=MagicMock())
        assert _run(app, PackagePurge("acme/none")) is HandlerResult.ACCEPT
