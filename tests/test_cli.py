"""Tests for the command line entry points."""

import io
import logging
from unittest.mock import MagicMock, patch

import pytest

import cli_packagist
import cli_queue
import pkghealth
from args import parse_args
from common.errors import FormatError, NotFoundError, TransientIOError, ValidationError
from constants import Constants, ExitCodes
from messaging import Envelope, PackageCreated, PackageDiscovery, PackagePurge
from processor.app import build_application


@pytest.fixture(autouse=True)
def restore_constants():
    saved = {k: v for k, v in vars(Constants).items() if k.isupper()}
    yield
    for key, value in saved.items():
        setattr(Constants, key, value)


@pytest.fixture
def app():
    return build_application(client=MagicMock())


def _drain(app, queue):
    messages = []
    while True:
        delivery = app.broker.get(queue)
        if delivery is None:
            return messages
        messages.append(Envelope.from_delivery(delivery).message)
        app.broker.ack(delivery)


class TestArgs:
    """Subcommands and their flags."""

    def test_consume(self):
        args = parse_args(["--loglevel", "DEBUG", "consume", "package-discovery", "-n", "5", "-d"])
        assert args.command == "consume"
        assert args.LOG_LEVEL == "DEBUG"
        assert args.QUEUE == "package-discovery"
        assert args.MESSAGE_COUNT == 5
        assert args.DAEMONIZE is True

    def test_unknown_queue(self):
        with pytest.raises(SystemExit):
            parse_args(["consume", "no-such-queue"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_get_list_flags(self):
        args = parse_args(["--offline", "get-list", "-m", "https://mirror.test", "--resync"])
        assert args.OFFLINE is True
        assert args.MIRROR == "https://mirror.test"
        assert args.RESYNC is True


class TestGetList:
    """Package list diffing."""

    def test_adds_and_purges(self, app):
        app.store.packages.create("acme/kept")
        app.store.packages.create("acme/gone")
        app.client.get_package_list.return_value = ["acme/new", "Bad Name", "acme/kept"]

        summary = cli_packagist.get_list(app, "https://mirror.test")

        assert summary == {"listed": 3, "added": 1, "removed": 1, "resynced": 0}
        app.client.get_package_list.assert_called_once_with("https://mirror.test")
        assert app.store.packages.exists("acme/new")
        [created] = _drain(app, "package-events")
        assert isinstance(created, PackageCreated) and created.package.name == "acme/new"
        assert _drain(app, "package-purge") == [PackagePurge("acme/gone")]

    def test_resync_forces_discovery(self, app):
        """Resync mode sends a forced discovery for every listed package."""
        app.store.packages.create("acme/kept")
        app.client.get_package_list.return_value = ["acme/kept", "acme/new"]

        summary = cli_packagist.get_list(app, resync=True)

        assert summary["resynced"] == 2
        assert _drain(app, "package-discovery") == [
            PackageDiscovery("acme/kept", force=True),
            PackageDiscovery("acme/new", force=True),
        ]
        assert app.client.get_package_list.call_args[0][0] == Constants.MIRROR_URL


class TestGetUpdates:
    """Change feed handling and the stored cursor."""

    def test_actions_and_cursor(self, app):
        app.client.initial_cursor.return_value = 100
        app.client.get_changes.return_value = {
            "actions": [
                {"type": "update", "package": "acme/a", "time": 1},
                {"type": "update", "package": "acme/a~dev", "time": 2},
                {"type": "resync", "package": "acme/b", "time": 3},
                {"type": "delete", "package": "acme/c", "time": 4},
                {"type": "unknown", "package": "acme/d", "time": 5},
            ],
            "timestamp": 200,
        }

        summary = cli_packagist.get_updates(app)

        assert summary == {"actions": 5, "discovered": 2, "purged": 1}
        assert app.client.get_changes.call_args[0][0] == 100
        assert _drain(app, "package-discovery") == [
            PackageDiscovery("acme/a"),
            PackageDiscovery("acme/b", force=True),
        ]
        assert _drain(app, "package-purge") == [PackagePurge("acme/c")]
        [cursor] = app.store.preferences.all()
        assert cursor.as_integer() == 200

        app.client.get_changes.return_value = {"actions": [], "timestamp": 300}
        cli_packagist.get_updates(app)
        assert app.client.get_changes.call_args[0][0] == 200
        assert app.client.initial_cursor.call_count == 1

    def test_invalid_names_are_skipped(self, app):
        app.client.initial_cursor.return_value = 1
        app.client.get_changes.return_value = {
            "actions": [{"type": "update", "package": "not valid", "time": 1}],
            "timestamp": 2,
        }
        assert cli_packagist.get_updates(app)["discovered"] == 0


class TestGetPackageAndData:
    """Single package commands."""

    def test_get_package(self, app):
        package = cli_packagist.get_package(app, "acme/widget")
        assert package.name == "acme/widget"
        cli_packagist.get_package(app, "acme/widget")
        assert _drain(app, "package-discovery") == [PackageDiscovery("acme/widget", force=True)] * 2

    def test_get_package_invalid_name(self, app):
        with pytest.raises(ValidationError):
            cli_packagist.get_package(app, "widget")

    def test_get_data_creates_then_updates(self, app):
        app.store.packages.create("acme/widget")
        app.client.get_metadata_v1.return_value = {"favers": 3, "downloads": {"total": 10}}

        stats = cli_packagist.get_data(app, "acme/widget")
        assert (stats.favers, stats.total_downloads) == (3, 10)

        app.client.get_metadata_v1.return_value = {"favers": 4, "downloads": {"total": 12}}
        stats = cli_packagist.get_data(app, "acme/widget")
        assert app.store.stats.get("acme/widget").favers == 4
        assert stats.total_downloads == 12

    def test_get_data_untracked(self, app):
        with pytest.raises(NotFoundError):
            cli_packagist.get_data(app, "acme/unknown")


class TestQueueCommands:
    """consume and list-routes."""

    def test_list_routes(self, app):
        out = io.StringIO()
        cli_queue.list_routes(app, out=out)
        lines = out.getvalue().splitlines()
        assert lines[0].split() == ["Message", "Queue", "Handler"]
        assert ["PackageDiscovery", "package-discovery", "PackageDiscoveryHandler"] in [l.split() for l in lines]
        assert len(lines) == 12

    def test_consume_message_count(self, app):
        for name in ("acme/a", "acme/b"):
            app.producer.send_command(PackagePurge(name))
        assert cli_queue.consume(app, "package-purge", message_count=1) == 1
        assert app.broker.size("package-purge") == 1


class TestMain:
    """Dispatch and exit codes."""

    @patch('cli_queue.install_signal_handlers')
    def test_run_sync(self, _signals, app):
        app.client.initial_cursor.return_value = 1
        app.client.get_changes.return_value = {"actions": [{"type": "delete", "package": "acme/a"}], "timestamp": 2}
        code = pkghealth.run(parse_args(["sync"]), app)
        assert code == ExitCodes.SUCCESS.value
        assert app.broker.pending() == 0

    def test_run_get_package(self, app):
        assert pkghealth.run(parse_args(["get-package", "acme/widget"]), app) == 0
        assert app.store.packages.exists("acme/widget")

    @pytest.mark.parametrize("exc,code", [
        (TransientIOError("down"), ExitCodes.CONNECTION_ERROR),
        (FormatError("bad", payload="{"), ExitCodes.FORMAT_ERROR),
        (ValidationError("bad name"), ExitCodes.INVALID_INPUT),
        (NotFoundError("missing"), ExitCodes.INVALID_INPUT),
    ])
    @patch('pkghealth.load_config')
    @patch('pkghealth.configure_logging')
    def test_exit_codes(self, _logging, _config, exc, code):
        with patch('pkghealth.run', side_effect=exc):
            with pytest.raises(SystemExit) as info:
                pkghealth.main(["list-routes"])
        assert info.value.code == code.value

    @patch('pkghealth.load_config')
    @patch('pkghealth.configure_logging')
    def test_overrides_and_log_level(self, _logging, _config, monkeypatch, tmp_path):
        monkeypatch.delenv("PKGHEALTH_LOG_LEVEL", raising=False)
        with patch('pkghealth.run', return_value=0):
            with pytest.raises(SystemExit) as info:
                pkghealth.main([
                    "--loglevel", "DEBUG", "--cache-dir", str(tmp_path), "--offline",
                    "get-updates", "--mirror", "https://mirror.test",
                ])
        assert info.value.code == 0
        assert Constants.CACHE_DIR == str(tmp_path)
        assert Constants.OFFLINE is True
        assert Constants.MIRROR_URL == "https://mirror.test"
        import os  # pylint: disable=import-outside-toplevel
        assert os.environ["PKGHEALTH_LOG_LEVEL"] == "DEBUG"

    @patch('processor.app.default_client')
    def test_cursor_resumes_across_runs(self, default_client, tmp_path):
        """A second get-updates process continues from the first one's timestamp."""
        Constants.CACHE_DIR = str(tmp_path)
        client = default_client.return_value
        client.initial_cursor.return_value = 100
        client.get_changes.side_effect = [
            {"actions": [], "timestamp": 200},
            {"actions": [], "timestamp": 300},
        ]

        assert pkghealth.run(parse_args(["get-updates"])) == 0
        assert pkghealth.run(parse_args(["get-updates"])) == 0

        assert [c[0][0] for c in client.get_changes.call_args_list] == [100, 200]
        assert client.initial_cursor.call_count == 1

    @patch('cli_queue.install_signal_handlers')
    def test_get_package_drain(self, _signals, app):
        app.client.get_metadata_v2.side_effect = lambda view, mirror=None: (
            [] if view.endswith("~dev")
            else [{"name": "acme/widget", "version": "1.0.0", "version_normalized": "1.0.0.0"}]
        )

        assert pkghealth.run(parse_args(["get-package", "acme/widget", "--drain"]), app) == 0

        assert app.store.packages.get("acme/widget").latest_version == "1.0.0"
        assert app.broker.pending() == 0

    def test_undrained_messages_are_reported(self, app, caplog):
        with caplog.at_level(logging.WARNING, logger="pkghealth"):
            pkghealth.run(parse_args(["get-package", "acme/widget"]), app)
        assert app.broker.pending() == 1
        assert "--drain" in caplog.text
