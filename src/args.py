"""Argument parsing functionality for pkghealth."""

import argparse
from constants import Constants, QueueNames


def _add_mirror(parser):
    parser.add_argument("-m", "--mirror",
                        dest="MIRROR",
                        help=f"Packagist mirror url (default: {Constants.MIRROR_URL})",
                        action="store",
                        type=str)


def _add_drain(parser):
    parser.add_argument("--drain",
                        dest="DRAIN",
                        help="Process the published messages in-process before exiting",
                        action="store_true")


def build_parser():
    """Build the top-level parser with one subcommand per entry point."""
    parser = argparse.ArgumentParser(
        prog="pkghealth",
        description=(
            "pkghealth - Packagist mirror discovery and dependency status tracker"
        ),
        add_help=True,
    )

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML)",
                        action="store",
                        type=str)
    parser.add_argument("--cache-dir",
                        dest="CACHE_DIR",
                        help="Directory of the registry metadata cache",
                        action="store",
                        type=str)
    parser.add_argument("--offline",
                        dest="OFFLINE",
                        help="Serve registry metadata from the cache only",
                        action="store_true")

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    get_list = sub.add_parser("get-list", help="Sync the tracked packages with the registry package list")
    _add_mirror(get_list)
    get_list.add_argument("--resync",
                          dest="RESYNC",
                          help="Send a forced discovery for every listed package",
                          action="store_true")
    _add_drain(get_list)

    get_updates = sub.add_parser("get-updates", help="Apply the registry change feed since the stored cursor")
    _add_mirror(get_updates)
    _add_drain(get_updates)

    get_package = sub.add_parser("get-package", help="Track a package and discover it")
    get_package.add_argument("PACKAGE", help="Package name (e.g. symfony/console)")
    _add_drain(get_package)

    get_data = sub.add_parser("get-data", help="Refresh popularity stats of a tracked package")
    _add_mirror(get_data)
    get_data.add_argument("PACKAGE", help="Package name (e.g. symfony/console)")

    consume = sub.add_parser("consume", help="Consume messages from a queue")
    consume.add_argument("QUEUE",
                         help="Queue name",
                         choices=[q.value for q in QueueNames])
    consume.add_argument("-d", "--daemonize",
                         dest="DAEMONIZE",
                         help="Keep polling the queue until interrupted",
                         action="store_true")
    consume.add_argument("-n", "--message-count",
                         dest="MESSAGE_COUNT",
                         help="Stop after consuming this many messages",
                         action="store",
                         type=int)

    sub.add_parser("list-routes", help="Print message to queue to handler routes")

    sync = sub.add_parser("sync", help="Fetch registry changes and process every queue in-process")
    _add_mirror(sync)
    sync.add_argument("--full",
                      dest="FULL",
                      help="Diff the full package list instead of the change feed",
                      action="store_true")

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
