"""pkghealth - Packagist mirror discovery and dependency status tracker

    Returns:
        int: Exit code
"""
import logging
import os
import sys

from args import parse_args
from common.errors import FormatError, NotFoundError, PkgHealthError, TransientIOError, ValidationError
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes, load_config

logger = logging.getLogger(__name__)


def _apply_cli_overrides(args):
    """CLI flags win over config file and environment."""
    if getattr(args, "CACHE_DIR", None):
        Constants.CACHE_DIR = args.CACHE_DIR
    if getattr(args, "OFFLINE", False):
        Constants.OFFLINE = True
    if getattr(args, "MIRROR", None):
        Constants.MIRROR_URL = args.MIRROR


def _exit_code(exc):
    if isinstance(exc, TransientIOError):
        return ExitCodes.CONNECTION_ERROR
    if isinstance(exc, FormatError):
        return ExitCodes.FORMAT_ERROR
    if isinstance(exc, (ValidationError, NotFoundError)):
        return ExitCodes.INVALID_INPUT
    return ExitCodes.FILE_ERROR


def _settle(app, drain):
    """Drain every queue in-process, or report what is left on the broker."""
    # pylint: disable=import-outside-toplevel
    import cli_queue

    if drain:
        cli_queue.install_signal_handlers(app)
        processed = app.drain()
        logger.info("Processed %d message(s)", processed)
        return
    pending = app.broker.pending()
    if pending:
        logger.warning(
            "%d message(s) left on the in-process broker are dropped on exit; use --drain or sync",
            pending,
            extra=extra_context(event="settle", component="cli", outcome="pending", count=pending),
        )


def run(args, app=None):
    """Run the selected subcommand against app (built from Constants when None).

    Returns:
        int: Exit code
    """
    # pylint: disable=import-outside-toplevel
    import cli_packagist
    import cli_queue
    from processor.app import build_application, default_store

    if app is None:
        app = build_application(store=default_store())

    command = args.command
    if command == "get-list":
        cli_packagist.get_list(app, args.MIRROR, resync=args.RESYNC)
        _settle(app, args.DRAIN)
    elif command == "get-updates":
        cli_packagist.get_updates(app, args.MIRROR)
        _settle(app, args.DRAIN)
    elif command == "get-package":
        cli_packagist.get_package(app, args.PACKAGE)
        _settle(app, args.DRAIN)
    elif command == "get-data":
        cli_packagist.get_data(app, args.PACKAGE, args.MIRROR)
    elif command == "consume":
        cli_queue.install_signal_handlers(app)
        cli_queue.consume(app, args.QUEUE, message_count=args.MESSAGE_COUNT, daemonize=args.DAEMONIZE)
    elif command == "list-routes":
        cli_queue.list_routes(app)
    elif command == "sync":
        if args.FULL:
            cli_packagist.get_list(app, args.MIRROR)
        else:
            cli_packagist.get_updates(app, args.MIRROR)
        _settle(app, True)
    else:
        logger.error("Unknown command: %s", command)
        return ExitCodes.INVALID_INPUT.value
    return ExitCodes.SUCCESS.value


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    # Honor CLI --loglevel by passing it to centralized logger via env
    if getattr(args, "LOG_LEVEL", None):
        os.environ['PKGHEALTH_LOG_LEVEL'] = str(args.LOG_LEVEL).upper()
    configure_logging(log_file=getattr(args, "LOG_FILE", None))

    load_config(getattr(args, "CONFIG", None))
    _apply_cli_overrides(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.command)
        )

    try:
        code = run(args)
    except PkgHealthError as exc:
        logger.error("%s failed: %s", args.command, exc)
        if isinstance(exc, FormatError) and exc.payload:
            logger.debug("Offending payload: %s", exc.excerpt())
        code = _exit_code(exc).value
    sys.exit(code)


if __name__ == "__main__":
    main()
