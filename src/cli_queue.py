"""Queue commands: consume loop and route listing."""

from __future__ import annotations

import logging
import signal
import sys
from typing import Optional, TextIO

from common.logging_utils import Timer, extra_context
from processor.app import Application

logger = logging.getLogger(__name__)


def install_signal_handlers(app: Application) -> None:
    """Stop the consumer after the in-flight message on SIGINT/SIGTERM."""

    def _stop(signum, _frame):
        logger.info("Received signal %d, stopping after the current message", signum)
        app.consumer.stop()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)


def consume(app: Application, queue: str, message_count: Optional[int] = None, daemonize: bool = False) -> int:
    """Consume messages from queue until it is empty, count is reached or a stop signal."""
    logger.info(
        "Consuming %s",
        queue,
        extra=extra_context(event="consume", component="cli", target=queue, action="start"),
    )
    with Timer() as timer:
        processed = app.consumer.consume(queue, count=message_count, daemonize=daemonize)
    logger.info(
        "Consumed %d message(s) from %s",
        processed,
        queue,
        extra=extra_context(
            event="consume", component="cli", target=queue, action="finish",
            count=processed, duration_ms=timer.duration_ms(),
        ),
    )
    return processed


def list_routes(app: Application, out: TextIO = sys.stdout) -> None:
    rows = app.router.routes()
    headers = ("Message", "Queue", "Handler")
    widths = [max([len(header)] + [len(row[i]) for row in rows]) for i, header in enumerate(headers)]
    line = "  ".join("{:<%d}" % w for w in widths)
    out.write(line.format(*headers).rstrip() + "\n")
    for row in rows:
        out.write(line.format(*row).rstrip() + "\n")
