"""Package event listeners."""
from __future__ import annotations

import logging

from common.logging_utils import extra_context, is_debug_enabled
from messaging.bus import Envelope, Handler, Producer
from messaging.messages import PackageCreated, PackageDiscovery, PackageUpdated, UpdateDependencyStatus

logger = logging.getLogger(__name__)


class PackageCreatedListener(Handler):
    """A newly tracked package gets discovered."""

    message_type = PackageCreated

    def __init__(self, producer: Producer):
        self._producer = producer

    def handle(self, message: PackageCreated, envelope: Envelope) -> None:
        if is_debug_enabled(logger):
            logger.debug(
                "Package created",
                extra=extra_context(event="package_created", component="listener", package=message.package.name),
            )
        self._producer.send_command(PackageDiscovery(package_name=message.package.name))


class PackageUpdatedListener(Handler):
    """A moved latest version re-evaluates every dependency on the package."""

    message_type = PackageUpdated

    def __init__(self, producer: Producer):
        self._producer = producer

    def handle(self, message: PackageUpdated, envelope: Envelope) -> None:
        package = message.package
        if "latest_version" not in message.changed or not package.latest_version:
            return
        self._producer.send_command(UpdateDependencyStatus(package=package))
