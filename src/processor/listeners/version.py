"""Version event listeners."""
from __future__ import annotations

import logging

from common.logging_utils import extra_context, is_debug_enabled
from domain.repository import PackageRepository
from messaging.bus import Envelope, Handler, Producer
from messaging.messages import VersionCreated, VersionUpdated
from processor.persist import save_package
from versioning.parser import greater_than, normalize

logger = logging.getLogger(__name__)


class VersionCreatedListener(Handler):
    """Advance the package's latest version to a newer stable tag.

    The latest version never moves backwards and is never set from a branch
    or a pre-release.
    """

    message_type = VersionCreated

    def __init__(self, packages: PackageRepository, producer: Producer):
        self._packages = packages
        self._producer = producer

    def handle(self, message: VersionCreated, envelope: Envelope) -> None:
        version = message.version
        if not version.release or not version.is_stable():
            return

        package = self._packages.get_by_id(version.package_id)
        current = package.latest_version
        if current and not greater_than(version.normalized, normalize(current)):
            return

        logger.info(
            "Latest version of %s: %s -> %s",
            package.name,
            current or "(none)",
            version.number,
            extra=extra_context(event="latest_version", component="listener", package=package.name, outcome="advanced"),
        )
        save_package(self._packages, self._producer, package.with_latest_version(version.number))


class VersionUpdatedListener(Handler):
    message_type = VersionUpdated

    def handle(self, message: VersionUpdated, envelope: Envelope) -> None:
        if is_debug_enabled(logger):
            logger.debug(
                "Version updated",
                extra=extra_context(
                    event="version_updated", component="listener", version_id=message.version.id,
                    status=message.version.status.value,
                ),
            )
