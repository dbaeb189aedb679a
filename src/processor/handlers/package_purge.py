"""Delete a package that disappeared from the registry."""
from __future__ import annotations

import logging
from typing import Optional

from common.errors import PackageNotFoundError
from common.logging_utils import extra_context
from domain.repository import PackageRepository
from messaging.bus import Envelope, HandlerResult, Producer
from messaging.dedup import DedupGuard
from messaging.messages import PackagePurge

from .base import CommandHandler

logger = logging.getLogger(__name__)


class PackagePurgeHandler(CommandHandler):
    message_type = PackagePurge

    def __init__(self, packages: PackageRepository, producer: Producer, dedup: Optional[DedupGuard] = None):
        super().__init__(producer, dedup)
        self._packages = packages

    def process(self, command: PackagePurge, envelope: Envelope) -> HandlerResult:
        try:
            package = self._packages.get(command.package_name)
        except PackageNotFoundError:
            logger.info(
                "Package not found: %s",
                command.package_name,
                extra=extra_context(event="purge", component="handler", package=command.package_name, outcome="missing"),
            )
            return HandlerResult.ACCEPT

        # versions, dependencies and stats go with the package
        self._packages.delete(package)
        logger.info(
            "Package purged: %s",
            package.name,
            extra=extra_context(event="purge", component="handler", package=package.name, outcome="deleted"),
        )
        return HandlerResult.ACCEPT
