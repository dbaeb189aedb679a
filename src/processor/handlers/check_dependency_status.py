"""Evaluate a single dependency against its target's latest release."""
from __future__ import annotations

import logging
from typing import Optional

from common.logging_utils import extra_context
from domain.repository import DependencyRepository, PackageRepository
from messaging.bus import Envelope, HandlerResult, Producer
from messaging.dedup import DedupGuard
from messaging.messages import CheckDependencyStatus
from processor.persist import dependency_status, save_dependency

from .base import CommandHandler

logger = logging.getLogger(__name__)


class CheckDependencyStatusHandler(CommandHandler):
    message_type = CheckDependencyStatus

    def __init__(
        self,
        packages: PackageRepository,
        dependencies: DependencyRepository,
        producer: Producer,
        dedup: Optional[DedupGuard] = None,
    ):
        super().__init__(producer, dedup)
        self._packages = packages
        self._dependencies = dependencies

    def process(self, command: CheckDependencyStatus, envelope: Envelope) -> HandlerResult:
        dependency = self._dependencies.get(command.dependency.id)
        status = dependency_status(self._packages, dependency)
        logger.info(
            "Check dependency status: %s@%s",
            dependency.name,
            dependency.version_id,
            extra=extra_context(
                event="check_dependency", component="handler", package=dependency.name,
                version_id=dependency.version_id, outcome=status.value,
            ),
        )
        save_dependency(self._dependencies, self._producer, dependency.with_status(status))
        return HandlerResult.ACCEPT
