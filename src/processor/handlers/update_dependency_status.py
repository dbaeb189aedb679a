"""Re-evaluate every dependency on a package after its latest release moved."""
from __future__ import annotations

import logging
from typing import Optional

from common.errors import ValidationError
from common.logging_utils import Timer, extra_context
from constants import Constants
from domain.repository import DependencyRepository, PackageRepository
from domain.status import evaluate
from messaging.bus import Envelope, HandlerResult, Producer
from messaging.dedup import DedupGuard
from messaging.messages import UpdateDependencyStatus
from processor.persist import save_dependency

from .base import CommandHandler

logger = logging.getLogger(__name__)


class UpdateDependencyStatusHandler(CommandHandler):
    message_type = UpdateDependencyStatus

    def __init__(
        self,
        packages: PackageRepository,
        dependencies: DependencyRepository,
        producer: Producer,
        dedup: Optional[DedupGuard] = None,
        page_size: Optional[int] = None,
    ):
        super().__init__(producer, dedup)
        self._packages = packages
        self._dependencies = dependencies
        self._page_size = page_size or Constants.DEPENDENCY_PAGE_SIZE

    def process(self, command: UpdateDependencyStatus, envelope: Envelope) -> HandlerResult:
        package = self._packages.get(command.package.name)
        if not package.latest_version:
            logger.info(
                "Package %s has no latest version",
                package.name,
                extra=extra_context(event="update_dependency", component="handler", package=package.name, outcome="rejected"),
            )
            return HandlerResult.REJECT

        checked = changed = 0
        offset = 0
        with Timer() as timer:
            while True:
                page = self._dependencies.find({"name": package.name}, limit=self._page_size, offset=offset)
                for dependency in page:
                    checked += 1
                    try:
                        status = evaluate(package.latest_version, dependency.constraint)
                    except ValidationError as exc:
                        logger.warning(
                            "Skipping dependency #%s: %s",
                            dependency.id,
                            exc,
                            extra=extra_context(event="update_dependency", component="handler", package=package.name),
                        )
                        continue
                    updated = dependency.with_status(status)
                    if updated.is_dirty():
                        changed += 1
                        save_dependency(self._dependencies, self._producer, updated)
                if len(page) < self._page_size:
                    break
                offset += self._page_size

        logger.info(
            "Updated dependency status for %s@%s",
            package.name,
            package.latest_version,
            extra=extra_context(
                event="update_dependency", component="handler", package=package.name, count=checked,
                changed=changed, duration_ms=timer.duration_ms(), outcome="accepted",
            ),
        )
        return HandlerResult.ACCEPT
