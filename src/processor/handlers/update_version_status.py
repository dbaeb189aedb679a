"""Recompute a version's status from its require dependencies."""
from __future__ import annotations

import logging
from typing import Optional

from common.logging_utils import extra_context, is_debug_enabled
from domain.repository import DependencyRepository, VersionRepository
from domain.status import aggregate_status
from messaging.bus import Envelope, HandlerResult, Producer
from messaging.dedup import DedupGuard
from messaging.messages import UpdateVersionStatus
from processor.persist import save_version

from .base import CommandHandler

logger = logging.getLogger(__name__)


class UpdateVersionStatusHandler(CommandHandler):
    """Recomputes on every delivery; sibling dependencies settle one after another."""

    message_type = UpdateVersionStatus
    deduplicate = False

    def __init__(
        self,
        versions: VersionRepository,
        dependencies: DependencyRepository,
        producer: Producer,
        dedup: Optional[DedupGuard] = None,
    ):
        super().__init__(producer, dedup)
        self._versions = versions
        self._dependencies = dependencies

    def process(self, command: UpdateVersionStatus, envelope: Envelope) -> HandlerResult:
        version = self._versions.get(command.dependency.version_id)
        required = self._dependencies.find({"version_id": version.id, "development": False})
        status = aggregate_status(d.status for d in required)
        if is_debug_enabled(logger):
            logger.debug(
                "Update version status",
                extra=extra_context(
                    event="update_version", component="handler", version_id=version.id,
                    count=len(required), outcome=status.value,
                ),
            )
        save_version(self._versions, self._producer, version.with_status(status))
        return HandlerResult.ACCEPT
