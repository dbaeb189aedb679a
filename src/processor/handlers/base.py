"""Base class of command handlers with the duplicated-job guard."""
from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Optional

from common.logging_utils import extra_context, is_debug_enabled
from messaging.bus import Envelope, Handler, HandlerResult, Producer
from messaging.dedup import DedupGuard
from messaging.messages import Command

logger = logging.getLogger(__name__)


class CommandHandler(Handler):
    """Skips a command whose job completed inside the dedup window.

    The window is measured between delivery timestamps. The key is remembered
    only once the job was accepted, so requeued deliveries are retried.
    ``force`` bypasses the check. Handlers whose job reads state that other
    messages keep changing set ``deduplicate = False``.
    """

    deduplicate = True

    def __init__(self, producer: Producer, dedup: Optional[DedupGuard] = None):
        self._producer = producer
        self._dedup = dedup if dedup is not None else DedupGuard()

    def handle(self, message: Command, envelope: Envelope) -> HandlerResult:
        if not self.deduplicate:
            return self.process(message, envelope)

        key = f"{self.message_type.__name__}:{message.dedup_key()}"
        delivered_at = envelope.timestamp if envelope is not None else None
        if not message.force and self._dedup.is_duplicate(key, delivered_at):
            if is_debug_enabled(logger):
                logger.debug(
                    "%s: skipping duplicated job",
                    self.name,
                    extra=extra_context(
                        event="dedup", component="handler", action=self.name, key=key, outcome="rejected"
                    ),
                )
            return HandlerResult.REJECT
        result = self.process(message, envelope)
        if result is HandlerResult.ACCEPT:
            self._dedup.remember(key, delivered_at)
        return result

    @abstractmethod
    def process(self, command: Command, envelope: Envelope) -> HandlerResult:
        ...
