"""In-process broker with per-queue FIFO delivery.

Messages are stored as JSON strings exactly as a network broker would carry
them. A delivery stays unacknowledged until ``ack``, ``requeue`` or ``reject``;
requeued messages go to the back of their queue flagged as redelivered and
rejected messages are kept as dead letters.
"""
from __future__ import annotations

import itertools
import json
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Tuple

from common.logging_utils import extra_context, is_debug_enabled

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Delivery:
    """One message handed to a consumer."""

    tag: int
    queue: str
    body: str
    redelivered: bool = False

    def json(self):
        return json.loads(self.body)


class InMemoryBroker:
    def __init__(self):
        self._lock = threading.RLock()
        self._queues: Dict[str, Deque[Tuple[str, bool]]] = {}
        self._unacked: Dict[int, Delivery] = {}
        self._tags = itertools.count(1)
        self.dead_letters: List[Delivery] = []
        self.published = 0

    def declare(self, queue: str) -> None:
        with self._lock:
            self._queues.setdefault(queue, deque())

    def queues(self) -> List[str]:
        with self._lock:
            return sorted(self._queues)

    def publish(self, queue: str, body: str) -> None:
        with self._lock:
            self._queues.setdefault(queue, deque()).append((body, False))
            self.published += 1
        if is_debug_enabled(logger):
            logger.debug(
                "Message published",
                extra=extra_context(event="publish", component="broker", target=queue),
            )

    def get(self, queue: str) -> Optional[Delivery]:
        """Pop the next message of queue, or None when it is empty."""
        with self._lock:
            pending = self._queues.get(queue)
            if not pending:
                return None
            body, redelivered = pending.popleft()
            delivery = Delivery(tag=next(self._tags), queue=queue, body=body, redelivered=redelivered)
            self._unacked[delivery.tag] = delivery
            return delivery

    def ack(self, delivery: Delivery) -> None:
        with self._lock:
            self._settle(delivery)

    def requeue(self, delivery: Delivery) -> None:
        with self._lock:
            self._settle(delivery)
            self._queues.setdefault(delivery.queue, deque()).append((delivery.body, True))

    def reject(self, delivery: Delivery) -> None:
        with self._lock:
            self._settle(delivery)
            self.dead_letters.append(delivery)

    def size(self, queue: str) -> int:
        with self._lock:
            return len(self._queues.get(queue, ()))

    def pending(self) -> int:
        """Messages waiting in all queues."""
        with self._lock:
            return sum(len(q) for q in self._queues.values())

    def _settle(self, delivery: Delivery) -> None:
        if self._unacked.pop(delivery.tag, None) is None:
            raise ValueError(f"Unknown or already settled delivery tag {delivery.tag}")
