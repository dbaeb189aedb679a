"""Routing, publishing and consuming of messages.

A ``Router`` maps each message type onto one queue and one handler. The
``Producer`` wraps messages into envelopes and publishes them on their queue;
the ``Consumer`` pulls envelopes from one queue, dispatches them and settles
each delivery according to the handler outcome:

- ValidationError / FormatError: reject.
- NotFoundError: accept.
- any other exception: requeue, or reject when already redelivered.
"""
from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, Iterable, List, Optional, Tuple, Type

from common.errors import FormatError, NotFoundError, ValidationError
from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants

from .broker import Delivery, InMemoryBroker
from .messages import Command, Event, Message, message_from_wire

logger = logging.getLogger(__name__)


class HandlerResult(Enum):
    """Settlement of a delivery."""

    ACCEPT = "accept"
    REJECT = "reject"
    REQUEUE = "requeue"


@dataclass(frozen=True)
class Envelope:
    """A message with its delivery metadata."""

    message: Message
    message_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)
    is_redelivery: bool = False

    def to_json(self) -> str:
        return json.dumps(
            {"message_id": self.message_id, "timestamp": self.timestamp, "message": self.message.to_wire()}
        )

    @classmethod
    def from_delivery(cls, delivery: Delivery) -> "Envelope":
        try:
            data = delivery.json()
            return cls(
                message=message_from_wire(data["message"]),
                message_id=str(data.get("message_id", "")),
                timestamp=float(data.get("timestamp", time.time())),
                is_redelivery=delivery.redelivered,
            )
        except FormatError:
            raise
        except (ValueError, KeyError, TypeError) as exc:
            raise FormatError(f"Malformed envelope: {exc}", payload=delivery.body, source=delivery.queue) from exc


class Handler(ABC):
    """Processes one message type; subclasses set ``message_type``."""

    message_type: ClassVar[Type[Message]]

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def handle(self, message: Message, envelope: Envelope) -> Optional[HandlerResult]:
        """Return the delivery outcome; None is taken as ACCEPT."""


class Router:
    """Message type to queue and handler mapping."""

    def __init__(self):
        self._queues: Dict[Type[Message], str] = {}
        self._handlers: Dict[Type[Message], Handler] = {}

    def route(self, message_type: Type[Message], queue: str) -> None:
        self._queues[message_type] = queue

    def register(self, message_type: Type[Message], handler: Handler) -> None:
        """Attach handler to message_type.

        Raises:
            TypeError: if the handler declares a different message type.
        """
        declared = getattr(handler, "message_type", None)
        if declared is not message_type:
            raise TypeError(
                f"{type(handler).__name__} handles {getattr(declared, '__name__', declared)}, "
                f"not {message_type.__name__}"
            )
        self._handlers[message_type] = handler

    def add(self, handler: Handler, queue: str) -> None:
        """Route the handler's message type to queue and register it."""
        self.route(handler.message_type, queue)
        self.register(handler.message_type, handler)

    def queue_for(self, message_type: Type[Message]) -> str:
        try:
            return self._queues[message_type]
        except KeyError:
            raise LookupError(f"No route for {message_type.__name__}") from None

    def handler_for(self, message_type: Type[Message]) -> Optional[Handler]:
        return self._handlers.get(message_type)

    def queues(self) -> List[str]:
        return sorted(set(self._queues.values()))

    def routes(self) -> List[Tuple[str, str, str]]:
        """(message type, queue, handler) rows sorted by queue."""
        rows = []
        for message_type, queue in self._queues.items():
            handler = self._handlers.get(message_type)
            rows.append((message_type.__name__, queue, handler.name if handler else "-"))
        return sorted(rows, key=lambda r: (r[1], r[0]))


class Producer:
    """Publishes commands and events on their routed queue."""

    def __init__(self, broker: InMemoryBroker, router: Router):
        self._broker = broker
        self._router = router

    def send_command(self, command: Command) -> Envelope:
        if not isinstance(command, Command):
            raise TypeError(f"{type(command).__name__} is not a command")
        return self._publish(command)

    def send_event(self, event: Event) -> Envelope:
        if not isinstance(event, Event):
            raise TypeError(f"{type(event).__name__} is not an event")
        return self._publish(event)

    def _publish(self, message: Message) -> Envelope:
        queue = self._router.queue_for(type(message))
        envelope = Envelope(message=message)
        self._broker.publish(queue, envelope.to_json())
        if is_debug_enabled(logger):
            logger.debug(
                "Sent %s",
                type(message).__name__,
                extra=extra_context(
                    event="send", component="producer", action=message.kind, target=queue,
                    message_id=envelope.message_id,
                ),
            )
        return envelope


class Consumer:
    """Blocking consume loop over one queue at a time."""

    def __init__(self, broker: InMemoryBroker, router: Router, idle_sleep: Optional[float] = None):
        self._broker = broker
        self._router = router
        self._idle_sleep = Constants.CONSUME_IDLE_SLEEP_SEC if idle_sleep is None else idle_sleep
        self._stop = threading.Event()

    def stop(self) -> None:
        """Ask the loop to exit after the in-flight message."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def consume(self, queue: str, count: Optional[int] = None, daemonize: bool = False) -> int:
        """Process messages from queue.

        Args:
            queue: Queue name.
            count: Stop after this many messages (None for no limit).
            daemonize: Keep polling an empty queue until stopped.

        Returns:
            int: Number of messages processed.
        """
        processed = 0
        while not self._stop.is_set():
            if count is not None and processed >= count:
                break
            delivery = self._broker.get(queue)
            if delivery is None:
                if not daemonize:
                    break
                self._stop.wait(self._idle_sleep)
                continue
            self.process(delivery)
            processed += 1
        return processed

    def drain(self, queues: Iterable[str]) -> int:
        """Consume every queue until all of them are empty."""
        queues = list(queues)
        total = 0
        while not self._stop.is_set():
            handled = sum(self.consume(queue) for queue in queues)
            total += handled
            if handled == 0:
                break
        return total

    def process(self, delivery: Delivery) -> HandlerResult:
        result = self.dispatch(delivery)
        if result is HandlerResult.ACCEPT:
            self._broker.ack(delivery)
        elif result is HandlerResult.REQUEUE:
            self._broker.requeue(delivery)
        else:
            self._broker.reject(delivery)
        return result

    def dispatch(self, delivery: Delivery) -> HandlerResult:
        """Decode and run the handler, mapping exceptions onto an outcome."""
        try:
            envelope = Envelope.from_delivery(delivery)
        except FormatError as exc:
            logger.error(
                "Rejecting malformed message: %s",
                exc,
                extra=extra_context(
                    event="dispatch", component="consumer", target=delivery.queue,
                    outcome="rejected", payload=exc.excerpt(),
                ),
            )
            return HandlerResult.REJECT

        message = envelope.message
        message_name = type(message).__name__
        handler = self._router.handler_for(type(message))
        if handler is None:
            logger.error(
                "No handler registered for %s",
                message_name,
                extra=extra_context(event="dispatch", component="consumer", target=delivery.queue, outcome="rejected"),
            )
            return HandlerResult.REJECT

        with Timer() as timer:
            result = self._invoke(handler, envelope)
        if is_debug_enabled(logger):
            logger.debug(
                "%s handled %s",
                handler.name,
                message_name,
                extra=extra_context(
                    event="dispatch", component="consumer", action=message_name, target=delivery.queue,
                    outcome=result.value, duration_ms=timer.duration_ms(), message_id=envelope.message_id,
                ),
            )
        return result

    def _invoke(self, handler: Handler, envelope: Envelope) -> HandlerResult:
        context = dict(component="consumer", action=handler.name, message_id=envelope.message_id)
        try:
            result = handler.handle(envelope.message, envelope)
        except (ValidationError, FormatError) as exc:
            fields = dict(context, event="handler_error", outcome="rejected")
            if isinstance(exc, FormatError):
                fields.update(payload=exc.excerpt(), source=exc.source)
            logger.error("%s: %s", handler.name, exc, extra=extra_context(**fields))
            return HandlerResult.REJECT
        except NotFoundError as exc:
            logger.info("%s: %s", handler.name, exc, extra=extra_context(event="handler_error", outcome="accepted", **context))
            return HandlerResult.ACCEPT
        except Exception as exc:  # pylint: disable=broad-exception-caught
            outcome = HandlerResult.REJECT if envelope.is_redelivery else HandlerResult.REQUEUE
            logger.error(
                "%s failed: %s",
                handler.name,
                exc,
                exc_info=True,
                extra=extra_context(event="handler_error", outcome=outcome.value, **context),
            )
            return outcome
        return HandlerResult.ACCEPT if result is None else result
