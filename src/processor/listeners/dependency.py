"""Dependency event listeners."""
from __future__ import annotations

from messaging.bus import Envelope, Handler, Producer
from messaging.messages import CheckDependencyStatus, DependencyCreated, DependencyUpdated, UpdateVersionStatus


class DependencyCreatedListener(Handler):
    message_type = DependencyCreated

    def __init__(self, producer: Producer):
        self._producer = producer

    def handle(self, message: DependencyCreated, envelope: Envelope) -> None:
        self._producer.send_command(CheckDependencyStatus(dependency=message.dependency))


class DependencyUpdatedListener(Handler):
    message_type = DependencyUpdated

    def __init__(self, producer: Producer):
        self._producer = producer

    def handle(self, message: DependencyUpdated, envelope: Envelope) -> None:
        self._producer.send_command(UpdateVersionStatus(dependency=message.dependency))
