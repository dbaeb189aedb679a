"""Message contract: commands, events, routing and the in-process broker."""

from .broker import Delivery, InMemoryBroker  # noqa: F401
from .bus import Consumer, Envelope, Handler, HandlerResult, Producer, Router  # noqa: F401
from .dedup import DedupGuard  # noqa: F401
from .messages import (  # noqa: F401
    CheckDependencyStatus,
    Command,
    DependencyCreated,
    DependencyUpdated,
    Event,
    Message,
    PackageCreated,
    PackageDiscovery,
    PackagePurge,
    PackageUpdated,
    UpdateDependencyStatus,
    UpdateVersionStatus,
    VersionCreated,
    VersionUpdated,
    message_from_wire,
)
