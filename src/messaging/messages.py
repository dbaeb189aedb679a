"""Commands and events exchanged through the broker.

Every message is a frozen dataclass with a stable wire form::

    {"type": "<class name>", "payload": {...}, "force": false}

Record-valued fields travel as their ``to_dict()`` scalars; ``force`` bypasses
the duplicate-job guard of command handlers.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Tuple, Type

from common.errors import FormatError
from domain.models import Dependency, Package, Version

_REGISTRY: Dict[str, Type["Message"]] = {}
_RECORDS = {"package": Package, "version": Version, "dependency": Dependency}


class Message:
    """Base of all commands and events."""

    kind: ClassVar[str] = "message"
    force: bool

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.__name__ not in ("Command", "Event"):
            _REGISTRY[cls.__name__] = cls

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name == "force":
                continue
            value = getattr(self, f.name)
            if f.name in _RECORDS:
                value = value.to_dict()
            elif isinstance(value, tuple):
                value = list(value)
            payload[f.name] = value
        return {"type": type(self).__name__, "payload": payload, "force": bool(self.force)}


class Command(Message, ABC):
    kind = "command"

    @abstractmethod
    def dedup_key(self) -> str:
        """Entity key of the job, namespaced by the handler."""


class Event(Message):
    kind = "event"


def message_from_wire(data: Dict[str, Any]) -> Message:
    """Rebuild a message from its wire form.

    Raises:
        FormatError: unknown type or malformed payload.
    """
    try:
        cls = _REGISTRY[data["type"]]
        payload = dict(data.get("payload") or {})
        for name, record in _RECORDS.items():
            if name in payload:
                payload[name] = record.from_dict(payload[name])
        if "changed" in payload:
            payload["changed"] = tuple(payload["changed"])
        return cls(force=bool(data.get("force", False)), **payload)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise FormatError(f"Invalid message: {exc}", payload=str(data)) from exc


# Commands


@dataclass(frozen=True)
class PackageDiscovery(Command):
    package_name: str
    force: bool = False

    def dedup_key(self) -> str:
        return self.package_name


@dataclass(frozen=True)
class PackagePurge(Command):
    package_name: str
    force: bool = False

    def dedup_key(self) -> str:
        return self.package_name


@dataclass(frozen=True)
class CheckDependencyStatus(Command):
    dependency: Dependency
    force: bool = False

    def dedup_key(self) -> str:
        return f"{self.dependency.name}@{self.dependency.version_id}"


@dataclass(frozen=True)
class UpdateDependencyStatus(Command):
    package: Package
    force: bool = False

    def dedup_key(self) -> str:
        return f"{self.package.name}@{self.package.latest_version}"


@dataclass(frozen=True)
class UpdateVersionStatus(Command):
    dependency: Dependency
    force: bool = False

    def dedup_key(self) -> str:
        return str(self.dependency.version_id)


# Events


@dataclass(frozen=True)
class PackageCreated(Event):
    package: Package
    force: bool = False


@dataclass(frozen=True)
class PackageUpdated(Event):
    """``changed`` lists the fields written by the update."""

    package: Package
    changed: Tuple[str, ...] = ()
    force: bool = False


@dataclass(frozen=True)
class VersionCreated(Event):
    version: Version
    force: bool = False


@dataclass(frozen=True)
class VersionUpdated(Event):
    version: Version
    changed: Tuple[str, ...] = ()
    force: bool = False


@dataclass(frozen=True)
class DependencyCreated(Event):
    dependency: Dependency
    force: bool = False


@dataclass(frozen=True)
class DependencyUpdated(Event):
    dependency: Dependency
    changed: Tuple[str, ...] = ()
    force: bool = False


def message_types() -> Dict[str, Type[Message]]:
    return dict(_REGISTRY)
