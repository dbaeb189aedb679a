"""Domain records: Package, Version, Dependency, Stats and Preference."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from common.errors import ValidationError
from versioning.models import Stability
from versioning.parser import parse_stability

from .entity import Entity, parse_timestamp, utcnow
from .status import DependencyStatus, VersionStatus

# https://getcomposer.org/doc/04-schema.md#name
_VENDOR = r"[a-z0-9]([_.-]?[a-z0-9]+)*"
_PROJECT = r"[a-z0-9](([_.]?|-{0,2})[a-z0-9]+)*"
_PACKAGE_NAME = re.compile(rf"^{_VENDOR}/{_PROJECT}$")


def is_valid_package_name(name: str) -> bool:
    return _PACKAGE_NAME.match(name) is not None


def assert_valid_package_name(name: str) -> None:
    if not is_valid_package_name(name):
        raise ValidationError(
            f'Invalid package name "{name}": package names must follow the format "vendor/project"'
        )


@dataclass(frozen=True)
class Package(Entity):
    """A registry package identified by its "vendor/project" name."""

    name: str
    description: str = ""
    latest_version: str = ""
    url: str = ""
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    changes: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    dirty: bool = field(default=False, compare=False, repr=False)

    @property
    def vendor(self) -> str:
        return self.name.split("/", 1)[0]

    @property
    def project(self) -> str:
        return self.name.split("/", 1)[-1]

    def with_description(self, description: str) -> "Package":
        return self._with(description=description)

    def with_latest_version(self, latest_version: str) -> "Package":
        return self._with(latest_version=latest_version)

    def with_url(self, url: str) -> "Package":
        return self._with(url=url)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Package":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            latest_version=data.get("latest_version", ""),
            url=data.get("url", ""),
            id=data.get("id"),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass(frozen=True)
class Version(Entity):
    """A tagged release or development branch of a package."""

    package_id: int
    number: str
    normalized: str
    release: bool = False
    status: VersionStatus = VersionStatus.UNKNOWN
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    changes: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    dirty: bool = field(default=False, compare=False, repr=False)

    def is_release(self) -> bool:
        return self.release

    def is_stable(self) -> bool:
        return parse_stability(self.normalized) is Stability.STABLE

    def with_number(self, number: str) -> "Version":
        return self._with(number=number)

    def with_normalized(self, normalized: str) -> "Version":
        return self._with(normalized=normalized)

    def with_package_id(self, package_id: int) -> "Version":
        return self._with(package_id=package_id)

    def with_release(self, release: bool) -> "Version":
        return self._with(release=release)

    def with_status(self, status: VersionStatus) -> "Version":
        return self._with(status=status)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Version":
        return cls(
            package_id=data["package_id"],
            number=data["number"],
            normalized=data["normalized"],
            release=bool(data.get("release", False)),
            status=VersionStatus(data.get("status", VersionStatus.UNKNOWN.value)),
            id=data.get("id"),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass(frozen=True)
class Dependency(Entity):
    """A require/require-dev entry of a Version."""

    version_id: int
    name: str
    constraint: str
    development: bool = False
    status: DependencyStatus = DependencyStatus.UNKNOWN
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    changes: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    dirty: bool = field(default=False, compare=False, repr=False)

    def with_constraint(self, constraint: str) -> "Dependency":
        return self._with(constraint=constraint)

    def with_development(self, development: bool) -> "Dependency":
        return self._with(development=development)

    def with_status(self, status: DependencyStatus) -> "Dependency":
        return self._with(status=status)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Dependency":
        return cls(
            version_id=data["version_id"],
            name=data["name"],
            constraint=data["constraint"],
            development=bool(data.get("development", False)),
            status=DependencyStatus(data.get("status", DependencyStatus.UNKNOWN.value)),
            id=data.get("id"),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


STATS_COUNTERS = (
    "github_stars",
    "github_watchers",
    "github_forks",
    "dependents",
    "suggesters",
    "favers",
    "total_downloads",
    "monthly_downloads",
    "daily_downloads",
)


@dataclass(frozen=True)
class Stats(Entity):
    """Popularity counters of a package."""

    package_name: str
    github_stars: int = 0
    github_watchers: int = 0
    github_forks: int = 0
    dependents: int = 0
    suggesters: int = 0
    favers: int = 0
    total_downloads: int = 0
    monthly_downloads: int = 0
    daily_downloads: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    changes: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    dirty: bool = field(default=False, compare=False, repr=False)

    def with_counters(self, **counters: int) -> "Stats":
        unknown = set(counters) - set(STATS_COUNTERS)
        if unknown:
            raise ValidationError(f"Unknown stats counters: {sorted(unknown)}")
        return self._with(**counters)


class PreferenceType(Enum):
    """Type tag of a stored preference value."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOL = "bool"


@dataclass(frozen=True)
class Preference(Entity):
    """Typed key/value addressed by (category, property)."""

    category: str
    property: str
    value: str
    type: PreferenceType = PreferenceType.STRING
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    changes: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    dirty: bool = field(default=False, compare=False, repr=False)

    def as_string(self) -> str:
        return self.value

    def as_integer(self) -> int:
        return int(self.value)

    def as_float(self) -> float:
        return float(self.value)

    def as_bool(self) -> bool:
        return self.value.lower() in ("1", "true")

    def with_string_value(self, value: str) -> "Preference":
        return self._with(value=value, type=PreferenceType.STRING)

    def with_integer_value(self, value: int) -> "Preference":
        return self._with(value=str(int(value)), type=PreferenceType.INTEGER)

    def with_float_value(self, value: float) -> "Preference":
        return self._with(value=repr(float(value)), type=PreferenceType.FLOAT)

    def with_bool_value(self, value: bool) -> "Preference":
        return self._with(value="true" if value else "false", type=PreferenceType.BOOL)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Preference":
        return cls(
            category=data["category"],
            property=data["property"],
            value=str(data["value"]),
            type=PreferenceType(data.get("type", PreferenceType.STRING.value)),
            id=data.get("id"),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(data.get("updated_at")),
        )
