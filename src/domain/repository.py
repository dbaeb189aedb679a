"""Record store contract consumed by the handlers.

``find`` matches on equality of record attributes and returns results ordered
by id (by name for packages and stats). ``update`` must be a no-op unless the
record is dirty and returns a clean record either way.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import Dependency, Package, Preference, PreferenceType, Stats, Version
from .status import DependencyStatus, VersionStatus

Query = Dict[str, Any]


class PackageRepository(ABC):
    """Packages keyed by name."""

    @abstractmethod
    def create(self, name: str, description: str = "", latest_version: str = "", url: str = "") -> Package:
        """Insert a package; raises ValidationError for bad or duplicate names."""

    @abstractmethod
    def all(self) -> List[Package]:
        ...

    @abstractmethod
    def exists(self, name: str) -> bool:
        ...

    @abstractmethod
    def get(self, name: str) -> Package:
        """Raises PackageNotFoundError."""

    @abstractmethod
    def get_by_id(self, package_id: int) -> Package:
        """Raises PackageNotFoundError."""

    @abstractmethod
    def find(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Package]:
        ...

    @abstractmethod
    def update(self, package: Package) -> Package:
        ...

    @abstractmethod
    def delete(self, package: Package) -> None:
        """Delete the package with its versions, dependencies and stats."""


class VersionRepository(ABC):
    """Versions unique on (package_id, number)."""

    @abstractmethod
    def create(
        self,
        package_id: int,
        number: str,
        normalized: str,
        release: bool = False,
        status: VersionStatus = VersionStatus.UNKNOWN,
    ) -> Version:
        ...

    @abstractmethod
    def all(self) -> List[Version]:
        ...

    @abstractmethod
    def get(self, version_id: int) -> Version:
        """Raises VersionNotFoundError."""

    @abstractmethod
    def find(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Version]:
        ...

    @abstractmethod
    def update(self, version: Version) -> Version:
        ...

    @abstractmethod
    def delete(self, version: Version) -> None:
        """Delete the version with its dependencies."""


class DependencyRepository(ABC):
    """Dependencies unique on (version_id, name, development)."""

    @abstractmethod
    def create(
        self,
        version_id: int,
        name: str,
        constraint: str,
        development: bool = False,
        status: DependencyStatus = DependencyStatus.UNKNOWN,
    ) -> Dependency:
        ...

    @abstractmethod
    def all(self) -> List[Dependency]:
        ...

    @abstractmethod
    def get(self, dependency_id: int) -> Dependency:
        """Raises DependencyNotFoundError."""

    @abstractmethod
    def find(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Dependency]:
        ...

    @abstractmethod
    def update(self, dependency: Dependency) -> Dependency:
        ...

    @abstractmethod
    def delete(self, dependency: Dependency) -> None:
        ...


class StatsRepository(ABC):
    """Stats keyed by package name."""

    @abstractmethod
    def create(self, package_name: str, **counters: int) -> Stats:
        ...

    @abstractmethod
    def all(self) -> List[Stats]:
        ...

    @abstractmethod
    def exists(self, package_name: str) -> bool:
        ...

    @abstractmethod
    def get(self, package_name: str) -> Stats:
        """Raises StatsNotFoundError."""

    @abstractmethod
    def update(self, stats: Stats) -> Stats:
        ...

    @abstractmethod
    def delete(self, stats: Stats) -> None:
        ...


class PreferenceRepository(ABC):
    """Preferences unique on (category, property)."""

    @abstractmethod
    def create(
        self,
        category: str,
        property: str,  # pylint: disable=redefined-builtin
        value: str,
        type: PreferenceType = PreferenceType.STRING,  # pylint: disable=redefined-builtin
    ) -> Preference:
        ...

    @abstractmethod
    def all(self) -> List[Preference]:
        ...

    @abstractmethod
    def get(self, preference_id: int) -> Preference:
        """Raises PreferenceNotFoundError."""

    @abstractmethod
    def find(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Preference]:
        ...

    @abstractmethod
    def update(self, preference: Preference) -> Preference:
        ...

    @abstractmethod
    def delete(self, preference: Preference) -> None:
        ...
