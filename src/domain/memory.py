"""Thread-safe in-memory record store.

All repositories of one ``InMemoryStore`` share a single ``RLock`` so that
cascading deletes are atomic. ``writes`` counts successful inserts, updates
and deletes, which lets callers observe that a replayed message did not write.
"""
from __future__ import annotations

import itertools
import json
import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from common.errors import (
    DependencyNotFoundError,
    FormatError,
    PackageNotFoundError,
    PreferenceNotFoundError,
    StatsNotFoundError,
    ValidationError,
    VersionNotFoundError,
)
from common.logging_utils import extra_context, is_debug_enabled

from .models import (
    STATS_COUNTERS,
    Dependency,
    Package,
    Preference,
    PreferenceType,
    Stats,
    Version,
    assert_valid_package_name,
)
from .repository import (
    DependencyRepository,
    PackageRepository,
    PreferenceRepository,
    Query,
    StatsRepository,
    VersionRepository,
)
from .status import DependencyStatus, VersionStatus

logger = logging.getLogger(__name__)

R = TypeVar("R")


def _matches(record: Any, query: Query) -> bool:
    return all(getattr(record, key) == value for key, value in query.items())


def _select(
    records: Iterable[R],
    query: Query,
    order: Callable[[R], Any],
    limit: Optional[int],
    offset: int,
) -> List[R]:
    found = sorted((r for r in records if _matches(r, query)), key=order)
    if limit is None:
        return found[offset:]
    return found[offset:offset + limit]


class InMemoryStore:
    """Owns the tables and hands out one repository per record type."""

    def __init__(self, preference_storage: Optional[Any] = None):
        """Initialize empty tables.

        Args:
            preference_storage: Blob storage (``LocalFileStorage``) that keeps the
                preference table across processes; in-memory only when None.
        """
        self.lock = threading.RLock()
        self.writes = 0
        self._ids = itertools.count(1)
        self.package_rows: Dict[str, Package] = {}
        self.version_rows: Dict[int, Version] = {}
        self.dependency_rows: Dict[int, Dependency] = {}
        self.stats_rows: Dict[str, Stats] = {}
        self.preference_rows: Dict[int, Preference] = {}

        self.packages = InMemoryPackageRepository(self)
        self.versions = InMemoryVersionRepository(self)
        self.dependencies = InMemoryDependencyRepository(self)
        self.stats = InMemoryStatsRepository(self)
        if preference_storage is not None:
            self.preferences: PreferenceRepository = FilePreferenceRepository(self, preference_storage)
        else:
            self.preferences = InMemoryPreferenceRepository(self)

    def next_id(self) -> int:
        return next(self._ids)

    def record_write(self, action: str, entity: str, key: Any) -> None:
        self.writes += 1
        if is_debug_enabled(logger):
            logger.debug(
                "Store write",
                extra=extra_context(
                    event="store_write", component="store", action=action, target=entity, key=str(key)
                ),
            )

    def delete_dependencies_of(self, version_id: int) -> None:
        for dep_id in [d.id for d in self.dependency_rows.values() if d.version_id == version_id]:
            del self.dependency_rows[dep_id]
            self.record_write("delete", "dependency", dep_id)

    def delete_version_rows(self, version_id: int) -> None:
        self.delete_dependencies_of(version_id)
        if self.version_rows.pop(version_id, None) is not None:
            self.record_write("delete", "version", version_id)


class InMemoryPackageRepository(PackageRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    def create(self, name: str, description: str = "", latest_version: str = "", url: str = "") -> Package:
        assert_valid_package_name(name)
        with self._store.lock:
            if name in self._store.package_rows:
                raise ValidationError(f'Package "{name}" already exists')
            package = Package(
                name=name,
                description=description,
                latest_version=latest_version,
                url=url,
                id=self._store.next_id(),
            )
            self._store.package_rows[name] = package
            self._store.record_write("create", "package", name)
            return package

    def all(self) -> List[Package]:
        with self._store.lock:
            return sorted(self._store.package_rows.values(), key=lambda p: p.name)

    def exists(self, name: str) -> bool:
        with self._store.lock:
            return name in self._store.package_rows

    def get(self, name: str) -> Package:
        with self._store.lock:
            try:
                return self._store.package_rows[name]
            except KeyError:
                raise PackageNotFoundError(f'Package "{name}" not found') from None

    def get_by_id(self, package_id: int) -> Package:
        with self._store.lock:
            for package in self._store.package_rows.values():
                if package.id == package_id:
                    return package
        raise PackageNotFoundError(f'Package #{package_id} not found')

    def find(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Package]:
        with self._store.lock:
            return _select(self._store.package_rows.values(), query, lambda p: p.name, limit, offset)

    def update(self, package: Package) -> Package:
        if not package.is_dirty():
            return package
        with self._store.lock:
            if package.name not in self._store.package_rows:
                raise PackageNotFoundError(f'Package "{package.name}" not found')
            clean = package.clean()
            self._store.package_rows[package.name] = clean
            self._store.record_write("update", "package", package.name)
            return clean

    def delete(self, package: Package) -> None:
        with self._store.lock:
            stored = self._store.package_rows.pop(package.name, None)
            if stored is None:
                raise PackageNotFoundError(f'Package "{package.name}" not found')
            for version_id in [v.id for v in self._store.version_rows.values() if v.package_id == stored.id]:
                self._store.delete_version_rows(version_id)
            if self._store.stats_rows.pop(package.name, None) is not None:
                self._store.record_write("delete", "stats", package.name)
            self._store.record_write("delete", "package", package.name)


class InMemoryVersionRepository(VersionRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    def create(
        self,
        package_id: int,
        number: str,
        normalized: str,
        release: bool = False,
        status: VersionStatus = VersionStatus.UNKNOWN,
    ) -> Version:
        with self._store.lock:
            for existing in self._store.version_rows.values():
                if existing.package_id == package_id and existing.number == number:
                    raise ValidationError(f'Version "{number}" already exists for package #{package_id}')
            version = Version(
                package_id=package_id,
                number=number,
                normalized=normalized,
                release=release,
                status=status,
                id=self._store.next_id(),
            )
            self._store.version_rows[version.id] = version
            self._store.record_write("create", "version", version.id)
            return version

    def all(self) -> List[Version]:
        with self._store.lock:
            return sorted(self._store.version_rows.values(), key=lambda v: v.id)

    def get(self, version_id: int) -> Version:
        with self._store.lock:
            try:
                return self._store.version_rows[version_id]
            except KeyError:
                raise VersionNotFoundError(f"Version #{version_id} not found") from None

    def find(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Version]:
        with self._store.lock:
            return _select(self._store.version_rows.values(), query, lambda v: v.id, limit, offset)

    def update(self, version: Version) -> Version:
        if not version.is_dirty():
            return version
        with self._store.lock:
            if version.id not in self._store.version_rows:
                raise VersionNotFoundError(f"Version #{version.id} not found")
            clean = version.clean()
            self._store.version_rows[version.id] = clean
            self._store.record_write("update", "version", version.id)
            return clean

    def delete(self, version: Version) -> None:
        with self._store.lock:
            if version.id not in self._store.version_rows:
                raise VersionNotFoundError(f"Version #{version.id} not found")
            self._store.delete_version_rows(version.id)


class InMemoryDependencyRepository(DependencyRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    def create(
        self,
        version_id: int,
        name: str,
        constraint: str,
        development: bool = False,
        status: DependencyStatus = DependencyStatus.UNKNOWN,
    ) -> Dependency:
        with self._store.lock:
            key: Tuple[int, str, bool] = (version_id, name, development)
            for existing in self._store.dependency_rows.values():
                if (existing.version_id, existing.name, existing.development) == key:
                    raise ValidationError(f'Dependency "{name}" already exists for version #{version_id}')
            dependency = Dependency(
                version_id=version_id,
                name=name,
                constraint=constraint,
                development=development,
                status=status,
                id=self._store.next_id(),
            )
            self._store.dependency_rows[dependency.id] = dependency
            self._store.record_write("create", "dependency", dependency.id)
            return dependency

    def all(self) -> List[Dependency]:
        with self._store.lock:
            return sorted(self._store.dependency_rows.values(), key=lambda d: d.id)

    def get(self, dependency_id: int) -> Dependency:
        with self._store.lock:
            try:
                return self._store.dependency_rows[dependency_id]
            except KeyError:
                raise DependencyNotFoundError(f"Dependency #{dependency_id} not found") from None

    def find(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Dependency]:
        with self._store.lock:
            return _select(self._store.dependency_rows.values(), query, lambda d: d.id, limit, offset)

    def update(self, dependency: Dependency) -> Dependency:
        if not dependency.is_dirty():
            return dependency
        with self._store.lock:
            if dependency.id not in self._store.dependency_rows:
                raise DependencyNotFoundError(f"Dependency #{dependency.id} not found")
            clean = dependency.clean()
            self._store.dependency_rows[dependency.id] = clean
            self._store.record_write("update", "dependency", dependency.id)
            return clean

    def delete(self, dependency: Dependency) -> None:
        with self._store.lock:
            if self._store.dependency_rows.pop(dependency.id, None) is None:
                raise DependencyNotFoundError(f"Dependency #{dependency.id} not found")
            self._store.record_write("delete", "dependency", dependency.id)


class InMemoryStatsRepository(StatsRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    def create(self, package_name: str, **counters: int) -> Stats:
        unknown = set(counters) - set(STATS_COUNTERS)
        if unknown:
            raise ValidationError(f"Unknown stats counters: {sorted(unknown)}")
        with self._store.lock:
            if package_name in self._store.stats_rows:
                raise ValidationError(f'Stats for "{package_name}" already exist')
            stats = Stats(package_name=package_name, **counters)
            self._store.stats_rows[package_name] = stats
            self._store.record_write("create", "stats", package_name)
            return stats

    def all(self) -> List[Stats]:
        with self._store.lock:
            return sorted(self._store.stats_rows.values(), key=lambda s: s.package_name)

    def exists(self, package_name: str) -> bool:
        with self._store.lock:
            return package_name in self._store.stats_rows

    def get(self, package_name: str) -> Stats:
        with self._store.lock:
            try:
                return self._store.stats_rows[package_name]
            except KeyError:
                raise StatsNotFoundError(f'Stats for "{package_name}" not found') from None

    def update(self, stats: Stats) -> Stats:
        if not stats.is_dirty():
            return stats
        with self._store.lock:
            if stats.package_name not in self._store.stats_rows:
                raise StatsNotFoundError(f'Stats for "{stats.package_name}" not found')
            clean = stats.clean()
            self._store.stats_rows[stats.package_name] = clean
            self._store.record_write("update", "stats", stats.package_name)
            return clean

    def delete(self, stats: Stats) -> None:
        with self._store.lock:
            if self._store.stats_rows.pop(stats.package_name, None) is None:
                raise StatsNotFoundError(f'Stats for "{stats.package_name}" not found')
            self._store.record_write("delete", "stats", stats.package_name)


class InMemoryPreferenceRepository(PreferenceRepository):
    def __init__(self, store: InMemoryStore):
        self._store = store

    def create(
        self,
        category: str,
        property: str,  # pylint: disable=redefined-builtin
        value: str,
        type: PreferenceType = PreferenceType.STRING,  # pylint: disable=redefined-builtin
    ) -> Preference:
        with self._store.lock:
            for existing in self._store.preference_rows.values():
                if existing.category == category and existing.property == property:
                    raise ValidationError(f'Preference "{category}.{property}" already exists')
            preference = Preference(
                category=category,
                property=property,
                value=str(value),
                type=type,
                id=self._store.next_id(),
            )
            self._store.preference_rows[preference.id] = preference
            self._store.record_write("create", "preference", preference.id)
            return preference

    def all(self) -> List[Preference]:
        with self._store.lock:
            return sorted(self._store.preference_rows.values(), key=lambda p: p.id)

    def get(self, preference_id: int) -> Preference:
        with self._store.lock:
            try:
                return self._store.preference_rows[preference_id]
            except KeyError:
                raise PreferenceNotFoundError(f"Preference #{preference_id} not found") from None

    def find(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Preference]:
        with self._store.lock:
            return _select(self._store.preference_rows.values(), query, lambda p: p.id, limit, offset)

    def update(self, preference: Preference) -> Preference:
        if not preference.is_dirty():
            return preference
        with self._store.lock:
            if preference.id not in self._store.preference_rows:
                raise PreferenceNotFoundError(f"Preference #{preference.id} not found")
            clean = preference.clean()
            self._store.preference_rows[preference.id] = clean
            self._store.record_write("update", "preference", preference.id)
            return clean

    def delete(self, preference: Preference) -> None:
        with self._store.lock:
            if self._store.preference_rows.pop(preference.id, None) is None:
                raise PreferenceNotFoundError(f"Preference #{preference.id} not found")
            self._store.record_write("delete", "preference", preference.id)


class FilePreferenceRepository(InMemoryPreferenceRepository):
    """Preferences mirrored to a JSON blob so the sync cursor outlives the process.

    The blob is read once on construction and rewritten after every write.
    Ids are reassigned on load; (category, property) is the durable key.
    """

    KEY = "pkghealth/preferences.json"

    def __init__(self, store: InMemoryStore, storage: Any):
        super().__init__(store)
        self._storage = storage
        self._load()

    def _load(self) -> None:
        if not self._storage.exists(self.KEY):
            return
        raw = self._storage.read_content(self.KEY).decode("utf-8")
        try:
            rows = json.loads(raw)
            preferences = [Preference.from_dict(row) for row in rows]
        except (ValueError, KeyError, TypeError) as exc:
            raise FormatError(f"Invalid preference file: {exc}", payload=raw, source=self.KEY) from exc
        with self._store.lock:
            for preference in preferences:
                preference = replace(preference, id=self._store.next_id())
                self._store.preference_rows[preference.id] = preference
        if is_debug_enabled(logger):
            logger.debug(
                "Loaded %d preference(s)",
                len(preferences),
                extra=extra_context(event="load", component="store", target="preference", count=len(preferences)),
            )

    def _save(self) -> None:
        rows = [p.to_dict() for p in self.all()]
        for row in rows:
            row.pop("id", None)
        self._storage.write_content(self.KEY, json.dumps(rows, indent=2, sort_keys=True).encode("utf-8"))

    def create(
        self,
        category: str,
        property: str,  # pylint: disable=redefined-builtin
        value: str,
        type: PreferenceType = PreferenceType.STRING,  # pylint: disable=redefined-builtin
    ) -> Preference:
        with self._store.lock:
            preference = super().create(category, property, value, type)
            self._save()
            return preference

    def update(self, preference: Preference) -> Preference:
        if not preference.is_dirty():
            return preference
        with self._store.lock:
            clean = super().update(preference)
            self._save()
            return clean

    def delete(self, preference: Preference) -> None:
        with self._store.lock:
            super().delete(preference)
            self._save()
