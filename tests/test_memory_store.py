"""Tests for the in-memory record store."""

import pytest

from common.errors import FormatError, PackageNotFoundError, ValidationError, VersionNotFoundError
from domain import DependencyStatus, InMemoryStore, PreferenceType
from domain.memory import FilePreferenceRepository
from registry.packagist import LocalFileStorage


@pytest.fixture
def store():
    return InMemoryStore()


class TestUniqueness:
    """Unique keys per record type."""

    def test_package_name_unique_and_validated(self, store):
        store.packages.create("acme/widget")
        with pytest.raises(ValidationError):
            store.packages.create("acme/widget")
        with pytest.raises(ValidationError):
            store.packages.create("not-a-name")

    def test_version_unique_per_package(self, store):
        """The same number may exist in two packages, not twice in one."""
        first = store.packages.create("acme/widget")
        second = store.packages.create("acme/core")
        store.versions.create(first.id, "1.0.0", "1.0.0.0", release=True)
        store.versions.create(second.id, "1.0.0", "1.0.0.0", release=True)
        with pytest.raises(ValidationError):
            store.versions.create(first.id, "1.0.0", "1.0.0.0", release=True)

    def test_dependency_unique_per_version_and_kind(self, store):
        package = store.packages.create("acme/widget")
        version = store.versions.create(package.id, "1.0.0", "1.0.0.0", release=True)
        store.dependencies.create(version.id, "acme/core", "^1.0")
        store.dependencies.create(version.id, "acme/core", "^1.0", development=True)
        with pytest.raises(ValidationError):
            store.dependencies.create(version.id, "acme/core", "^2.0")

    def test_preference_unique_per_category_property(self, store):
        store.preferences.create("packagist", "timestamp", "1", PreferenceType.INTEGER)
        with pytest.raises(ValidationError):
            store.preferences.create("packagist", "timestamp", "2", PreferenceType.INTEGER)


class TestCascade:
    """Deletes remove dependent records."""

    def test_package_delete_cascades(self, store):
        package = store.packages.create("acme/widget")
        version = store.versions.create(package.id, "1.0.0", "1.0.0.0", release=True)
        store.dependencies.create(version.id, "acme/core", "^1.0")
        store.stats.create("acme/widget", favers=2)

        store.packages.delete(package)

        assert store.versions.all() == []
        assert store.dependencies.all() == []
        assert not store.stats.exists("acme/widget")
        with pytest.raises(PackageNotFoundError):
            store.packages.get("acme/widget")

    def test_version_delete_cascades(self, store):
        package = store.packages.create("acme/widget")
        keep = store.versions.create(package.id, "1.0.0", "1.0.0.0", release=True)
        drop = store.versions.create(package.id, "dev-old", "dev-old")
        store.dependencies.create(keep.id, "acme/core", "^1.0")
        store.dependencies.create(drop.id, "acme/core", "^1.0")

        store.versions.delete(drop)

        assert [d.version_id for d in store.dependencies.all()] == [keep.id]
        with pytest.raises(VersionNotFoundError):
            store.versions.get(drop.id)


class TestFind:
    """Query, ordering and pagination."""

    def test_find_by_fields(self, store):
        package = store.packages.create("acme/widget")
        store.versions.create(package.id, "1.0.0", "1.0.0.0", release=True)
        store.versions.create(package.id, "dev-main", "dev-main")
        assert [v.number for v in store.versions.find({"package_id": package.id, "release": False})] == ["dev-main"]

    def test_limit_and_offset(self, store):
        """Pages are stable in id order."""
        package = store.packages.create("acme/widget")
        version = store.versions.create(package.id, "1.0.0", "1.0.0.0", release=True)
        for index in range(5):
            store.dependencies.create(version.id, f"acme/lib{index}", "^1.0")

        query = {"name": "acme/lib3"}
        assert len(store.dependencies.find(query)) == 1
        pages = [store.dependencies.find({"version_id": version.id}, limit=2, offset=o) for o in (0, 2, 4)]
        names = [d.name for page in pages for d in page]
        assert names == [f"acme/lib{i}" for i in range(5)]
        assert len(pages[-1]) == 1

    def test_packages_sorted_by_name(self, store):
        store.packages.create("zeta/pkg")
        store.packages.create("acme/pkg")
        assert [p.name for p in store.packages.find({})] == ["acme/pkg", "zeta/pkg"]


class TestDirtyGatedWrites:
    """Only dirty records reach the tables."""

    def test_clean_update_does_not_write(self, store):
        package = store.packages.create("acme/widget")
        writes = store.writes
        assert store.packages.update(package.with_description("")) is package
        assert store.writes == writes

    def test_dirty_update_writes_once_and_returns_clean(self, store):
        package = store.packages.create("acme/widget")
        version = store.versions.create(package.id, "1.0.0", "1.0.0.0", release=True)
        dependency = store.dependencies.create(version.id, "acme/core", "^1.0")
        writes = store.writes

        saved = store.dependencies.update(dependency.with_status(DependencyStatus.OUTDATED))

        assert store.writes == writes + 1
        assert not saved.is_dirty()
        assert store.dependencies.get(dependency.id).status is DependencyStatus.OUTDATED

    def test_update_of_deleted_record_fails(self, store):
        package = store.packages.create("acme/widget")
        store.packages.delete(package)
        with pytest.raises(PackageNotFoundError):
            store.packages.update(package.with_description("gone"))


class TestFilePreferences:
    """Preferences backed by the blob cache survive a new store."""

    def test_cursor_survives_restart(self, tmp_path):
        store = InMemoryStore(preference_storage=LocalFileStorage(str(tmp_path)))
        cursor = store.preferences.create("packagist", "timestamp", "100", PreferenceType.INTEGER)
        store.preferences.update(cursor.with_integer_value(250))

        reopened = InMemoryStore(preference_storage=LocalFileStorage(str(tmp_path)))
        [loaded] = reopened.preferences.find({"category": "packagist", "property": "timestamp"})
        assert loaded.as_integer() == 250
        assert loaded.type is PreferenceType.INTEGER
        assert reopened.writes == 0

    def test_unchanged_update_does_not_rewrite(self, tmp_path):
        storage = LocalFileStorage(str(tmp_path))
        store = InMemoryStore(preference_storage=storage)
        cursor = store.preferences.create("packagist", "timestamp", "100", PreferenceType.INTEGER)
        storage.delete(FilePreferenceRepository.KEY)

        store.preferences.update(cursor.with_integer_value(100))

        assert not storage.exists(FilePreferenceRepository.KEY)

    def test_delete_is_persisted(self, tmp_path):
        store = InMemoryStore(preference_storage=LocalFileStorage(str(tmp_path)))
        store.preferences.delete(store.preferences.create("ui", "theme", "dark"))

        reopened = InMemoryStore(preference_storage=LocalFileStorage(str(tmp_path)))
        assert reopened.preferences.all() == []

    def test_malformed_file(self, tmp_path):
        storage = LocalFileStorage(str(tmp_path))
        storage.write_content(FilePreferenceRepository.KEY, b"{not json")
        with pytest.raises(FormatError):
            InMemoryStore(preference_storage=storage)
