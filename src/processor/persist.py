"""Dirty-gated writes that announce themselves with an ``*Updated`` event."""
from __future__ import annotations

from domain.models import Dependency, Package, Version
from domain.repository import DependencyRepository, PackageRepository, VersionRepository
from domain.status import DependencyStatus, evaluate
from common.errors import PackageNotFoundError
from messaging.bus import Producer
from messaging.messages import DependencyUpdated, PackageUpdated, VersionUpdated


def save_package(packages: PackageRepository, producer: Producer, package: Package) -> Package:
    if not package.is_dirty():
        return package
    changed = tuple(sorted(package.changes))
    package = packages.update(package)
    producer.send_event(PackageUpdated(package=package, changed=changed))
    return package


def save_version(versions: VersionRepository, producer: Producer, version: Version) -> Version:
    if not version.is_dirty():
        return version
    changed = tuple(sorted(version.changes))
    version = versions.update(version)
    producer.send_event(VersionUpdated(version=version, changed=changed))
    return version


def save_dependency(dependencies: DependencyRepository, producer: Producer, dependency: Dependency) -> Dependency:
    if not dependency.is_dirty():
        return dependency
    changed = tuple(sorted(dependency.changes))
    dependency = dependencies.update(dependency)
    producer.send_event(DependencyUpdated(dependency=dependency, changed=changed))
    return dependency


def dependency_status(packages: PackageRepository, dependency: Dependency) -> DependencyStatus:
    """Status of dependency against the latest release of its target package.

    Targets that are not tracked, or have no known release yet, are UNKNOWN.
    """
    try:
        target = packages.get(dependency.name)
    except PackageNotFoundError:
        return DependencyStatus.UNKNOWN
    return evaluate(target.latest_version, dependency.constraint)
