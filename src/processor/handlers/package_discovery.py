"""Pull registry metadata of a package and persist new versions and dependencies.

Both metadata views are processed, development branches ("name~dev") first and
tagged releases ("name") second:

- stored versions are matched by normalized string, unknown ones are created
  oldest first and announced with VersionCreated;
- a package without a latest version is seeded from the newest stable tag;
- each release's require/require-dev entries become dependencies, a release
  without package requirements is flagged NO_DEPS;
- stored branches that disappeared from the registry are deleted.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from common.errors import FormatError, NotFoundError
from common.logging_utils import Timer, extra_context, is_debug_enabled
from domain.models import Package, Version
from domain.repository import DependencyRepository, PackageRepository, VersionRepository
from domain.status import VersionStatus
from messaging.bus import Envelope, HandlerResult, Producer
from messaging.dedup import DedupGuard
from messaging.messages import DependencyCreated, PackageDiscovery, VersionCreated
from processor.persist import save_package, save_version
from registry.packagist import PackagistClient
from versioning.constraint import SELF_VERSION
from versioning.models import Stability
from versioning.parser import is_branch, normalize, parse_stability

from .base import CommandHandler

logger = logging.getLogger(__name__)

_PLATFORM_REQUIREMENT = re.compile(r"^(php|hhvm|ext-.*|lib-.*|pear-.*)$")
_PACKAGE_REQUIREMENT = re.compile(r"^[^/]+/[^/]+$")


def filter_requirements(requirements: Any) -> Dict[str, str]:
    """Keep "vendor/project" requirements, dropping platform packages."""
    if not isinstance(requirements, dict):
        return {}
    return {
        str(name): str(constraint)
        for name, constraint in requirements.items()
        if not _PLATFORM_REQUIREMENT.match(str(name)) and _PACKAGE_REQUIREMENT.match(str(name))
    }


def _release_identity(record: Dict[str, Any], source: str) -> tuple:
    number = record.get("version") if isinstance(record, dict) else None
    if not isinstance(number, str) or not number:
        raise FormatError("Release record without a version", payload=json.dumps(record)[:2048], source=source)
    normalized = record.get("version_normalized") or normalize(number)
    return number, str(normalized)


class PackageDiscoveryHandler(CommandHandler):
    message_type = PackageDiscovery

    def __init__(
        self,
        packages: PackageRepository,
        versions: VersionRepository,
        dependencies: DependencyRepository,
        client: PackagistClient,
        producer: Producer,
        dedup: Optional[DedupGuard] = None,
        mirror: Optional[str] = None,
    ):
        super().__init__(producer, dedup)
        self._packages = packages
        self._versions = versions
        self._dependencies = dependencies
        self._client = client
        self._mirror = mirror

    def process(self, command: PackageDiscovery, envelope: Envelope) -> HandlerResult:
        package = self._packages.get(command.package_name)
        logger.info(
            "Package discovery: %s",
            package.name,
            extra=extra_context(event="discovery", component="handler", action="start", package=package.name),
        )

        with Timer() as timer:
            branches = self._fetch(f"{package.name}~dev")
            tags = self._fetch(package.name)

            newest = (tags or branches or [None])[0]
            if newest is not None:
                package = self._refresh_package(package, newest)

            if branches is not None:
                package = self._sync_releases(package, branches, f"{package.name}~dev")
                self._cleanup_branches(package, branches)
            if tags is not None:
                package = self._sync_releases(package, tags, package.name)
                if not package.latest_version:
                    package = self._seed_latest_version(package, tags)

        logger.info(
            "Package discovery finished: %s",
            package.name,
            extra=extra_context(
                event="discovery", component="handler", action="finish", package=package.name,
                outcome="accepted", duration_ms=timer.duration_ms(),
            ),
        )
        return HandlerResult.ACCEPT

    def _fetch(self, view: str) -> Optional[List[Dict[str, Any]]]:
        try:
            releases = self._client.get_metadata_v2(view, self._mirror)
        except NotFoundError as exc:
            logger.warning(
                "Metadata not found for %s: %s",
                view,
                exc,
                extra=extra_context(event="discovery", component="handler", action="fetch", target=view, outcome="not_found"),
            )
            return None
        if is_debug_enabled(logger):
            logger.debug(
                "Processing release list",
                extra=extra_context(event="discovery", component="handler", action="fetch", target=view, count=len(releases)),
            )
        return releases

    def _refresh_package(self, package: Package, newest: Dict[str, Any]) -> Package:
        source = newest.get("source") if isinstance(newest.get("source"), dict) else {}
        package = package.with_description(str(newest.get("description") or "")).with_url(str(source.get("url") or ""))
        return save_package(self._packages, self._producer, package)

    def _sync_releases(self, package: Package, releases: List[Dict[str, Any]], view: str) -> Package:
        stored = self._versions.find({"package_id": package.id})
        known = {
            True: {v.normalized: v for v in stored if v.release},
            False: {v.normalized: v for v in stored if not v.release},
        }
        for record in reversed(releases):
            number, normalized = _release_identity(record, view)
            release = not is_branch(number)
            version = known[release].get(normalized)
            if version is None:
                version = self._versions.create(package.id, number, normalized, release, VersionStatus.UNKNOWN)
                known[release][normalized] = version
                self._producer.send_event(VersionCreated(version=version))
            self._sync_dependencies(version, record)
        return package

    def _sync_dependencies(self, version: Version, record: Dict[str, Any]) -> None:
        require = filter_requirements(record.get("require"))
        require_dev = filter_requirements(record.get("require-dev"))

        if not require:
            save_version(self._versions, self._producer, version.with_status(VersionStatus.NO_DEPS))

        for development, requirements in ((False, require), (True, require_dev)):
            for name, constraint in requirements.items():
                if constraint.strip() == SELF_VERSION:
                    if not version.release:
                        continue
                    constraint = version.number
                found = self._dependencies.find(
                    {"version_id": version.id, "name": name, "development": development}, limit=1
                )
                if found:
                    continue
                dependency = self._dependencies.create(version.id, name, constraint, development)
                self._producer.send_event(DependencyCreated(dependency=dependency))

    def _seed_latest_version(self, package: Package, releases: List[Dict[str, Any]]) -> Package:
        for record in releases:
            number, normalized = _release_identity(record, package.name)
            if is_branch(number) or parse_stability(normalized) is not Stability.STABLE:
                continue
            return save_package(self._packages, self._producer, package.with_latest_version(number))
        return package

    def _cleanup_branches(self, package: Package, branches: List[Dict[str, Any]]) -> None:
        remote = {_release_identity(record, package.name)[1] for record in branches}
        for version in self._versions.find({"package_id": package.id, "release": False}):
            if version.normalized in remote:
                continue
            logger.info(
                "Removing branch %s of %s",
                version.number,
                package.name,
                extra=extra_context(event="discovery", component="handler", action="cleanup", package=package.name),
            )
            self._versions.delete(version)
