"""Registry polling commands: package list, change feed, single package and stats."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from common.errors import ValidationError
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants
from domain.models import Package, PreferenceType, is_valid_package_name
from messaging.messages import PackageCreated, PackageDiscovery, PackagePurge
from processor.app import Application
from registry.packagist import extract_stats, strip_dev_suffix

logger = logging.getLogger(__name__)


def _ensure_package(app: Application, name: str) -> Optional[Package]:
    """Return the tracked package, creating it when missing; None for invalid names."""
    packages = app.store.packages
    if packages.exists(name):
        return packages.get(name)
    try:
        return packages.create(name)
    except ValidationError as exc:
        logger.warning("Skipping package: %s", exc)
        return None


def get_list(app: Application, mirror: Optional[str] = None, resync: bool = False) -> Dict[str, int]:
    """Diff the registry package list against the tracked packages.

    New names are created and announced with PackageCreated, names gone from
    the registry are purged. With ``resync`` every listed package gets a
    forced discovery instead.

    Returns:
        dict: Counts of listed, added, removed and resynced packages.
    """
    mirror = mirror or Constants.MIRROR_URL
    with Timer() as timer:
        listed = app.client.get_package_list(mirror)
    logger.info(
        "Got %d package(s) from %s",
        len(listed),
        safe_url(mirror),
        extra=extra_context(event="get_list", component="cli", count=len(listed), duration_ms=timer.duration_ms()),
    )
    summary = {"listed": len(listed), "added": 0, "removed": 0, "resynced": 0}

    if resync:
        logger.info("Running in resync mode")
        for name in listed:
            if _ensure_package(app, name) is None:
                continue
            app.producer.send_command(PackageDiscovery(package_name=name, force=True))
            summary["resynced"] += 1
        return summary

    stored = {package.name for package in app.store.packages.all()}
    logger.info("Local storage has %d package(s)", len(stored))
    registry = set(listed)

    for name in sorted(registry - stored):
        if not is_valid_package_name(name):
            logger.warning('Skipping invalid package name "%s"', name)
            continue
        package = app.store.packages.create(name)
        app.producer.send_event(PackageCreated(package=package))
        summary["added"] += 1

    for name in sorted(stored - registry):
        app.producer.send_command(PackagePurge(package_name=name))
        summary["removed"] += 1

    logger.info(
        "%d package(s) added, %d package(s) removed",
        summary["added"],
        summary["removed"],
        extra=extra_context(event="get_list", component="cli", outcome="done", **summary),
    )
    return summary


def _cursor(app: Application):
    preferences = app.store.preferences
    found = preferences.find(
        {"category": Constants.CURSOR_CATEGORY, "property": Constants.CURSOR_PROPERTY}, limit=1
    )
    if found:
        return found[0]
    since = app.client.initial_cursor()
    logger.info("Initialising change feed cursor at %d", since)
    return preferences.create(
        Constants.CURSOR_CATEGORY, Constants.CURSOR_PROPERTY, str(since), PreferenceType.INTEGER
    )


def get_updates(app: Application, mirror: Optional[str] = None) -> Dict[str, int]:
    """Apply the registry change feed and advance the stored cursor.

    ``update`` and ``resync`` actions (branch views included) trigger a
    discovery of the package, ``delete`` actions purge it.
    """
    cursor = _cursor(app)
    changes = app.client.get_changes(cursor.as_integer(), mirror or Constants.MIRROR_URL)

    discover: List[str] = []
    forced = set()
    purge: List[str] = []
    for action in changes["actions"]:
        kind = action.get("type")
        name = strip_dev_suffix(str(action.get("package") or ""))
        if kind in ("update", "resync"):
            if name not in discover:
                discover.append(name)
            if kind == "resync":
                forced.add(name)
        elif kind == "delete":
            if name not in purge:
                purge.append(name)
        elif is_debug_enabled(logger):
            logger.debug(
                "Ignoring change feed action",
                extra=extra_context(event="get_updates", component="cli", action=str(kind), package=name),
            )

    summary = {"actions": len(changes["actions"]), "discovered": 0, "purged": 0}
    for name in discover:
        if _ensure_package(app, name) is None:
            continue
        app.producer.send_command(PackageDiscovery(package_name=name, force=name in forced))
        summary["discovered"] += 1
    for name in purge:
        app.producer.send_command(PackagePurge(package_name=name))
        summary["purged"] += 1

    app.store.preferences.update(cursor.with_integer_value(changes["timestamp"]))
    logger.info(
        "Change feed: %d action(s), %d discovery, %d purge",
        summary["actions"],
        summary["discovered"],
        summary["purged"],
        extra=extra_context(event="get_updates", component="cli", outcome="done", cursor=changes["timestamp"]),
    )
    return summary


def get_package(app: Application, name: str) -> Package:
    """Track a single package and send a forced discovery for it."""
    package = app.store.packages.get(name) if app.store.packages.exists(name) else app.store.packages.create(name)
    app.producer.send_command(PackageDiscovery(package_name=package.name, force=True))
    logger.info("Discovery requested for %s", package.name)
    return package


def get_data(app: Application, name: str, mirror: Optional[str] = None):
    """Refresh the popularity stats of a tracked package from its v1 metadata."""
    package = app.store.packages.get(name)
    metadata = app.client.get_metadata_v1(package.name, mirror)
    counters = extract_stats(metadata)
    stats_repository = app.store.stats
    if stats_repository.exists(package.name):
        stats = stats_repository.update(stats_repository.get(package.name).with_counters(**counters))
    else:
        stats = stats_repository.create(package.name, **counters)
    logger.info(
        "Stats for %s: %d total downloads",
        package.name,
        stats.total_downloads,
        extra=extra_context(event="get_data", component="cli", package=package.name),
    )
    return stats
