"""Status values and the Version aggregation rule."""
from __future__ import annotations

from enum import Enum
from typing import Iterable, Tuple

from versioning.constraint import satisfies


class DependencyStatus(Enum):
    """Health of one declared dependency against its target's latest release."""

    UNKNOWN = "unknown"
    OUTDATED = "outdated"
    INSECURE = "insecure"
    MAYBE_INSECURE = "maybe insecure"
    UP_TO_DATE = "up to date"


class VersionStatus(Enum):
    """Health of a release, aggregated from its require dependencies."""

    UNKNOWN = "unknown"
    OUTDATED = "outdated"
    INSECURE = "insecure"
    MAYBE_INSECURE = "maybe insecure"
    UP_TO_DATE = "up to date"
    NO_DEPS = "no deps"


# First match wins, evaluated over the set of distinct dependency statuses.
STATUS_PRECEDENCE: Tuple[Tuple[DependencyStatus, VersionStatus], ...] = (
    (DependencyStatus.INSECURE, VersionStatus.INSECURE),
    (DependencyStatus.MAYBE_INSECURE, VersionStatus.MAYBE_INSECURE),
    (DependencyStatus.OUTDATED, VersionStatus.OUTDATED),
    (DependencyStatus.UNKNOWN, VersionStatus.UNKNOWN),
    (DependencyStatus.UP_TO_DATE, VersionStatus.UP_TO_DATE),
)


def aggregate_status(statuses: Iterable[DependencyStatus]) -> VersionStatus:
    """Version status for the given non-development dependency statuses."""
    present = set(statuses)
    if not present:
        return VersionStatus.NO_DEPS
    for dependency_status, version_status in STATUS_PRECEDENCE:
        if dependency_status in present:
            return version_status
    raise ValueError(f"Unhandled dependency statuses: {present}")


def evaluate(installed_version: str, constraint: str) -> DependencyStatus:
    """Dependency status of constraint against the target's latest release.

    An empty installed_version means the target has no known release and
    yields UNKNOWN. Raises ValidationError as ``satisfies`` does.
    """
    if not installed_version:
        return DependencyStatus.UNKNOWN
    if satisfies(installed_version, constraint):
        return DependencyStatus.UP_TO_DATE
    return DependencyStatus.OUTDATED
