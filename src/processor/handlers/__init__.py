"""Command handlers, one per command type."""

from .base import CommandHandler  # noqa: F401
from .check_dependency_status import CheckDependencyStatusHandler  # noqa: F401
from .package_discovery import PackageDiscoveryHandler, filter_requirements  # noqa: F401
from .package_purge import PackagePurgeHandler  # noqa: F401
from .update_dependency_status import UpdateDependencyStatusHandler  # noqa: F401
from .update_version_status import UpdateVersionStatusHandler  # noqa: F401
