"""Event listeners, one per event type."""

from .dependency import DependencyCreatedListener, DependencyUpdatedListener  # noqa: F401
from .package import PackageCreatedListener, PackageUpdatedListener  # noqa: F401
from .version import VersionCreatedListener, VersionUpdatedListener  # noqa: F401
