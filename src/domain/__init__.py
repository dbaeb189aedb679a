"""Domain records, status rules and the record store contract."""

from .models import (  # noqa: F401
    Dependency,
    Package,
    Preference,
    PreferenceType,
    Stats,
    Version,
    assert_valid_package_name,
    is_valid_package_name,
)
from .status import DependencyStatus, VersionStatus, aggregate_status, evaluate  # noqa: F401
from .memory import InMemoryStore  # noqa: F401
