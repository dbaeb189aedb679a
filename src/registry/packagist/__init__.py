"""Packagist registry package.

This package provides the registry mirror support:
- storage.py: file-backed blob cache keyed by logical path
- minifier.py: Composer 2 minified metadata expansion
- client.py: HTTP interactions with the Packagist list, p2, changes and advisories APIs
"""

# Patch points exposed for tests (e.g., monkeypatch in tests)
from common.http_client import robust_get  # noqa: F401

# Public API re-exports
from .storage import LocalFileStorage  # noqa: F401
from .client import PackagistClient, extract_stats, strip_dev_suffix  # noqa: F401

__all__ = [
    "LocalFileStorage",
    "PackagistClient",
    "extract_stats",
    "strip_dev_suffix",
    # Patch points for tests
    "robust_get",
]
