"""Error taxonomy shared by the fetcher, the domain and the message handlers.

Each class maps onto one handler outcome:

- ValidationError: malformed input, rejected and never retried.
- NotFoundError: a referenced record or upstream document is absent.
- TransientIOError: upstream or store unavailable, requeued once.
- FormatError: malformed upstream payload, rejected for manual inspection.
"""
from __future__ import annotations

from typing import Optional


class PkgHealthError(Exception):
    """Base class for all project errors."""


class ValidationError(PkgHealthError):
    """Malformed name, constraint or version."""


class NotFoundError(PkgHealthError):
    """Referenced record or document does not exist."""


class PackageNotFoundError(NotFoundError):
    """Package lookup failed."""


class VersionNotFoundError(NotFoundError):
    """Version lookup failed."""


class DependencyNotFoundError(NotFoundError):
    """Dependency lookup failed."""


class StatsNotFoundError(NotFoundError):
    """Stats lookup failed."""


class PreferenceNotFoundError(NotFoundError):
    """Preference lookup failed."""


class TransientIOError(PkgHealthError):
    """Registry unreachable, timed out, or answered with a server error."""


class FormatError(PkgHealthError):
    """Upstream payload could not be parsed or misses required keys."""

    def __init__(self, message: str, payload: Optional[str] = None, source: Optional[str] = None):
        super().__init__(message)
        self.payload = payload
        self.source = source

    def excerpt(self, limit: int = 512) -> str:
        """Leading part of the offending payload for log context."""
        if not self.payload:
            return ""
        if len(self.payload) <= limit:
            return self.payload
        return self.payload[:limit] + "..."
