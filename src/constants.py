"""Constants used in the project."""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    FORMAT_ERROR = 3
    INVALID_INPUT = 4


class QueueNames(Enum):
    """Broker queues, one logical consumer role each.

    Args:
        Enum (string): Queue names.
    """

    PACKAGE_DISCOVERY = "package-discovery"
    PACKAGE_PURGE = "package-purge"
    CHECK_DEPENDENCY_STATUS = "check-dependency-status"
    UPDATE_DEPENDENCY_STATUS = "update-dependency-status"
    UPDATE_VERSION_STATUS = "update-version-status"
    PACKAGE_EVENTS = "package-events"
    VERSION_EVENTS = "version-events"
    DEPENDENCY_EVENTS = "dependency-events"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    MIRROR_URL = "https://packagist.org"
    REPO_MIRROR_URL = "https://repo.packagist.org"
    USER_AGENT = "pkghealth (+https://github.com/pkghealth/pkghealth)"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3

    CACHE_DIR = os.path.join(os.path.expanduser("~"), ".cache", "pkghealth")
    OFFLINE = False

    # Message processing
    DEDUP_WINDOW_SEC = 10
    DEPENDENCY_PAGE_SIZE = 250
    CONSUME_IDLE_SLEEP_SEC = 0.5

    # Preference holding the change feed cursor
    CURSOR_CATEGORY = "packagist"
    CURSOR_PROPERTY = "timestamp"


def _config_candidates() -> list:
    """Return config file locations in priority order."""
    paths = []
    env_path = os.environ.get("PKGHEALTH_CONFIG")
    if env_path:
        paths.append(env_path)
    paths.append(os.path.join(os.getcwd(), "pkghealth.yml"))
    paths.append(os.path.join(os.getcwd(), "pkghealth.yaml"))
    xdg = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    paths.append(os.path.join(xdg, "pkghealth", "pkghealth.yml"))
    return paths


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the first readable YAML config file.

    Args:
        path: Explicit config path; default locations are searched when None.

    Returns:
        Parsed mapping, or an empty dict when nothing is found.
    """
    import yaml  # pylint: disable=import-outside-toplevel

    candidates = [path] if path else _config_candidates()
    for candidate in candidates:
        if not candidate or not os.path.isfile(candidate):
            continue
        with open(candidate, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            logger.warning("Ignoring config file %s: top level is not a mapping", candidate)
            return {}
        logger.debug("Loaded config file %s", candidate)
        return data
    return {}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# Config keys (YAML) mapped onto Constants attributes and their coercions
_CONFIG_KEYS = {
    "mirror": ("MIRROR_URL", str),
    "repo_mirror": ("REPO_MIRROR_URL", str),
    "user_agent": ("USER_AGENT", str),
    "request_timeout": ("REQUEST_TIMEOUT", int),
    "http_retry_max": ("HTTP_RETRY_MAX", int),
    "cache_dir": ("CACHE_DIR", str),
    "offline": ("OFFLINE", _as_bool),
    "dedup_window": ("DEDUP_WINDOW_SEC", int),
    "dependency_page_size": ("DEPENDENCY_PAGE_SIZE", int),
}

_ENV_KEYS = {
    "PKGHEALTH_MIRROR": "mirror",
    "PKGHEALTH_REPO_MIRROR": "repo_mirror",
    "PKGHEALTH_CACHE_DIR": "cache_dir",
    "PKGHEALTH_OFFLINE": "offline",
}


def apply_config(config: Dict[str, Any]) -> None:
    """Apply a config mapping onto Constants.

    Unknown keys are ignored; values that fail coercion are logged and skipped.
    """
    for key, value in config.items():
        target = _CONFIG_KEYS.get(key)
        if target is None or value is None:
            continue
        attr, coerce = target
        try:
            setattr(Constants, attr, coerce(value))
        except (TypeError, ValueError):
            logger.warning("Invalid value for config key %s: %r", key, value)


def load_config(path: Optional[str] = None) -> None:
    """Apply YAML config then environment overrides onto Constants."""
    apply_config(_load_yaml_config(path))
    env_config = {
        key: os.environ[env] for env, key in _ENV_KEYS.items() if os.environ.get(env)
    }
    apply_config(env_config)
