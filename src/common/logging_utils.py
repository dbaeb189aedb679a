"""Centralized logging helpers.

Structured fields travel through ``extra=extra_context(...)`` so that the JSON
formatter can emit them as-is while the text formatter stays terse.
"""
from __future__ import annotations

import json
import logging
import os
import re
import sys
import time
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from constants import Constants

_CONTEXT_ATTR = "pkghealth_context"
_SENSITIVE_KEYS = re.compile(r"(token|secret|password|passwd|key|auth)", re.IGNORECASE)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build the ``extra`` mapping for a structured log record."""
    return {_CONTEXT_ATTR: {k: v for k, v in fields.items() if v is not None}}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by logger."""
    return logger.isEnabledFor(logging.DEBUG)


def redact(value: str) -> str:
    """Mask all but the first characters of a secret."""
    if not value:
        return value
    return value[:2] + "[REDACTED]"


def safe_url(url: str) -> str:
    """Strip credentials and sensitive query parameters from a URL."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    netloc = parts.netloc
    if "@" in netloc:
        netloc = "[REDACTED]@" + netloc.split("@", 1)[1]
    query = parts.query
    if query:
        pairs = [
            (k, "[REDACTED]" if _SENSITIVE_KEYS.search(k) else v)
            for k, v in parse_qsl(query, keep_blank_values=True)
        ]
        query = urlencode(pairs, safe="[]")
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


class Timer:
    """Context manager measuring elapsed wall time."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        """Elapsed milliseconds, live while the block is still running."""
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000, 2)


class TextFormatter(logging.Formatter):
    """Plain formatter that appends structured fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, _CONTEXT_ATTR, None)
        if context and record.levelno <= logging.DEBUG:
            pairs = " ".join(f"{k}={v}" for k, v in context.items())
            message = f"{message} ({pairs})"
        return message


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(getattr(record, _CONTEXT_ATTR, None) or {})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Install a single root handler.

    Honors PKGHEALTH_LOG_LEVEL and PKGHEALTH_LOG_FORMAT (text|json) unless an
    explicit level is passed.
    """
    level_name = (level or os.environ.get("PKGHEALTH_LOG_LEVEL") or "INFO").upper()
    fmt = os.environ.get("PKGHEALTH_LOG_FORMAT", "text").lower()

    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(TextFormatter(Constants.LOG_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))
