"""Shared HTTP helpers used by the registry fetcher.

Encapsulates request/timeout/retry handling so the registry client only deals
with status codes and payloads. Network failures surface as TransientIOError
instead of terminating the process, because workers must be able to requeue.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import requests

from constants import Constants
from common.errors import TransientIOError
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


def new_session() -> requests.Session:
    """Build a session carrying the project User-Agent."""
    session = requests.Session()
    session.headers.update({"User-Agent": Constants.USER_AGENT})
    return session


def robust_get(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    session: Optional[requests.Session] = None,
    **kwargs: Any
) -> requests.Response:
    """Perform GET request with timeout and retries with DEBUG traces.

    Server errors (5xx) are retried like timeouts; any other status is
    returned to the caller untouched.

    Raises:
        TransientIOError: when every attempt failed.
    """
    safe_target = safe_url(url)
    getter = session.get if session is not None else requests.get
    last_exception = None

    for attempt in range(Constants.HTTP_RETRY_MAX):
        if attempt:
            time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)))
        with Timer() as t:
            try:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request",
                        extra=extra_context(
                            event="http_request",
                            component="http_client",
                            action="GET",
                            target=safe_target,
                            attempt=attempt + 1
                        )
                    )

                response = getter(
                    url,
                    timeout=Constants.REQUEST_TIMEOUT,
                    headers=headers,
                    **kwargs
                )

                if response.status_code >= 500:
                    last_exception = f"HTTP {response.status_code}"
                    logger.debug(
                        "HTTP server error",
                        extra=extra_context(
                            event="http_response",
                            component="http_client",
                            action="GET",
                            outcome="server_error",
                            status_code=response.status_code,
                            attempt=attempt + 1,
                            target=safe_target
                        )
                    )
                    continue

                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP response ok",
                        extra=extra_context(
                            event="http_response",
                            component="http_client",
                            action="GET",
                            outcome="success",
                            status_code=response.status_code,
                            duration_ms=t.duration_ms(),
                            target=safe_target
                        )
                    )
                return response

            except requests.Timeout:
                last_exception = "timeout"
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP timeout",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="timeout",
                            attempt=attempt + 1,
                            target=safe_target
                        )
                    )
                continue
            except requests.RequestException as exc:  # includes ConnectionError
                last_exception = str(exc)
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request exception",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="request_exception",
                            attempt=attempt + 1,
                            target=safe_target
                        )
                    )
                continue

    logger.error(
        "GET %s failed after %d attempts: %s",
        safe_target,
        Constants.HTTP_RETRY_MAX,
        last_exception,
    )
    raise TransientIOError(
        f"Request to {safe_target} failed after {Constants.HTTP_RETRY_MAX} attempts: {last_exception}"
    )
