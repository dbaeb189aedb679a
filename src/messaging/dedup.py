"""TTL guard against duplicated jobs.

Command handlers remember the key of every job they completed together with
its delivery timestamp; the same key delivered again less than ``window``
seconds later is treated as a duplicate delivery.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from constants import Constants


@dataclass
class GuardEntry:
    """A remembered job key with its expiry."""

    expires_at: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class DedupGuard:
    """Thread-safe map of recently completed job keys.

    Instances are injected into the handlers of one worker process and may be
    shared between them; keys should be namespaced by the caller. Times are
    delivery timestamps (unix seconds) when the caller has one, the guard's
    clock otherwise.
    """

    def __init__(
        self,
        window: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        max_entries: int = 10000,
    ):
        """Initialize the guard.

        Args:
            window: Seconds a key stays remembered (DEDUP_WINDOW_SEC by default).
            clock: Time source for calls without a delivery timestamp, replaceable in tests.
            max_entries: Bound on remembered keys before the oldest are evicted.
        """
        self._window = float(Constants.DEDUP_WINDOW_SEC if window is None else window)
        self._clock = clock
        self._max_entries = max_entries
        self._entries: Dict[str, GuardEntry] = {}
        self._lock = threading.Lock()

    @property
    def window(self) -> float:
        return self._window

    def is_duplicate(self, key: str, at: Optional[float] = None) -> bool:
        """Return True when key was remembered less than ``window`` seconds before ``at``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock() if at is None else at):
                del self._entries[key]
                return False
            return True

    def remember(self, key: str, at: Optional[float] = None) -> None:
        with self._lock:
            now = self._clock() if at is None else at
            self._entries[key] = GuardEntry(expires_at=now + self._window, created_at=now)
            if len(self._entries) > self._max_entries:
                self._cleanup(now)
            if len(self._entries) > self._max_entries:
                self._evict_oldest(len(self._entries) - self._max_entries)

    def forget(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            now = self._clock()
            expired = sum(1 for e in self._entries.values() if e.is_expired(now))
            return {
                "total_entries": len(self._entries),
                "active_entries": len(self._entries) - expired,
                "window": self._window,
            }

    def _cleanup(self, now: float) -> None:
        for key in [k for k, e in self._entries.items() if e.is_expired(now)]:
            del self._entries[key]

    def _evict_oldest(self, count: int) -> None:
        oldest = sorted(self._entries, key=lambda k: self._entries[k].created_at)
        for key in oldest[:count]:
            del self._entries[key]
