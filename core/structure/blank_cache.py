"""In-process caches used by the functional blank-file resolver."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

Clock = Callable[[], float]


@dataclass(frozen=True)
class CatalogEntry:
    """Download location of one functional blank template."""

    url: str
    package: bool = False


class CatalogCache:
    """Remote catalog snapshot with a refresh window.

    A refresh window of 0 seconds makes every lookup stale.
    """

    def __init__(self, refresh_seconds: float, *, clock: Clock = time.monotonic) -> None:
        self._refresh_seconds = refresh_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CatalogEntry] | None = None
        self._fetched_at = 0.0

    def get(self) -> dict[str, CatalogEntry] | None:
        """Return the last stored catalog, fresh or not."""

        with self._lock:
            return self._entries

    def is_stale(self) -> bool:
        with self._lock:
            if self._entries is None:
                return True
            return self._clock() - self._fetched_at >= self._refresh_seconds

    def store(self, entries: dict[str, CatalogEntry]) -> None:
        with self._lock:
            self._entries = dict(entries)
            self._fetched_at = self._clock()

    def invalidate(self) -> None:
        with self._lock:
            self._entries = None
            self._fetched_at = 0.0


class LocalBlankIndex:
    """Memoized "is blank.<ext> present in the cache directory" answers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._exists: dict[str, bool] = {}

    def lookup(self, extension: str) -> bool | None:
        """Return the memoized answer, or None when the extension was never checked."""

        with self._lock:
            return self._exists.get(extension)

    def mark(self, extension: str, exists: bool) -> None:
        with self._lock:
            self._exists[extension] = exists

    def invalidate(self, extension: str | None = None) -> None:
        with self._lock:
            if extension is None:
                self._exists.clear()
            else:
                self._exists.pop(extension, None)
