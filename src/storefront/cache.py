"""Short-lived read cache for rarely-changing data."""

import copy
import threading
import time
from typing import Any, Callable, Hashable, TypeVar

T = TypeVar("T")

DEFAULT_TTL = 300.0  # 5 minutes


class TTLCache:
    """Time-boxed key/value cache.

    Entries expire ``ttl`` seconds after they were set, measured with the
    injected clock. Values are deep-copied in and out so callers can't
    mutate cached state.
    """

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[Any, float]] = {}
        self._generations: dict[Hashable, int] = {}  # bumped by invalidate
        self._mutex = threading.Lock()

    def get(self, key: Hashable) -> Any | None:
        """Return the cached value, or None if absent or expired."""
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, cached_at = entry
            if self._clock() - cached_at >= self.ttl:
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    def set(self, key: Hashable, value: Any) -> None:
        with self._mutex:
            self._entries[key] = (copy.deepcopy(value), self._clock())

    def get_or_load(self, key: Hashable, loader: Callable[[], T]) -> T:
        """Return the cached value, calling loader on a miss.

        A loaded value is only cached if the key was not invalidated while
        the loader ran, so a read racing a write never caches stale data.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        with self._mutex:
            generation = self._generations.get(key, 0)
        value = loader()
        with self._mutex:
            if self._generations.get(key, 0) == generation:
                self._entries[key] = (copy.deepcopy(value), self._clock())
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._mutex:
            self._entries.pop(key, None)
            self._generations[key] = self._generations.get(key, 0) + 1
