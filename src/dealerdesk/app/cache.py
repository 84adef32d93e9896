"""Query cache shared by read-side queries, the coordinator, and maintenance.

Beginner terms:
- Query key: a tuple naming one cached result, for example
  ("pending-tasks", "RN Multimarcas").
- Stale: a cached value older than its stale time, or explicitly invalidated.
  Stale values are still returned by `get`, but `fetch` reloads them.
- Prefix invalidation: invalidating ("pending-tasks",) marks every key that
  starts with "pending-tasks" stale, whatever the store.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

QueryKey = tuple[Any, ...]


@dataclass
class CacheEntry:
    value: Any
    updated_at: float
    stale_time_s: float
    invalidated: bool = False


class QueryCache:
    """Thread-safe keyed cache with stale-time and invalidation semantics."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[QueryKey, CacheEntry] = {}
        # Bumped by `invalidate`; lets `fetch` notice an invalidation during a load.
        self._generations: dict[QueryKey, int] = {}

    def get(self, key: QueryKey) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            return entry.value if entry is not None else None

    def put(
        self,
        key: QueryKey,
        value: Any,
        *,
        stale_time_s: float = 0.0,
        generation: int | None = None,
    ) -> None:
        """Store `value` as fresh.

        With `generation`, the entry is stored stale instead if the key was
        invalidated after that generation was read.
        """
        with self._lock:
            superseded = generation is not None and self._generations.get(key, 0) != generation
            self._entries[key] = CacheEntry(
                value=value,
                updated_at=self._clock(),
                stale_time_s=stale_time_s,
                invalidated=superseded,
            )

    def set(self, key: QueryKey, updater: Callable[[Any | None], Any]) -> Any:
        """Apply `updater` to the current value atomically and store the result.

        The entry keeps its freshness window; a missing key is created stale.
        """
        with self._lock:
            entry = self._entries.get(key)
            current = entry.value if entry is not None else None
            updated = updater(current)
            if entry is None:
                self._entries[key] = CacheEntry(
                    value=updated,
                    updated_at=self._clock(),
                    stale_time_s=0.0,
                    invalidated=True,
                )
            else:
                entry.value = updated
            return updated

    def snapshot(self, key: QueryKey) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            return copy.deepcopy(entry.value) if entry is not None else None

    def invalidate(self, keys: Iterable[QueryKey]) -> int:
        """Mark every entry matching any of the key prefixes stale. Returns the count."""
        prefixes = [tuple(key) for key in keys]
        count = 0
        with self._lock:
            for key, entry in self._entries.items():
                if any(key[: len(prefix)] == prefix for prefix in prefixes):
                    entry.invalidated = True
                    count += 1
            for key in self._generations:
                if any(key[: len(prefix)] == prefix for prefix in prefixes):
                    self._generations[key] += 1
        logger.debug("cache event=invalidate prefixes=%s matched=%d", prefixes, count)
        return count

    def is_stale(self, key: QueryKey) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return True
            return entry.invalidated or (self._clock() - entry.updated_at) >= entry.stale_time_s

    def fetch(self, key: QueryKey, loader: Callable[[], Any], *, stale_time_s: float) -> Any:
        """Return the cached value while fresh; otherwise load, store, and return it.

        Loader errors propagate and leave the previous entry untouched.
        """
        if not self.is_stale(key):
            logger.debug("cache event=hit key=%s", key)
            return self.get(key)
        logger.debug("cache event=miss key=%s", key)
        with self._lock:
            generation = self._generations.setdefault(key, 0)
        value = loader()
        self.put(key, value, stale_time_s=stale_time_s, generation=generation)
        return value

    def keys(self) -> list[QueryKey]:
        with self._lock:
            return list(self._entries)
