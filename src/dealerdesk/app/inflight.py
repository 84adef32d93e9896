from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class AlreadyInFlightError(RuntimeError):
    """An action for the same (resource, id) is still running."""


class InFlightRegistry:
    """Process-wide set of (resource type, id) pairs with an action running.

    One instance is shared by every caller, so the same item triggered from two
    different surfaces is mutually excluded.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: set[tuple[str, str]] = set()

    def acquire(self, resource: str, item_id: str) -> bool:
        key = (resource, item_id)
        with self._lock:
            if key in self._active:
                return False
            self._active.add(key)
            return True

    def release(self, resource: str, item_id: str) -> None:
        with self._lock:
            self._active.discard((resource, item_id))

    def is_in_flight(self, resource: str, item_id: str) -> bool:
        with self._lock:
            return (resource, item_id) in self._active

    def in_flight(self, resource: str | None = None) -> list[tuple[str, str]]:
        with self._lock:
            items = sorted(self._active)
        if resource is None:
            return items
        return [item for item in items if item[0] == resource]

    @contextmanager
    def claim(self, resource: str, item_id: str) -> Iterator[None]:
        if not self.acquire(resource, item_id):
            raise AlreadyInFlightError(f"{resource} {item_id} already has an action in progress")
        try:
            yield
        finally:
            self.release(resource, item_id)
