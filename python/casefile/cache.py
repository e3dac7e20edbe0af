"""Process-lifetime cache for the case catalog.

The cache holds a single value (the full case list). It is replaced
wholesale on set() and dropped on clear(); entries are never mutated in
place, so readers need no locking. The owning app creates one instance at
startup and stores it on app.state.
"""

import time
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class CatalogCache(Generic[T]):
    """Single-slot memo with an optional time-to-live.

    Args:
        ttl_seconds: Lifetime of a stored value. None keeps it until clear().
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: T | None = None
        self._stored_at: float | None = None

    def get(self) -> T | None:
        """Return the cached value, or None if empty or expired."""
        if self._value is None:
            return None
        if self._ttl_seconds is not None and self._stored_at is not None:
            if self._clock() - self._stored_at >= self._ttl_seconds:
                self.clear()
                return None
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        self._stored_at = self._clock()

    def clear(self) -> None:
        self._value = None
        self._stored_at = None

    @property
    def is_populated(self) -> bool:
        return self.get() is not None
