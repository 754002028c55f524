"""
ResolutionCache - per-invocation memo of resolved reference sets.

Keys are ``(operation, compilation)`` tuples: the compile and execute phases
each need a reference set and the two differ. The cache is never persisted;
it lives as long as the resolver that owns it (one invocation).
"""

import threading
from typing import Any, Callable, Hashable, TypeVar

T = TypeVar("T")


def cache_key(operation: str, compilation: bool) -> tuple[str, bool]:
    return (operation, compilation)


class ResolutionCache:
    """
    Thread-safe read-through cache.

    Concurrent first callers of the same key compute the value once; callers
    of different keys never block each other while computing.
    """

    def __init__(self, disable_cache: bool = False):
        self.disable_cache = disable_cache
        self._lock = threading.Lock()
        self._values: dict[Hashable, Any] = {}
        self._key_locks: dict[Hashable, threading.Lock] = {}

    def get_or_compute(
        self,
        key: Hashable,
        factory: Callable[[], T],
        disable_cache: bool = False,
    ) -> T:
        """
        Return the cached value for key, computing it with factory on a miss.

        Args:
            key: Cache key, see cache_key()
            factory: Zero-argument callable producing the value
            disable_cache: Call-site bypass; the instance flag also bypasses

        Raises:
            ValueError: If the factory returns None
        """
        if disable_cache or self.disable_cache:
            return factory()

        with self._lock:
            if key in self._values:
                return self._values[key]
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                if key in self._values:
                    return self._values[key]
            value = factory()
            if value is None:
                raise ValueError(f"Cache factory for {key!r} returned None")
            with self._lock:
                self._values[key] = value
            return value

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._key_locks.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)
