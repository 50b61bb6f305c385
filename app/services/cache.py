"""
In-process read-through cache with a bounded time-to-live
"""
import threading
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")

_MISSING = object()


class ReadThroughCache(Generic[V]):
    """
    Entries expire ``ttl_seconds`` after they were stored. Loader failures
    propagate unchanged and nothing is cached for that key.

    Every invalidation bumps the key's version; a load that started before the
    bump returns its value to its own caller but does not store it.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}
        self._versions: Dict[Hashable, int] = {}
        self._generation = 0
        self.hits = 0
        self.misses = 0

    def _peek(self, key: Hashable) -> Any:
        """Return the cached value, or _MISSING when absent or expired"""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return _MISSING
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return _MISSING
            return value

    def _version(self, key: Hashable) -> Tuple[int, int]:
        # Caller holds the lock
        return self._generation, self._versions.get(key, 0)

    def _bump(self, key: Hashable) -> None:
        # Caller holds the lock
        self._versions[key] = self._versions.get(key, 0) + 1

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_seconds, value)

    async def get_or_load(
        self,
        key: Hashable,
        loader: Callable[[], Awaitable[V]],
        cache_none: bool = True,
    ) -> Optional[V]:
        value = self._peek(key)
        if value is not _MISSING:
            self.hits += 1
            return value

        self.misses += 1
        with self._lock:
            started_at = self._version(key)
        value = await loader()
        if value is not None or cache_none:
            with self._lock:
                if self._version(key) == started_at:
                    self._entries[key] = (self._clock() + self.ttl_seconds, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._bump(key)

    def invalidate_where(self, predicate: Callable[[Hashable, Any], bool]) -> int:
        with self._lock:
            doomed = [k for k, (_, v) in self._entries.items() if predicate(k, v)]
            for key in doomed:
                del self._entries[key]
                self._bump(key)
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._versions.clear()
            self._generation += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
