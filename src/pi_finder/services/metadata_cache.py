"""Short-lived cache for trial metadata keyed by the sorted identifier set."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Iterable, Optional, Sequence, Tuple, TypeVar

from pi_finder.models import TrialAttributes

V = TypeVar("V")

CacheKey = Tuple[str, ...]


def cache_key(ids: Iterable[str]) -> CacheKey:
    """Return a stable key for an identifier set regardless of order or duplicates."""

    return tuple(sorted({identifier for identifier in ids if identifier}))


@dataclass
class _LoadSlot:
    """Per-key load lock plus the number of callers holding or waiting on it."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    waiters: int = 0


class ExpiringCache(Generic[V]):
    """Append-only mapping with time-based expiry.

    Entries are replaced only once expired, and expired entries are swept on
    every insert. Concurrent loads for the same key are coalesced so the loader
    runs once per key while an entry is fresh; a key's load lock is released
    as soon as its last waiter leaves.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = max(float(ttl_seconds), 0.0)
        self._clock = clock
        self._entries: Dict[CacheKey, Tuple[float, V]] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[CacheKey, _LoadSlot] = {}

    def get(self, key: CacheKey) -> Optional[V]:
        """Return the cached value for ``key`` or ``None`` when absent or expired."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() < expires_at:
                return value
            del self._entries[key]
            return None

    def put(self, key: CacheKey, value: V) -> None:
        if not self.ttl_seconds:
            return
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._entries[key] = (now + self.ttl_seconds, value)

    def get_or_load(self, key: CacheKey, loader: Callable[[], V]) -> V:
        """Return the cached value or run ``loader`` once and store its result.

        Loader exceptions propagate and nothing is cached for the key.
        """

        cached = self.get(key)
        if cached is not None:
            return cached
        with self._lock:
            slot = self._key_locks.setdefault(key, _LoadSlot())
            slot.waiters += 1
        try:
            with slot.lock:
                cached = self.get(key)
                if cached is not None:
                    return cached
                value = loader()
                self.put(key, value)
                return value
        finally:
            with self._lock:
                slot.waiters -= 1
                if not slot.waiters and self._key_locks.get(key) is slot:
                    del self._key_locks[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._key_locks.clear()

    def _purge_expired(self, now: float) -> None:
        # Caller holds self._lock.
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class MetadataCache(ExpiringCache[Sequence[TrialAttributes]]):
    """Trial metadata cache passed explicitly to the gateway client and reconciler."""

    def lookup(self, ids: Iterable[str]) -> Optional[Sequence[TrialAttributes]]:
        return self.get(cache_key(ids))

    def fetch(
        self,
        ids: Iterable[str],
        loader: Callable[[Sequence[str]], Sequence[TrialAttributes]],
    ) -> Sequence[TrialAttributes]:
        """Serve ``ids`` from cache, calling ``loader(sorted_ids)`` on a miss."""

        key = cache_key(ids)
        if not key:
            return ()
        return self.get_or_load(key, lambda: tuple(loader(list(key))))


__all__ = ["CacheKey", "ExpiringCache", "MetadataCache", "cache_key"]
