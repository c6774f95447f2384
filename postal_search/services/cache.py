from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class TTLCache(Generic[T]):
    """In-memory TTL cache bounded by LRU eviction.

    One instance per service; entries never outlive the process.
    """

    def __init__(self, *, ttl_s: float, max_size: int) -> None:
        self.ttl_s = ttl_s
        self.max_size = max_size
        self._store: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: str) -> Optional[T]:
        now = time.monotonic()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                self._store.pop(key, None)
                return None
            self._store.move_to_end(key)
            return entry.value

    def set(self, key: str, value: T) -> None:
        now = time.monotonic()
        with self._lock:
            self._purge_expired(now)
            self._store.pop(key, None)
            while len(self._store) >= self.max_size and self._store:
                self._store.popitem(last=False)
            self._store[key] = CacheEntry(value=value, expires_at=now + self.ttl_s)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def _purge_expired(self, now: float) -> None:
        expired_keys = [key for key, entry in self._store.items() if entry.expires_at <= now]
        for key in expired_keys:
            self._store.pop(key, None)


def make_cache_key(*parts: object) -> str:
    return "|".join(str(part) for part in parts)
