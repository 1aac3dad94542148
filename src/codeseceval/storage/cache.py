"""Bounded in-memory cache with TTL expiry and oldest-first eviction."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from codeseceval.storage.codec import byte_size

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 100 * 1024 * 1024


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    expires_at: float | None
    size: int

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass(frozen=True)
class CacheStats:
    size: int
    items: int
    max_size: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "items": self.items,
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
        }


class Cache:
    """Size-bounded cache. Expiry is checked on every read.

    When a write would exceed ``max_bytes`` the entries with the oldest
    insertion timestamp are evicted one at a time until the new entry fits.
    Reads do not refresh an entry's position.
    """

    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_BYTES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_bytes = max_bytes
        self._clock = clock
        # dict order == insertion order == eviction order
        self._entries: dict[str, CacheEntry] = {}
        self._total = 0
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    @property
    def total_size(self) -> int:
        with self._lock:
            return self._total

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def set(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Store a value. Returns False if it can never fit under the ceiling."""
        try:
            size = byte_size(value)
        except (TypeError, ValueError) as e:
            logger.warning("Not caching %s: %s", key, e)
            return False

        if size > self.max_bytes:
            logger.warning(
                "Not caching %s: %d bytes exceeds cache ceiling %d",
                key,
                size,
                self.max_bytes,
            )
            with self._lock:
                self._remove(key)
            return False

        now = self._clock()
        with self._lock:
            self._remove(key)
            while self._entries and self._total + size > self.max_bytes:
                oldest = next(iter(self._entries))
                logger.debug("Evicting %s from cache", oldest)
                self._remove(oldest)
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                inserted_at=now,
                expires_at=now + ttl if ttl is not None else None,
                size=size,
            )
            self._total += size
        return True

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value, or ``default`` if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if entry.expired(self._clock()):
                self._remove(key)
                self._misses += 1
                return default
            self._hits += 1
            return entry.value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._remove(key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total = 0

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expired(now)]
            for key in expired:
                self._remove(key)
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=self._total,
                items=len(self._entries),
                max_size=self.max_bytes,
                hits=self._hits,
                misses=self._misses,
            )

    def _remove(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        self._total -= entry.size
        return True
