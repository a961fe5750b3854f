"""
In-process TTL cache with an optional secondary index.

Entries older than the TTL are never returned: reads expire lazily, and a
background sweep (every ttl/2 by default) removes expired entries
proactively. Primary map and secondary index are only touched under one
RLock, so an entry and its index pointer appear and disappear together.
"""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, TypeVar

from backend_reconciler.recon_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    data: T
    stored_at: float
    """Clock reading (monotonic seconds) at population time."""


class TtlCache(Generic[T]):
    """
    Key -> value cache with per-entry TTL.

    index_by, when given, maps a value to an alternate key (e.g. wallet address)
    so the value can also be found with get_by_index().
    """

    def __init__(
        self,
        ttl_sec: float,
        *,
        name: str = "cache",
        index_by: Callable[[T], Hashable] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_sec <= 0:
            raise ValueError("ttl_sec must be positive")
        self._ttl = float(ttl_sec)
        self._name = name
        self._index_by = index_by
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[Hashable, CacheEntry[T]] = {}
        self._index: dict[Hashable, Hashable] = {}
        self._hits = 0
        self._misses = 0
        self._sweeper: asyncio.Task | None = None

    @property
    def ttl_sec(self) -> float:
        return self._ttl

    def now(self) -> float:
        return self._clock()

    def is_fresh(self, stored_at: float) -> bool:
        """Same freshness rule as entries: age <= ttl."""
        return self._clock() - stored_at <= self._ttl

    def _is_expired(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.stored_at > self._ttl

    def _drop(self, key: Hashable) -> None:
        """Remove a primary entry and the index pointer to it. Caller holds the lock."""
        entry = self._entries.pop(key, None)
        if entry is None or self._index_by is None:
            return
        alt = self._index_by(entry.data)
        if self._index.get(alt) == key:
            del self._index[alt]

    def get(self, key: Hashable) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._is_expired(entry, self._clock()):
                self._drop(key)
                self._misses += 1
                return None
            self._hits += 1
            return entry.data

    def get_by_index(self, alt_key: Hashable) -> T | None:
        with self._lock:
            key = self._index.get(alt_key)
            if key is None:
                self._misses += 1
                return None
            return self.get(key)

    def set(self, key: Hashable, value: T) -> None:
        with self._lock:
            if key in self._entries:
                self._drop(key)
            self._entries[key] = CacheEntry(data=value, stored_at=self._clock())
            if self._index_by is not None:
                self._index[self._index_by(value)] = key

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._drop(key)

    def values(self) -> list[T]:
        """All fresh values; expired entries found on the way are dropped."""
        with self._lock:
            now = self._clock()
            fresh: list[T] = []
            for key, entry in list(self._entries.items()):
                if self._is_expired(entry, now):
                    self._drop(key)
                else:
                    fresh.append(entry.data)
            return fresh

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._index.clear()

    def sweep(self) -> int:
        """Remove every expired entry; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for key in expired:
                self._drop(key)
        if expired:
            logger.debug("cache_sweep", cache=self._name, removed=len(expired))
        return len(expired)

    def stats(self) -> dict[str, int | float | str]:
        with self._lock:
            return {
                "name": self._name,
                "size": len(self._entries),
                "index_size": len(self._index),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_sec": self._ttl,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -- periodic sweep ------------------------------------------------------

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    def start_sweeper(self, interval_sec: float | None = None) -> None:
        """Start the background sweep on the running loop (idempotent)."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        interval = interval_sec if interval_sec is not None else self._ttl / 2
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop(interval))
        logger.info("cache_sweeper_started", cache=self._name, interval_sec=interval)

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
