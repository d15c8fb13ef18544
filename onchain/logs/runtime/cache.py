"""In-memory expiring cache with LRU capacity bound.

Architecture:
    A single ExpiringCache instance is shared by the time model, the range
    estimator and every concurrent chunk fetch. Entries carry their own
    expiry. Three mechanisms keep the store honest:
    - Lazy eviction: get() on an expired entry removes it and misses
    - Background sweep: a periodic asyncio task removes all expired entries
    - Capacity: inserting into a full store evicts the least-recently-used
      entry, even if it is still live

Design Decisions:
    - threading.Lock: operations are short and synchronous, so one lock
      serializes asyncio tasks and foreign threads alike
    - OrderedDict: recency order for LRU eviction
    - Injectable clock: deterministic expiry in tests
    - Values are stored and returned by reference, never copied; callers
      cache only immutable values (ints, frozen models)
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 500
DEFAULT_SWEEP_INTERVAL = 300.0


@dataclass(frozen=True)
class _CacheEntry:
    value: Any
    expires_at: float


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters."""

    size: int
    max_entries: int
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0


def _ttl_seconds(ttl: float | timedelta) -> float:
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


class ExpiringCache:
    """Key/value store with per-entry TTL and an LRU entry cap.

    Example:
        >>> cache = ExpiringCache(max_entries=100)
        >>> cache.set("head", 123, ttl=5)
        >>> cache.get("head")
        123
    """

    def __init__(
        self,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be positive")
        self._max_entries = max_entries
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._entries: OrderedDict[Hashable, _CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._sweep_task: asyncio.Task[None] | None = None

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def sweep_interval(self) -> float:
        return self._sweep_interval

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the live value for ``key`` or ``default``.

        An expired entry is removed from storage before the miss is reported.
        The stored object itself is returned, so it must not be mutated.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return default
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: Hashable, value: Any, ttl: float | timedelta) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds, replacing any entry."""
        seconds = _ttl_seconds(ttl)
        if seconds <= 0:
            raise ValueError("ttl must be positive")
        entry = _CacheEntry(value=value, expires_at=self._clock() + seconds)
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Cache full, evicted least recently used key %r", evicted)
            self._entries[key] = entry

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Remove every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)
        if expired:
            logger.info("Cache sweep removed %d expired entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                max_entries=self._max_entries,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
            )

    def __len__(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and self._clock() < entry.expires_at

    # Background sweep

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self.running:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Cancel the periodic sweep and wait for it to finish."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Cache sweep error: {e}", exc_info=True)

    async def __aenter__(self) -> ExpiringCache:
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
