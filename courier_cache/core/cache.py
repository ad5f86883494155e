"""In-memory TTL cache with capacity-bounded eviction.

One ``CacheStore`` exists per logical domain (packages, trips, bids, ...).
Entries expire lazily on read and are also removed by the periodic sweep in
``courier_cache.workers.sweep``. Stores are plain objects: build them once at
startup (see ``courier_cache.core.registry``) and pass them to callers.
"""

import asyncio
import inspect
import json
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# Default TTL in seconds
DEFAULT_TTL = 5 * 60
DEFAULT_MAX_SIZE = 1000

_MISSING = object()


class CacheConfigError(ValueError):
    """Raised when a cache is constructed with an unusable size or TTL."""


@dataclass(frozen=True, slots=True)
class CacheEntry:
    value: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


@dataclass(slots=True)
class EntryInfo:
    key: str
    age_seconds: float
    ttl_seconds: float


@dataclass(slots=True)
class CacheStats:
    name: str
    size: int
    max_size: int
    hits: int
    misses: int
    hit_rate: float | None
    entries: list[EntryInfo] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "size": self.size,
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "entries": [
                {"key": e.key, "age_seconds": e.age_seconds, "ttl_seconds": e.ttl_seconds}
                for e in self.entries
            ],
        }


def generate_key(namespace: str, filters: dict | None = None) -> str:
    """Build a canonical cache key from a namespace and a filter mapping.

    Keys are sorted recursively, so ``{"a": 1, "b": 2}`` and
    ``{"b": 2, "a": 1}`` produce the same key.
    """
    payload = json.dumps(filters or {}, sort_keys=True, separators=(",", ":"), default=str)
    return f"{namespace}:{payload}"


class CacheStore:
    """TTL key/value store bounded to ``max_size`` entries."""

    def __init__(
        self,
        name: str,
        *,
        default_ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        single_flight: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size <= 0:
            raise CacheConfigError(f"Cache {name!r}: max_size must be positive, got {max_size}")
        if default_ttl <= 0:
            raise CacheConfigError(f"Cache {name!r}: default_ttl must be positive, got {default_ttl}")

        self.name = name
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.single_flight = single_flight
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._inflight: dict[str, asyncio.Task] = {}
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self._lookup(key, count=False) is not _MISSING

    # ── Basic operations ─────────────────────────────────────

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value, evicting the oldest entry first if the store is full."""
        entry = CacheEntry(
            value=value,
            stored_at=self._clock(),
            ttl=ttl if ttl is not None else self.default_ttl,
        )
        with self._lock:
            if key in self._entries:
                # Re-insert so dict order keeps following stored_at
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                self._evict_oldest()
            self._entries[key] = entry

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` if missing or expired."""
        value = self._lookup(key)
        return default if value is _MISSING else value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any] | Any],
        ttl: float | None = None,
    ) -> Any:
        """Cache-aside lookup.

        Returns the cached value on a hit. On a miss, runs ``compute`` (sync or
        async), stores its result and returns it. Errors raised by ``compute``
        propagate unchanged and leave the cache untouched. With single-flight on,
        concurrent misses share one compute task; cancelling one caller does not
        cancel it for the others.
        """
        cached = self._lookup(key)
        if cached is not _MISSING:
            return cached

        if not self.single_flight:
            value = await _call(compute)
            self.set(key, value, ttl)
            return value

        task = self._inflight.get(key)
        if task is None:
            # Shared by every caller; one caller being cancelled leaves it running
            task = asyncio.create_task(self._fill(key, compute, ttl))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._release(key, t))
        return await asyncio.shield(task)

    # ── Maintenance ──────────────────────────────────────────

    def cleanup_expired(self) -> int:
        """Remove every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def invalidate_matching(self, fragment: str) -> int:
        """Remove all keys containing ``fragment``."""
        return self.remove_where(lambda key: fragment in key)

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove all keys starting with ``prefix``."""
        return self.remove_where(lambda key: key.startswith(prefix))

    def remove_where(self, predicate: Callable[[str], bool]) -> int:
        """Remove every key for which ``predicate(key)`` is true."""
        with self._lock:
            doomed = [k for k in self._entries if predicate(k)]
            for k in doomed:
                del self._entries[k]
        return len(doomed)

    def stats(self) -> CacheStats:
        """Snapshot for monitoring. Does not expire anything."""
        now = self._clock()
        with self._lock:
            entries = [
                EntryInfo(key=k, age_seconds=now - e.stored_at, ttl_seconds=e.ttl)
                for k, e in self._entries.items()
            ]
            hits, misses = self._hits, self._misses
        lookups = hits + misses
        return CacheStats(
            name=self.name,
            size=len(entries),
            max_size=self.max_size,
            hits=hits,
            misses=misses,
            hit_rate=round(hits / lookups, 4) if lookups else None,
            entries=entries,
        )

    def reset_counters(self) -> None:
        with self._lock:
            self._hits = 0
            self._misses = 0

    # ── Internals ────────────────────────────────────────────

    def _lookup(self, key: str, count: bool = True) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self._clock()):
                del self._entries[key]
                entry = None
            if count:
                if entry is None:
                    self._misses += 1
                else:
                    self._hits += 1
        return _MISSING if entry is None else entry.value

    async def _fill(
        self, key: str, compute: Callable[[], Awaitable[Any] | Any], ttl: float | None
    ) -> Any:
        value = await _call(compute)
        self.set(key, value, ttl)
        return value

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark retrieved; waiters re-raise it themselves
            task.exception()

    def _evict_oldest(self) -> None:
        # Caller holds the lock. min() keeps the first of equal timestamps.
        oldest = min(self._entries, key=lambda k: self._entries[k].stored_at)
        del self._entries[oldest]
        logger.debug("Cache %s full (%d), evicted %s", self.name, self.max_size, oldest)


async def _call(compute: Callable[[], Awaitable[Any] | Any]) -> Any:
    result = compute()
    if inspect.isawaitable(result):
        result = await result
    return result
