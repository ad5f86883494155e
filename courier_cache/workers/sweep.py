"""Background job: drop expired cache entries on a fixed interval.

Lazy expiry on ``get`` keeps reads correct; this sweep bounds memory for
entries that are written and never read again.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from courier_cache.core.registry import CacheRegistry

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5 * 60


def sweep_once(registry: CacheRegistry) -> dict[str, int]:
    """Run one cleanup pass over every domain cache."""
    removed = registry.cleanup_expired()
    total = sum(removed.values())
    if total:
        logger.info("Cache sweep removed %d expired entries: %s", total, removed)
    else:
        logger.debug("Cache sweep: nothing expired")
    return removed


class CacheSweeper:
    """Owns the asyncio task that calls ``sweep_once`` every ``interval`` seconds."""

    def __init__(self, registry: CacheRegistry, interval: float = DEFAULT_INTERVAL_SECONDS) -> None:
        if interval <= 0:
            raise ValueError(f"Sweep interval must be positive, got {interval}")
        self.registry = registry
        self.interval = interval
        self.runs = 0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="cache-sweeper")
        logger.info("Cache sweeper started (every %.0fs)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Cache sweeper stopped after %d runs", self.runs)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                sweep_once(self.registry)
            except Exception:
                logger.exception("Cache sweep failed")
            self.runs += 1
