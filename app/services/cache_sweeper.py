"""
Periodic sweep of expired cache entries.

Lazy eviction only removes entries that are read again; the sweeper bounds
the growth of expired-but-never-read entries. It runs as an asyncio task in
the application lifespan and executes each sweep in a worker thread so the
event loop is never blocked on the backing store.
"""

import asyncio
import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool

from app.services.cache_service import CacheStore

logger = logging.getLogger(__name__)


class CacheSweeper:

    def __init__(self, cache: CacheStore, interval_seconds: float = 3600.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        return await run_in_threadpool(self.cache.sweep)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            logger.info("Running scheduled cache cleanup")
            try:
                await self.run_once()
            except Exception as e:
                # sweep() already swallows backend errors; this guards the loop itself
                logger.error(f"Scheduled cache cleanup failed: {e}", exc_info=True)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="cache-sweeper")
        logger.info(f"Cache sweeper started (every {self.interval_seconds:.0f}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cache sweeper stopped")
