import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

from app.cache.store import ExpiringCacheStore
from app.utils.logging import get_logger

logger = get_logger()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reaper:
    """Background task that sweeps expired entries at a fixed interval.

    A failed sweep is logged and retried on the next tick.
    """

    def __init__(
        self,
        store: ExpiringCacheStore,
        interval: float,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.interval = interval
        self.clock = clock
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Cache reaper started (interval={self.interval}s)")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cache reaper stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}")

    async def run_once(self) -> int:
        """Sweep once using the reaper's clock; returns rows removed."""
        return await self.store.sweep(self.clock())
