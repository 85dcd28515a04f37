"""Periodic snapshot publisher."""

from __future__ import annotations

import asyncio
import logging

from .cache import LatestPriceCache
from .interface import Publisher

logger = logging.getLogger(__name__)

CHANNEL = "price-feed-channel"
UPDATE_EVENT = "price-update"
INITIAL_EVENT = "price-feeds-update"


class Broadcaster:
    """Publishes the full cache snapshot on a fixed-rate timer.

    Tick deadlines advance by `interval` from the start time, so a slow
    publish never delays the schedule. Each tick runs as its own task, and a
    tick that fires while the previous one is still publishing is skipped:
    at most one publish is in flight and no stale snapshot queues up.
    """

    def __init__(
        self,
        cache: LatestPriceCache,
        publisher: Publisher,
        interval: float = 5.0,
        channel: str = CHANNEL,
        event: str = UPDATE_EVENT,
    ) -> None:
        self._cache = cache
        self._publisher = publisher
        self._interval = interval
        self._channel = channel
        self._event = event
        self._task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None
        self.skipped_ticks: int = 0

    @property
    def publishing(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> bool:
        """Publish the current snapshot. Returns True if a message was sent."""
        records = self._cache.snapshot()
        if not records:
            logger.info("No new price updates to broadcast at this time.")
            return False

        payload = {"feeds": [record.to_dict() for record in records]}
        try:
            await self._publisher.publish(self._channel, self._event, payload)
        except Exception as e:
            # No retry: the next tick publishes whatever the cache holds then
            logger.error("Error broadcasting %d price records: %s", len(records), e)
            return False

        logger.debug("Broadcast %d price records", len(records))
        return True

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop(), name="broadcaster")
        logger.info("Broadcaster started: every %.1fs on %s/%s", self._interval, self._channel, self._event)

    async def stop(self) -> None:
        """Cancel the timer and any in-flight ticks. Safe to call multiple times."""
        tasks = [t for t in (self._task, self._tick_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._tick_task = None
        logger.info("Broadcaster stopped")

    async def _run_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            next_tick += self._interval
            if self.publishing:
                self.skipped_ticks += 1
                logger.warning("Previous broadcast still in flight, skipping this tick")
                continue
            self._tick_task = asyncio.create_task(self.tick(), name="broadcast-tick")
