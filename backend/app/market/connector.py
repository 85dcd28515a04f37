"""Upstream connection lifecycle with exponential-backoff reconnection."""

from __future__ import annotations

import asyncio
import enum
import logging
import time

from .cache import LatestPriceCache
from .errors import UpdateProcessingError
from .interface import PriceFeedSource, Unsubscribe
from .models import PriceFeed, PriceRecord

logger = logging.getLogger(__name__)

INITIAL_RECONNECT_DELAY = 1.0  # seconds
MAX_RECONNECT_DELAY = 30.0  # seconds
MAX_RECONNECT_ATTEMPTS = 10
MAX_PRICE_AGE = 60.0  # seconds


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    FAILED = "failed"


def backoff_delay(
    attempts: int,
    initial_delay: float = INITIAL_RECONNECT_DELAY,
    max_delay: float = MAX_RECONNECT_DELAY,
) -> float:
    """Delay before reconnect attempt number `attempts + 1`: doubles, capped."""
    return min(initial_delay * 2**attempts, max_delay)


class FeedConnector:
    """Owns the upstream subscription and keeps the cache fed.

    State machine:
        DISCONNECTED -> CONNECTING -> SUBSCRIBED
        any -> FAILED on error; a backoff timer drives FAILED -> CONNECTING
        until `max_attempts` reconnects have been made, then it stays FAILED.

    Push updates are not written from the source's callback. The callback puts
    them on an asyncio.Queue and a single consumer task applies them to the
    cache, so the cache has exactly one writer.
    """

    def __init__(
        self,
        source: PriceFeedSource,
        cache: LatestPriceCache,
        price_ids: list[str],
        endpoint: str,
        *,
        initial_delay: float = INITIAL_RECONNECT_DELAY,
        max_delay: float = MAX_RECONNECT_DELAY,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
        max_price_age: float = MAX_PRICE_AGE,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        self._source = source
        self._cache = cache
        self._price_ids = list(price_ids)
        self._endpoint = endpoint
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._max_attempts = max_attempts
        self._max_price_age = max_price_age
        self._shutdown = shutdown_event or asyncio.Event()

        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._session_open = False
        self._unsubscribe: Unsubscribe | None = None
        self._updates: asyncio.Queue[PriceFeed] = asyncio.Queue()
        self._consumer: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self.gave_up = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def price_ids(self) -> list[str]:
        return list(self._price_ids)

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    async def start(self) -> None:
        """Start the update consumer, then connect."""
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._consume_updates(), name="feed-update-consumer")
        await self.connect()

    async def connect(self) -> None:
        """Open the upstream session and subscribe to the configured ids."""
        if self._shutdown.is_set():
            return
        self._state = ConnectionState.CONNECTING
        try:
            await self._source.connect(self._endpoint)
        except Exception as e:
            self._state = ConnectionState.FAILED
            logger.error("Error connecting to price service: %s", e)
            self.schedule_reconnect()
            return
        self._session_open = True
        await self.subscribe(self._price_ids)

    async def subscribe(self, price_ids: list[str]) -> None:
        try:
            self._unsubscribe = await self._source.subscribe(
                price_ids, self._enqueue, self.handle_disconnect
            )
        except Exception as e:
            self._state = ConnectionState.FAILED
            logger.error("Error subscribing to price feed updates: %s", e)
            self.schedule_reconnect()
            return

        if self._shutdown.is_set():
            # Shutdown arrived while the subscribe was in flight
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            await unsubscribe()
            self._state = ConnectionState.DISCONNECTED
            logger.info("Dropped price subscription that completed after shutdown.")
            return

        self._state = ConnectionState.SUBSCRIBED
        self._attempts = 0
        logger.info("Subscribed to price feed updates.")

    def on_update(self, feed: PriceFeed) -> PriceRecord | None:
        """Turn one push message into a cached record. Errors stay with the message."""
        try:
            record = self._to_record(feed)
        except Exception as e:
            logger.warning(
                "Error processing price update for %s: %s",
                getattr(feed, "id", "???"),
                e,
            )
            return None
        return self._cache.update(record)

    def handle_disconnect(self, error: Exception) -> None:
        """Called by the source when an established subscription drops."""
        if self._shutdown.is_set():
            return
        self._state = ConnectionState.FAILED
        self._unsubscribe = None
        logger.error("Price feed connection lost: %s", error)
        self.schedule_reconnect()

    def schedule_reconnect(self) -> bool:
        """Arm the backoff timer. Returns False once the attempt cap is reached."""
        if self._shutdown.is_set():
            return False
        if self._attempts >= self._max_attempts:
            self.gave_up = True
            logger.error("Max reconnection attempts reached. Giving up.")
            return False
        pending = self._reconnect_task
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            return True

        delay = backoff_delay(self._attempts, self._initial_delay, self._max_delay)
        logger.info("Attempting to reconnect in %.1f seconds...", delay)
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay), name="feed-reconnect"
        )
        return True

    async def shutdown(self) -> None:
        """Cancel timers, unsubscribe and close the session. Safe to call repeatedly."""
        self._shutdown.set()

        for task in (self._reconnect_task, self._consumer):
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._reconnect_task = None
        self._consumer = None

        if self._unsubscribe is not None:
            try:
                await self._unsubscribe()
                logger.info("Unsubscribed from price updates.")
            except Exception:
                logger.exception("Error unsubscribing from price updates")
            self._unsubscribe = None
        else:
            logger.warning("No active price subscription to cancel.")

        if self._session_open:
            try:
                await self._source.close()
                logger.info("Price service connection closed.")
            except Exception:
                logger.exception("Error closing price service connection")
            self._session_open = False

        self._state = ConnectionState.DISCONNECTED

    # --- Internal ---

    def _enqueue(self, feed: PriceFeed) -> None:
        self._updates.put_nowait(feed)

    async def _consume_updates(self) -> None:
        """Sole cache writer: apply queued updates in arrival order."""
        while True:
            feed = await self._updates.get()
            self.on_update(feed)
            self._updates.task_done()

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._attempts += 1
        logger.info("Reconnection attempt #%d", self._attempts)
        # Handle stays set during connect() so shutdown() can cancel it
        await self.connect()

    def _to_record(self, feed: PriceFeed) -> PriceRecord:
        """Freshness-filtered value when the message is timestamped, raw value otherwise.

        A timestamped price older than `max_price_age` yields a record with no value.
        """
        now = time.time()
        try:
            price = feed.get_price_unchecked()
            publish_time = getattr(price, "publish_time", None)
            timestamped = (
                isinstance(publish_time, (int, float))
                and not isinstance(publish_time, bool)
                and publish_time > 0
            )
            if timestamped:
                price = feed.get_price_no_older_than(self._max_price_age, now=now)
        except (AttributeError, TypeError) as e:
            raise UpdateProcessingError(f"unreadable price: {e}") from e

        observed_at = float(publish_time) if timestamped else now
        if price is None:
            # Stale: cached with no value
            logger.debug("Price for %s older than %.0fs", feed.id, self._max_price_age)
            return PriceRecord(id=feed.id, value=None, observed_at=observed_at)

        try:
            value = float(price.value)
        except (AttributeError, TypeError, ValueError, OverflowError) as e:
            raise UpdateProcessingError(f"unreadable price value: {e}") from e

        return PriceRecord(id=feed.id, value=value, observed_at=observed_at)
