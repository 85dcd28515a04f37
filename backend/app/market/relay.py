"""The relay context: owns every long-lived object and their lifecycle."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .broadcaster import CHANNEL, INITIAL_EVENT, Broadcaster
from .cache import LatestPriceCache
from .connector import FeedConnector
from .factory import create_price_feed_source, create_publisher
from .interface import PriceFeedSource, Publisher

if TYPE_CHECKING:
    from ..config import RelaySettings

logger = logging.getLogger(__name__)


class PriceRelay:
    """Feed connector, cache, broadcaster and publisher for one process.

    Lifecycle:
        relay = PriceRelay.from_settings(settings)
        await relay.start()
        # ... app runs ...
        await relay.shutdown()
    """

    def __init__(
        self,
        source: PriceFeedSource,
        publisher: Publisher,
        price_ids: list[str],
        endpoint: str,
        *,
        broadcast_interval: float = 5.0,
        max_price_age: float = 60.0,
        connector_options: dict | None = None,
    ) -> None:
        self.shutdown_event = asyncio.Event()
        self.cache = LatestPriceCache()
        self.source = source
        self.publisher = publisher
        self.connector = FeedConnector(
            source,
            self.cache,
            price_ids,
            endpoint,
            max_price_age=max_price_age,
            shutdown_event=self.shutdown_event,
            **(connector_options or {}),
        )
        self.broadcaster = Broadcaster(self.cache, publisher, interval=broadcast_interval)
        self._started = False
        self._stopped = False

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> PriceRelay:
        return cls(
            source=create_price_feed_source(settings),
            publisher=create_publisher(settings),
            price_ids=list(settings.price_ids),
            endpoint=settings.price_service_url,
            broadcast_interval=settings.broadcast_interval,
            max_price_age=settings.max_price_age,
        )

    async def start(self) -> None:
        """Connect, publish the initial values once, then start broadcasting."""
        if self._started:
            return
        self._started = True
        await self.connector.start()
        await self.publish_initial_prices()
        await self.broadcaster.start()
        logger.info("Price relay started for %d price ids", len(self.connector.price_ids))

    async def publish_initial_prices(self) -> bool:
        """Fetch current values straight from the source and publish them, bypassing the cache."""
        try:
            feeds = await self.source.get_latest_price_feeds(self.connector.price_ids)
            logger.info("Fetched %d latest price feeds", len(feeds))
            await self.publisher.publish(
                CHANNEL,
                INITIAL_EVENT,
                {"message": {"priceFeeds": [feed.to_dict() for feed in feeds]}},
            )
        except Exception as e:
            logger.error("Error fetching latest price feeds: %s", e)
            return False
        logger.info("Initial prices broadcasted.")
        return True

    async def shutdown(self) -> None:
        """Stop all timers and release the upstream session. Idempotent, never raises."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Shutting down gracefully...")
        self.shutdown_event.set()
        await self.broadcaster.stop()
        await self.connector.shutdown()
        try:
            await self.publisher.close()
        except Exception:
            logger.exception("Error closing publisher")
