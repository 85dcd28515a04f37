"""Factories for the upstream feed source and the broadcast publisher."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .interface import PriceFeedSource, Publisher

if TYPE_CHECKING:
    from ..config import RelaySettings

logger = logging.getLogger(__name__)


def create_price_feed_source(settings: RelaySettings) -> PriceFeedSource:
    """Create the feed source named by PRICE_FEED_SOURCE.

    - "simulator" → SimulatorFeedSource (GBM simulation, no network)
    - anything else → HermesPriceService (real data)

    Returns an unconnected source. The FeedConnector calls connect().
    """
    if settings.feed_source == "simulator":
        from .simulator import SimulatorFeedSource

        logger.info("Price feed source: GBM Simulator")
        return SimulatorFeedSource()

    from .hermes_client import HermesPriceService

    logger.info("Price feed source: Hermes (%s)", settings.price_service_url)
    return HermesPriceService()


def create_publisher(settings: RelaySettings) -> Publisher:
    """Create the broadcast publisher.

    - All four PUSHER_* variables set → PusherPublisher
    - Otherwise → LogPublisher (messages are only logged)
    """
    if settings.pusher_configured:
        from .publisher import PusherPublisher

        logger.info("Broadcast publisher: Pusher (cluster %s)", settings.pusher_cluster)
        return PusherPublisher(
            app_id=settings.pusher_app_id,
            key=settings.pusher_key,
            secret=settings.pusher_secret,
            cluster=settings.pusher_cluster,
        )

    from .publisher import LogPublisher

    logger.warning("Broadcast publisher: PUSHER_* not fully configured, logging messages only")
    return LogPublisher()
