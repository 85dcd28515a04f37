"""Price relay subsystem.

Public API:
    PriceFeed / PriceRecord   - Upstream message and cached record dataclasses
    LatestPriceCache          - Latest record per price id
    PriceFeedSource           - Abstract interface for upstream providers
    Publisher                 - Abstract interface for the broadcast channel
    FeedConnector             - Upstream lifecycle with backoff reconnection
    Broadcaster               - Fixed-rate snapshot publisher
    PriceRelay                - Owns all of the above for one process
    create_price_feed_source  - Factory that selects Hermes or the simulator
    create_publisher          - Factory that selects Pusher or log-only
"""

from .broadcaster import Broadcaster
from .cache import LatestPriceCache
from .connector import ConnectionState, FeedConnector, backoff_delay
from .factory import create_price_feed_source, create_publisher
from .interface import PriceFeedSource, Publisher
from .models import Price, PriceFeed, PriceRecord
from .relay import PriceRelay

__all__ = [
    "Broadcaster",
    "ConnectionState",
    "FeedConnector",
    "LatestPriceCache",
    "Price",
    "PriceFeed",
    "PriceFeedSource",
    "PriceRecord",
    "PriceRelay",
    "Publisher",
    "backoff_delay",
    "create_price_feed_source",
    "create_publisher",
]
