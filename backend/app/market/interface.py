"""Abstract interfaces for the upstream feed and the broadcast channel."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from .models import PriceFeed

PriceFeedCallback = Callable[[PriceFeed], None]
DisconnectCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], Awaitable[None]]


class PriceFeedSource(ABC):
    """Contract for upstream price providers.

    Implementations push PriceFeed messages to a callback on their own
    schedule. The FeedConnector drives the lifecycle:

        source = create_price_feed_source(settings)
        await source.connect(settings.price_service_url)
        feeds = await source.get_latest_price_feeds(ids)
        unsubscribe = await source.subscribe(ids, on_feed, on_disconnect)
        # ... app runs ...
        await unsubscribe()
        await source.close()
    """

    @abstractmethod
    async def connect(self, endpoint: str) -> None:
        """Open the upstream session. Raises FeedConnectionError on failure."""

    @abstractmethod
    async def get_latest_price_feeds(self, price_ids: list[str]) -> list[PriceFeed]:
        """Request/response fetch of the current value of each id."""

    @abstractmethod
    async def subscribe(
        self,
        price_ids: list[str],
        callback: PriceFeedCallback,
        on_disconnect: DisconnectCallback | None = None,
    ) -> Unsubscribe:
        """Register `callback` for push updates on `price_ids`.

        Returns once the upstream has accepted the subscription; raises
        SubscriptionError otherwise. `on_disconnect` is called if the
        subscription drops afterwards. The returned coroutine function cancels
        the subscription.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the upstream session. Safe to call multiple times."""


class Publisher(ABC):
    """Contract for the downstream broadcast channel."""

    @abstractmethod
    async def publish(self, channel: str, event: str, payload: dict) -> None:
        """Send one message. Raises PublishError on failure."""

    async def close(self) -> None:
        """Release transport resources. Default: nothing to release."""
