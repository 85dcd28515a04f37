"""Pyth Hermes price service client for real price data."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import FeedConnectionError, SubscriptionError
from .interface import DisconnectCallback, PriceFeedCallback, PriceFeedSource, Unsubscribe
from .models import PriceFeed

logger = logging.getLogger(__name__)


def websocket_url(endpoint: str) -> str:
    """Map the HTTP endpoint to the streaming endpoint: https://host -> wss://host/ws."""
    endpoint = endpoint.rstrip("/")
    if endpoint.startswith("https://"):
        endpoint = "wss://" + endpoint[len("https://"):]
    elif endpoint.startswith("http://"):
        endpoint = "ws://" + endpoint[len("http://"):]
    return endpoint + "/ws"


class HermesPriceService(PriceFeedSource):
    """PriceFeedSource backed by a Hermes price service.

    Latest values come from GET /api/latest_price_feeds. Push updates come
    from the /ws endpoint: one websocket per subscription, opened with a
    {"type": "subscribe", "ids": [...]} message that Hermes acknowledges with
    a {"type": "response", "status": ...} message before streaming
    {"type": "price_update", "price_feed": {...}} messages.
    """

    def __init__(self, timeout: float = 10.0, http_client: httpx.AsyncClient | None = None) -> None:
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None
        self._endpoint: str | None = None
        self._ws_url: str | None = None
        self._listeners: set[asyncio.Task] = set()
        self._sockets: set[Any] = set()

    @property
    def is_connected(self) -> bool:
        return self._endpoint is not None

    async def connect(self, endpoint: str) -> None:
        if not endpoint.startswith(("http://", "https://")):
            raise FeedConnectionError(f"Unsupported price service endpoint: {endpoint!r}")
        self._endpoint = endpoint.rstrip("/")
        self._ws_url = websocket_url(self._endpoint)
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._endpoint, timeout=self._timeout)
            self._owns_client = True
        logger.info("Hermes session opened: %s", self._endpoint)

    async def get_latest_price_feeds(self, price_ids: list[str]) -> list[PriceFeed]:
        if self._client is None:
            raise FeedConnectionError("Hermes session is not open")

        response = await self._client.get(
            "/api/latest_price_feeds",
            params=[("ids[]", price_id) for price_id in price_ids],
        )
        response.raise_for_status()
        return [PriceFeed.from_dict(item) for item in response.json()]

    async def subscribe(
        self,
        price_ids: list[str],
        callback: PriceFeedCallback,
        on_disconnect: DisconnectCallback | None = None,
    ) -> Unsubscribe:
        if self._ws_url is None:
            raise SubscriptionError("Hermes session is not open")

        try:
            ws = await websockets.connect(self._ws_url)
        except (OSError, WebSocketException) as e:
            raise SubscriptionError(f"Could not open price stream {self._ws_url}: {e}") from e

        try:
            await ws.send(json.dumps({"type": "subscribe", "ids": list(price_ids)}))
            reply = await self._await_response(ws)
        except (OSError, WebSocketException, ValueError) as e:
            await ws.close()
            raise SubscriptionError(f"Subscribe handshake failed: {e}") from e
        except asyncio.CancelledError:
            await ws.close()
            raise

        if reply.get("status") != "success":
            await ws.close()
            raise SubscriptionError(f"Hermes rejected subscription: {reply.get('error', reply)}")

        self._sockets.add(ws)
        task = asyncio.create_task(self._listen(ws, callback, on_disconnect), name="hermes-listener")
        self._listeners.add(task)
        task.add_done_callback(self._listeners.discard)
        logger.info("Subscribed to %d Hermes price feeds", len(price_ids))

        async def unsubscribe() -> None:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            try:
                await ws.send(json.dumps({"type": "unsubscribe", "ids": list(price_ids)}))
            except (OSError, WebSocketException):
                pass  # Already gone; closing below is all that is left
            await ws.close()
            self._sockets.discard(ws)

        return unsubscribe

    async def close(self) -> None:
        listeners = list(self._listeners)
        for task in listeners:
            task.cancel()
        for task in listeners:
            try:
                await task
            except asyncio.CancelledError:
                pass
        for ws in list(self._sockets):
            await ws.close()
        self._sockets.clear()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        self._endpoint = None
        self._ws_url = None
        logger.info("Hermes session closed")

    # --- Internal ---

    @staticmethod
    async def _await_response(ws: Any) -> dict:
        """Read until the subscribe acknowledgement arrives."""
        while True:
            message = json.loads(await ws.recv())
            if message.get("type") == "response":
                return message

    async def _listen(
        self,
        ws: Any,
        callback: PriceFeedCallback,
        on_disconnect: DisconnectCallback | None,
    ) -> None:
        """Forward price updates until the socket closes."""
        try:
            async for raw in ws:
                self._dispatch(raw, callback)
            error = FeedConnectionError("Hermes closed the price stream")
        except ConnectionClosed as e:
            error = FeedConnectionError(f"Hermes price stream dropped: {e}")

        self._sockets.discard(ws)
        logger.warning("%s", error)
        if on_disconnect is not None:
            on_disconnect(error)

    @staticmethod
    def _dispatch(raw: str | bytes, callback: PriceFeedCallback) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring non-JSON message from Hermes")
            return

        kind = message.get("type")
        if kind == "price_update":
            try:
                feed = PriceFeed.from_dict(message["price_feed"])
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed price update: %s", e)
                return
            callback(feed)
        elif kind == "response" and message.get("status") == "error":
            logger.error("Hermes error: %s", message.get("error"))
