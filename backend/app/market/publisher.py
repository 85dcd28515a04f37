"""Broadcast channel publishers."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from .errors import PublishError
from .interface import Publisher

logger = logging.getLogger(__name__)


class PusherPublisher(Publisher):
    """Publisher backed by the Pusher Channels HTTP API.

    The pusher client is synchronous, so each trigger runs in a worker thread
    to keep the event loop free. The connection always uses TLS.
    """

    def __init__(self, app_id: str, key: str, secret: str, cluster: str) -> None:
        self._app_id = app_id
        self._key = key
        self._secret = secret
        self._cluster = cluster
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            import pusher

            self._client = pusher.Pusher(
                app_id=self._app_id,
                key=self._key,
                secret=self._secret,
                cluster=self._cluster,
                ssl=True,
            )
        return self._client

    async def publish(self, channel: str, event: str, payload: dict) -> None:
        client = self._get_client()
        try:
            await asyncio.to_thread(client.trigger, channel, event, payload)
        except Exception as e:
            raise PublishError(f"Pusher trigger {channel}/{event} failed: {e}") from e


class LogPublisher(Publisher):
    """Publisher that only logs what it would have sent.

    Used when no broadcast credentials are configured.
    """

    def __init__(self) -> None:
        self.published: int = 0

    async def publish(self, channel: str, event: str, payload: dict) -> None:
        try:
            body = json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise PublishError(f"Payload for {channel}/{event} is not JSON-serializable: {e}") from e
        self.published += 1
        logger.info("[%s] %s: %s", channel, event, body)
