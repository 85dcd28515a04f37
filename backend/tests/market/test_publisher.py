"""Tests for the Pusher and log publishers."""

from unittest.mock import MagicMock, patch

import pytest

from app.market.errors import PublishError
from app.market.publisher import LogPublisher, PusherPublisher


def _publisher() -> PusherPublisher:
    return PusherPublisher(app_id="123", key="key", secret="secret", cluster="eu")


@pytest.mark.asyncio
class TestPusherPublisher:
    async def test_client_uses_tls(self):
        with patch("pusher.Pusher") as pusher_cls:
            await _publisher().publish("price-feed-channel", "price-update", {"feeds": []})

        pusher_cls.assert_called_once_with(
            app_id="123", key="key", secret="secret", cluster="eu", ssl=True
        )

    async def test_publish_triggers_event(self):
        client = MagicMock()
        with patch("pusher.Pusher", return_value=client):
            await _publisher().publish("price-feed-channel", "price-update", {"feeds": [1]})

        client.trigger.assert_called_once_with("price-feed-channel", "price-update", {"feeds": [1]})

    async def test_client_is_reused(self):
        with patch("pusher.Pusher") as pusher_cls:
            publisher = _publisher()
            await publisher.publish("c", "e", {})
            await publisher.publish("c", "e", {})

        assert pusher_cls.call_count == 1

    async def test_trigger_failure_raises_publish_error(self):
        client = MagicMock()
        client.trigger.side_effect = ValueError("401 unauthorized")
        with patch("pusher.Pusher", return_value=client):
            with pytest.raises(PublishError, match="401"):
                await _publisher().publish("c", "e", {})


@pytest.mark.asyncio
class TestLogPublisher:
    async def test_counts_messages(self):
        publisher = LogPublisher()
        await publisher.publish("c", "e", {"feeds": []})
        assert publisher.published == 1

    async def test_unserializable_payload_raises(self):
        with pytest.raises(PublishError):
            await LogPublisher().publish("c", "e", {"bad": object()})
