"""Tests for the periodic snapshot Broadcaster."""

import asyncio

import pytest

from app.market.broadcaster import CHANNEL, UPDATE_EVENT, Broadcaster
from app.market.cache import LatestPriceCache
from app.market.models import PriceRecord
from relay_fakes import ID_A, ID_B, wait_for


def _filled_cache(*ids: str) -> LatestPriceCache:
    cache = LatestPriceCache()
    for i, price_id in enumerate(ids):
        cache.update(PriceRecord(id=price_id, value=100.0 + i, observed_at=1707580800.0))
    return cache


@pytest.mark.asyncio
class TestTick:
    async def test_empty_cache_does_not_publish(self, publisher):
        broadcaster = Broadcaster(LatestPriceCache(), publisher)

        assert await broadcaster.tick() is False
        assert publisher.messages == []

    async def test_publishes_one_message_with_all_records(self, publisher):
        broadcaster = Broadcaster(_filled_cache(ID_A, ID_B), publisher)

        assert await broadcaster.tick() is True

        assert len(publisher.messages) == 1
        channel, event, payload = publisher.messages[0]
        assert channel == CHANNEL
        assert event == UPDATE_EVENT
        assert [feed["id"] for feed in payload["feeds"]] == [ID_A, ID_B]
        assert payload["feeds"][0] == {
            "id": ID_A,
            "price": 100.0,
            "timestamp": "2024-02-10T16:00:00+00:00",
        }

    async def test_publish_failure_is_swallowed(self, publisher):
        publisher.fail = True
        broadcaster = Broadcaster(_filled_cache(ID_A), publisher)

        assert await broadcaster.tick() is False  # Should not raise

        publisher.fail = False
        assert await broadcaster.tick() is True
        assert len(publisher.messages) == 1

    async def test_custom_channel_and_event(self, publisher):
        broadcaster = Broadcaster(_filled_cache(ID_A), publisher, channel="prices", event="tick")
        await broadcaster.tick()

        assert publisher.messages[0][:2] == ("prices", "tick")


@pytest.mark.asyncio
class TestTimer:
    async def test_ticks_on_interval(self, publisher):
        broadcaster = Broadcaster(_filled_cache(ID_A), publisher, interval=0.02)
        await broadcaster.start()
        assert broadcaster.running

        await wait_for(lambda: len(publisher.messages) >= 3)
        await broadcaster.stop()

    async def test_no_publish_before_first_interval(self, publisher):
        broadcaster = Broadcaster(_filled_cache(ID_A), publisher, interval=10.0)
        await broadcaster.start()
        await asyncio.sleep(0.05)

        assert publisher.messages == []
        await broadcaster.stop()

    async def test_slow_publish_skips_ticks(self, publisher):
        """Ticks that fire during a slow publish are skipped, so pending work stays bounded."""
        publisher.delay = 0.05
        broadcaster = Broadcaster(_filled_cache(ID_A), publisher, interval=0.01)
        await broadcaster.start()

        pending = []
        for _ in range(30):
            await asyncio.sleep(0.01)
            pending.append(sum(1 for t in asyncio.all_tasks() if t.get_name() == "broadcast-tick"))
        await broadcaster.stop()

        assert max(pending) <= 1
        assert publisher.max_in_flight == 1
        assert broadcaster.skipped_ticks > 0
        assert len(publisher.messages) >= 2

    async def test_tick_after_slow_publish_sends_fresh_snapshot(self, publisher):
        publisher.delay = 0.05
        cache = _filled_cache(ID_A)
        broadcaster = Broadcaster(cache, publisher, interval=0.01)
        await broadcaster.start()
        await wait_for(lambda: broadcaster.publishing)

        cache.update(PriceRecord(id=ID_A, value=999.0, observed_at=1707580800.0))
        await wait_for(lambda: len(publisher.messages) >= 2)
        await broadcaster.stop()

        assert publisher.messages[1][2]["feeds"][0]["price"] == 999.0

    async def test_stop_is_idempotent(self, publisher):
        broadcaster = Broadcaster(LatestPriceCache(), publisher, interval=0.01)
        await broadcaster.start()
        await broadcaster.stop()
        await broadcaster.stop()  # Should not raise

        assert not broadcaster.running

    async def test_stop_before_start(self, publisher):
        broadcaster = Broadcaster(LatestPriceCache(), publisher)
        await broadcaster.stop()  # Should not raise

    async def test_no_ticks_after_stop(self, publisher):
        broadcaster = Broadcaster(_filled_cache(ID_A), publisher, interval=0.01)
        await broadcaster.start()
        await wait_for(lambda: len(publisher.messages) >= 1)
        await broadcaster.stop()

        count = len(publisher.messages)
        await asyncio.sleep(0.05)
        assert len(publisher.messages) == count
