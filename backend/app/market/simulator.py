"""GBM-based price feed simulator for running the relay offline."""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time

import numpy as np

from .errors import FeedConnectionError, SubscriptionError
from .interface import DisconnectCallback, PriceFeedCallback, PriceFeedSource, Unsubscribe
from .models import Price, PriceFeed, normalize_price_id

logger = logging.getLogger(__name__)

# Fixed-point exponent used for simulated prices, matching the upstream feeds
PRICE_EXPO = -8

# Default parameters for every simulated series
# sigma: annualized volatility, mu: annualized drift
DEFAULT_PARAMS: dict[str, float] = {"sigma": 0.60, "mu": 0.05}


class GBMSimulator:
    """Geometric Brownian Motion simulator for independent price series.

    Math:
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)

    Price feeds trade around the clock, so dt is the tick length as a
    fraction of a calendar year.
    """

    SECONDS_PER_YEAR = 365 * 24 * 3600
    DEFAULT_DT = 0.5 / SECONDS_PER_YEAR

    def __init__(
        self,
        price_ids: list[str],
        dt: float = DEFAULT_DT,
        event_probability: float = 0.001,
        seed_prices: dict[str, float] | None = None,
    ) -> None:
        self._dt = dt
        self._event_prob = event_probability
        self._ids: list[str] = []
        self._prices: dict[str, float] = {}
        seed_prices = seed_prices or {}

        for price_id in price_ids:
            if price_id in self._prices:
                continue
            self._ids.append(price_id)
            self._prices[price_id] = seed_prices.get(price_id, random.uniform(50.0, 3000.0))

    def step(self) -> dict[str, float]:
        """Advance every series by one time step. Returns {id: new_price}."""
        n = len(self._ids)
        if n == 0:
            return {}

        z = np.random.standard_normal(n)
        mu = DEFAULT_PARAMS["mu"]
        sigma = DEFAULT_PARAMS["sigma"]
        drift = (mu - 0.5 * sigma**2) * self._dt

        result: dict[str, float] = {}
        for i, price_id in enumerate(self._ids):
            diffusion = sigma * math.sqrt(self._dt) * z[i]
            self._prices[price_id] *= math.exp(drift + diffusion)

            # Random 2-5% jump, ~0.1% chance per tick per series
            if random.random() < self._event_prob:
                shock = random.uniform(0.02, 0.05) * random.choice([-1, 1])
                self._prices[price_id] *= 1 + shock
                logger.debug("Random event on %s: %+.1f%%", price_id, shock * 100)

            result[price_id] = self._prices[price_id]

        return result

    def get_price(self, price_id: str) -> float | None:
        return self._prices.get(price_id)

    @property
    def price_ids(self) -> list[str]:
        return list(self._ids)


def to_price_feed(price_id: str, value: float, publish_time: int | None = None) -> PriceFeed:
    """Wrap a float price in the upstream message shape."""
    publish_time = int(time.time()) if publish_time is None else publish_time
    price = Price(
        price=int(round(value * 10**-PRICE_EXPO)),
        conf=int(round(value * 0.0005 * 10**-PRICE_EXPO)),
        expo=PRICE_EXPO,
        publish_time=publish_time,
    )
    return PriceFeed(id=price_id, price=price, ema_price=price)


class SimulatorFeedSource(PriceFeedSource):
    """PriceFeedSource backed by the GBM simulator.

    Each subscription runs a background task that steps the simulator every
    `update_interval` seconds and pushes one PriceFeed per id to the callback.
    """

    def __init__(
        self,
        update_interval: float = 0.5,
        event_probability: float = 0.001,
        seed_prices: dict[str, float] | None = None,
    ) -> None:
        self._interval = update_interval
        self._event_prob = event_probability
        self._seed_prices = seed_prices
        self._sim: GBMSimulator | None = None
        self._connected = False
        self._tasks: set[asyncio.Task] = set()

    async def connect(self, endpoint: str) -> None:
        self._connected = True
        logger.info("Simulator session opened (endpoint %s ignored)", endpoint)

    async def get_latest_price_feeds(self, price_ids: list[str]) -> list[PriceFeed]:
        if not self._connected:
            raise FeedConnectionError("Simulator session is not open")
        sim = self._simulator(price_ids)
        return [
            to_price_feed(normalize_price_id(price_id), sim.get_price(price_id))
            for price_id in price_ids
            if sim.get_price(price_id) is not None
        ]

    async def subscribe(
        self,
        price_ids: list[str],
        callback: PriceFeedCallback,
        on_disconnect: DisconnectCallback | None = None,
    ) -> Unsubscribe:
        if not self._connected:
            raise SubscriptionError("Simulator session is not open")

        sim = self._simulator(price_ids)
        wanted = set(price_ids)
        task = asyncio.create_task(self._run_loop(sim, wanted, callback), name="simulator-loop")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Simulator started with %d price ids", len(price_ids))

        async def unsubscribe() -> None:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        return unsubscribe

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._connected = False
        logger.info("Simulator stopped")

    def _simulator(self, price_ids: list[str]) -> GBMSimulator:
        if self._sim is None:
            self._sim = GBMSimulator(
                price_ids=price_ids,
                dt=self._interval / GBMSimulator.SECONDS_PER_YEAR,
                event_probability=self._event_prob,
                seed_prices=self._seed_prices,
            )
        return self._sim

    async def _run_loop(self, sim: GBMSimulator, wanted: set[str], callback: PriceFeedCallback) -> None:
        """Core loop: step the simulation, push each price, sleep."""
        while True:
            try:
                for price_id, value in sim.step().items():
                    if price_id in wanted:
                        callback(to_price_feed(normalize_price_id(price_id), value))
            except Exception:
                logger.exception("Simulator step failed")
            await asyncio.sleep(self._interval)
