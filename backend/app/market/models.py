"""Data models for price feed messages and cached records."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def normalize_price_id(price_id: str) -> str:
    """Lower-case hex id with a ``0x`` prefix.

    Hermes omits the prefix in the messages it pushes, configuration usually
    carries it. Both sides go through here so they compare equal.
    """
    price_id = price_id.strip().lower()
    if price_id.startswith("0x"):
        price_id = price_id[2:]
    return "0x" + price_id


@dataclass(frozen=True, slots=True)
class Price:
    """A fixed-point price as published upstream: real value = price * 10**expo."""

    price: int
    conf: int
    expo: int
    publish_time: int  # Unix seconds

    @property
    def value(self) -> float:
        return self.price * 10.0**self.expo

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Price:
        # Hermes sends price and conf as decimal strings
        return cls(
            price=int(data["price"]),
            conf=int(data["conf"]),
            expo=int(data["expo"]),
            publish_time=int(data["publish_time"]),
        )

    def to_dict(self) -> dict:
        return {
            "price": str(self.price),
            "conf": str(self.conf),
            "expo": self.expo,
            "publish_time": self.publish_time,
        }


@dataclass(frozen=True, slots=True)
class PriceFeed:
    """One upstream price feed message."""

    id: str
    price: Price
    ema_price: Price | None = None

    def get_price_unchecked(self) -> Price:
        return self.price

    def get_price_no_older_than(self, age: float, now: float | None = None) -> Price | None:
        """The current price, or None if it was published more than `age` seconds ago."""
        now = time.time() if now is None else now
        if now - self.price.publish_time > age:
            return None
        return self.price

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PriceFeed:
        ema = data.get("ema_price")
        return cls(
            id=normalize_price_id(data["id"]),
            price=Price.from_dict(data["price"]),
            ema_price=Price.from_dict(ema) if ema else None,
        )

    def to_dict(self) -> dict:
        result = {"id": self.id, "price": self.price.to_dict()}
        if self.ema_price is not None:
            result["ema_price"] = self.ema_price.to_dict()
        return result


@dataclass(frozen=True, slots=True)
class PriceRecord:
    """Immutable latest value for one identifier, replaced wholesale on update.

    `value` is None when the upstream price was too old to use.
    """

    id: str
    value: float | None
    observed_at: float = field(default_factory=time.time)  # Unix seconds

    @property
    def stale(self) -> bool:
        return self.value is None

    def to_dict(self) -> dict:
        """Serialize for broadcast."""
        return {
            "id": self.id,
            "price": self.value,
            "timestamp": datetime.fromtimestamp(self.observed_at, tz=timezone.utc).isoformat(),
        }
