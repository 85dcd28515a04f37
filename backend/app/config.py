"""Runtime settings, read once from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .market.models import normalize_price_id

DEFAULT_PRICE_SERVICE_URL = "https://hermes.pyth.network"

DEFAULT_PRICE_IDS: tuple[str, ...] = (
    "0x23d7315113f5b1d3ba7a83604c44b94d79f4fd69af77f804fc7f920a6dc65744",
    "0x6120ffcf96395c70aa77e72dcb900bf9d40dccab228efca59a17b90ce423d5e8",
    "0xeba0732395fae9dec4bae12e52760b35fc1c5671e2da8b449c9af4efe5d54341",
)


def _parse_price_ids(raw: str) -> tuple[str, ...]:
    ids: list[str] = []
    for part in raw.split(","):
        if part.strip():
            price_id = normalize_price_id(part)
            if price_id not in ids:
                ids.append(price_id)
    return tuple(ids)


@dataclass(frozen=True)
class RelaySettings:
    """Everything the relay reads from the environment."""

    port: int = 3000
    price_service_url: str = DEFAULT_PRICE_SERVICE_URL
    price_ids: tuple[str, ...] = DEFAULT_PRICE_IDS
    feed_source: str = "hermes"  # "hermes" or "simulator"

    pusher_app_id: str = ""
    pusher_key: str = ""
    pusher_secret: str = field(default="", repr=False)
    pusher_cluster: str = ""

    broadcast_interval: float = 5.0
    max_price_age: float = 60.0
    log_level: str = "INFO"

    @property
    def pusher_configured(self) -> bool:
        return all((self.pusher_app_id, self.pusher_key, self.pusher_secret, self.pusher_cluster))

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> RelaySettings:
        """Build settings from `environ` (default: os.environ).

        Unset or blank variables fall back to the defaults above.
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: str = "") -> str:
            value = env.get(name, "").strip()
            return value or default

        price_ids = _parse_price_ids(get("PRICE_IDS")) or DEFAULT_PRICE_IDS

        return cls(
            port=int(get("PORT", "3000")),
            price_service_url=get("PRICE_SERVICE_URL", DEFAULT_PRICE_SERVICE_URL),
            price_ids=price_ids,
            feed_source=get("PRICE_FEED_SOURCE", "hermes").lower(),
            pusher_app_id=get("PUSHER_APP_ID"),
            pusher_key=get("PUSHER_KEY"),
            pusher_secret=get("PUSHER_SECRET"),
            pusher_cluster=get("PUSHER_CLUSTER"),
            broadcast_interval=float(get("BROADCAST_INTERVAL", "5.0")),
            max_price_age=float(get("MAX_PRICE_AGE", "60")),
            log_level=get("LOG_LEVEL", "INFO").upper(),
        )
