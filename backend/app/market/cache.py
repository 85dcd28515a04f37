"""In-memory cache of the latest value per price identifier."""

from __future__ import annotations

from threading import Lock

from .models import PriceRecord


class LatestPriceCache:
    """Latest PriceRecord for each tracked identifier.

    Writer: the FeedConnector's update consumer (exactly one).
    Readers: the Broadcaster, once per tick, via snapshot().

    Everything runs on one event loop today; the lock keeps the map consistent
    if a writer is ever moved to a thread.
    """

    def __init__(self) -> None:
        self._records: dict[str, PriceRecord] = {}
        self._lock = Lock()
        self._version: int = 0  # Bumped on every write

    def update(self, record: PriceRecord) -> PriceRecord:
        """Store `record`, replacing whatever was cached for its id."""
        with self._lock:
            self._records[record.id] = record
            self._version += 1
            return record

    def get(self, price_id: str) -> PriceRecord | None:
        with self._lock:
            return self._records.get(price_id)

    def snapshot(self) -> list[PriceRecord]:
        """Point-in-time copy of all records, in insertion order."""
        with self._lock:
            return list(self._records.values())

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, price_id: str) -> bool:
        with self._lock:
            return price_id in self._records
