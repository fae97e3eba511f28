"""MemoryCounterStore — in-process counterpart of MongoDBStore."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from mongo_rate_store.keys import DEFAULT_PREFIX, prefix_key
from mongo_rate_store.options import validate_window
from mongo_rate_store.store import ClientRateLimitInfo


@dataclass
class _Record:
    counter: int
    expiration_date: datetime


class MemoryCounterStore:
    """In-memory storage for development and testing.

    WARNING: State lost on restart and not shared between processes.
    Expired records are dropped lazily when touched.
    """

    def __init__(
        self,
        *,
        prefix: str = DEFAULT_PREFIX,
        reset_expire_date_on_change: bool = False,
        window_ms: int | None = None,
    ):
        self._prefix = prefix
        self._reset_expire_date_on_change = reset_expire_date_on_change
        self._window_ms = validate_window(window_ms) if window_ms is not None else None
        self._records: dict[str, _Record] = {}

    def init(self, window_ms: int) -> None:
        self._window_ms = validate_window(window_ms)

    def prefix_key(self, key: str) -> str:
        return prefix_key(self._prefix, key)

    async def get(self, key: str) -> ClientRateLimitInfo | None:
        record = self._live_record(self.prefix_key(key))
        if record is None:
            return None
        return ClientRateLimitInfo(total_hits=record.counter, reset_time=record.expiration_date)

    async def increment(self, key: str) -> ClientRateLimitInfo:
        record = self._apply(key, 1)
        return ClientRateLimitInfo(total_hits=record.counter, reset_time=record.expiration_date)

    async def decrement(self, key: str) -> None:
        self._apply(key, -1)

    async def reset_key(self, key: str) -> None:
        self._records.pop(self.prefix_key(key), None)

    async def reset_all(self) -> None:
        self._records.clear()

    async def shutdown(self) -> None:
        pass

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _live_record(self, record_id: str) -> _Record | None:
        record = self._records.get(record_id)
        if record is not None and record.expiration_date <= self._now():
            del self._records[record_id]
            return None
        return record

    def _apply(self, key: str, delta: int) -> _Record:
        from mongo_rate_store import RateStoreConfigError

        if self._window_ms is None:
            raise RateStoreConfigError("Store window is not set; call init(window_ms) before counting hits")

        record_id = self.prefix_key(key)
        new_expiry = self._now() + timedelta(milliseconds=self._window_ms)
        record = self._live_record(record_id)
        if record is None:
            record = self._records[record_id] = _Record(counter=delta, expiration_date=new_expiry)
            return record

        record.counter += delta
        if self._reset_expire_date_on_change:
            record.expiration_date = new_expiry
        return record
