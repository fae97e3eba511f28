"""Tests for MemoryCounterStore."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from mongo_rate_store import MemoryCounterStore, RateStoreConfigError


class TestMemoryCounterStore:
    async def test_get_missing_key(self, memory_store):
        assert await memory_store.get("nonexistent") is None

    async def test_increment_new_key(self, memory_store):
        info = await memory_store.increment("k")
        assert info.total_hits == 1

    async def test_increment_existing(self, memory_store):
        await memory_store.increment("k")
        info = await memory_store.increment("k")
        assert info.total_hits == 2

    async def test_decrement(self, memory_store):
        await memory_store.increment("k")
        await memory_store.increment("k")
        await memory_store.decrement("k")
        assert (await memory_store.get("k")).total_hits == 1

    async def test_reset_key(self, memory_store):
        await memory_store.increment("k")
        await memory_store.reset_key("k")
        assert await memory_store.get("k") is None

    async def test_reset_missing_key(self, memory_store):
        await memory_store.reset_key("nonexistent")  # should not raise

    async def test_reset_all(self, memory_store):
        await memory_store.increment("a")
        await memory_store.increment("b")
        await memory_store.reset_all()
        assert await memory_store.get("a") is None
        assert await memory_store.get("b") is None

    async def test_requires_window(self):
        store = MemoryCounterStore()
        with pytest.raises(RateStoreConfigError):
            await store.increment("k")
        store.init(1000)
        assert (await store.increment("k")).total_hits == 1

    async def test_expiration_kept_by_default(self, memory_store):
        first = await memory_store.increment("k")
        await asyncio.sleep(0.01)
        second = await memory_store.increment("k")
        assert second.reset_time == first.reset_time

    async def test_expiration_refreshed_when_enabled(self):
        store = MemoryCounterStore(window_ms=60_000, reset_expire_date_on_change=True)
        first = await store.increment("k")
        await asyncio.sleep(0.01)
        second = await store.increment("k")
        assert second.reset_time > first.reset_time

    async def test_expired_record_starts_fresh(self, memory_store, monkeypatch):
        await memory_store.increment("k")
        await memory_store.increment("k")
        later = datetime.now(timezone.utc) + timedelta(minutes=2)
        monkeypatch.setattr(memory_store, "_now", lambda: later)

        assert await memory_store.get("k") is None
        assert (await memory_store.increment("k")).total_hits == 1

    async def test_key_scheme(self, memory_store):
        await memory_store.increment("k")
        assert list(memory_store._records) == ["mongodb_rl_k"]
