"""Shared test fixtures."""

from __future__ import annotations

import pytest

from mongo_rate_store import MemoryCounterStore, MongoDBStore
from tests.fakes import FakeClientFactory, FakeCollection

TEST_URI = "mongodb://localhost:27017/ratelimits"


@pytest.fixture
def collection():
    return FakeCollection("rateLimitTestCollection")


@pytest.fixture
def store(collection):
    return MongoDBStore(collection=collection, window_ms=60_000)


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def uri_store(client_factory):
    store = MongoDBStore(
        uri=TEST_URI,
        collection_name="rateLimitTestCollection",
        client_factory=client_factory,
    )
    store.init(60_000)
    return store


@pytest.fixture
def memory_store():
    return MemoryCounterStore(window_ms=60_000)
