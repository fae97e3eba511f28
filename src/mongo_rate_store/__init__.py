"""mongo-rate-store — MongoDB storage for fixed-window rate limiting."""

from __future__ import annotations

from importlib.metadata import version as _pkg_version

try:
    __version__ = _pkg_version("mongo-rate-store")
except Exception:  # pragma: no cover — editable installs, test envs
    __version__ = "0.0.0-dev"


class RateStoreConfigError(Exception):
    """Raised for configuration errors (conflicting options, missing window, invalid config files)."""

    pass


class RateStoreConnectionError(Exception):
    """Raised when connecting to MongoDB or preparing the collection fails."""

    pass


from mongo_rate_store.connection import ConnectionManager, ConnectionState  # noqa: E402
from mongo_rate_store.keys import DEFAULT_PREFIX, prefix_key  # noqa: E402
from mongo_rate_store.memory import MemoryCounterStore  # noqa: E402
from mongo_rate_store.options import (  # noqa: E402
    DEFAULT_COLLECTION_NAME,
    CollectionSource,
    StoreOptions,
    UriSource,
)
from mongo_rate_store.store import ClientRateLimitInfo, MongoDBStore, RateLimitStore  # noqa: E402
from mongo_rate_store.telemetry import StoreTelemetry  # noqa: E402

__all__ = [
    "__version__",
    "MongoDBStore",
    "MemoryCounterStore",
    "RateLimitStore",
    "ClientRateLimitInfo",
    "ConnectionManager",
    "ConnectionState",
    "StoreOptions",
    "UriSource",
    "CollectionSource",
    "StoreTelemetry",
    "RateStoreConfigError",
    "RateStoreConnectionError",
    "prefix_key",
    "DEFAULT_PREFIX",
    "DEFAULT_COLLECTION_NAME",
]
