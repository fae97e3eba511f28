"""MongoDBStore — fixed-window hit counters in a MongoDB collection."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Protocol

from pymongo import AsyncMongoClient, ReturnDocument

from mongo_rate_store.connection import EXPIRATION_FIELD, ConnectionManager
from mongo_rate_store.keys import DEFAULT_PREFIX, prefix_key
from mongo_rate_store.options import (
    CollectionSource,
    StoreOptions,
    UriSource,
    resolve_source,
    validate_window,
)
from mongo_rate_store.telemetry import StoreTelemetry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientRateLimitInfo:
    """Hit count and window reset time for one client key."""

    total_hits: int
    reset_time: datetime


class RateLimitStore(Protocol):
    """Storage contract expected by a fixed-window rate limiting middleware.

    Requirements:
    - increment()/decrement() MUST be atomic per key
    - init() is called once with the window before the first mutation
    """

    def init(self, window_ms: int) -> None: ...
    async def get(self, key: str) -> ClientRateLimitInfo | None: ...
    async def increment(self, key: str) -> ClientRateLimitInfo: ...
    async def decrement(self, key: str) -> None: ...
    async def reset_key(self, key: str) -> None: ...
    async def reset_all(self) -> None: ...
    async def shutdown(self) -> None: ...


def _as_utc(value: datetime) -> datetime:
    # Clients without tz_aware=True hand back naive UTC datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_info(record: dict[str, Any]) -> ClientRateLimitInfo:
    return ClientRateLimitInfo(
        total_hits=int(record["counter"]),
        reset_time=_as_utc(record[EXPIRATION_FIELD]),
    )


class MongoDBStore:
    """Rate limit store backed by one MongoDB collection.

    Give either ``uri`` (plus optional ``collection_name``,
    ``connection_options``, ``user``, ``password``, ``auth_source``) or an
    existing ``collection``, never both. With a URI the store connects
    lazily on first use and owns the client; with a collection it never
    connects or closes anything.

    Each key maps to one document ``{_id: prefix + key, counter, expirationDate}``.
    ``reset_all()`` clears the whole collection, including records written
    by stores with a different prefix.
    """

    def __init__(
        self,
        *,
        uri: str | None = None,
        collection: Any = None,
        collection_name: str | None = None,
        connection_options: dict[str, Any] | None = None,
        user: str | None = None,
        password: str | None = None,
        auth_source: str | None = None,
        prefix: str = DEFAULT_PREFIX,
        reset_expire_date_on_change: bool = False,
        create_ttl_index: bool = True,
        window_ms: int | None = None,
        client_factory: Callable[..., Any] = AsyncMongoClient,
        telemetry: StoreTelemetry | None = None,
    ):
        source = resolve_source(
            collection=collection,
            uri=uri,
            collection_name=collection_name,
            connection_options=connection_options,
            user=user,
            password=password,
            auth_source=auth_source,
        )
        self._options = StoreOptions(
            source=source,
            prefix=prefix,
            reset_expire_date_on_change=reset_expire_date_on_change,
            create_ttl_index=create_ttl_index,
            window_ms=validate_window(window_ms) if window_ms is not None else None,
        )
        self._window_ms = self._options.window_ms
        self._telemetry = telemetry or StoreTelemetry(_collection_name(source))
        self._connection = ConnectionManager(
            source,
            create_ttl_index=create_ttl_index,
            client_factory=client_factory,
            telemetry=self._telemetry,
        )

    @classmethod
    def from_options(cls, options: StoreOptions, **kwargs: Any) -> MongoDBStore:
        """Build a store from a StoreOptions value."""
        source = options.source
        if isinstance(source, CollectionSource):
            source_kwargs: dict[str, Any] = {"collection": source.collection}
        else:
            source_kwargs = {
                "uri": source.uri,
                "collection_name": source.collection_name,
                "connection_options": source.connection_options,
                "user": source.user,
                "password": source.password,
                "auth_source": source.auth_source,
            }
        return cls(
            **source_kwargs,
            prefix=options.prefix,
            reset_expire_date_on_change=options.reset_expire_date_on_change,
            create_ttl_index=options.create_ttl_index,
            window_ms=options.window_ms,
            **kwargs,
        )

    @classmethod
    def from_yaml(cls, path: str | Path, **kwargs: Any) -> MongoDBStore:
        """Build a store from a YAML config file.

        Raises:
            RateStoreConfigError: If the file is invalid.
        """
        from mongo_rate_store.config import load_config, options_from_config

        return cls.from_options(options_from_config(load_config(path)), **kwargs)

    @property
    def options(self) -> StoreOptions:
        return self._options

    @property
    def prefix(self) -> str:
        return self._options.prefix

    @property
    def window_ms(self) -> int | None:
        return self._window_ms

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    def init(self, window_ms: int) -> None:
        """Receive the window length from the middleware."""
        self._window_ms = validate_window(window_ms)

    def prefix_key(self, key: str) -> str:
        return prefix_key(self._options.prefix, key)

    async def increment(self, key: str) -> ClientRateLimitInfo:
        """Add one hit for *key*, creating the record if needed.

        Returns the counter and reset time as stored after the update.
        """
        record = await self._increment_or_decrement(key, 1)
        return _to_info(record)

    async def decrement(self, key: str) -> None:
        """Remove one hit for *key*. May leave the counter negative."""
        await self._increment_or_decrement(key, -1)

    async def get(self, key: str) -> ClientRateLimitInfo | None:
        collection = await self._connection.acquire()
        record_id = self.prefix_key(key)
        with self._telemetry.span("get", record_id):
            record = await collection.find_one({"_id": record_id})
        if record is None:
            return None
        return _to_info(record)

    async def reset_key(self, key: str) -> None:
        collection = await self._connection.acquire()
        record_id = self.prefix_key(key)
        with self._telemetry.span("reset_key", record_id):
            await collection.delete_one({"_id": record_id})

    async def reset_all(self) -> None:
        """Delete every record in the collection, whatever its prefix."""
        collection = await self._connection.acquire()
        with self._telemetry.span("reset_all"):
            result = await collection.delete_many({})
        logger.debug("reset_all removed %s records", getattr(result, "deleted_count", "?"))

    async def shutdown(self) -> None:
        """Close the client if this store created it."""
        await self._connection.shutdown()

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def _increment_or_decrement(self, key: str, delta: int) -> dict[str, Any]:
        from mongo_rate_store import RateStoreConfigError

        if self._window_ms is None:
            raise RateStoreConfigError("Store window is not set; call init(window_ms) before counting hits")

        collection = await self._connection.acquire()
        record_id = self.prefix_key(key)
        new_expiry = self._now() + timedelta(milliseconds=self._window_ms)
        expiry_operator = "$set" if self._options.reset_expire_date_on_change else "$setOnInsert"
        update = {
            "$inc": {"counter": delta},
            expiry_operator: {EXPIRATION_FIELD: new_expiry},
        }

        with self._telemetry.span("increment" if delta > 0 else "decrement", record_id):
            record = await collection.find_one_and_update(
                {"_id": record_id},
                update,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        self._telemetry.record_mutation(delta)
        return record


def _collection_name(source: UriSource | CollectionSource) -> str | None:
    if isinstance(source, UriSource):
        return source.collection_name
    return getattr(source.collection, "name", None)
