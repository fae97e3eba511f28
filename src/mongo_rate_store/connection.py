"""ConnectionManager — lazy, single-flight acquisition of the counter collection.

State machine:

    UNINITIALIZED --acquire()--> INITIALIZING --ok--> INITIALIZED
          ^                           |
          +--------- failure ---------+

The first caller in UNINITIALIZED starts one acquisition task. Everyone who
arrives while it runs awaits that same task, so all of them see the same
collection or the same exception. A failure resets the state so a later
call starts over. Retry policy belongs to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any
from urllib.parse import urlsplit

from pymongo import ASCENDING, AsyncMongoClient

from mongo_rate_store.options import CollectionSource, ConnectionSource, UriSource
from mongo_rate_store.telemetry import StoreTelemetry

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "test"
EXPIRATION_FIELD = "expirationDate"


class ConnectionState(StrEnum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"


def default_auth_source(uri: str) -> str | None:
    """Database named by the URI's trailing path segment, query string stripped."""
    path = urlsplit(uri).path
    name = path.rsplit("/", 1)[-1]
    return name or None


def build_client_options(source: UriSource) -> dict[str, Any]:
    """Merge client keyword options.

    Precedence, lowest first: computed defaults, explicit ``auth_source``,
    ``user``/``password``, then the caller's ``connection_options``.
    """
    options: dict[str, Any] = {"tz_aware": True}

    db_name = default_auth_source(source.uri)
    if db_name:
        options["authSource"] = db_name
    if source.auth_source:
        options["authSource"] = source.auth_source

    if source.user:
        options["username"] = source.user
        if source.password is not None:
            options["password"] = source.password

    options.update(source.connection_options)
    return options


def _consume_exception(task: asyncio.Task) -> None:
    # Failure is already logged and re-raised to every waiter; this keeps
    # asyncio quiet when all waiters were cancelled first.
    if not task.cancelled():
        task.exception()


class ConnectionManager:
    """Hands out the counter collection, connecting at most once at a time.

    With a CollectionSource the manager starts INITIALIZED and never
    connects or closes anything. With a UriSource it creates and owns the
    client until ``shutdown()``.
    """

    def __init__(
        self,
        source: ConnectionSource,
        *,
        create_ttl_index: bool = True,
        client_factory: Callable[..., Any] = AsyncMongoClient,
        telemetry: StoreTelemetry | None = None,
    ):
        self._source = source
        self._create_ttl_index = create_ttl_index
        self._client_factory = client_factory
        self._telemetry = telemetry or StoreTelemetry()
        self._client: Any = None
        self._collection: Any = None
        self._pending: asyncio.Task | None = None
        self._state = ConnectionState.UNINITIALIZED

        if isinstance(source, CollectionSource):
            self._collection = source.collection
            self._state = ConnectionState.INITIALIZED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def client(self) -> Any:
        """The owned client, or None when not connected or externally supplied."""
        return self._client

    @property
    def owns_client(self) -> bool:
        return isinstance(self._source, UriSource)

    async def acquire(self) -> Any:
        """Return the collection, connecting first if needed.

        Raises:
            RateStoreConnectionError: If the connection sequence fails. Every
                caller waiting on the same attempt gets the same instance.
        """
        if self._state is ConnectionState.INITIALIZED:
            return self._collection

        # outside INITIALIZED, a pending task exists exactly while INITIALIZING
        pending = self._pending
        if pending is None:
            self._state = ConnectionState.INITIALIZING
            pending = self._pending = asyncio.get_running_loop().create_task(self._initialize())
            pending.add_done_callback(_consume_exception)

        # shield: a cancelled waiter must not cancel the shared attempt
        return await asyncio.shield(pending)

    async def _initialize(self) -> Any:
        from mongo_rate_store import RateStoreConnectionError

        try:
            collection = await self._connect()
        except asyncio.CancelledError:
            self._reset()
            raise
        except Exception as exc:
            self._reset()
            self._telemetry.record_connect("failure")
            logger.warning("MongoDB connection sequence failed: %s", exc)
            raise RateStoreConnectionError(f"Failed to prepare rate limit collection: {exc}") from exc

        self._collection = collection
        self._state = ConnectionState.INITIALIZED
        self._pending = None
        self._telemetry.record_connect("success")
        return collection

    async def _connect(self) -> Any:
        source = self._source
        if isinstance(source, CollectionSource):
            return source.collection

        with self._telemetry.span("connect"):
            logger.debug("Connecting to MongoDB for collection %r", source.collection_name)
            client = self._client_factory(source.uri, **build_client_options(source))
            try:
                await client.admin.command("ping")
                database = client.get_default_database(DEFAULT_DATABASE_NAME)
                collection = database.get_collection(source.collection_name)
                if self._create_ttl_index:
                    await collection.create_index([(EXPIRATION_FIELD, ASCENDING)], expireAfterSeconds=0)
                    logger.debug("TTL index on %r ensured", EXPIRATION_FIELD)
            except BaseException:
                await client.close()
                raise

        # kept alive for the lifetime of the store
        self._client = client
        return collection

    def _reset(self) -> None:
        self._state = ConnectionState.UNINITIALIZED
        self._pending = None
        self._collection = None

    async def shutdown(self) -> None:
        """Close the owned client. No-op for a caller-supplied collection.

        In-flight acquisitions are waited for first, including any started
        by other callers while waiting; their outcome is left to the callers
        that triggered them.
        """
        if not self.owns_client:
            return

        while self._pending is not None:
            await asyncio.wait([self._pending])

        client, self._client = self._client, None
        self._reset()
        if client is not None:
            logger.debug("Closing MongoDB client")
            await client.close()
