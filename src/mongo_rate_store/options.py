"""Store options — tagged connection source plus counter behaviour flags."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from mongo_rate_store.keys import DEFAULT_PREFIX

DEFAULT_COLLECTION_NAME = "expressRateRecords"

_URI_FIELDS = ("uri", "collection_name", "connection_options", "user", "password", "auth_source")


@dataclass(frozen=True)
class UriSource:
    """Connect with a MongoDB URI. The store owns the resulting client."""

    uri: str
    collection_name: str = DEFAULT_COLLECTION_NAME
    connection_options: dict[str, Any] = field(default_factory=dict)
    user: str | None = None
    password: str | None = field(default=None, repr=False)
    auth_source: str | None = None


@dataclass(frozen=True)
class CollectionSource:
    """Use an already-built ``AsyncCollection``. The caller owns its client."""

    collection: Any


ConnectionSource = UriSource | CollectionSource


@dataclass(frozen=True)
class StoreOptions:
    """Everything needed to build a MongoDBStore.

    ``window_ms`` may be left unset and supplied later through
    ``MongoDBStore.init()``.
    """

    source: ConnectionSource
    prefix: str = DEFAULT_PREFIX
    reset_expire_date_on_change: bool = False
    create_ttl_index: bool = True
    window_ms: int | None = None


def resolve_source(
    *,
    collection: Any = None,
    uri: str | None = None,
    collection_name: str | None = None,
    connection_options: dict[str, Any] | None = None,
    user: str | None = None,
    password: str | None = None,
    auth_source: str | None = None,
) -> ConnectionSource:
    """Build the connection source from flat keyword options.

    Exactly one of ``collection`` or ``uri`` must be given, and the URI-only
    fields may not accompany ``collection``.

    Raises:
        RateStoreConfigError: On conflicting or missing options.
    """
    from mongo_rate_store import RateStoreConfigError

    uri_values = {
        "uri": uri,
        "collection_name": collection_name,
        "connection_options": connection_options,
        "user": user,
        "password": password,
        "auth_source": auth_source,
    }

    if collection is not None:
        given = [name for name in _URI_FIELDS if uri_values[name] is not None]
        if given:
            raise RateStoreConfigError(f"'collection' cannot be combined with URI options: {', '.join(given)}")
        return CollectionSource(collection=collection)

    if not uri:
        raise RateStoreConfigError("Either 'uri' or 'collection' must be provided")

    if password is not None and user is None:
        raise RateStoreConfigError("'password' requires 'user'")

    return UriSource(
        uri=uri,
        collection_name=collection_name or DEFAULT_COLLECTION_NAME,
        connection_options=dict(connection_options or {}),
        user=user,
        password=password,
        auth_source=auth_source,
    )


def validate_window(window_ms: Any) -> int:
    """Return *window_ms* if it is a positive integer, else raise RateStoreConfigError."""
    from mongo_rate_store import RateStoreConfigError

    if isinstance(window_ms, bool) or not isinstance(window_ms, int) or window_ms <= 0:
        raise RateStoreConfigError(f"window_ms must be a positive integer, got {window_ms!r}")
    return window_ms
