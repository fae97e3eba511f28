"""Store config loader — parse YAML, validate against the bundled JSON Schema."""

from __future__ import annotations

import importlib.resources as _resources
import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from mongo_rate_store.keys import DEFAULT_PREFIX
from mongo_rate_store.options import DEFAULT_COLLECTION_NAME, StoreOptions, UriSource

MAX_CONFIG_SIZE = 65_536  # 64 KiB

# Lazy-loaded schema singleton
_schema_cache: dict | None = None


def _get_schema() -> dict:
    """Load and cache the JSON Schema for validation."""
    global _schema_cache  # noqa: PLW0603
    if _schema_cache is None:
        schema_text = (
            _resources.files("mongo_rate_store").joinpath("store-v1.schema.json").read_text(encoding="utf-8")
        )
        _schema_cache = json.loads(schema_text)
    return _schema_cache


def _validate_schema(data: dict) -> None:
    from mongo_rate_store import RateStoreConfigError

    try:
        jsonschema.validate(instance=data, schema=_get_schema())
    except jsonschema.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise RateStoreConfigError(f"Schema validation failed at {location}: {e.message}") from e


def _parse(raw_bytes: bytes) -> dict:
    from mongo_rate_store import RateStoreConfigError

    if len(raw_bytes) > MAX_CONFIG_SIZE:
        raise RateStoreConfigError(f"Config too large ({len(raw_bytes)} bytes, max {MAX_CONFIG_SIZE})")

    try:
        data = yaml.safe_load(raw_bytes)
    except yaml.YAMLError as e:
        raise RateStoreConfigError(f"YAML parse error: {e}") from e

    if not isinstance(data, dict):
        raise RateStoreConfigError("YAML document must be a mapping")

    _validate_schema(data)
    return data


def load_config(source: str | Path) -> dict:
    """Load and validate a store config file.

    Raises:
        RateStoreConfigError: If the YAML is invalid or fails schema validation.
        FileNotFoundError: If the file does not exist.
    """
    return _parse(Path(source).read_bytes())


def load_config_string(content: str | bytes) -> dict:
    """Like :func:`load_config` but takes the YAML content directly."""
    raw_bytes = content.encode("utf-8") if isinstance(content, str) else content
    return _parse(raw_bytes)


def options_from_config(data: dict[str, Any]) -> StoreOptions:
    """Turn a validated config mapping into StoreOptions."""
    store = data.get("store", {})
    connection = data["connection"]

    # JSON Schema's "integer" also admits integral floats such as 60000.0
    window_ms = store.get("window_ms")
    if window_ms is not None:
        window_ms = int(window_ms)

    source = UriSource(
        uri=connection["uri"],
        collection_name=connection.get("collection_name", DEFAULT_COLLECTION_NAME),
        connection_options=dict(connection.get("connection_options", {})),
        user=connection.get("user"),
        password=connection.get("password"),
        auth_source=connection.get("auth_source"),
    )
    return StoreOptions(
        source=source,
        prefix=store.get("prefix", DEFAULT_PREFIX),
        reset_expire_date_on_change=store.get("reset_expire_date_on_change", False),
        create_ttl_index=store.get("create_ttl_index", True),
        window_ms=window_ms,
    )
