"""Record id namespacing for counters that share a collection."""

from __future__ import annotations

DEFAULT_PREFIX = "mongodb_rl_"


def prefix_key(prefix: str, key: str) -> str:
    """Return the record ``_id`` for *key*.

    Plain concatenation, no escaping: ``("a_", "b")`` and ``("a", "_b")``
    map to the same record.
    """
    return f"{prefix}{key}"
