"""Tests for record id prefixing."""

from __future__ import annotations

from mongo_rate_store.keys import DEFAULT_PREFIX, prefix_key


def test_default_prefix():
    assert DEFAULT_PREFIX == "mongodb_rl_"


def test_prefix_is_prepended():
    assert prefix_key("mongodb_rl_", "127.0.0.1") == "mongodb_rl_127.0.0.1"


def test_empty_prefix():
    assert prefix_key("", "k") == "k"


def test_concatenation_can_collide():
    """No escaping: different (prefix, key) pairs can share an id."""
    assert prefix_key("a_", "b") == prefix_key("a", "_b")
