"""Unit tests for structured cache keys."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import BaseModel

from optimistic_cache.core.errors import CacheKeyError
from optimistic_cache.core.keys import CacheKey, canonicalize


class _Args(BaseModel):
    group_id: str
    limit: int = 10


def test_equal_iff_canonical_form_matches() -> None:
    """Argument order does not matter; argument values do."""
    a = CacheKey.of("shoppingList.getItems", {"group_id": "g1", "limit": 5})
    b = CacheKey.of("shoppingList.getItems", {"limit": 5, "group_id": "g1"})
    c = CacheKey.of("shoppingList.getItems", {"group_id": "g2", "limit": 5})
    assert a == b and hash(a) == hash(b)
    assert a != c
    assert a != CacheKey.of("shoppingList.other", {"group_id": "g1", "limit": 5})


def test_keys_are_immutable_and_ordered() -> None:
    key = CacheKey.of("b.proc", {"x": 1})
    with pytest.raises(AttributeError):
        key.procedure = "other"  # type: ignore[misc]
    keys = sorted([CacheKey.of("b.proc"), CacheKey.of("a.proc", {"x": 2}), CacheKey.of("a.proc")])
    assert [k.procedure for k in keys] == ["a.proc", "a.proc", "b.proc"]


def test_pydantic_models_dates_and_sets_canonicalize() -> None:
    """Models dump to JSON form; sets sort; datetimes become ISO strings."""
    when = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)
    from_model = CacheKey.of("p", _Args(group_id="g1"))
    from_dict = CacheKey.of("p", {"group_id": "g1", "limit": 10})
    assert from_model == from_dict

    assert canonicalize({"tags": {"b", "a"}}) == '{"tags":["a","b"]}'
    assert canonicalize({"at": when}) == '{"at":"2026-10-18T12:00:00+00:00"}'


def test_args_round_trip_and_none_default() -> None:
    key = CacheKey.of("p", {"group_id": "g1"})
    assert key.args == {"group_id": "g1"}
    bare = CacheKey.of("p")
    assert bare.canonical_args == "null" and bare.args is None


def test_unserializable_args_raise_cache_key_error() -> None:
    with pytest.raises(CacheKeyError):
        CacheKey.of("p", {"fn": object()})
    with pytest.raises(CacheKeyError):
        CacheKey.of("", {"x": 1})
    # CacheKeyError is also a TypeError
    with pytest.raises(TypeError):
        CacheKey.of("p", {"fn": object()})


def test_matches_procedure_and_partial_args() -> None:
    key = CacheKey.of("shoppingList.getItems", {"group_id": "g1", "limit": 5})
    assert key.matches("shoppingList.getItems")
    assert key.matches("shoppingList.getItems", {"group_id": "g1"})
    assert not key.matches("shoppingList.getItems", {"group_id": "g2"})
    assert not key.matches("shoppingList.addItem")
    assert str(key) == 'shoppingList.getItems({"group_id":"g1","limit":5})'
