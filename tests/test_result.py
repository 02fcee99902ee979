"""Unit tests for the mutation Result type."""

from __future__ import annotations

import pytest

from optimistic_cache.core.errors import RemoteFailure
from optimistic_cache.core.result import Err, Ok, Result, err, ok


def test_ok_maps_payload_and_ignores_map_err() -> None:
    r: Result[dict[str, str], str] = ok({"id": "item-1"})
    assert r.is_ok() and not r.is_err()
    assert r.map(lambda row: row["id"]).unwrap() == "item-1"
    assert r.map_err(lambda e: e.upper()) == Ok({"id": "item-1"})


def test_err_propagates_through_map_and_maps_error() -> None:
    r: Result[int, str] = err("boom")
    assert r.is_err()
    assert r.map(lambda x: x + 1) == Err("boom")
    r2 = r.map_err(lambda e: f"{e}!")
    assert isinstance(r2, Err) and r2.unwrap_err() == "boom!"


def test_unwrap_variants_and_defaults() -> None:
    assert ok("x").unwrap() == "x"
    assert ok("x").unwrap("ignored") == "x"
    assert err("e").unwrap(default="fallback") == "fallback"
    # a falsy default is still a default
    assert err("e").unwrap(None) is None
    with pytest.raises(RuntimeError):
        err("e").unwrap()
    with pytest.raises(RuntimeError):
        ok(1).unwrap_err()


def test_unwrap_reraises_remote_failure() -> None:
    """A failed mutation result re-raises the stored failure on unwrap."""
    failure = RemoteFailure("shoppingList.toggleComplete", "offline", code="NETWORK")
    r: Result[object, RemoteFailure] = err(failure)
    with pytest.raises(RemoteFailure) as info:
        r.unwrap()
    assert info.value is failure and info.value.code == "NETWORK"


def test_result_base_is_abstract() -> None:
    with pytest.raises(TypeError):
        Result()  # type: ignore[abstract]
    assert isinstance(ok(1), Result) and isinstance(err("e"), Result)
