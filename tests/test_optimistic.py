"""Tests for snapshot-then-rewrite optimistic updates."""

from __future__ import annotations

from typing import Any

import pytest

from optimistic_cache.core.contracts.entry import ABSENT, EntryStatus
from optimistic_cache.core.contracts.snapshot import Snapshot
from optimistic_cache.core.errors import TransformError
from optimistic_cache.core.keys import CacheKey
from optimistic_cache.core.optimistic import OptimisticUpdateController
from optimistic_cache.core.store.memory import CacheStore

KEY = CacheKey.of("shoppingList.getItems", {"group_id": "g1"})


def test_transform_sees_cached_value_and_bumps_version() -> None:
    store = CacheStore()
    store.write(KEY, ["milk"], 4)
    controller = OptimisticUpdateController(store)

    snap = controller.begin_optimistic(KEY, lambda rows: [*rows, "eggs"])

    assert snap == Snapshot(KEY, ["milk"], 4, EntryStatus.FRESH)
    entry = store.read(KEY)
    assert entry is not None
    assert entry.value == ["milk", "eggs"]
    assert entry.version == 5 and entry.status is EntryStatus.PENDING


def test_absent_key_transform_receives_absent() -> None:
    """No placeholder is synthesized for an uncached key."""
    store = CacheStore()
    controller = OptimisticUpdateController(store)
    received: list[Any] = []

    def transform(current: Any) -> list[str]:
        received.append(current)
        return ["new"]

    snap = controller.begin_optimistic(KEY, transform)
    assert received == [ABSENT]
    assert snap.was_absent and snap.version == 0
    assert store.read(KEY).version == 1  # type: ignore[union-attr]


def test_transform_error_leaves_entry_untouched() -> None:
    store = CacheStore()
    before = store.write(KEY, {"n": 1}, 2)
    notified: list[int] = []
    store.subscribe(KEY, lambda e: notified.append(e.version))
    controller = OptimisticUpdateController(store)

    def broken(current: Any) -> Any:
        return current["missing"]

    with pytest.raises(TransformError) as info:
        controller.begin_optimistic(KEY, broken)

    assert isinstance(info.value.cause, KeyError)
    assert info.value.key == KEY
    assert store.read(KEY) is before
    assert notified == []
