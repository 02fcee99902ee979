"""Unit tests for the in-memory cache store, its subscriptions and trace writer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from optimistic_cache.core.contracts.entry import ABSENT, CacheEntry, EntryStatus
from optimistic_cache.core.errors import StoreClosedError
from optimistic_cache.core.keys import CacheKey
from optimistic_cache.core.settings import load_settings
from optimistic_cache.core.store.memory import CacheStore
from optimistic_cache.core.store.storage import TraceWriter, load_trace

K1 = CacheKey.of("list.get", {"id": 1})
K2 = CacheKey.of("list.get", {"id": 2})


def test_write_read_basic() -> None:
    """Basic write/read behaviour and key listing are correct."""
    store = CacheStore()
    assert store.read(K1) is None
    entry = store.write(K1, [1, 2], 1)
    assert store.read(K1) is entry
    assert entry.value == [1, 2] and entry.version == 1 and entry.status is EntryStatus.FRESH
    store.write(K2, None, 1)
    # None is a legitimate cached value, distinct from "absent"
    assert store.read(K2) is not None and store.get(K2, "dflt") is None
    assert store.keys() == (K1, K2)
    assert len(store) == 2 and K1 in store
    assert store.next_version(K1) == 2
    assert store.next_version(CacheKey.of("other")) == 1


def test_writing_absent_removes_entry_but_notifies() -> None:
    store = CacheStore()
    seen: list[CacheEntry] = []
    store.write(K1, "v", 3)
    store.subscribe(K1, seen.append)
    tombstone = store.write(K1, ABSENT, 0)
    assert store.read(K1) is None
    assert seen == [tombstone] and seen[0].value is ABSENT and seen[0].version == 0


def test_subscribers_are_notified_synchronously_in_order() -> None:
    """Callbacks run before `write` returns, in write order, per key only."""
    store = CacheStore()
    seen: list[tuple[int, Any]] = []
    store.subscribe(K1, lambda e: seen.append((e.version, e.value)))

    store.write(K1, "a", 1)
    assert seen == [(1, "a")]  # same call stack
    store.write(K2, "other key", 1)
    store.write(K1, "b", 2, EntryStatus.PENDING)
    assert seen == [(1, "a"), (2, "b")]


def test_subscriber_never_sees_partial_write() -> None:
    """Each notification carries the value, version and status written together."""
    store = CacheStore()
    seen: list[CacheEntry] = []

    def check(entry: CacheEntry) -> None:
        # The stored entry is already the one being delivered.
        assert store.read(entry.key) is entry
        seen.append(entry)

    store.subscribe(K1, check)
    store.write(K1, {"n": 1}, 1)
    store.write(K1, {"n": 2}, 2, EntryStatus.PENDING)
    assert [(e.value["n"], e.version, e.status) for e in seen] == [
        (1, 1, EntryStatus.FRESH),
        (2, 2, EntryStatus.PENDING),
    ]


def test_unsubscribe_and_scoped_subscription() -> None:
    store = CacheStore()
    seen: list[int] = []
    sub = store.subscribe(K1, lambda e: seen.append(e.version))
    store.write(K1, "a", 1)
    sub.unsubscribe()
    sub.unsubscribe()  # idempotent
    store.write(K1, "b", 2)
    assert seen == [1] and not sub.active

    with store.subscribe(K1, lambda e: seen.append(e.version)) as scoped:
        store.write(K1, "c", 3)
    store.write(K1, "d", 4)
    assert seen == [1, 3] and not scoped.active
    assert store.subscriber_count() == 0


def test_failing_subscriber_does_not_block_others() -> None:
    store = CacheStore()
    seen: list[int] = []

    def boom(entry: CacheEntry) -> None:
        raise RuntimeError("observer bug")

    store.subscribe(K1, boom)
    store.subscribe(K1, lambda e: seen.append(e.version))
    store.write(K1, "a", 1)
    assert seen == [1]
    assert store.get(K1) == "a"


def test_mark_stale_is_idempotent() -> None:
    """A second `mark_stale` on the same keys has no observable effect."""
    store = CacheStore()
    store.write(K1, "a", 1)
    store.write(K2, "b", 4)
    seen: list[CacheEntry] = []
    store.subscribe(K1, seen.append)

    changed = store.mark_stale({K1, K2, CacheKey.of("missing")})
    assert [e.key for e in changed] == [K1, K2]
    first = (store.read(K1), store.read(K2), len(seen), store.revision)

    assert store.mark_stale([K1, K2]) == []
    assert (store.read(K1), store.read(K2), len(seen), store.revision) == first
    # value and version untouched
    assert store.read(K1).value == "a" and store.read(K1).version == 1  # type: ignore[union-attr]
    assert store.stale_keys() == (K1, K2)


def test_close_tears_down_subscriptions() -> None:
    store = CacheStore()
    sub = store.subscribe(K1, lambda e: None)
    store.close()
    assert store.closed and not sub.active
    with pytest.raises(StoreClosedError):
        store.write(K1, "x", 1)
    with pytest.raises(StoreClosedError):
        store.subscribe(K1, lambda e: None)
    # reads stay available
    assert store.read(K1) is None


def test_trace_in_memory_snapshot() -> None:
    """`trace()` returns a consistent, JSON-safe snapshot."""
    store = CacheStore()
    store.write(K1, {"items": ({"id": "x"},)}, 1)
    snap = store.trace("first")
    assert snap.revision == 1
    row = snap.entry_for(str(K1))
    assert row is not None
    assert row["value"] == {"items": [{"id": "x"}]}
    assert row["status"] == "fresh" and row["args"] == {"id": 1}
    assert len(store.traces()) == 1


def test_trace_writes_files(tmp_path: Path, monkeypatch: Any) -> None:
    """Traces can be written to disk under the configured directory."""
    outdir = tmp_path / "trace"
    monkeypatch.setenv("OPTIMISTIC_CACHE_TRACE_DIR", str(outdir))
    load_settings.cache_clear()

    store = CacheStore()
    store.write(K1, "PKI", 1)
    s1 = store.trace("init")

    writer = TraceWriter()  # picks up env var for base_dir
    p1 = writer.write(s1)
    assert p1.exists() and p1.parent == outdir
    assert p1.name.endswith("_rev000001.json")

    with p1.open("r", encoding="utf-8") as f:
        payload: dict[str, Any] = json.load(f)
    assert payload["revision"] == 1
    assert payload["note"] == "init"
    assert payload["entries"][0]["value"] == "PKI"
    assert payload["timestamp"].endswith("Z")

    store.write(K2, 2, 1)
    p2 = writer.write(store.trace("second"))
    assert p2.exists() and p2 != p1
    assert load_trace(p2).note == "second"

    monkeypatch.delenv("OPTIMISTIC_CACHE_TRACE_DIR", raising=False)
    load_settings.cache_clear()
