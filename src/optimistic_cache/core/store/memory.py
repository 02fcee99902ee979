"""
In-memory cache store with versioned entries, subscriptions and traces.

This is the single shared mutable resource of a cache session. Every other
component goes through the operations below; nothing edits entries directly.

- ``read(key)``: pure lookup.
- ``write(key, value, version, status)``: atomically replace one entry and
  notify that key's subscribers on the same call stack.
- ``mark_stale(keys)``: flip entries to ``stale`` without touching values.
- ``subscribe(key, callback)``: observe writes to one key.
- ``trace(note)``: capture a JSON-safe snapshot of every entry.

Design Goals
------------
- **No partial writes**: entries are frozen; a write swaps in a whole new
  :class:`CacheEntry`, so value, version and status always travel together.
- **Synchronous delivery**: subscribers run before ``write`` returns, which
  keeps notification order equal to program order.
- **Observability**: every state change bumps a store revision; every trace
  captures the full cache at that revision.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from optimistic_cache.core.contracts.entry import ABSENT, CacheEntry, EntryStatus
from optimistic_cache.core.errors import StoreClosedError
from optimistic_cache.core.keys import CacheKey
from optimistic_cache.core.settings import get_logger

from .subscriptions import Callback, Subscription, SubscriptionRegistry
from .trace import StoreTrace

log = get_logger("optimistic_cache.store")


def _jsonify(value: Any) -> Any:
    """
    Return a JSON-safe representation of ``value`` (recursive).

    - Primitives (None, bool, int, float, str) -> returned as-is.
    - ABSENT -> ``None``.
    - Pydantic models -> ``model_dump(mode="json")``.
    - dict -> new dict with keys coerced to str.
    - list/tuple/set -> list.
    - datetime -> ISO string; anything else -> ``repr(obj)``.
    """
    if value is ABSENT:
        return None
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(k): _jsonify(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [_jsonify(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return repr(value)


class CacheStore:
    """
    Key/value store of cached query results.

    Attributes
    ----------
    _entries : dict[CacheKey, CacheEntry]
        Exactly one entry per key.
    _subs : SubscriptionRegistry
        Per-key observers.
    _rev : int
        Monotonically increasing store revision.
    _traces : list[StoreTrace]
        History of captured traces.
    _closed : bool
        Set by :meth:`close` at session end.
    """

    __slots__ = ("_entries", "_subs", "_rev", "_traces", "_closed")

    def __init__(self) -> None:
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._subs = SubscriptionRegistry()
        self._rev: int = 0
        self._traces: list[StoreTrace] = []
        self._closed = False

    # ------------------------------- Read API -------------------------------

    def read(self, key: CacheKey) -> CacheEntry | None:
        """Return the entry for ``key`` or ``None``. No side effects."""
        return self._entries.get(key)

    def get(self, key: CacheKey, default: Any = None) -> Any:
        """Return the cached value for ``key`` or ``default``."""
        entry = self._entries.get(key)
        return default if entry is None else entry.value

    def keys(self) -> tuple[CacheKey, ...]:
        """Return the current keys as a sorted tuple (stable for tests)."""
        return tuple(sorted(self._entries))

    def entries(self) -> tuple[CacheEntry, ...]:
        return tuple(self._entries[k] for k in self.keys())

    def stale_keys(self) -> tuple[CacheKey, ...]:
        return tuple(k for k in self.keys() if self._entries[k].is_stale)

    def find(self, procedure: str, args: dict[str, Any] | None = None) -> tuple[CacheKey, ...]:
        """Return cached keys that belong to ``procedure`` (optionally partial args)."""
        return tuple(k for k in self.keys() if k.matches(procedure, args))

    def next_version(self, key: CacheKey) -> int:
        entry = self._entries.get(key)
        return 1 if entry is None else entry.version + 1

    @property
    def revision(self) -> int:
        return self._rev

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # ------------------------------- Write API ------------------------------

    def write(
        self,
        key: CacheKey,
        value: Any,
        version: int,
        status: EntryStatus = EntryStatus.FRESH,
    ) -> CacheEntry:
        """
        Replace the entry for ``key`` and notify its subscribers.

        Writing :data:`ABSENT` removes the entry; subscribers still receive
        the tombstone so they can drop their view of it.

        Returns
        -------
        CacheEntry
            The entry that was published.
        """
        self._ensure_open()
        entry = CacheEntry(key=key, value=value, version=version, status=status)
        if value is ABSENT:
            self._entries.pop(key, None)
        else:
            self._entries[key] = entry
        self._rev += 1
        log.debug("write %s v%d %s", key, version, status.value)
        self._notify(entry)
        return entry

    def set_status(self, key: CacheKey, status: EntryStatus) -> CacheEntry | None:
        """Change only the status of an existing entry. No-op if unchanged."""
        self._ensure_open()
        current = self._entries.get(key)
        if current is None or current.status is status:
            return current
        entry = CacheEntry(
            key=key,
            value=current.value,
            version=current.version,
            status=status,
            updated_at=current.updated_at,
        )
        self._entries[key] = entry
        self._rev += 1
        self._notify(entry)
        return entry

    def mark_stale(self, keys: Iterable[CacheKey]) -> list[CacheEntry]:
        """
        Flip matching entries to ``stale`` without changing their values.

        Idempotent: entries already stale, and keys with no entry, are left
        alone and produce no notification.
        """
        changed: list[CacheEntry] = []
        for key in sorted(set(keys)):
            current = self._entries.get(key)
            if current is None or current.is_stale:
                continue
            entry = self.set_status(key, EntryStatus.STALE)
            if entry is not None:
                changed.append(entry)
        return changed

    # ---------------------------- Subscriptions -----------------------------

    def subscribe(self, key: CacheKey, callback: Callback) -> Subscription:
        """Call ``callback(entry)`` synchronously after every change to ``key``."""
        self._ensure_open()
        return self._subs.add(key, callback)

    def subscriber_count(self, key: CacheKey | None = None) -> int:
        return self._subs.count(key)

    def _notify(self, entry: CacheEntry) -> None:
        for sub in self._subs.for_key(entry.key):
            if not sub.active:
                continue
            try:
                sub.callback(entry)
            except Exception:
                # The write already happened; one bad observer must not
                # starve the others.
                log.exception("Subscriber for %s raised", entry.key)

    # ------------------------------- Lifecycle ------------------------------

    def close(self) -> None:
        """Tear down all subscriptions; further writes raise StoreClosedError."""
        if self._closed:
            return
        self._subs.clear()
        self._closed = True
        log.debug("store closed at revision %d", self._rev)

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError("cache store is closed")

    # ------------------------------- Trace API ------------------------------

    def trace(self, note: str | None = None) -> StoreTrace:
        """
        Capture an immutable, JSON-safe snapshot of every entry.

        Parameters
        ----------
        note : str | None
            Optional human-readable label explaining why the trace was taken.
        """
        rows: list[dict[str, Any]] = [
            {
                "key": str(entry.key),
                "procedure": entry.key.procedure,
                "args": entry.key.args,
                "value": _jsonify(entry.value),
                "version": entry.version,
                "status": entry.status.value,
            }
            for entry in self.entries()
        ]
        ts_str = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        snap = StoreTrace(timestamp=ts_str, revision=self._rev, note=note, entries=rows)
        self._traces.append(snap)
        return snap

    def traces(self) -> tuple[StoreTrace, ...]:
        """Return all recorded traces (immutable tuple)."""
        return tuple(self._traces)


__all__ = ["CacheStore"]
