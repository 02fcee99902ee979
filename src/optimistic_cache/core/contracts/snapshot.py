"""Snapshot of a cache entry taken right before an optimistic write."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from optimistic_cache.core.keys import CacheKey

from .entry import ABSENT, CacheEntry, EntryStatus


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Immutable record of an entry's prior ``(value, version)``.

    ``status`` is kept for inspection only; rollback restores value and
    version and lets the coordinator decide the resulting status.
    """

    key: CacheKey
    value: Any
    version: int
    status: EntryStatus | None = None

    @classmethod
    def capture(cls, key: CacheKey, entry: CacheEntry | None) -> Snapshot:
        """Capture ``entry`` (or the absence of one) for ``key``."""
        if entry is None:
            return cls(key=key, value=ABSENT, version=0, status=None)
        return cls(key=key, value=entry.value, version=entry.version, status=entry.status)

    @property
    def was_absent(self) -> bool:
        return self.value is ABSENT


__all__ = ["Snapshot"]
