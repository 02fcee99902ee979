"""Cache entry records and the ABSENT marker.

Entries are frozen: the store never edits an entry in place, it swaps in a
new object. A subscriber therefore always sees a value, version and status
that were written together.

Status lifecycle
----------------
``fresh --(optimistic write)--> pending --(error rollback)--> fresh``
``pending --(settle)--> stale --(refetch)--> fresh``
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final

from optimistic_cache.core.keys import CacheKey


class EntryStatus(str, Enum):
    """Freshness of a cache entry."""

    FRESH = "fresh"
    STALE = "stale"
    PENDING = "pending"


class _Absent:
    """Type of the :data:`ABSENT` singleton."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __copy__(self) -> _Absent:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Absent:
        return self

    def __reduce__(self) -> str:
        return "ABSENT"


# Marker for "no cached value". Distinct from None, which is a valid value.
ABSENT: Final = _Absent()


def is_absent(value: Any) -> bool:
    """Return True if ``value`` is the ABSENT marker."""
    return value is ABSENT


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Immutable view of one cached query result.

    Attributes
    ----------
    key : CacheKey
        Address of the entry.
    value : Any
        Cached payload, or :data:`ABSENT` for a tombstone.
    version : int
        Bumped on every write; restored verbatim on rollback.
    status : EntryStatus
        ``fresh``, ``stale`` or ``pending``.
    updated_at : float
        ``time.monotonic()`` reading at write time, used for stale-time checks.
    """

    key: CacheKey
    value: Any
    version: int
    status: EntryStatus = EntryStatus.FRESH
    updated_at: float = field(default_factory=time.monotonic)

    @property
    def is_fresh(self) -> bool:
        return self.status is EntryStatus.FRESH

    @property
    def is_stale(self) -> bool:
        return self.status is EntryStatus.STALE

    @property
    def is_pending(self) -> bool:
        return self.status is EntryStatus.PENDING

    def age(self, now: float | None = None) -> float:
        """Seconds since this entry was written."""
        return (time.monotonic() if now is None else now) - self.updated_at


__all__ = ["ABSENT", "CacheEntry", "EntryStatus", "is_absent"]
