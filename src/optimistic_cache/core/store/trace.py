"""
Store trace definition.

A trace is an immutable record of the whole cache at a given store revision.
It lives apart from ``memory.py`` so the CLI inspector and the disk writer can
use it without importing the store.

Design Notes
------------
- **Immutability**: ``frozen=True``; entries are JSON-safe dictionaries.
- **Serialization**: timestamps are stored as ISO strings at capture time, so
  the writer can ``json.dump`` the dataclass directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class StoreTrace:
    """
    Immutable record of a cache store snapshot.

    Attributes
    ----------
    timestamp : str
        ISO-8601 UTC timestamp string (e.g., "2026-10-18T10:00:00.123456Z").
    revision : int
        Store revision at capture time (bumps on every write and status change).
    note : str | None
        Optional human-readable label (e.g., 'after toggle A').
    entries : list[dict[str, Any]]
        One JSON-safe dict per entry: ``key``, ``procedure``, ``args``,
        ``value``, ``version``, ``status``; sorted by key.
    """

    timestamp: str
    revision: int
    note: str | None
    entries: list[dict[str, Any]] = field(default_factory=list)

    def entry_for(self, key: str) -> dict[str, Any] | None:
        """Return the recorded entry whose ``key`` string equals ``key``."""
        for entry in self.entries:
            if entry.get("key") == key:
                return entry
        return None


__all__ = ["StoreTrace"]
