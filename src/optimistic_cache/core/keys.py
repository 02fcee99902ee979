"""Structured cache keys: procedure name plus canonical arguments.

Two keys are equal iff their canonical serialization matches, so
``CacheKey.of("getItems", {"groupId": "g1", "limit": 5})`` and
``CacheKey.of("getItems", {"limit": 5, "groupId": "g1"})`` address the same
entry.

Canonical form
--------------
Arguments are dumped as compact JSON with sorted keys. Before dumping:

- Pydantic models are converted with ``model_dump(mode="json")``.
- ``datetime``/``date`` become ISO-8601 strings.
- ``set``/``frozenset`` become sorted lists; tuples become lists.

Anything else that JSON cannot represent raises :class:`CacheKeyError`.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel

from .errors import CacheKeyError


def _canonical_default(value: Any) -> Any:
    """`json.dumps` fallback for values without a native JSON form."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, set | frozenset):
        return sorted(value, key=lambda v: json.dumps(v, sort_keys=True, default=str))
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonicalize(args: Any) -> str:
    """Return the canonical JSON string for ``args``."""
    try:
        return json.dumps(
            args,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=_canonical_default,
        )
    except (TypeError, ValueError) as exc:
        raise CacheKeyError(f"Arguments cannot be used in a cache key: {exc}") from exc


@dataclass(frozen=True, slots=True, order=True)
class CacheKey:
    """Immutable identifier of one cached query result.

    Attributes
    ----------
    procedure : str
        Remote procedure name, e.g. ``"shoppingList.getItems"``.
    canonical_args : str
        Canonical JSON of the procedure arguments (``"null"`` when none).
    """

    procedure: str
    canonical_args: str = "null"

    @classmethod
    def of(cls, procedure: str, args: Any = None) -> CacheKey:
        """Build a key from a procedure name and raw arguments."""
        if not procedure:
            raise CacheKeyError("procedure name must not be empty")
        return cls(procedure=procedure, canonical_args=canonicalize(args))

    @property
    def args(self) -> Any:
        """Decode the arguments (JSON form) so the key alone can drive a refetch."""
        return json.loads(self.canonical_args)

    def matches(self, procedure: str, args: Mapping[str, Any] | None = None) -> bool:
        """Return True when this key belongs to ``procedure``.

        With ``args``, every given argument must also be present with an equal
        canonical value (partial matching, used for broad invalidation).
        """
        if self.procedure != procedure:
            return False
        if not args:
            return True
        mine = self.args
        if not isinstance(mine, dict):
            return False
        return all(
            k in mine and canonicalize(mine[k]) == canonicalize(v) for k, v in args.items()
        )

    def __str__(self) -> str:
        return f"{self.procedure}({self.canonical_args})"


__all__ = ["CacheKey", "canonicalize"]
