"""Per-mutation bookkeeping: optimistic updates and the mutation context.

A :class:`MutationContext` is created when a mutation starts and dropped once
it settles. Its ``state`` field is an explicit state machine::

    STARTED --(success)--> SUCCEEDED --(settle)--> SETTLED
    STARTED --(error)----> ROLLED_BACK --(settle)--> SETTLED
    STARTED --(settle)---------------------------> SETTLED

The coordinator rejects any other transition with ``MutationStateError``.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from optimistic_cache.core.keys import CacheKey

from .snapshot import Snapshot

# A transform receives the cached value (or ABSENT) and returns the new one.
Transform = Callable[[Any], Any]


class MutationState(str, Enum):
    """Lifecycle position of a mutation context."""

    STARTED = "started"
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    SETTLED = "settled"


@dataclass(frozen=True, slots=True)
class OptimisticUpdate:
    """One speculative rewrite: which key, and how to transform its value."""

    key: CacheKey
    transform: Transform
    # Optional merge of the server payload into the cached value on success.
    on_success: Callable[[Any, Any], Any] | None = None


@dataclass(slots=True)
class MutationContext:
    """State carried across one mutation's lifecycle.

    Attributes
    ----------
    id : str
        Unique token (UUID4) for logs and holder bookkeeping.
    affected_keys : set[CacheKey]
        Keys written optimistically plus extra keys to invalidate on settle.
    snapshots : list[Snapshot]
        Snapshots in acquisition order; rollback walks them in reverse.
    updates : list[OptimisticUpdate]
        The updates that produced ``snapshots`` (same order).
    extras : dict[str, Any]
        Caller-defined context data (e.g. the temporary id of an added row).
    state : MutationState
        Current lifecycle state.
    error : BaseException | None
        The failure recorded by the error hook, if any.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    affected_keys: set[CacheKey] = field(default_factory=set)
    snapshots: list[Snapshot] = field(default_factory=list)
    updates: list[OptimisticUpdate] = field(default_factory=list)
    extras: dict[str, Any] = field(default_factory=dict)
    state: MutationState = MutationState.STARTED
    error: BaseException | None = None

    @property
    def is_settled(self) -> bool:
        return self.state is MutationState.SETTLED

    @property
    def is_passthrough(self) -> bool:
        """True when the mutation touched no cached entry optimistically."""
        return not self.snapshots


__all__ = ["MutationContext", "MutationState", "OptimisticUpdate", "Transform"]
