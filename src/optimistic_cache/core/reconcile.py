"""
Reconciliation of optimistic writes with server truth.

The coordinator wraps every mutation lifecycle:

1. ``on_mutation_start``  snapshot + optimistic rewrite of each update key.
2. ``on_mutation_success`` optionally merge the server payload into the cache.
3. ``on_mutation_error``  restore snapshots in LIFO order.
4. ``on_mutation_settled`` always mark affected keys stale and refetch them.
   A key another context still holds is left to that context's settle.

Step 3, when it runs, finishes (cache writes included) before step 4 starts
for the same context, so a rollback is never clobbered by its own refetch.

Concurrent mutations on one key
-------------------------------
There is no lock. Each context snapshots whatever the cache holds when it
starts, which may be another context's optimistic value, and rolls back to
exactly that. Under overlapping failures the last applied snapshot wins; the
settle-time refetch then replaces it with server truth.

The :class:`PendingLog` records, per key, the ordered ids of contexts that
still hold an optimistic write there. Held keys are never refetched; the last
holder to settle schedules the refetch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from optimistic_cache.core.contracts.entry import ABSENT, EntryStatus
from optimistic_cache.core.contracts.mutation import (
    MutationContext,
    MutationState,
    OptimisticUpdate,
)
from optimistic_cache.core.errors import MutationStateError, TransformError
from optimistic_cache.core.keys import CacheKey
from optimistic_cache.core.optimistic import OptimisticUpdateController
from optimistic_cache.core.settings import get_logger
from optimistic_cache.core.store.memory import CacheStore

log = get_logger("optimistic_cache.reconcile")


class Refetcher(Protocol):
    """What the coordinator needs from the query layer."""

    def schedule_refetch(self, key: CacheKey) -> object: ...

    def cancel(self, keys: Iterable[CacheKey]) -> None: ...


class PendingLog:
    """Per-key ordered log of mutation contexts holding an optimistic write."""

    __slots__ = ("_holders", "_waiters")

    def __init__(self) -> None:
        self._holders: dict[CacheKey, list[str]] = {}
        self._waiters: dict[CacheKey, list[asyncio.Future[None]]] = {}

    def hold(self, key: CacheKey, context_id: str) -> None:
        self._holders.setdefault(key, []).append(context_id)

    def release(self, key: CacheKey, context_id: str) -> bool:
        """Drop every hold of ``context_id`` on ``key``; True if the key is now free."""
        ids = self._holders.get(key)
        if ids is None:
            return True
        remaining = [i for i in ids if i != context_id]
        if remaining:
            self._holders[key] = remaining
            return False
        del self._holders[key]
        for fut in self._waiters.pop(key, []):
            if not fut.done():
                fut.set_result(None)
        return True

    def holders(self, key: CacheKey) -> tuple[str, ...]:
        return tuple(self._holders.get(key, ()))

    def is_held(self, key: CacheKey) -> bool:
        return key in self._holders

    def held_keys(self) -> tuple[CacheKey, ...]:
        return tuple(sorted(self._holders))

    async def wait_free(self, key: CacheKey) -> None:
        """Return once no context holds ``key``."""
        if not self.is_held(key):
            return
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(key, []).append(fut)
        await fut


class ReconciliationCoordinator:
    """Drive snapshot, rollback and invalidation around mutations."""

    def __init__(
        self,
        store: CacheStore,
        controller: OptimisticUpdateController | None = None,
        *,
        pending: PendingLog | None = None,
        refetcher: Refetcher | None = None,
        refetch_on_settle: bool = True,
    ) -> None:
        self.store = store
        self.controller = controller or OptimisticUpdateController(store)
        self.pending = pending or PendingLog()
        self.refetcher = refetcher
        self.refetch_on_settle = refetch_on_settle

    # ------------------------------------------------------------------ #
    # Lifecycle hooks
    # ------------------------------------------------------------------ #
    def on_mutation_start(
        self,
        updates: Iterable[OptimisticUpdate] = (),
        invalidates: Iterable[CacheKey] = (),
        *,
        extras: Mapping[str, Any] | None = None,
    ) -> MutationContext:
        """Apply every update optimistically and return the new context.

        With no updates the context is a pass-through: nothing is written, but
        ``invalidates`` is still honoured on settle.

        Raises
        ------
        TransformError
            If any transform raises. Updates already applied by this context
            are rolled back first, so the cache is exactly as before.
        """
        updates = list(updates)
        ctx = MutationContext(
            affected_keys={u.key for u in updates} | set(invalidates),
            extras=dict(extras or {}),
        )
        if self.refetcher is not None and updates:
            # An in-flight fetch must not overwrite the optimistic value.
            self.refetcher.cancel({u.key for u in updates})

        for update in updates:
            self.pending.hold(update.key, ctx.id)
            try:
                snapshot = self.controller.begin_optimistic(update.key, update.transform)
            except TransformError:
                self.pending.release(update.key, ctx.id)
                self._restore(ctx, exact=True)
                self._release_all(ctx)
                ctx.state = MutationState.SETTLED
                raise
            ctx.snapshots.append(snapshot)
            ctx.updates.append(update)

        log.debug(
            "mutation %s started: %d optimistic, %d affected",
            ctx.id,
            len(ctx.snapshots),
            len(ctx.affected_keys),
        )
        return ctx

    def on_mutation_success(self, ctx: MutationContext, payload: Any) -> None:
        """Record success and merge ``payload`` where an update asks for it."""
        self._require(ctx, MutationState.STARTED, "succeed")
        for update in ctx.updates:
            if update.on_success is None:
                continue
            entry = self.store.read(update.key)
            current = ABSENT if entry is None else entry.value
            try:
                merged = update.on_success(current, payload)
            except Exception:
                # Settle refetches this key anyway; keep the optimistic value.
                log.exception("success merge for %s failed in mutation %s", update.key, ctx.id)
                continue
            self.store.write(
                update.key, merged, self.store.next_version(update.key), EntryStatus.PENDING
            )
        ctx.state = MutationState.SUCCEEDED

    def on_mutation_error(self, ctx: MutationContext, error: BaseException | None = None) -> None:
        """Restore every snapshot of ``ctx`` in reverse order of acquisition."""
        self._require(ctx, MutationState.STARTED, "roll back")
        ctx.error = error
        self._restore(ctx)
        ctx.state = MutationState.ROLLED_BACK
        log.info(
            "mutation %s rolled back %d snapshot(s): %s",
            ctx.id,
            len(ctx.snapshots),
            error,
        )

    def on_mutation_settled(self, ctx: MutationContext) -> None:
        """Invalidate and refetch every affected key no other mutation still holds."""
        if ctx.state is MutationState.SETTLED:
            raise MutationStateError(f"mutation {ctx.id} already settled")
        if ctx.state is MutationState.STARTED and ctx.error is not None:
            raise MutationStateError(f"mutation {ctx.id} failed but was not rolled back")

        self._release_all(ctx)
        ctx.state = MutationState.SETTLED
        free = sorted(k for k in ctx.affected_keys if not self.pending.is_held(k))
        for key in sorted(ctx.affected_keys - set(free)):
            log.debug("invalidation of %s deferred to %s", key, self.pending.holders(key))
        self.store.mark_stale(free)

        if self.refetcher is None:
            return
        # A fetch sent before the write may still answer; it must not be joined.
        self.refetcher.cancel(free)
        if self.refetch_on_settle:
            for key in free:
                self.refetcher.schedule_refetch(key)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    def is_held(self, key: CacheKey) -> bool:
        return self.pending.is_held(key)

    def holders(self, key: CacheKey) -> tuple[str, ...]:
        return self.pending.holders(key)

    async def wait_settled(self, key: CacheKey) -> None:
        """Await until no in-flight mutation holds ``key``."""
        await self.pending.wait_free(key)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _restore(self, ctx: MutationContext, *, exact: bool = False) -> None:
        # exact: no settle follows, so each entry keeps the status it had.
        for snapshot in reversed(ctx.snapshots):
            if exact and snapshot.status is not None:
                status = snapshot.status
            elif any(i != ctx.id for i in self.pending.holders(snapshot.key)):
                status = EntryStatus.PENDING
            else:
                status = EntryStatus.FRESH
            self.store.write(snapshot.key, snapshot.value, snapshot.version, status)

    def _release_all(self, ctx: MutationContext) -> None:
        for key in {s.key for s in ctx.snapshots} | {u.key for u in ctx.updates}:
            self.pending.release(key, ctx.id)

    @staticmethod
    def _require(ctx: MutationContext, state: MutationState, action: str) -> None:
        if ctx.state is not state:
            raise MutationStateError(
                f"cannot {action} mutation {ctx.id} in state {ctx.state.value}"
            )


__all__ = ["PendingLog", "ReconciliationCoordinator", "Refetcher"]
