"""
Mutation specs and the dispatcher that drives their lifecycle.

A :class:`MutationSpec` says *what* a mutation does to the cache; the
:class:`MutationDispatcher` runs it:

1. ``create_context(variables)`` -> extra context data (optional)
2. coordinator ``on_mutation_start`` (synchronous optimistic writes)
3. ``await client.invoke(procedure, variables)``  <- the only suspension
4. ``on_mutation_success`` or ``on_mutation_error``
5. ``on_mutation_settled``

Steps 3-5 run in their own task, shielded from the caller. A caller that
stops waiting (cancelled, navigated away) does not stop reconciliation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from optimistic_cache.core.contracts.mutation import MutationContext, OptimisticUpdate
from optimistic_cache.core.errors import RemoteFailure
from optimistic_cache.core.keys import CacheKey
from optimistic_cache.core.reconcile import ReconciliationCoordinator
from optimistic_cache.core.result import Result, err, ok
from optimistic_cache.core.settings import get_logger
from optimistic_cache.rpc.client import RemoteProcedureClient

log = get_logger("optimistic_cache.mutation")

UpdatesFn = Callable[[Any, Mapping[str, Any]], Iterable[OptimisticUpdate]]
KeysFn = Callable[[Any], Iterable[CacheKey]]
ContextFn = Callable[[Any], Mapping[str, Any]]


def _no_updates(variables: Any, extras: Mapping[str, Any]) -> Iterable[OptimisticUpdate]:
    return ()


def _no_keys(variables: Any) -> Iterable[CacheKey]:
    return ()


@dataclass(frozen=True, slots=True)
class MutationSpec:
    """Declarative description of one kind of mutation.

    Attributes
    ----------
    procedure:
        Remote procedure to invoke with the mutation variables.
    optimistic:
        ``(variables, extras) -> updates`` applied before the call.
    invalidates:
        ``variables -> keys`` refreshed on settle in addition to the
        optimistically written ones.
    create_context:
        ``variables -> mapping`` computed once, stored on the context and
        handed to ``optimistic`` (e.g. a temporary id for a new row).
    """

    procedure: str
    optimistic: UpdatesFn = _no_updates
    invalidates: KeysFn = _no_keys
    create_context: ContextFn | None = None


class MutationDispatcher:
    """Run mutations through the coordinator and return a :class:`Result`."""

    def __init__(
        self, coordinator: ReconciliationCoordinator, client: RemoteProcedureClient
    ) -> None:
        self.coordinator = coordinator
        self.client = client
        self._tasks: set[asyncio.Task[Result[Any, RemoteFailure]]] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(
        self, spec: MutationSpec, variables: Any = None
    ) -> asyncio.Task[Result[Any, RemoteFailure]]:
        """Start a mutation and return its lifecycle task without awaiting it.

        Optimistic writes are applied before this returns. Must be called
        with a running event loop.

        Raises
        ------
        TransformError
            If an optimistic transform fails; no remote call is made.
        """
        loop = asyncio.get_running_loop()
        extras = dict(spec.create_context(variables)) if spec.create_context else {}
        ctx = self.coordinator.on_mutation_start(
            spec.optimistic(variables, extras),
            spec.invalidates(variables),
            extras=extras,
        )
        task = loop.create_task(
            self._drive(spec, variables, ctx), name=f"mutation:{spec.procedure}:{ctx.id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def mutate(self, spec: MutationSpec, variables: Any = None) -> Result[Any, RemoteFailure]:
        """Run a mutation to completion.

        Returns ``Ok(payload)`` on success, ``Err(RemoteFailure)`` on failure.
        In both cases the cache has been reconciled before this returns.
        """
        task = self.submit(spec, variables)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Await every in-flight mutation lifecycle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _drive(
        self, spec: MutationSpec, variables: Any, ctx: MutationContext
    ) -> Result[Any, RemoteFailure]:
        try:
            payload = await self.client.invoke(spec.procedure, variables)
        except asyncio.CancelledError:
            failure = RemoteFailure(spec.procedure, "mutation task cancelled", code="CANCELLED")
            self._fail(ctx, failure)
            raise
        except Exception as exc:
            failure = RemoteFailure.from_exception(spec.procedure, exc)
            self._fail(ctx, failure)
            return err(failure)

        self.coordinator.on_mutation_success(ctx, payload)
        self.coordinator.on_mutation_settled(ctx)
        log.debug("mutation %s (%s) succeeded", ctx.id, spec.procedure)
        return ok(payload)

    def _fail(self, ctx: MutationContext, failure: RemoteFailure) -> None:
        # Rollback strictly before settle.
        self.coordinator.on_mutation_error(ctx, failure)
        self.coordinator.on_mutation_settled(ctx)
        log.info("mutation %s (%s) failed: %s", ctx.id, failure.procedure, failure)


__all__ = ["MutationSpec", "MutationDispatcher"]
