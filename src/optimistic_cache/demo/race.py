"""
Scripted toggle-twice race.

Two toggles of the same item are dispatched before the first one settles:

1. ``A`` flips the cached ``is_completed`` from ``False`` to ``True``.
2. ``B`` flips the then-cached ``True`` back to ``False``.

Either call can be made to fail remotely. Each rollback restores what *its*
mutation snapshotted, so with both failing the cache briefly holds ``True``
(A's optimistic value, B's snapshot) until the settle-time refetch brings
back server truth.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from optimistic_cache.core.contracts.entry import CacheEntry
from optimistic_cache.core.errors import RemoteFailure
from optimistic_cache.core.session import CacheSession
from optimistic_cache.core.settings import Settings
from optimistic_cache.core.store.storage import TraceWriter
from optimistic_cache.core.store.trace import StoreTrace
from optimistic_cache.rpc.client import RemoteProcedureClient
from optimistic_cache.rpc.local import LocalProcedureClient, ProcedureRegistry

from .shopping_list import (
    GET_ITEMS,
    GetItemsInput,
    ShoppingListService,
    items_key,
    register_procedures,
    toggle_complete,
)

GROUP_ID = "demo-group"
ITEM_ID = "x"


@dataclass(slots=True)
class FaultInjectingClient:
    """Wrap a client and fail selected calls before they reach the server.

    ``plan`` maps a procedure name to a list of booleans consumed one per
    call: ``True`` means "fail this call".
    """

    inner: RemoteProcedureClient
    plan: dict[str, list[bool]] = field(default_factory=dict)
    latency: float = 0.0

    async def invoke(self, procedure: str, args: Any = None) -> Any:
        outcomes = self.plan.get(procedure)
        if outcomes and outcomes.pop(0):
            # Same round trip as a real call, so settle order follows dispatch order.
            await asyncio.sleep(self.latency)
            raise RemoteFailure(procedure, "injected failure", code="INJECTED")
        return await self.inner.invoke(procedure, args)


@dataclass(slots=True)
class Observation:
    """One subscriber notification, reduced to what the demo prints."""

    version: int
    status: str
    is_completed: bool | None


@dataclass(slots=True)
class RaceReport:
    observations: list[Observation]
    results: dict[str, str]
    before_refetch: bool | None
    final: bool | None
    server: bool
    traces: tuple[StoreTrace, ...]
    trace_files: list[Path] = field(default_factory=list)


def _completed(value: Any) -> bool | None:
    if not isinstance(value, list):
        return None
    for row in value:
        if row.get("id") == ITEM_ID:
            return bool(row.get("is_completed"))
    return None


async def run_toggle_race(
    *,
    fail_first: bool = True,
    fail_second: bool = True,
    latency: float = 0.05,
    trace_dir: Path | None = None,
    on_entry: Callable[[CacheEntry], None] | None = None,
) -> RaceReport:
    """Run the race against in-process procedures and report what happened."""
    registry = ProcedureRegistry()
    service = ShoppingListService()
    register_procedures(registry, service)
    service.seed(GROUP_ID, [{"id": ITEM_ID, "name": "Milk", "is_completed": False}])

    client = FaultInjectingClient(
        inner=LocalProcedureClient(registry, latency=latency),
        plan={toggle_complete().procedure: [fail_first, fail_second]},
        latency=latency,
    )
    settings = Settings(stale_time_seconds=60.0, refetch_on_settle=True)
    key = items_key(GROUP_ID)
    observations: list[Observation] = []
    before_refetch: list[bool | None] = []

    def observe(entry: CacheEntry) -> None:
        observations.append(
            Observation(entry.version, entry.status.value, _completed(entry.value))
        )
        if on_entry is not None:
            on_entry(entry)

    async with CacheSession(client, settings) as session:
        await session.query(GET_ITEMS, {"group_id": GROUP_ID})
        session.store.trace("loaded")

        with session.subscribe(key, observe):
            spec = toggle_complete()
            variables = {"id": ITEM_ID, "group_id": GROUP_ID}
            task_a = session.mutations.submit(spec, variables)
            session.store.trace("after A optimistic")
            task_b = session.mutations.submit(spec, variables)
            session.store.trace("after B optimistic")

            result_a = await task_a
            session.store.trace("after A settled")
            result_b = await task_b
            before_refetch.append(_completed(session.store.get(key)))
            session.store.trace("after B settled")

            await session.settle()
            session.store.trace("converged")
            final = _completed(session.store.get(key))

        traces = session.store.traces()

    server_rows = service.get_items(GetItemsInput(group_id=GROUP_ID))
    server_value = _completed([row.model_dump(mode="json") for row in server_rows])

    report = RaceReport(
        observations=observations,
        results={
            "A": "ok" if result_a.is_ok() else f"failed: {result_a.unwrap_err().code}",
            "B": "ok" if result_b.is_ok() else f"failed: {result_b.unwrap_err().code}",
        },
        before_refetch=before_refetch[0] if before_refetch else None,
        final=final,
        server=bool(server_value),
        traces=traces,
    )
    if trace_dir is not None:
        report.trace_files = TraceWriter(trace_dir).write_all(traces)
    return report


__all__ = ["FaultInjectingClient", "Observation", "RaceReport", "run_toggle_race"]
