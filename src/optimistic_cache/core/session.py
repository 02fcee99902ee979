"""
Cache session: one explicit owner for every engine component.

Create one per client session and pass it (or its parts) to whoever needs
the cache; there is no module-level cache singleton.

Usage
-----
>>> async with CacheSession(LocalProcedureClient(registry)) as session:
...     items = await session.query("shoppingList.getItems", {"group_id": "g1"})
...     result = await session.mutate(toggle_complete(), {"id": "x", "group_id": "g1"})
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

from optimistic_cache.core.errors import RemoteFailure
from optimistic_cache.core.keys import CacheKey
from optimistic_cache.core.mutation import MutationDispatcher, MutationSpec
from optimistic_cache.core.optimistic import OptimisticUpdateController
from optimistic_cache.core.query import QueryClient
from optimistic_cache.core.reconcile import PendingLog, ReconciliationCoordinator
from optimistic_cache.core.result import Result
from optimistic_cache.core.settings import Settings, get_logger, load_settings
from optimistic_cache.core.store.memory import CacheStore
from optimistic_cache.core.store.subscriptions import Callback, Subscription
from optimistic_cache.rpc.client import RemoteProcedureClient

log = get_logger("optimistic_cache.session")


class CacheSession:
    """Wire store, controller, coordinator, queries and mutations together."""

    def __init__(self, client: RemoteProcedureClient, settings: Settings | None = None) -> None:
        self.settings = settings or load_settings()
        self.client = client
        self.store = CacheStore()
        self.pending = PendingLog()
        self.controller = OptimisticUpdateController(self.store)
        self.queries = QueryClient(
            self.store,
            client,
            self.pending,
            stale_time=self.settings.stale_time_seconds,
        )
        self.coordinator = ReconciliationCoordinator(
            self.store,
            self.controller,
            pending=self.pending,
            refetcher=self.queries,
            refetch_on_settle=self.settings.refetch_on_settle,
        )
        self.mutations = MutationDispatcher(self.coordinator, client)

    # ------------------------------------------------------------------ #
    # Conveniences
    # ------------------------------------------------------------------ #
    async def query(self, procedure: str, args: Any = None) -> Any:
        return await self.queries.query(procedure, args)

    async def mutate(self, spec: MutationSpec, variables: Any = None) -> Result[Any, RemoteFailure]:
        return await self.mutations.mutate(spec, variables)

    def subscribe(self, key: CacheKey, callback: Callback) -> Subscription:
        return self.store.subscribe(key, callback)

    async def settle(self) -> None:
        """Wait for all mutations and the refetches they triggered."""
        await self.mutations.drain()
        await self.queries.drain()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def close(self) -> None:
        """Finish in-flight work, then tear down the store."""
        if self.store.closed:
            return
        await self.settle()
        self.store.close()
        log.debug("session closed")

    async def __aenter__(self) -> CacheSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["CacheSession"]
