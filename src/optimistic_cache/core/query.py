"""
Read-through query layer over the cache store.

The query client decides when cached data is good enough and when to go to
the remote procedure layer:

- fresh and younger than ``stale_time``  -> served from cache
- pending, or held by a mutation         -> served from cache (optimistic)
- stale, expired or missing              -> fetched, then written as fresh

Concurrent fetches for one key share a single task. A mutation cancels the
in-flight fetches of the keys it is about to rewrite, and any fetch that
completes while its key is held by a mutation is discarded, so server data
from before the write can never overwrite the optimistic value. Settling a
mutation cancels them again before refetching, so the refetch never joins a
request that reached the server before the write did.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from functools import partial
from typing import Any

from optimistic_cache.core.contracts.entry import ABSENT, CacheEntry, EntryStatus
from optimistic_cache.core.errors import RemoteFailure
from optimistic_cache.core.keys import CacheKey
from optimistic_cache.core.reconcile import PendingLog
from optimistic_cache.core.settings import get_logger
from optimistic_cache.core.store.memory import CacheStore
from optimistic_cache.rpc.client import RemoteProcedureClient

log = get_logger("optimistic_cache.query")


class QueryClient:
    """Fetch, dedupe and refresh cached query results."""

    def __init__(
        self,
        store: CacheStore,
        client: RemoteProcedureClient,
        pending: PendingLog,
        *,
        stale_time: float = 60.0,
    ) -> None:
        self.store = store
        self.client = client
        self.pending = pending
        self.stale_time = stale_time
        self._inflight: dict[CacheKey, asyncio.Task[Any]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._deferred: set[CacheKey] = set()

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    def is_usable(self, entry: CacheEntry) -> bool:
        """True when ``entry`` can be served without a network round trip."""
        if entry.is_pending or self.pending.is_held(entry.key):
            return True
        return entry.is_fresh and entry.age() < self.stale_time

    async def fetch(self, key: CacheKey) -> Any:
        """Return the value for ``key``, fetching it if the cache cannot serve it.

        A pending entry returns its optimistic value; callers that need the
        settled server value should ``await coordinator.wait_settled(key)``
        first.
        """
        entry = self.store.read(key)
        if entry is not None and self.is_usable(entry):
            return entry.value
        return await self.refetch(key)

    async def query(self, procedure: str, args: Any = None) -> Any:
        return await self.fetch(CacheKey.of(procedure, args))

    async def refetch(self, key: CacheKey) -> Any:
        """Fetch ``key`` now, joining an in-flight fetch for it if one exists.

        When the joined fetch is cancelled the caller moves on to the fetch
        that replaced it, or gets the cached value if nothing replaced it.

        Raises
        ------
        RemoteFailure
            If the remote call fails; the cached entry is left unchanged.
        """
        while True:
            task = self._inflight.get(key)
            if task is None or task.done():
                task = asyncio.get_running_loop().create_task(
                    self._run_fetch(key), name=f"fetch:{key}"
                )
                self._inflight[key] = task
                task.add_done_callback(partial(self._forget, key))
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                me = asyncio.current_task()
                if not task.cancelled() or (me is not None and me.cancelling() > 0):
                    raise
                newer = self._inflight.get(key)
                if newer is None or newer is task or newer.done():
                    # Superseded by a write: serve what is cached now.
                    return self.store.get(key, ABSENT)

    # ------------------------------------------------------------------ #
    # Background refresh
    # ------------------------------------------------------------------ #
    def schedule_refetch(self, key: CacheKey) -> asyncio.Task[Any] | None:
        """Refetch ``key`` in the background.

        Without a running event loop the key is remembered and picked up by
        the next :meth:`refetch_stale`.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deferred.add(key)
            return None
        task = loop.create_task(self._background_refetch(key), name=f"refetch:{key}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def refetch_stale(self) -> list[CacheKey]:
        """Refetch every stale (or deferred) entry that no mutation holds."""
        keys = set(self.store.stale_keys()) | self._deferred
        self._deferred.clear()
        targets = sorted(k for k in keys if not self.pending.is_held(k))
        results = await asyncio.gather(
            *(self.refetch(k) for k in targets), return_exceptions=True
        )
        refreshed: list[CacheKey] = []
        for key, result in zip(targets, results, strict=True):
            if isinstance(result, BaseException):
                log.warning("background refetch of %s failed: %s", key, result)
            else:
                refreshed.append(key)
        return refreshed

    def cancel(self, keys: Iterable[CacheKey]) -> None:
        """Cancel in-flight fetches for ``keys``.

        A cancelled fetch can no longer be joined, so the next read of the
        key always reaches the server again.
        """
        for key in keys:
            task = self._inflight.pop(key, None)
            if task is not None and not task.done():
                log.debug("cancelling in-flight fetch of %s", key)
                task.cancel()

    async def drain(self) -> None:
        """Await every fetch and background refetch currently running."""
        while self._background or self._inflight:
            tasks = list(self._background) + list(self._inflight.values())
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _run_fetch(self, key: CacheKey) -> Any:
        payload = await self.client.invoke(key.procedure, key.args)
        if self._inflight.get(key) is not asyncio.current_task():
            log.info("discarding superseded fetch of %s", key)
            return self.store.get(key, ABSENT)
        if self.pending.is_held(key):
            log.info("discarding fetch of %s: held by %s", key, self.pending.holders(key))
            return self.store.get(key, ABSENT)
        self.store.write(key, payload, self.store.next_version(key), EntryStatus.FRESH)
        return payload

    async def _background_refetch(self, key: CacheKey) -> None:
        if self.pending.is_held(key):
            return
        try:
            await self.refetch(key)
        except RemoteFailure as exc:
            log.warning("refetch of %s failed, entry stays stale: %s", key, exc)

    def _forget(self, key: CacheKey, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]


__all__ = ["QueryClient"]
