"""Apply speculative transforms to cached entries.

``begin_optimistic`` reads, transforms and writes within one synchronous turn,
so two mutations can never interleave mid-update on the same key. The
returned :class:`Snapshot` is the only way back to the prior state.
"""

from __future__ import annotations

from optimistic_cache.core.contracts.entry import EntryStatus
from optimistic_cache.core.contracts.mutation import Transform
from optimistic_cache.core.contracts.snapshot import Snapshot
from optimistic_cache.core.errors import TransformError
from optimistic_cache.core.keys import CacheKey
from optimistic_cache.core.settings import get_logger
from optimistic_cache.core.store.memory import CacheStore

log = get_logger("optimistic_cache.optimistic")


class OptimisticUpdateController:
    """Snapshot-then-rewrite over a :class:`CacheStore`."""

    __slots__ = ("store",)

    def __init__(self, store: CacheStore) -> None:
        self.store = store

    def begin_optimistic(self, key: CacheKey, transform: Transform) -> Snapshot:
        """Apply ``transform`` to the cached value of ``key``.

        The transform receives the cached value, or ``ABSENT`` when nothing is
        cached; no placeholder is synthesized. The result is written with
        ``version + 1`` and status ``pending``.

        Raises
        ------
        TransformError
            If ``transform`` raises. The entry is left untouched.
        """
        current = self.store.read(key)
        snapshot = Snapshot.capture(key, current)

        try:
            new_value = transform(snapshot.value)
        except Exception as exc:
            log.info("optimistic transform for %s failed: %s", key, exc)
            raise TransformError(key, exc) from exc

        self.store.write(key, new_value, snapshot.version + 1, EntryStatus.PENDING)
        log.debug("optimistic write %s v%d -> v%d", key, snapshot.version, snapshot.version + 1)
        return snapshot


__all__ = ["OptimisticUpdateController"]
