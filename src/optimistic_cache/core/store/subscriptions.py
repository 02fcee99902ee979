"""Observer registry: key -> ordered set of subscriber handles.

A :class:`Subscription` is a scoped acquisition. Release it explicitly with
``unsubscribe()``, by leaving a ``with`` block, or wholesale when the owning
store closes.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from optimistic_cache.core.contracts.entry import CacheEntry
    from optimistic_cache.core.keys import CacheKey

Callback = Callable[["CacheEntry"], None]


class Subscription:
    """Handle returned by :meth:`SubscriptionRegistry.add`."""

    __slots__ = ("key", "callback", "_registry", "_token", "_active")

    def __init__(
        self, registry: SubscriptionRegistry, key: CacheKey, callback: Callback, token: int
    ) -> None:
        self.key = key
        self.callback = callback
        self._registry = registry
        self._token = token
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop receiving notifications. Safe to call more than once."""
        if self._active:
            self._active = False
            self._registry._discard(self.key, self._token)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()

    def _deactivate(self) -> None:
        self._active = False


class SubscriptionRegistry:
    """Explicit key -> subscribers map with insertion-ordered delivery."""

    __slots__ = ("_by_key", "_tokens")

    def __init__(self) -> None:
        self._by_key: dict[CacheKey, dict[int, Subscription]] = {}
        self._tokens = itertools.count(1)

    def add(self, key: CacheKey, callback: Callback) -> Subscription:
        token = next(self._tokens)
        sub = Subscription(self, key, callback, token)
        self._by_key.setdefault(key, {})[token] = sub
        return sub

    def for_key(self, key: CacheKey) -> tuple[Subscription, ...]:
        """Return a stable copy so callbacks may unsubscribe mid-delivery."""
        return tuple(self._by_key.get(key, {}).values())

    def count(self, key: CacheKey | None = None) -> int:
        if key is not None:
            return len(self._by_key.get(key, {}))
        return sum(len(subs) for subs in self._by_key.values())

    def clear(self) -> None:
        """Deactivate every handle (session teardown)."""
        for subs in self._by_key.values():
            for sub in subs.values():
                sub._deactivate()
        self._by_key.clear()

    def __iter__(self) -> Iterator[Subscription]:
        for subs in list(self._by_key.values()):
            yield from list(subs.values())

    def _discard(self, key: CacheKey, token: int) -> None:
        subs = self._by_key.get(key)
        if subs is None:
            return
        subs.pop(token, None)
        if not subs:
            del self._by_key[key]


__all__ = ["Callback", "Subscription", "SubscriptionRegistry"]
