"""Core package initializer for optimistic-cache.

The most used entry points live in their own modules:
    from optimistic_cache.core.session import CacheSession
    from optimistic_cache.core.keys import CacheKey
    from optimistic_cache.core.settings import settings, get_logger
"""

from __future__ import annotations

__all__ = ["__doc__"]
