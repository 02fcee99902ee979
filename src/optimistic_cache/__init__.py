"""optimistic-cache: optimistic mutations over a reconciling query cache.

The engine lets a client apply a tentative change to cached remote data before
the authoritative write completes, then converges back to server truth once
the write settles, whatever the outcome.
"""

from __future__ import annotations

__all__ = ["__version__"]
__version__ = "0.3.0"
