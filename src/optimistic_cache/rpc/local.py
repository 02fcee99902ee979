"""In-process procedure registry and client.

The registry maps procedure names to plain callables (sync or async). The
FastAPI host serves a registry over HTTP; :class:`LocalProcedureClient` calls
the same registry directly, which is what the demo and most tests use.

Error mapping
-------------
- unknown procedure      -> ``RemoteFailure(code="NOT_FOUND")``
- handler ``ValueError`` -> ``RemoteFailure(code="BAD_REQUEST")``
- ``RemoteFailure``      -> re-raised unchanged
- anything else          -> ``RemoteFailure(code="INTERNAL_SERVER_ERROR")``
"""

from __future__ import annotations

import asyncio
import inspect
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from optimistic_cache.core.errors import RemoteFailure
from optimistic_cache.core.keys import canonicalize
from optimistic_cache.core.settings import get_logger

log = get_logger("optimistic_cache.rpc.local")

Handler = Callable[[Any], Any | Awaitable[Any]]


class ProcedureRegistry:
    """Name -> handler map with uniform error mapping."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def register(self, name: str, handler: Handler | None = None) -> Any:
        """Register ``handler`` under ``name``; usable as a decorator."""

        def _add(fn: Handler) -> Handler:
            if name in self._handlers:
                raise ValueError(f"procedure {name!r} already registered")
            self._handlers[name] = fn
            return fn

        if handler is not None:
            return _add(handler)
        return _add

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    async def call(self, name: str, args: Any = None) -> Any:
        """Run the handler for ``name``; failures become :class:`RemoteFailure`."""
        handler = self._handlers.get(name)
        if handler is None:
            raise RemoteFailure(name, f"no procedure named {name!r}", code="NOT_FOUND", status=404)
        try:
            result = handler(args)
            if inspect.isawaitable(result):
                result = await result
        except RemoteFailure:
            raise
        except ValueError as exc:
            raise RemoteFailure(name, str(exc), code="BAD_REQUEST", status=400) from exc
        except Exception as exc:
            log.exception("procedure %s raised", name)
            raise RemoteFailure(
                name, str(exc) or type(exc).__name__, code="INTERNAL_SERVER_ERROR", status=500
            ) from exc
        return result


@dataclass(slots=True)
class LocalProcedureClient:
    """``RemoteProcedureClient`` backed by a :class:`ProcedureRegistry`.

    ``latency`` simulates a network round trip (seconds). Arguments and
    results pass through canonical JSON so callers cannot share mutable
    objects with the handlers, just as over a real wire.
    """

    registry: ProcedureRegistry
    latency: float = 0.0
    calls: list[tuple[str, Any]] = field(default_factory=list)

    async def invoke(self, procedure: str, args: Any = None) -> Any:
        wire_args = json.loads(canonicalize(args))
        self.calls.append((procedure, wire_args))
        if self.latency:
            await asyncio.sleep(self.latency)
        result = await self.registry.call(procedure, wire_args)
        return json.loads(canonicalize(result))


__all__ = ["Handler", "ProcedureRegistry", "LocalProcedureClient"]
