"""
FastAPI procedure host.

Serves a :class:`ProcedureRegistry` over HTTP using the envelope format from
``optimistic_cache.rpc.schemas``:

- ``POST /rpc/{procedure}``  run a procedure, body ``{"args": ...}``
- ``GET /health``            liveness probe

Design Pattern
--------------
Application factory (``create_app``): every test builds its own app around
its own registry, so no procedure state leaks between tests.

Error mapping
-------------
``RemoteFailure`` raised by the registry carries an HTTP status (404 for an
unknown procedure, 400 for invalid input, 500 otherwise); the host returns it
as ``{"ok": false, "error": {...}}`` with that status.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from optimistic_cache import __version__
from optimistic_cache.core.errors import RemoteFailure
from optimistic_cache.core.keys import canonicalize
from optimistic_cache.core.settings import get_logger, load_settings
from optimistic_cache.rpc.local import ProcedureRegistry
from optimistic_cache.rpc.schemas import RpcRequest, RpcResponse

log = get_logger("optimistic_cache.api")


def create_app(registry: ProcedureRegistry | None = None) -> FastAPI:
    """
    Construct the procedure host around ``registry``.

    Returns
    -------
    FastAPI
        The configured ASGI application ready to be served by Uvicorn.
    """
    procedures = registry if registry is not None else ProcedureRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        log.info("procedure host up: %d procedure(s)", len(procedures.names()))
        yield
        log.info("procedure host shutting down")

    app = FastAPI(
        title="optimistic-cache procedure host",
        description="Remote procedures behind the optimistic cache",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.registry = procedures

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RemoteFailure)
    async def remote_failure_handler(request: Request, exc: RemoteFailure) -> JSONResponse:
        """Return procedure failures as error envelopes."""
        return JSONResponse(
            status_code=exc.status or 500,
            content=RpcResponse.failure(exc.code, exc.message).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all so unexpected errors still produce a JSON envelope."""
        log.exception("unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content=RpcResponse.failure("INTERNAL_SERVER_ERROR", str(exc)).model_dump(mode="json"),
        )

    @app.post("/rpc/{procedure}", response_model=RpcResponse, tags=["RPC"])
    async def call_procedure(procedure: str, body: RpcRequest, request: Request) -> RpcResponse:
        """Run ``procedure`` and wrap its result."""
        source = request.headers.get("x-rpc-source", "unknown")
        log.debug("rpc %s from %s", procedure, source)
        data = await procedures.call(procedure, body.args)
        return RpcResponse.success(json.loads(canonicalize(data)))

    @app.get("/health", tags=["System"])
    async def health_check() -> dict[str, str]:
        """Simple liveness probe."""
        return {
            "status": "ok",
            "version": __version__,
            "environment": load_settings().environment,
        }

    return app


__all__ = ["create_app"]
