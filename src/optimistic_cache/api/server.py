"""
ASGI entry point for the procedure host.

Exposes ``app``: the shopping-list procedures served over HTTP. Environment
variables are loaded from ``.env`` before the settings are read.

Usage
-----
Run via the module entry point:
    $ python -m optimistic_cache.api.server

Or via uvicorn directly:
    $ uvicorn optimistic_cache.api.server:app --reload
"""

from __future__ import annotations

from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from optimistic_cache.api.app import create_app
from optimistic_cache.demo.shopping_list import register_procedures
from optimistic_cache.rpc.local import ProcedureRegistry

load_dotenv(dotenv_path=Path(".env"))


def build_app() -> FastAPI:
    """Host a fresh shopping-list service."""
    registry = ProcedureRegistry()
    register_procedures(registry)
    return create_app(registry)


app = build_app()


def main(host: str = "127.0.0.1", port: int = 8000, reload: bool = False) -> None:
    """Run the procedure host locally."""
    uvicorn.run(
        "optimistic_cache.api.server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
