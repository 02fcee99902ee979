from __future__ import annotations

from .client import HttpProcedureClient, RemoteProcedureClient
from .local import LocalProcedureClient, ProcedureRegistry
from .schemas import RpcError, RpcRequest, RpcResponse

__all__ = [
    "RemoteProcedureClient",
    "HttpProcedureClient",
    "LocalProcedureClient",
    "ProcedureRegistry",
    "RpcRequest",
    "RpcResponse",
    "RpcError",
]
