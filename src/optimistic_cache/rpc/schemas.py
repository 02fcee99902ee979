"""Wire envelopes for remote procedure calls.

Request:  ``POST /rpc/{procedure}`` with ``{"args": <any>}``
Response: ``{"ok": true, "data": <any>}`` or
          ``{"ok": false, "error": {"code": "...", "message": "..."}}``
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator


class RpcRequest(BaseModel):
    """Body of a procedure call."""

    args: Any = Field(default=None, description="Procedure input, JSON-encodable")


class RpcError(BaseModel):
    """Structured failure reported by the procedure host."""

    code: str = Field(description="Machine label, e.g. 'NOT_FOUND'")
    message: str = Field(default="", description="Human-readable detail")


class RpcResponse(BaseModel):
    """Envelope returned by the procedure host."""

    ok: bool
    data: Any = None
    error: RpcError | None = None

    @model_validator(mode="after")
    def _error_iff_failed(self) -> RpcResponse:
        if not self.ok and self.error is None:
            raise ValueError("failed response must carry an error")
        return self

    @classmethod
    def success(cls, data: Any) -> RpcResponse:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, code: str, message: str) -> RpcResponse:
        return cls(ok=False, error=RpcError(code=code, message=message))


__all__ = ["RpcRequest", "RpcError", "RpcResponse"]
