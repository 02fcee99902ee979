"""Error taxonomy for the cache engine.

- :class:`TransformError`   an optimistic transform raised; nothing was written.
- :class:`RemoteFailure`    the remote procedure rejected; the cache is rolled
                            back before the failure reaches the caller.
- :class:`CacheKeyError`    procedure arguments cannot be canonicalized.
- :class:`MutationStateError` a lifecycle hook was called out of order.
- :class:`StoreClosedError` the store was used after its session ended.

A read that observes a ``pending`` entry is *not* an error: the optimistic
value may simply not match eventual server truth until the mutation settles.
"""

from __future__ import annotations

from typing import Any


class CacheError(Exception):
    """Base class for every error raised by optimistic-cache."""


class CacheKeyError(CacheError, TypeError):
    """Raised when procedure arguments have no canonical serialization."""


class StoreClosedError(CacheError, RuntimeError):
    """Raised when a closed :class:`CacheStore` is written or subscribed to."""


class MutationStateError(CacheError, RuntimeError):
    """Raised when a mutation context is driven through an invalid transition."""


class TransformError(CacheError):
    """An optimistic transform raised while computing the tentative value."""

    def __init__(self, key: Any, cause: BaseException) -> None:
        super().__init__(f"Optimistic transform failed for {key}: {cause}")
        self.key = key
        self.cause = cause


class RemoteFailure(CacheError):
    """Structured failure reported by (or on the way to) the remote procedure."""

    def __init__(
        self,
        procedure: str,
        message: str,
        *,
        code: str = "INTERNAL_SERVER_ERROR",
        status: int | None = None,
    ) -> None:
        super().__init__(f"{procedure} failed [{code}]: {message}")
        self.procedure = procedure
        self.message = message
        self.code = code
        self.status = status

    @classmethod
    def from_exception(cls, procedure: str, exc: BaseException) -> RemoteFailure:
        """Wrap an arbitrary transport/procedure exception."""
        if isinstance(exc, RemoteFailure):
            return exc
        return cls(procedure, str(exc) or type(exc).__name__)

    def to_payload(self) -> dict[str, str]:
        """Return the wire representation used in error envelopes."""
        return {"code": self.code, "message": self.message}


__all__ = [
    "CacheError",
    "CacheKeyError",
    "StoreClosedError",
    "MutationStateError",
    "TransformError",
    "RemoteFailure",
]
