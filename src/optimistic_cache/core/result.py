"""Typed outcome of a mutation.

A remote failure is an expected outcome, not a crash: by the time the caller
sees it the cache has already been rolled back and invalidated. The
dispatcher therefore *returns* one of

- ``Ok(payload)``          the procedure succeeded,
- ``Err(RemoteFailure)``   it failed and the cache was restored,

and leaves raising to the caller (``result.unwrap()`` re-raises the stored
failure).

Example
-------
>>> from optimistic_cache.core.result import ok, err
>>> ok({"id": "item-1"}).map(lambda row: row["id"]).unwrap()
'item-1'
>>> err("offline").unwrap(default="cached")
'cached'
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, NoReturn, TypeVar

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")
F = TypeVar("F")

_MISSING: Any = object()


class Result(ABC, Generic[T, E]):
    """Either :class:`Ok` or :class:`Err`; the base itself cannot be instantiated."""

    __slots__ = ()

    @abstractmethod
    def is_ok(self) -> bool: ...

    def is_err(self) -> bool:
        return not self.is_ok()

    @abstractmethod
    def unwrap(self, default: T = _MISSING) -> T:
        """Return the payload of ``Ok``.

        On ``Err`` return ``default`` when given; otherwise raise the stored
        error if it is an exception, or :class:`RuntimeError` if it is not.
        """

    @abstractmethod
    def unwrap_err(self) -> E: ...

    @abstractmethod
    def map(self, fn: Callable[[T], U]) -> Result[U, E]: ...

    @abstractmethod
    def map_err(self, fn: Callable[[E], F]) -> Result[T, F]: ...


@dataclass(frozen=True, slots=True)
class Ok(Result[T, E]):
    value: T

    def is_ok(self) -> bool:
        return True

    def unwrap(self, default: T = _MISSING) -> T:
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise RuntimeError(f"unwrap_err() called on {self!r}")

    def map(self, fn: Callable[[T], U]) -> Result[U, E]:
        return Ok(fn(self.value))

    def map_err(self, fn: Callable[[E], F]) -> Result[T, F]:
        return Ok(self.value)


@dataclass(frozen=True, slots=True)
class Err(Result[T, E]):
    error: E

    def is_ok(self) -> bool:
        return False

    def unwrap(self, default: T = _MISSING) -> T:
        if default is not _MISSING:
            return default
        if isinstance(self.error, BaseException):
            raise self.error
        raise RuntimeError(f"unwrap() called on {self!r}")

    def unwrap_err(self) -> E:
        return self.error

    def map(self, fn: Callable[[T], U]) -> Result[U, E]:
        return Err(self.error)

    def map_err(self, fn: Callable[[E], F]) -> Result[T, F]:
        return Err(fn(self.error))


def ok(value: T) -> Result[T, Any]:
    return Ok(value)


def err(error: E) -> Result[Any, E]:
    return Err(error)


__all__ = ["Result", "Ok", "Err", "ok", "err"]
