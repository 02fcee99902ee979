# -----------------------------------------------------------------------------
# Remote procedure clients consumed by the cache engine.
#
# The engine only needs one coroutine:
#
#     await client.invoke(procedure, args) -> payload
#
# which either returns the success payload or raises `RemoteFailure`. Argument
# canonicalization for cache keys happens in `core.keys`, not here.
#
# `HttpProcedureClient` speaks the envelope format from `rpc.schemas` over
# plain `urllib.request`, run in a worker thread so the event loop keeps
# turning during the round trip. Unit tests mock the internal `_post()`
# method so that no real HTTP calls are made.
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from optimistic_cache.core.errors import RemoteFailure
from optimistic_cache.core.keys import canonicalize
from optimistic_cache.core.settings import Settings, get_logger, load_settings

from .schemas import RpcResponse

log = get_logger("optimistic_cache.rpc")


@runtime_checkable
class RemoteProcedureClient(Protocol):
    """Anything that can execute a named procedure asynchronously."""

    async def invoke(self, procedure: str, args: Any = None) -> Any: ...


@dataclass(slots=True)
class HttpProcedureClient:
    """Call procedures exposed by the HTTP procedure host.

    Parameters
    ----------
    base_url:
        Host root, e.g. ``"http://localhost:8000"``; calls go to
        ``{base_url}/rpc/{procedure}``.
    timeout_seconds:
        Network timeout for one call.
    source:
        Value of the ``x-rpc-source`` header identifying this caller.
    headers:
        Extra headers (e.g. a session cookie) sent with every call.
    """

    base_url: str
    timeout_seconds: float = 10.0
    source: str = "python"
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> HttpProcedureClient:
        """Construct a client from ``RPC_BASE_URL`` / ``RPC_TIMEOUT_SECONDS`` / ``RPC_SOURCE``."""
        s = settings or load_settings()
        return cls(
            base_url=s.rpc_base_url,
            timeout_seconds=s.rpc_timeout_seconds,
            source=s.rpc_source,
        )

    async def invoke(self, procedure: str, args: Any = None) -> Any:
        """Call ``procedure`` with ``args`` and return its ``data`` payload.

        Raises
        ------
        RemoteFailure
            On network errors, non-JSON bodies, malformed envelopes, or an
            ``ok: false`` response from the host.
        """
        url = f"{self.base_url.rstrip('/')}/rpc/{urllib.parse.quote(procedure, safe='.')}"
        headers = {
            "Content-Type": "application/json",
            "x-rpc-source": self.source,
            **self.headers,
        }
        # Canonical JSON keeps request bodies identical to the cache key form.
        body = {"args": json.loads(canonicalize(args))}
        log.debug("POST %s", url)

        raw = await asyncio.to_thread(
            self._post, procedure=procedure, url=url, headers=headers, payload=body
        )
        try:
            envelope = RpcResponse.model_validate(raw)
        except ValidationError as exc:
            raise RemoteFailure(
                procedure, f"malformed response: {exc}", code="BAD_RESPONSE"
            ) from exc

        if envelope.ok:
            return envelope.data
        error = envelope.error
        if error is None:
            raise RemoteFailure(procedure, "failed response without error", code="BAD_RESPONSE")
        raise RemoteFailure(procedure, error.message, code=error.code)

    # --------------------------------------------------------------------- #
    # Internal helpers (test seams)
    # --------------------------------------------------------------------- #
    def _post(
        self,
        *,
        procedure: str,
        url: str,
        headers: Mapping[str, str],
        payload: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Perform an HTTP POST request and decode the JSON response.

        Error statuses whose body is still a JSON envelope are returned as-is
        so the caller sees the host's structured error code.
        """
        request = urllib.request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            headers=dict(headers),
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
                status = resp.status
        except urllib.error.HTTPError as exc:
            raw = exc.read()
            status = exc.code
        except urllib.error.URLError as exc:
            raise RemoteFailure(procedure, f"network error: {exc.reason}", code="NETWORK") from exc
        except TimeoutError as exc:
            raise RemoteFailure(procedure, "request timed out", code="TIMEOUT") from exc

        try:
            decoded: dict[str, Any] = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RemoteFailure(
                procedure,
                f"HTTP {status}: response is not JSON",
                code="BAD_RESPONSE",
                status=status,
            ) from exc
        return decoded


__all__ = ["RemoteProcedureClient", "HttpProcedureClient"]
