"""Contract tests for the FastAPI procedure host.

Every test builds its own app around its own registry via `create_app()`,
so no shopping-list state leaks between tests.
"""

from __future__ import annotations

from typing import Any, Final

import pytest
from fastapi.testclient import TestClient

from optimistic_cache import __version__ as PKG_VERSION
from optimistic_cache.api.app import create_app
from optimistic_cache.demo.shopping_list import register_procedures
from optimistic_cache.rpc.local import ProcedureRegistry

ALLOWED_ENVS: Final[set[str]] = {"dev", "test", "prod"}


@pytest.fixture  # type: ignore[misc]
def client() -> TestClient:
    registry = ProcedureRegistry()
    service = register_procedures(registry)
    service.seed("g1", [{"id": "x", "name": "Milk"}])
    return TestClient(create_app(registry))


def test_health_endpoint_contract(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["version"] == PKG_VERSION
    assert data["environment"] in ALLOWED_ENVS


def test_query_returns_success_envelope(client: TestClient) -> None:
    resp = client.post(
        "/rpc/shoppingList.getItems",
        json={"args": {"group_id": "g1"}},
        headers={"x-rpc-source": "tests"},
    )
    assert resp.status_code == 200
    body: dict[str, Any] = resp.json()
    assert body["ok"] is True and body["error"] is None
    assert [row["id"] for row in body["data"]] == ["x"]
    assert body["data"][0]["is_completed"] is False


def test_mutation_changes_server_state(client: TestClient) -> None:
    resp = client.post(
        "/rpc/shoppingList.toggleComplete", json={"args": {"id": "x", "group_id": "g1"}}
    )
    assert resp.status_code == 200 and resp.json()["data"]["is_completed"] is True

    after = client.post("/rpc/shoppingList.getItems", json={"args": {"group_id": "g1"}})
    assert after.json()["data"][0]["is_completed"] is True


@pytest.mark.parametrize(  # type: ignore[misc]
    ("procedure", "args", "status", "code"),
    [
        ("shoppingList.nope", None, 404, "NOT_FOUND"),
        ("shoppingList.deleteItem", {"id": "missing", "group_id": "g1"}, 400, "BAD_REQUEST"),
        ("shoppingList.addItem", {"name": "", "group_id": "g1"}, 400, "BAD_REQUEST"),
    ],
)
def test_failures_return_error_envelopes(
    client: TestClient, procedure: str, args: Any, status: int, code: str
) -> None:
    resp = client.post(f"/rpc/{procedure}", json={"args": args})
    assert resp.status_code == status
    body = resp.json()
    assert body["ok"] is False
    assert body["error"]["code"] == code and body["error"]["message"]
