"""
Shopping-list procedures and their optimistic mutations.

This is the reference domain for the engine: a per-group list of items that
several people edit at once. It provides

- an in-memory :class:`ShoppingListService` (server side),
- :func:`register_procedures` to expose it on a :class:`ProcedureRegistry`,
- mutation spec factories (:func:`add_item`, :func:`update_item`,
  :func:`toggle_complete`, :func:`delete_item`) describing each mutation's
  optimistic rewrite of the ``shoppingList.getItems`` query.

Cached list values are plain JSON-form dicts, exactly as they arrive from the
procedure layer.
"""

from __future__ import annotations

import itertools
import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from optimistic_cache.core.contracts.entry import ABSENT
from optimistic_cache.core.contracts.mutation import OptimisticUpdate
from optimistic_cache.core.keys import CacheKey
from optimistic_cache.core.mutation import MutationSpec
from optimistic_cache.rpc.local import ProcedureRegistry

GET_ITEMS = "shoppingList.getItems"
ADD_ITEM = "shoppingList.addItem"
UPDATE_ITEM = "shoppingList.updateItem"
TOGGLE_COMPLETE = "shoppingList.toggleComplete"
DELETE_ITEM = "shoppingList.deleteItem"

TEMP_PREFIX = "temp-"


# ---- Schemas -----------------------------------------------------------------


class ShoppingListItem(BaseModel):
    """One row of a group's shopping list."""

    id: str
    name: str
    amount: int = Field(default=1, ge=1)
    is_completed: bool = False
    group_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class GetItemsInput(BaseModel):
    group_id: str


class AddItemInput(BaseModel):
    name: str = Field(min_length=1)
    amount: int = Field(default=1, ge=1)
    group_id: str


class UpdateItemInput(BaseModel):
    id: str
    amount: int = Field(ge=1)
    group_id: str


class ItemRefInput(BaseModel):
    """Input of toggleComplete and deleteItem."""

    id: str
    group_id: str


# ---- Server side -----------------------------------------------------------------


class ShoppingListService:
    """Volatile, in-memory shopping lists keyed by group id."""

    def __init__(self) -> None:
        self._items: dict[str, dict[str, ShoppingListItem]] = {}
        self._ids = itertools.count(1)

    def seed(self, group_id: str, items: Iterable[Mapping[str, Any]]) -> list[ShoppingListItem]:
        seeded = [
            ShoppingListItem.model_validate({"group_id": group_id, **item}) for item in items
        ]
        bucket = self._items.setdefault(group_id, {})
        for item in seeded:
            bucket[item.id] = item
        return seeded

    def get_items(self, data: GetItemsInput) -> list[ShoppingListItem]:
        items = self._items.get(data.group_id, {}).values()
        return sorted(items, key=lambda i: i.created_at, reverse=True)

    def add_item(self, data: AddItemInput) -> ShoppingListItem:
        item = ShoppingListItem(
            id=f"item-{next(self._ids)}",
            name=data.name,
            amount=data.amount,
            group_id=data.group_id,
        )
        self._items.setdefault(data.group_id, {})[item.id] = item
        return item

    def update_item(self, data: UpdateItemInput) -> ShoppingListItem:
        item = self._require(data.group_id, data.id)
        updated = item.model_copy(update={"amount": data.amount, "updated_at": datetime.now(UTC)})
        self._items[data.group_id][data.id] = updated
        return updated

    def toggle_complete(self, data: ItemRefInput) -> ShoppingListItem:
        item = self._require(data.group_id, data.id)
        updated = item.model_copy(
            update={"is_completed": not item.is_completed, "updated_at": datetime.now(UTC)}
        )
        self._items[data.group_id][data.id] = updated
        return updated

    def delete_item(self, data: ItemRefInput) -> ShoppingListItem:
        item = self._require(data.group_id, data.id)
        del self._items[data.group_id][data.id]
        return item

    def _require(self, group_id: str, item_id: str) -> ShoppingListItem:
        item = self._items.get(group_id, {}).get(item_id)
        if item is None:
            raise ValueError(f"Item {item_id!r} not found in group {group_id!r}")
        return item


def register_procedures(
    registry: ProcedureRegistry, service: ShoppingListService | None = None
) -> ShoppingListService:
    """Expose ``service`` on ``registry`` under the ``shoppingList.*`` names.

    Inputs are validated with the schemas above; a validation error surfaces
    as ``BAD_REQUEST`` (pydantic's ``ValidationError`` is a ``ValueError``).
    """
    svc = service or ShoppingListService()
    registry.register(GET_ITEMS, lambda args: svc.get_items(GetItemsInput.model_validate(args)))
    registry.register(ADD_ITEM, lambda args: svc.add_item(AddItemInput.model_validate(args)))
    registry.register(
        UPDATE_ITEM, lambda args: svc.update_item(UpdateItemInput.model_validate(args))
    )
    registry.register(
        TOGGLE_COMPLETE, lambda args: svc.toggle_complete(ItemRefInput.model_validate(args))
    )
    registry.register(
        DELETE_ITEM, lambda args: svc.delete_item(ItemRefInput.model_validate(args))
    )
    return svc


# ---- Client side -----------------------------------------------------------------


def items_key(group_id: str) -> CacheKey:
    """Cache key of a group's ``getItems`` query."""
    return CacheKey.of(GET_ITEMS, {"group_id": group_id})


def _rows(value: Any) -> list[dict[str, Any]]:
    # An uncached list is edited as an empty one.
    return [] if value is ABSENT or value is None else list(value)


def _optimistic_row(variables: Mapping[str, Any], temp_id: str) -> dict[str, Any]:
    now = datetime.now(UTC).isoformat()
    return {
        "id": temp_id,
        "name": variables["name"],
        "amount": variables.get("amount", 1),
        "is_completed": False,
        "group_id": variables["group_id"],
        "created_at": now,
        "updated_at": now,
    }


def add_item() -> MutationSpec:
    """Prepend a temporary row; swap it for the server row on success."""

    def context(variables: Mapping[str, Any]) -> dict[str, Any]:
        return {"temp_id": f"{TEMP_PREFIX}{uuid.uuid4()}"}

    def updates(variables: Mapping[str, Any], extras: Mapping[str, Any]) -> list[OptimisticUpdate]:
        temp_id = extras["temp_id"]
        row = _optimistic_row(variables, temp_id)

        def replace_temp(value: Any, payload: Any) -> Any:
            return [payload if r["id"] == temp_id else r for r in _rows(value)]

        return [
            OptimisticUpdate(
                key=items_key(variables["group_id"]),
                transform=lambda value: [row, *_rows(value)],
                on_success=replace_temp,
            )
        ]

    return MutationSpec(procedure=ADD_ITEM, optimistic=updates, create_context=context)


def update_item() -> MutationSpec:
    """Set the amount of one row."""

    def updates(variables: Mapping[str, Any], extras: Mapping[str, Any]) -> list[OptimisticUpdate]:
        def apply(value: Any) -> Any:
            return [
                {**r, "amount": variables["amount"]} if r["id"] == variables["id"] else r
                for r in _rows(value)
            ]

        return [OptimisticUpdate(key=items_key(variables["group_id"]), transform=apply)]

    return MutationSpec(procedure=UPDATE_ITEM, optimistic=updates)


def toggle_complete() -> MutationSpec:
    """Flip ``is_completed`` of one row, based on the value as currently cached."""

    def updates(variables: Mapping[str, Any], extras: Mapping[str, Any]) -> list[OptimisticUpdate]:
        def apply(value: Any) -> Any:
            return [
                {**r, "is_completed": not r["is_completed"]} if r["id"] == variables["id"] else r
                for r in _rows(value)
            ]

        return [OptimisticUpdate(key=items_key(variables["group_id"]), transform=apply)]

    return MutationSpec(procedure=TOGGLE_COMPLETE, optimistic=updates)


def delete_item() -> MutationSpec:
    """Drop one row."""

    def updates(variables: Mapping[str, Any], extras: Mapping[str, Any]) -> list[OptimisticUpdate]:
        def apply(value: Any) -> Any:
            return [r for r in _rows(value) if r["id"] != variables["id"]]

        return [OptimisticUpdate(key=items_key(variables["group_id"]), transform=apply)]

    return MutationSpec(procedure=DELETE_ITEM, optimistic=updates)


__all__ = [
    "GET_ITEMS",
    "ADD_ITEM",
    "UPDATE_ITEM",
    "TOGGLE_COMPLETE",
    "DELETE_ITEM",
    "ShoppingListItem",
    "ShoppingListService",
    "register_procedures",
    "items_key",
    "add_item",
    "update_item",
    "toggle_complete",
    "delete_item",
]
