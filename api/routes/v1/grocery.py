"""
api/routes/v1/grocery.py -- Shared grocery list.

Routes:
  GET    /grocery                  -- unchecked items first, then by category and name
  POST   /grocery                  -- added_by is the caller
  PATCH  /grocery/{item_id}        -- rename, requantify, check / uncheck
  DELETE /grocery/{item_id}
  DELETE /grocery?checked=true     -- clear every checked item
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response

from api.models import GroceryItemCreate, GroceryItemUpdate, validated
from auth.dependencies import get_current_identity
from auth.session import SessionIdentity
from core.errors import NotFound, ValidationFailed
from household.tables import grocery_items

router = APIRouter()


@router.get("/grocery")
def list_items(request: Request, identity: SessionIdentity = Depends(get_current_identity)) -> list[dict]:
    data = request.app.state.store.scoped(identity.household_id)
    members = request.app.state.store.member_summaries(identity.household_id)
    rows = data.list(
        grocery_items,
        order_by=(grocery_items.c.checked, grocery_items.c.category, grocery_items.c.name, grocery_items.c.id),
    )
    return [{**row, "added_by": members.get(row["added_by_id"])} for row in rows]


@router.post("/grocery", status_code=201)
def add_item(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(GroceryItemCreate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    return data.insert(
        grocery_items,
        name=body.name,
        quantity=body.quantity or None,
        category=body.category or None,
        checked=False,
        added_by_id=identity.member_id,
    )


@router.patch("/grocery/{item_id}")
def update_item(
    request: Request,
    item_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(GroceryItemUpdate, payload)
    fields = body.model_dump(exclude_unset=True)
    if "name" in fields and fields["name"] is None:
        raise ValidationFailed("name: Field cannot be empty")
    if fields.get("checked", False) is None:
        fields.pop("checked")
    data = request.app.state.store.scoped(identity.household_id)
    row = data.update(grocery_items, item_id, **fields)
    if row is None:
        raise NotFound("Item not found.")
    return row


@router.delete("/grocery/{item_id}", status_code=204)
def delete_item(request: Request, item_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> Response:
    data = request.app.state.store.scoped(identity.household_id)
    if not data.delete(grocery_items, item_id):
        raise NotFound("Item not found.")
    return Response(status_code=204)


@router.delete("/grocery")
def clear_checked(
    request: Request,
    checked: bool = False,
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    if not checked:
        raise ValidationFailed("Only checked items can be cleared in bulk; pass checked=true.")
    data = request.app.state.store.scoped(identity.household_id)
    removed = data.delete_where(grocery_items, grocery_items.c.checked.is_(True))
    return {"deleted": removed}
