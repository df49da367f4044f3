"""
api/routes/v1/chores.py -- Chores and their dated assignments.

Routes (assignment paths registered before /chores/{chore_id}):
  GET    /chores/assignments                    -- ?today=true, ?member_id=N
  POST   /chores/assignments                    -- chore and assignee must be in the household
  POST   /chores/assignments/{id}/complete      -- completed_by is the caller
  GET    /chores
  POST   /chores
  GET    /chores/{chore_id}
  PUT    /chores/{chore_id}
  DELETE /chores/{chore_id}                     -- also removes its assignments

"Today" for ?today=true is the household's local calendar day.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Request, Response

from api.models import AssignmentCreate, ChoreCreate, ChoreUpdate, validated
from auth.dependencies import get_current_identity
from auth.session import SessionIdentity
from core.errors import NotFound, ValidationFailed
from household.actions import complete_assignment
from household.localtime import local_today
from household.store import HouseholdStore
from household.tables import chore_assignments, chores

router = APIRouter()


def _check_rotation(store: HouseholdStore, household_id: int, rotation: Optional[list[int]]) -> None:
    for member_id in rotation or []:
        if store.get_member(member_id, household_id) is None:
            raise NotFound("Member not found.")


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


@router.get("/chores/assignments")
def list_assignments(
    request: Request,
    today: bool = False,
    member_id: Optional[int] = None,
    identity: SessionIdentity = Depends(get_current_identity),
) -> list[dict]:
    store: HouseholdStore = request.app.state.store
    data = store.scoped(identity.household_id)
    criteria = []
    if today:
        household = store.get_household(identity.household_id)
        criteria.append(chore_assignments.c.due_date == local_today(household.timezone).date)
    if member_id is not None:
        criteria.append(chore_assignments.c.member_id == member_id)

    members = store.member_summaries(identity.household_id)
    chore_info = {c["id"]: {"id": c["id"], "title": c["title"], "points": c["points"]} for c in data.list(chores)}
    return [
        {**a, "chore": chore_info.get(a["chore_id"]), "member": members.get(a["member_id"])}
        for a in data.list(
            chore_assignments,
            *criteria,
            order_by=(chore_assignments.c.due_date, chore_assignments.c.id),
        )
    ]


@router.post("/chores/assignments", status_code=201)
def create_assignment(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(AssignmentCreate, payload)
    store: HouseholdStore = request.app.state.store
    data = store.scoped(identity.household_id)
    data.require(chores, body.chore_id, "Chore")
    if store.get_member(body.member_id, identity.household_id) is None:
        raise NotFound("Member not found.")
    return data.insert(
        chore_assignments,
        chore_id=body.chore_id,
        member_id=body.member_id,
        due_date=body.due_date.isoformat(),
    )


@router.post("/chores/assignments/{assignment_id}/complete")
def complete(request: Request, assignment_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> dict:
    data = request.app.state.store.scoped(identity.household_id)
    return complete_assignment(data, assignment_id, completed_by_id=identity.member_id)


# ---------------------------------------------------------------------------
# Chores
# ---------------------------------------------------------------------------


@router.get("/chores")
def list_chores(request: Request, identity: SessionIdentity = Depends(get_current_identity)) -> list[dict]:
    data = request.app.state.store.scoped(identity.household_id)
    return data.list(chores, order_by=(chores.c.title, chores.c.id))


@router.post("/chores", status_code=201)
def create_chore(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(ChoreCreate, payload)
    store: HouseholdStore = request.app.state.store
    _check_rotation(store, identity.household_id, body.rotation_order)
    return store.scoped(identity.household_id).insert(chores, **body.model_dump())


@router.get("/chores/{chore_id}")
def get_chore(request: Request, chore_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> dict:
    data = request.app.state.store.scoped(identity.household_id)
    chore = data.require(chores, chore_id, "Chore")
    chore["assignments"] = data.list(
        chore_assignments,
        chore_assignments.c.chore_id == chore_id,
        order_by=(chore_assignments.c.due_date.desc(), chore_assignments.c.id.desc()),
        limit=20,
    )
    return chore


@router.put("/chores/{chore_id}")
def update_chore(
    request: Request,
    chore_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(ChoreUpdate, payload)
    store: HouseholdStore = request.app.state.store
    data = store.scoped(identity.household_id)
    data.require(chores, chore_id, "Chore")
    fields = body.model_dump(exclude_unset=True)
    for key in ("title", "frequency"):
        if key in fields and fields[key] is None:
            raise ValidationFailed(f"{key}: Field cannot be empty")
    _check_rotation(store, identity.household_id, fields.get("rotation_order"))
    row = data.update(chores, chore_id, **fields)
    if row is None:
        raise NotFound("Chore not found.")
    return row


@router.delete("/chores/{chore_id}", status_code=204)
def delete_chore(request: Request, chore_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> Response:
    data = request.app.state.store.scoped(identity.household_id)
    children = [(chore_assignments, chore_assignments.c.chore_id == chore_id)]
    if not data.delete_with_children(chores, chore_id, children):
        raise NotFound("Chore not found.")
    return Response(status_code=204)
