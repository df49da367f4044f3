"""
api/routes/v1/pets.py -- Pets, their care tasks, care logs and health records.

Routes (task paths registered before /pets/{pet_id}):
  GET    /pets/tasks/pending                 -- tasks due now across all pets
  POST   /pets/tasks/{task_id}/log           -- member is the caller
  GET    /pets/tasks/{task_id}/logs
  PUT    /pets/tasks/{task_id}
  DELETE /pets/tasks/{task_id}               -- also removes its logs
  GET    /pets
  POST   /pets
  GET    /pets/{pet_id}                      -- with tasks and health records
  PUT    /pets/{pet_id}
  DELETE /pets/{pet_id}                      -- cascades to tasks, logs, records
  POST   /pets/{pet_id}/tasks
  GET    /pets/{pet_id}/health
  POST   /pets/{pet_id}/health
  DELETE /pets/health/{record_id}

A task is due when it has never been logged, or when its schedule's
interval_hours has elapsed since the last log.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response
from sqlalchemy import select

from api.models import (
    PetCareLogCreate,
    PetCareTaskCreate,
    PetCareTaskUpdate,
    PetCreate,
    PetHealthRecordCreate,
    PetUpdate,
    validated,
)
from auth.dependencies import get_current_identity
from auth.session import SessionIdentity
from core.errors import NotFound, ValidationFailed
from household.actions import log_pet_care, pending_care_tasks
from household.store import HouseholdStore
from household.tables import pet_care_logs, pet_care_tasks, pet_health_records, pets

router = APIRouter()


def _check_default_member(store: HouseholdStore, household_id: int, member_id: Optional[int]) -> None:
    if member_id is not None and store.get_member(member_id, household_id) is None:
        raise NotFound("Member not found.")


def _dates_to_text(fields: dict) -> dict:
    for key in ("birthday", "date"):
        if fields.get(key) is not None:
            fields[key] = fields[key].isoformat()
    return fields


# ---------------------------------------------------------------------------
# Care tasks and logs
# ---------------------------------------------------------------------------


@router.get("/pets/tasks/pending")
def list_pending(request: Request, identity: SessionIdentity = Depends(get_current_identity)) -> list[dict]:
    store: HouseholdStore = request.app.state.store
    members = store.member_summaries(identity.household_id)
    return [
        {**task, "default_member": members.get(task["default_member_id"]) if task["default_member_id"] else None}
        for task in pending_care_tasks(store.scoped(identity.household_id))
    ]


@router.post("/pets/tasks/{task_id}/log", status_code=201)
def log_care(
    request: Request,
    task_id: int,
    payload: Optional[dict[str, Any]] = Body(default=None),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(PetCareLogCreate, payload or {})
    data = request.app.state.store.scoped(identity.household_id)
    return log_pet_care(data, task_id, identity.member_id, notes=body.notes, duration_min=body.duration_min)


@router.get("/pets/tasks/{task_id}/logs")
def list_logs(
    request: Request,
    task_id: int,
    limit: int = Query(default=20, ge=1, le=200),
    identity: SessionIdentity = Depends(get_current_identity),
) -> list[dict]:
    store: HouseholdStore = request.app.state.store
    data = store.scoped(identity.household_id)
    data.require(pet_care_tasks, task_id, "Task")
    members = store.member_summaries(identity.household_id)
    rows = data.list(
        pet_care_logs,
        pet_care_logs.c.task_id == task_id,
        order_by=(pet_care_logs.c.completed_at.desc(), pet_care_logs.c.id.desc()),
        limit=limit,
    )
    return [{**row, "member": members.get(row["member_id"])} for row in rows]


@router.put("/pets/tasks/{task_id}")
def update_task(
    request: Request,
    task_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(PetCareTaskUpdate, payload)
    store: HouseholdStore = request.app.state.store
    data = store.scoped(identity.household_id)
    data.require(pet_care_tasks, task_id, "Task")
    fields = body.model_dump(exclude_unset=True)
    for key in ("type", "title"):
        if key in fields and fields[key] is None:
            raise ValidationFailed(f"{key}: Field cannot be empty")
    _check_default_member(store, identity.household_id, fields.get("default_member_id"))
    row = data.update(pet_care_tasks, task_id, **fields)
    if row is None:
        raise NotFound("Task not found.")
    return row


@router.delete("/pets/tasks/{task_id}", status_code=204)
def delete_task(request: Request, task_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> Response:
    data = request.app.state.store.scoped(identity.household_id)
    children = [(pet_care_logs, pet_care_logs.c.task_id == task_id)]
    if not data.delete_with_children(pet_care_tasks, task_id, children):
        raise NotFound("Task not found.")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Health records
# ---------------------------------------------------------------------------


@router.delete("/pets/health/{record_id}", status_code=204)
def delete_health_record(
    request: Request, record_id: int, identity: SessionIdentity = Depends(get_current_identity)
) -> Response:
    if not request.app.state.store.scoped(identity.household_id).delete(pet_health_records, record_id):
        raise NotFound("Health record not found.")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Pets
# ---------------------------------------------------------------------------


@router.get("/pets")
def list_pets(request: Request, identity: SessionIdentity = Depends(get_current_identity)) -> list[dict]:
    data = request.app.state.store.scoped(identity.household_id)
    return data.list(pets, order_by=(pets.c.name, pets.c.id))


@router.post("/pets", status_code=201)
def create_pet(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(PetCreate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    return data.insert(pets, **_dates_to_text(body.model_dump()))


@router.get("/pets/{pet_id}")
def get_pet(request: Request, pet_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> dict:
    data = request.app.state.store.scoped(identity.household_id)
    pet = data.require(pets, pet_id, "Pet")
    pet["care_tasks"] = data.list(
        pet_care_tasks, pet_care_tasks.c.pet_id == pet_id, order_by=(pet_care_tasks.c.created_at, pet_care_tasks.c.id)
    )
    pet["health_records"] = data.list(
        pet_health_records,
        pet_health_records.c.pet_id == pet_id,
        order_by=(pet_health_records.c.date.desc(), pet_health_records.c.id.desc()),
    )
    return pet


@router.put("/pets/{pet_id}")
def update_pet(
    request: Request,
    pet_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(PetUpdate, payload)
    fields = body.model_dump(exclude_unset=True)
    for key in ("name", "species"):
        if key in fields and fields[key] is None:
            raise ValidationFailed(f"{key}: Field cannot be empty")
    row = request.app.state.store.scoped(identity.household_id).update(pets, pet_id, **_dates_to_text(fields))
    if row is None:
        raise NotFound("Pet not found.")
    return row


@router.delete("/pets/{pet_id}", status_code=204)
def delete_pet(request: Request, pet_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> Response:
    data = request.app.state.store.scoped(identity.household_id)
    pet_task_ids = select(pet_care_tasks.c.id).where(
        pet_care_tasks.c.pet_id == pet_id, pet_care_tasks.c.household_id == identity.household_id
    )
    children = [
        (pet_care_logs, pet_care_logs.c.task_id.in_(pet_task_ids)),
        (pet_care_tasks, pet_care_tasks.c.pet_id == pet_id),
        (pet_health_records, pet_health_records.c.pet_id == pet_id),
    ]
    if not data.delete_with_children(pets, pet_id, children):
        raise NotFound("Pet not found.")
    return Response(status_code=204)


@router.post("/pets/{pet_id}/tasks", status_code=201)
def create_task(
    request: Request,
    pet_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(PetCareTaskCreate, payload)
    store: HouseholdStore = request.app.state.store
    data = store.scoped(identity.household_id)
    data.require(pets, pet_id, "Pet")
    _check_default_member(store, identity.household_id, body.default_member_id)
    return data.insert(pet_care_tasks, pet_id=pet_id, **body.model_dump())


@router.get("/pets/{pet_id}/health")
def list_health_records(request: Request, pet_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> list[dict]:
    data = request.app.state.store.scoped(identity.household_id)
    data.require(pets, pet_id, "Pet")
    return data.list(
        pet_health_records,
        pet_health_records.c.pet_id == pet_id,
        order_by=(pet_health_records.c.date.desc(), pet_health_records.c.id.desc()),
    )


@router.post("/pets/{pet_id}/health", status_code=201)
def create_health_record(
    request: Request,
    pet_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(PetHealthRecordCreate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    data.require(pets, pet_id, "Pet")
    return data.insert(pet_health_records, pet_id=pet_id, **_dates_to_text(body.model_dump()))
