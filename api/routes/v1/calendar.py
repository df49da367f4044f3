"""
api/routes/v1/calendar.py -- Household calendar events.

Routes:
  GET    /calendar/events               -- list (?upcoming=true, ?limit=N)
  POST   /calendar/events               -- create, stamped with the caller as member_id
  GET    /calendar/events/{event_id}
  PUT    /calendar/events/{event_id}    -- partial update
  DELETE /calendar/events/{event_id}

Times are stored as second-precision UTC ISO strings, so ordering and the
upcoming filter compare them as text.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from api.models import CalendarEventCreate, CalendarEventUpdate, as_utc, to_utc_iso, validated
from auth.dependencies import get_current_identity
from auth.session import SessionIdentity
from core.errors import NotFound, ValidationFailed
from household.localtime import utc_now_iso
from household.tables import calendar_events

router = APIRouter()


def _with_member(request: Request, identity: SessionIdentity, rows: list[dict]) -> list[dict]:
    members = request.app.state.store.member_summaries(identity.household_id)
    return [{**row, "member": members.get(row["member_id"])} for row in rows]


@router.get("/calendar/events")
def list_events(
    request: Request,
    upcoming: bool = False,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    identity: SessionIdentity = Depends(get_current_identity),
) -> list[dict]:
    data = request.app.state.store.scoped(identity.household_id)
    criteria = []
    if upcoming:
        criteria.append(calendar_events.c.end_time >= utc_now_iso())
    rows = data.list(
        calendar_events,
        *criteria,
        order_by=(calendar_events.c.start_time, calendar_events.c.id),
        limit=limit,
    )
    return _with_member(request, identity, rows)


@router.post("/calendar/events", status_code=201)
def create_event(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(CalendarEventCreate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    row = data.insert(
        calendar_events,
        title=body.title,
        description=body.description,
        start_time=to_utc_iso(body.start_time),
        end_time=to_utc_iso(body.end_time),
        all_day=body.all_day,
        recurrence=body.recurrence,
        member_id=identity.member_id,
    )
    return _with_member(request, identity, [row])[0]


@router.get("/calendar/events/{event_id}")
def get_event(request: Request, event_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> dict:
    data = request.app.state.store.scoped(identity.household_id)
    row = data.require(calendar_events, event_id, "Event")
    return _with_member(request, identity, [row])[0]


@router.put("/calendar/events/{event_id}")
def update_event(
    request: Request,
    event_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(CalendarEventUpdate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    current = data.require(calendar_events, event_id, "Event")

    fields = body.model_dump(exclude_unset=True)
    for key in ("start_time", "end_time"):
        if key in fields:
            if fields[key] is None:
                raise ValidationFailed(f"{key}: Field cannot be empty")
            fields[key] = to_utc_iso(fields[key])
    if "title" in fields and fields["title"] is None:
        raise ValidationFailed("title: Field cannot be empty")
    if fields.get("all_day", True) is None:
        fields.pop("all_day")

    start = as_utc(datetime.fromisoformat(fields.get("start_time", current["start_time"])))
    end = as_utc(datetime.fromisoformat(fields.get("end_time", current["end_time"])))
    if end <= start:
        raise ValidationFailed("End time must be after start time")

    row = data.update(calendar_events, event_id, **fields)
    if row is None:
        raise NotFound("Event not found.")
    return _with_member(request, identity, [row])[0]


@router.delete("/calendar/events/{event_id}", status_code=204)
def delete_event(request: Request, event_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> Response:
    data = request.app.state.store.scoped(identity.household_id)
    if not data.delete(calendar_events, event_id):
        raise NotFound("Event not found.")
    return Response(status_code=204)
