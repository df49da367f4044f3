"""
api/routes/v1/kiosk.py -- Kiosk display endpoints and kiosk-link administration.

Routes:
  GET    /kiosk/dashboard?token=   -- today's household snapshot (kiosk token)
  POST   /kiosk/action?token=      -- complete a chore / log pet care (kiosk token)
  POST   /kiosk/token              -- issue a new kiosk token (ADMIN session)
  DELETE /kiosk/token              -- revoke the kiosk token (ADMIN session)

The two ?token= endpoints are public at the edge gate and authenticate with
get_kiosk_scope(); they carry a tighter per-route limit because the token is
the only credential. Everything they read or write goes through a
TenantScope bound to the token's household.

Attribution: a kiosk has no member. Pet-care logs require one and take the
household's first member (fallback_member); a household with no members
fails that action with 404. Chore completions are recorded without a
completed_by member, since nobody is known to have done them.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response

from api.limiter import KIOSK_LIMIT, limiter
from api.models import CompleteChoreAction, KioskAction, KioskTokenResponse, validated
from api.routes.v1.weather import lookup_weather
from auth.dependencies import get_current_identity, get_kiosk_scope
from auth.kiosk import KioskScope, fallback_member, issue_kiosk_token, revoke_kiosk_token
from auth.session import SessionIdentity
from household.actions import care_tasks_not_logged_between, complete_assignment, log_pet_care
from household.localtime import local_today
from household.store import HouseholdStore
from household.tables import calendar_events, chore_assignments, chores, meal_plans, messages, recipes

logger = logging.getLogger("homebase.kiosk")

router = APIRouter()

_MEAL_ORDER = {"BREAKFAST": 0, "LUNCH": 1, "DINNER": 2, "SNACK": 3}


# ---------------------------------------------------------------------------
# Kiosk display (token-authenticated)
# ---------------------------------------------------------------------------


@limiter.limit(KIOSK_LIMIT)
@router.get("/kiosk/dashboard")
def kiosk_dashboard(request: Request, scope: KioskScope = Depends(get_kiosk_scope)) -> dict:
    """Today's events, due chores, meals, pinned announcements, pet care and weather."""
    store: HouseholdStore = request.app.state.store
    data = store.scoped(scope.household_id)
    today = local_today(scope.timezone)
    members = store.member_summaries(scope.household_id)

    events = [
        {**e, "member": members.get(e["member_id"])}
        for e in data.list(
            calendar_events,
            calendar_events.c.start_time >= today.start_utc,
            calendar_events.c.start_time < today.end_utc,
            order_by=(calendar_events.c.start_time,),
        )
    ]

    chore_info = {c["id"]: {"id": c["id"], "title": c["title"], "points": c["points"]} for c in data.list(chores)}
    due_chores = [
        {**a, "chore": chore_info.get(a["chore_id"]), "member": members.get(a["member_id"])}
        for a in data.list(
            chore_assignments,
            chore_assignments.c.due_date == today.date,
            chore_assignments.c.completed_at.is_(None),
            order_by=(chore_assignments.c.id,),
        )
    ]

    recipe_titles = {r["id"]: {"id": r["id"], "title": r["title"]} for r in data.list(recipes)}
    meals = sorted(
        (
            {**m, "recipe": recipe_titles.get(m["recipe_id"]) if m["recipe_id"] else None}
            for m in data.list(meal_plans, meal_plans.c.date == today.date)
        ),
        key=lambda m: _MEAL_ORDER.get(m["meal_type"], 99),
    )

    announcements = [
        {**m, "author": members.get(m["author_id"])}
        for m in data.list(
            messages,
            messages.c.type == "ANNOUNCEMENT",
            messages.c.pinned.is_(True),
            order_by=(messages.c.created_at.desc(), messages.c.id.desc()),
            limit=10,
        )
    ]

    pet_tasks = [
        {
            "id": t["id"],
            "type": t["type"],
            "title": t["title"],
            "pet": t["pet"],
            "default_member": members.get(t["default_member_id"]) if t["default_member_id"] else None,
        }
        for t in care_tasks_not_logged_between(data, today.start_utc, today.end_utc)
    ]

    weather = lookup_weather(request, scope.location) if scope.location else None

    return {
        "household": {"name": scope.household_name, "timezone": scope.timezone},
        "date": today.date,
        "events": events,
        "chores": due_chores,
        "meals": meals,
        "announcements": announcements,
        "pet_care_tasks": pet_tasks,
        "weather": weather,
    }


@limiter.limit(KIOSK_LIMIT)
@router.post("/kiosk/action")
def kiosk_action(
    request: Request,
    payload: dict[str, Any] = Body(...),
    scope: KioskScope = Depends(get_kiosk_scope),
) -> dict:
    """Perform one write from the kiosk: complete-chore or log-pet-care."""
    action = validated(KioskAction, payload)
    store: HouseholdStore = request.app.state.store
    data = store.scoped(scope.household_id)

    if isinstance(action, CompleteChoreAction):
        assignment = complete_assignment(data, action.assignment_id, completed_by_id=None)
        logger.info("Kiosk completed assignment %d in household %d", assignment["id"], scope.household_id)
        return {"success": True, "assignment": assignment}

    member = fallback_member(store, scope.household_id)
    log = log_pet_care(data, action.task_id, member.id, notes=action.notes, duration_min=action.duration_min)
    logger.info("Kiosk logged care task %d in household %d", action.task_id, scope.household_id)
    return {"success": True, "log": log}


# ---------------------------------------------------------------------------
# Kiosk link administration (session, ADMIN)
# ---------------------------------------------------------------------------


@router.post("/kiosk/token", response_model=KioskTokenResponse)
def create_kiosk_token(
    request: Request, identity: SessionIdentity = Depends(get_current_identity)
) -> KioskTokenResponse:
    """Issue a new kiosk token. The plaintext is returned here and never again."""
    token = issue_kiosk_token(request.app.state.store, identity)
    return KioskTokenResponse(token=token)


@router.delete("/kiosk/token", status_code=204)
def delete_kiosk_token(request: Request, identity: SessionIdentity = Depends(get_current_identity)) -> Response:
    revoke_kiosk_token(request.app.state.store, identity)
    return Response(status_code=204)
