"""
household/actions.py -- Domain operations shared by session routes and the kiosk.

Completing a chore assignment and logging pet care can be done from the
household's own UI (attributed to the signed-in member) or from the kiosk
(attributed through the fallback member, or not at all). Both paths run the
same checks here so the rules cannot drift apart.

Every lookup goes through a TenantScope, so a foreign id is a NotFound.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from core.errors import NotFound, ValidationFailed
from household.localtime import utc_now_iso
from household.scope import TenantScope
from household.tables import chore_assignments, pet_care_logs, pet_care_tasks, pets


def complete_assignment(scope: TenantScope, assignment_id: int, completed_by_id: Optional[int]) -> dict:
    """Mark an assignment completed now. Completing twice is a 400.

    The open-assignment check is repeated inside the UPDATE, so of two
    concurrent completions exactly one wins and the other gets the 400.
    """
    assignment = scope.require(chore_assignments, assignment_id, "Assignment")
    if assignment["completed_at"] is not None:
        raise ValidationFailed("Assignment already completed.")
    updated = scope.update(
        chore_assignments,
        assignment_id,
        chore_assignments.c.completed_at.is_(None),
        completed_at=utc_now_iso(),
        completed_by_id=completed_by_id,
    )
    if updated is None:
        if scope.get(chore_assignments, assignment_id) is None:
            raise NotFound("Assignment not found.")
        raise ValidationFailed("Assignment already completed.")
    return updated


def log_pet_care(
    scope: TenantScope,
    task_id: int,
    member_id: int,
    notes: Optional[str] = None,
    duration_min: Optional[int] = None,
) -> dict:
    """Record that a care task was done now by member_id."""
    scope.require(pet_care_tasks, task_id, "Task")
    return scope.insert(
        pet_care_logs,
        task_id=task_id,
        member_id=member_id,
        completed_at=utc_now_iso(),
        notes=notes or None,
        duration_min=duration_min,
    )


def latest_logs(scope: TenantScope) -> dict[int, dict]:
    """Return {task_id: most recent log} for every task that has been logged."""
    latest: dict[int, dict] = {}
    for log in scope.list(pet_care_logs, order_by=(pet_care_logs.c.completed_at.desc(), pet_care_logs.c.id.desc())):
        latest.setdefault(log["task_id"], log)
    return latest


def _is_due(task: dict, last_log: Optional[dict], now: datetime) -> bool:
    if last_log is None:
        return True
    interval = (task.get("schedule") or {}).get("interval_hours")
    if not interval:
        return False
    last = datetime.fromisoformat(last_log["completed_at"])
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    return now >= last + timedelta(hours=interval)


def pending_care_tasks(scope: TenantScope, now: Optional[datetime] = None) -> list[dict]:
    """Care tasks that are due: never logged, or last logged more than interval_hours ago.

    A task without a schedule is only pending until it is logged once.
    """
    now = now or datetime.now(timezone.utc)
    pet_names = {p["id"]: {"id": p["id"], "name": p["name"], "species": p["species"]} for p in scope.list(pets)}
    latest = latest_logs(scope)
    result = []
    for task in scope.list(pet_care_tasks, order_by=(pet_care_tasks.c.created_at, pet_care_tasks.c.id)):
        last_log = latest.get(task["id"])
        if _is_due(task, last_log, now):
            result.append({**task, "pet": pet_names.get(task["pet_id"]), "last_log": last_log})
    return result


def care_tasks_not_logged_between(scope: TenantScope, start_utc: str, end_utc: str) -> list[dict]:
    """Care tasks with no log whose completed_at falls in [start_utc, end_utc)."""
    done = {
        log["task_id"]
        for log in scope.list(
            pet_care_logs,
            pet_care_logs.c.completed_at >= start_utc,
            pet_care_logs.c.completed_at < end_utc,
        )
    }
    pet_names = {p["id"]: {"id": p["id"], "name": p["name"], "species": p["species"]} for p in scope.list(pets)}
    return [
        {**task, "pet": pet_names.get(task["pet_id"])}
        for task in scope.list(pet_care_tasks, order_by=(pet_care_tasks.c.created_at, pet_care_tasks.c.id))
        if task["id"] not in done
    ]
