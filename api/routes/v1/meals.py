"""
api/routes/v1/meals.py -- Recipes and the weekly meal plan.

Routes:
  GET    /meals/recipes                -- ?search=text, ?tag=name
  POST   /meals/recipes                -- created_by is the caller
  GET    /meals/recipes/{recipe_id}
  PUT    /meals/recipes/{recipe_id}
  DELETE /meals/recipes/{recipe_id}    -- plans that used it keep their slot, recipe cleared
  GET    /meals/plans                  -- ?date=YYYY-MM-DD or ?start=&end=
  POST   /meals/plans                  -- upsert: one plan per (date, meal_type)
  PUT    /meals/plans/{plan_id}
  DELETE /meals/plans/{plan_id}
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Request, Response

from api.models import MealPlanCreate, MealPlanUpdate, RecipeCreate, RecipeUpdate, validated
from auth.dependencies import get_current_identity
from auth.session import SessionIdentity
from core.errors import NotFound, ValidationFailed
from household.tables import meal_plans, recipes

router = APIRouter()


# ---------------------------------------------------------------------------
# Recipes
# ---------------------------------------------------------------------------


@router.get("/meals/recipes")
def list_recipes(
    request: Request,
    search: Optional[str] = None,
    tag: Optional[str] = None,
    identity: SessionIdentity = Depends(get_current_identity),
) -> list[dict]:
    data = request.app.state.store.scoped(identity.household_id)
    criteria = []
    if search:
        criteria.append(recipes.c.title.ilike(f"%{search.strip()}%"))
    rows = data.list(recipes, *criteria, order_by=(recipes.c.title, recipes.c.id))
    if tag:
        # Tags live in a JSON list; filter after the query.
        wanted = tag.strip().lower()
        rows = [r for r in rows if wanted in (t.lower() for t in r["tags"] or [])]
    return rows


@router.post("/meals/recipes", status_code=201)
def create_recipe(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(RecipeCreate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    return data.insert(recipes, **body.model_dump(), created_by_id=identity.member_id)


@router.get("/meals/recipes/{recipe_id}")
def get_recipe(request: Request, recipe_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> dict:
    return request.app.state.store.scoped(identity.household_id).require(recipes, recipe_id, "Recipe")


@router.put("/meals/recipes/{recipe_id}")
def update_recipe(
    request: Request,
    recipe_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(RecipeUpdate, payload)
    fields = body.model_dump(exclude_unset=True)
    for key in ("title", "ingredients", "tags"):
        if key in fields and fields[key] is None:
            raise ValidationFailed(f"{key}: Field cannot be empty")
    row = request.app.state.store.scoped(identity.household_id).update(recipes, recipe_id, **fields)
    if row is None:
        raise NotFound("Recipe not found.")
    return row


@router.delete("/meals/recipes/{recipe_id}", status_code=204)
def delete_recipe(request: Request, recipe_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> Response:
    data = request.app.state.store.scoped(identity.household_id)
    recipe = data.require(recipes, recipe_id, "Recipe")
    for plan in data.list(meal_plans, meal_plans.c.recipe_id == recipe_id):
        data.update(meal_plans, plan["id"], recipe_id=None, custom_title=plan["custom_title"] or recipe["title"])
    data.delete(recipes, recipe_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Meal plans
# ---------------------------------------------------------------------------


def _with_recipe(data, rows: list[dict]) -> list[dict]:
    titles = {r["id"]: {"id": r["id"], "title": r["title"]} for r in data.list(recipes)}
    return [{**row, "recipe": titles.get(row["recipe_id"]) if row["recipe_id"] else None} for row in rows]


@router.get("/meals/plans")
def list_plans(
    request: Request,
    date: Optional[dt.date] = None,
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
    identity: SessionIdentity = Depends(get_current_identity),
) -> list[dict]:
    data = request.app.state.store.scoped(identity.household_id)
    criteria = []
    if date is not None:
        criteria.append(meal_plans.c.date == date.isoformat())
    if start is not None:
        criteria.append(meal_plans.c.date >= start.isoformat())
    if end is not None:
        criteria.append(meal_plans.c.date <= end.isoformat())
    rows = data.list(meal_plans, *criteria, order_by=(meal_plans.c.date, meal_plans.c.id))
    return _with_recipe(data, rows)


@router.post("/meals/plans", status_code=201)
def set_plan(
    request: Request,
    response: Response,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    """Plan a meal slot, replacing whatever was planned for that date and meal."""
    body = validated(MealPlanCreate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    if body.recipe_id is not None:
        data.require(recipes, body.recipe_id, "Recipe")

    values = {"recipe_id": body.recipe_id, "custom_title": body.custom_title or None}
    existing = data.first(
        meal_plans,
        meal_plans.c.date == body.date.isoformat(),
        meal_plans.c.meal_type == body.meal_type,
    )
    if existing is None:
        row = data.insert(meal_plans, date=body.date.isoformat(), meal_type=body.meal_type, **values)
    else:
        row = data.update(meal_plans, existing["id"], **values)
        response.status_code = 200
    return _with_recipe(data, [row])[0]


@router.put("/meals/plans/{plan_id}")
def update_plan(
    request: Request,
    plan_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(get_current_identity),
) -> dict:
    body = validated(MealPlanUpdate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    current = data.require(meal_plans, plan_id, "Meal plan")
    fields = body.model_dump(exclude_unset=True)
    for key in ("date", "meal_type"):
        if key in fields and fields[key] is None:
            raise ValidationFailed(f"{key}: Field cannot be empty")
    if fields.get("recipe_id") is not None:
        data.require(recipes, fields["recipe_id"], "Recipe")
    if "date" in fields:
        fields["date"] = fields["date"].isoformat()

    merged = {**current, **fields}
    if merged["recipe_id"] is None and not merged["custom_title"]:
        raise ValidationFailed("Either a recipe or custom title is required")
    clash = data.first(
        meal_plans,
        meal_plans.c.date == merged["date"],
        meal_plans.c.meal_type == merged["meal_type"],
        meal_plans.c.id != plan_id,
    )
    if clash is not None:
        raise ValidationFailed("A meal is already planned for that slot.")

    row = data.update(meal_plans, plan_id, **fields)
    if row is None:
        raise NotFound("Meal plan not found.")
    return _with_recipe(data, [row])[0]


@router.delete("/meals/plans/{plan_id}", status_code=204)
def delete_plan(request: Request, plan_id: int, identity: SessionIdentity = Depends(get_current_identity)) -> Response:
    if not request.app.state.store.scoped(identity.household_id).delete(meal_plans, plan_id):
        raise NotFound("Meal plan not found.")
    return Response(status_code=204)
