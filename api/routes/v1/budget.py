"""
api/routes/v1/budget.py -- Budget categories, expenses and children's allowances.

Every route here requires MANAGE_BUDGET (ADMIN or MEMBER); children get 403.

Routes:
  GET    /budget/categories                 -- with this month's spending per category
  POST   /budget/categories
  PUT    /budget/categories/{id}
  DELETE /budget/categories/{id}            -- refused while expenses reference it
  GET    /budget/expenses                   -- ?month=YYYY-MM, ?category_id=N
  POST   /budget/expenses                   -- member is the caller
  PUT    /budget/expenses/{id}
  DELETE /budget/expenses/{id}
  GET    /budget/allowances
  PUT    /budget/allowances                 -- upsert by member; member must be a CHILD

"This month" is the household's local calendar month.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from api.models import (
    AllowanceUpsert,
    BudgetCategoryCreate,
    BudgetCategoryUpdate,
    ExpenseCreate,
    ExpenseUpdate,
    validated,
)
from auth.dependencies import require
from auth.roles import Capability, Role
from auth.session import SessionIdentity
from core.errors import NotFound, ValidationFailed
from household.localtime import local_today
from household.store import HouseholdStore
from household.tables import allowances, budget_categories, expenses

router = APIRouter()

_budget = require(Capability.MANAGE_BUDGET)


def _month_criteria(month: str) -> list:
    # Dates are YYYY-MM-DD strings, so a month is a text range.
    return [expenses.c.date >= f"{month}-01", expenses.c.date <= f"{month}-31"]


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@router.get("/budget/categories")
def list_categories(request: Request, identity: SessionIdentity = Depends(_budget)) -> list[dict]:
    store: HouseholdStore = request.app.state.store
    data = store.scoped(identity.household_id)
    month = local_today(store.get_household(identity.household_id).timezone).date[:7]
    spent: dict[int, float] = {}
    for expense in data.list(expenses, *_month_criteria(month)):
        spent[expense["category_id"]] = spent.get(expense["category_id"], 0.0) + expense["amount"]
    return [
        {**c, "spent_this_month": round(spent.get(c["id"], 0.0), 2)}
        for c in data.list(budget_categories, order_by=(budget_categories.c.name, budget_categories.c.id))
    ]


@router.post("/budget/categories", status_code=201)
def create_category(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(_budget),
) -> dict:
    body = validated(BudgetCategoryCreate, payload)
    return request.app.state.store.scoped(identity.household_id).insert(budget_categories, **body.model_dump())


@router.put("/budget/categories/{category_id}")
def update_category(
    request: Request,
    category_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(_budget),
) -> dict:
    body = validated(BudgetCategoryUpdate, payload)
    fields = body.model_dump(exclude_unset=True)
    for key in ("name", "color"):
        if key in fields and fields[key] is None:
            raise ValidationFailed(f"{key}: Field cannot be empty")
    row = request.app.state.store.scoped(identity.household_id).update(budget_categories, category_id, **fields)
    if row is None:
        raise NotFound("Category not found.")
    return row


@router.delete("/budget/categories/{category_id}", status_code=204)
def delete_category(request: Request, category_id: int, identity: SessionIdentity = Depends(_budget)) -> Response:
    data = request.app.state.store.scoped(identity.household_id)
    data.require(budget_categories, category_id, "Category")
    if data.count(expenses, expenses.c.category_id == category_id):
        raise ValidationFailed("Category still has expenses.")
    data.delete(budget_categories, category_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


@router.get("/budget/expenses")
def list_expenses(
    request: Request,
    month: Optional[str] = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    category_id: Optional[int] = None,
    identity: SessionIdentity = Depends(_budget),
) -> list[dict]:
    store: HouseholdStore = request.app.state.store
    data = store.scoped(identity.household_id)
    criteria = []
    if month:
        criteria.extend(_month_criteria(month))
    if category_id is not None:
        criteria.append(expenses.c.category_id == category_id)
    members = store.member_summaries(identity.household_id)
    categories = {c["id"]: {"id": c["id"], "name": c["name"], "color": c["color"]} for c in data.list(budget_categories)}
    return [
        {**e, "category": categories.get(e["category_id"]), "member": members.get(e["member_id"])}
        for e in data.list(expenses, *criteria, order_by=(expenses.c.date.desc(), expenses.c.id.desc()))
    ]


@router.post("/budget/expenses", status_code=201)
def create_expense(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(_budget),
) -> dict:
    body = validated(ExpenseCreate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    data.require(budget_categories, body.category_id, "Category")
    return data.insert(
        expenses,
        amount=body.amount,
        description=body.description,
        date=body.date.isoformat(),
        category_id=body.category_id,
        member_id=identity.member_id,
    )


@router.put("/budget/expenses/{expense_id}")
def update_expense(
    request: Request,
    expense_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(_budget),
) -> dict:
    body = validated(ExpenseUpdate, payload)
    data = request.app.state.store.scoped(identity.household_id)
    data.require(expenses, expense_id, "Expense")
    fields = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if "category_id" in fields:
        data.require(budget_categories, fields["category_id"], "Category")
    if "date" in fields:
        fields["date"] = fields["date"].isoformat()
    row = data.update(expenses, expense_id, **fields)
    if row is None:
        raise NotFound("Expense not found.")
    return row


@router.delete("/budget/expenses/{expense_id}", status_code=204)
def delete_expense(request: Request, expense_id: int, identity: SessionIdentity = Depends(_budget)) -> Response:
    if not request.app.state.store.scoped(identity.household_id).delete(expenses, expense_id):
        raise NotFound("Expense not found.")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Allowances
# ---------------------------------------------------------------------------


@router.get("/budget/allowances")
def list_allowances(request: Request, identity: SessionIdentity = Depends(_budget)) -> list[dict]:
    store: HouseholdStore = request.app.state.store
    members = store.member_summaries(identity.household_id)
    rows = store.scoped(identity.household_id).list(allowances, order_by=(allowances.c.id,))
    return [{**row, "member": members.get(row["member_id"])} for row in rows]


@router.put("/budget/allowances")
def upsert_allowance(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(_budget),
) -> dict:
    """Create or replace the allowance of one child."""
    body = validated(AllowanceUpsert, payload)
    store: HouseholdStore = request.app.state.store
    child = store.get_member(body.member_id, identity.household_id)
    if child is None:
        raise NotFound("Member not found.")
    if child.role != Role.CHILD.value:
        raise ValidationFailed("Allowances can only be set for children.")

    data = store.scoped(identity.household_id)
    existing = data.first(allowances, allowances.c.member_id == body.member_id)
    if existing is None:
        return data.insert(
            allowances,
            member_id=body.member_id,
            amount=body.amount,
            frequency=body.frequency,
            balance=body.balance if body.balance is not None else 0.0,
        )
    fields = {"amount": body.amount, "frequency": body.frequency}
    if body.balance is not None:
        fields["balance"] = body.balance
    row = data.update(allowances, existing["id"], **fields)
    if row is None:
        raise NotFound("Allowance not found.")
    return row
