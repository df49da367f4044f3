"""
tests/test_tenant_isolation.py -- One household can never see or touch another's rows.

Every record below is created in H2 through the API by its own admin, then
addressed by id from an H1 session. Reads, updates and deletes of a foreign
id must all be 404 (never 403, which would confirm the id exists), and the
foreign row must be unchanged afterwards.
"""

from __future__ import annotations

import pytest

from household.tables import (
    budget_categories,
    calendar_events,
    chores,
    grocery_items,
    messages,
    pets,
    recipes,
    vault_items,
)

# (collection path, create payload, item path template, update method, update payload, table)
_RESOURCES = [
    (
        "/api/v1/calendar/events",
        {"title": "Their party", "start_time": "2030-05-01T18:00:00Z", "end_time": "2030-05-01T21:00:00Z"},
        "/api/v1/calendar/events/{id}",
        "put",
        {"title": "Hijacked"},
        calendar_events,
    ),
    (
        "/api/v1/chores",
        {"title": "Their chore", "frequency": "WEEKLY"},
        "/api/v1/chores/{id}",
        "put",
        {"title": "Hijacked"},
        chores,
    ),
    (
        "/api/v1/grocery",
        {"name": "Their milk"},
        "/api/v1/grocery/{id}",
        "patch",
        {"name": "Hijacked"},
        grocery_items,
    ),
    (
        "/api/v1/messages",
        {"content": "Their note"},
        "/api/v1/messages/{id}",
        "put",
        {"content": "Hijacked"},
        messages,
    ),
    (
        "/api/v1/budget/categories",
        {"name": "Their groceries"},
        "/api/v1/budget/categories/{id}",
        "put",
        {"name": "Hijacked"},
        budget_categories,
    ),
    (
        "/api/v1/meals/recipes",
        {"title": "Their stew", "ingredients": ["beef"]},
        "/api/v1/meals/recipes/{id}",
        "put",
        {"title": "Hijacked"},
        recipes,
    ),
    (
        "/api/v1/pets",
        {"name": "Their dog", "species": "Dog"},
        "/api/v1/pets/{id}",
        "put",
        {"name": "Hijacked"},
        pets,
    ),
    (
        "/api/v1/vault",
        {"title": "Their wifi", "content": "secret", "category": "Home"},
        "/api/v1/vault/{id}",
        "put",
        {"title": "Hijacked"},
        vault_items,
    ),
]

_IDS = [r[0].rsplit("/", 1)[-1] for r in _RESOURCES]


def _create_foreign(client, seed, collection, payload) -> dict:
    resp = client.post(collection, json=payload, headers=seed.auth("foreign"))
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.parametrize("collection,payload,item,method,update,table", _RESOURCES, ids=_IDS)
def test_foreign_id_is_not_found(env, collection, payload, item, method, update, table):
    client, seed = env
    row = _create_foreign(client, seed, collection, payload)
    path = item.format(id=row["id"])
    h1 = seed.auth("admin")

    has_get = collection not in ("/api/v1/grocery", "/api/v1/messages", "/api/v1/budget/categories")
    if has_get:
        assert client.get(path, headers=h1).status_code == 404
    assert getattr(client, method)(path, json=update, headers=h1).status_code == 404
    assert client.delete(path, headers=h1).status_code == 404

    stored = seed.store.scoped(seed.h2).get(table, row["id"])
    assert stored is not None
    assert "Hijacked" not in stored.values()


@pytest.mark.parametrize("collection,payload,item,method,update,table", _RESOURCES, ids=_IDS)
def test_lists_do_not_leak(env, collection, payload, item, method, update, table):
    client, seed = env
    row = _create_foreign(client, seed, collection, payload)
    listing = client.get(collection, headers=seed.auth("admin")).json()
    assert row["id"] not in [r["id"] for r in listing]


class TestForeignParentReferences:
    def test_expense_with_foreign_category(self, env):
        client, seed = env
        category = _create_foreign(client, seed, "/api/v1/budget/categories", {"name": "Theirs"})
        resp = client.post(
            "/api/v1/budget/expenses",
            json={"amount": 12.5, "description": "Sneaky", "date": "2030-01-02", "category_id": category["id"]},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 404

    def test_meal_plan_with_foreign_recipe(self, env):
        client, seed = env
        recipe = _create_foreign(client, seed, "/api/v1/meals/recipes", {"title": "Theirs", "ingredients": ["x"]})
        resp = client.post(
            "/api/v1/meals/plans",
            json={"date": "2030-01-02", "meal_type": "DINNER", "recipe_id": recipe["id"]},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 404

    def test_assignment_to_foreign_member(self, env):
        client, seed = env
        chore = client.post(
            "/api/v1/chores", json={"title": "Ours", "frequency": "DAILY"}, headers=seed.auth("admin")
        ).json()
        resp = client.post(
            "/api/v1/chores/assignments",
            json={"chore_id": chore["id"], "member_id": seed.foreign_admin_id, "due_date": "2030-01-02"},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 404

    def test_assignment_for_foreign_chore(self, env):
        client, seed = env
        chore = _create_foreign(client, seed, "/api/v1/chores", {"title": "Theirs", "frequency": "DAILY"})
        resp = client.post(
            "/api/v1/chores/assignments",
            json={"chore_id": chore["id"], "member_id": seed.child_id, "due_date": "2030-01-02"},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 404

    def test_care_task_for_foreign_pet(self, env):
        client, seed = env
        pet = _create_foreign(client, seed, "/api/v1/pets", {"name": "Theirs", "species": "Cat"})
        resp = client.post(
            f"/api/v1/pets/{pet['id']}/tasks",
            json={"type": "FEEDING", "title": "Sneaky"},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 404

    def test_rotation_with_foreign_member(self, env):
        client, seed = env
        resp = client.post(
            "/api/v1/chores",
            json={"title": "Rotating", "frequency": "WEEKLY", "rotation_order": [seed.child_id, seed.foreign_admin_id]},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 404

    def test_allowance_for_foreign_member(self, env):
        client, seed = env
        resp = client.put(
            "/api/v1/budget/allowances",
            json={"member_id": seed.foreign_admin_id, "amount": 5, "frequency": "WEEKLY"},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 404


class TestMembersAndInvitations:
    def test_patch_foreign_member(self, env):
        client, seed = env
        resp = client.patch(
            f"/api/v1/household/members/{seed.foreign_admin_id}",
            json={"name": "Hijacked"},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 404

    def test_remove_foreign_member(self, env):
        client, seed = env
        resp = client.delete(f"/api/v1/household/members/{seed.foreign_admin_id}", headers=seed.auth("admin"))
        assert resp.status_code == 404
        assert seed.store.get_member(seed.foreign_admin_id, seed.h2) is not None

    def test_withdraw_foreign_invitation(self, env):
        client, seed = env
        invitation = client.post(
            "/api/v1/household/invitations",
            json={"email": "their-friend@example.com"},
            headers=seed.auth("foreign"),
        ).json()
        resp = client.delete(f"/api/v1/household/invitations/{invitation['id']}", headers=seed.auth("admin"))
        assert resp.status_code == 404
        h1_invites = client.get("/api/v1/household/invitations", headers=seed.auth("admin")).json()
        assert invitation["id"] not in [i["id"] for i in h1_invites]
