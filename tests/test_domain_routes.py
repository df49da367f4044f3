"""
tests/test_domain_routes.py -- Household feature flows end to end.

One class per feature area, each driven through the API as the seeded H1
members. Cross-household and role concerns live in their own modules.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from household.actions import pending_care_tasks
from household.localtime import local_today
from household.tables import pet_care_logs, pet_care_tasks, pets


class TestCalendar:
    def test_times_are_stored_in_utc(self, env):
        client, seed = env
        resp = client.post(
            "/api/v1/calendar/events",
            json={"title": "Dentist", "start_time": "2030-04-02T09:00:00-06:00", "end_time": "2030-04-02T10:00:00-06:00"},
            headers=seed.auth("member"),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["start_time"] == "2030-04-02T15:00:00+00:00"
        assert body["end_time"] == "2030-04-02T16:00:00+00:00"

    def test_upcoming_hides_past_events(self, env):
        client, seed = env
        headers = seed.auth("member")
        past = client.post(
            "/api/v1/calendar/events",
            json={"title": "Old", "start_time": "2001-01-01T09:00:00Z", "end_time": "2001-01-01T10:00:00Z"},
            headers=headers,
        ).json()
        future = client.post(
            "/api/v1/calendar/events",
            json={"title": "New", "start_time": "2031-01-01T09:00:00Z", "end_time": "2031-01-01T10:00:00Z"},
            headers=headers,
        ).json()
        ids = [e["id"] for e in client.get("/api/v1/calendar/events", params={"upcoming": True}, headers=headers).json()]
        assert future["id"] in ids
        assert past["id"] not in ids


class TestChores:
    def test_assign_list_today_and_complete(self, env):
        client, seed = env
        admin = seed.auth("admin")
        chore = client.post(
            "/api/v1/chores",
            json={"title": "Feed fish", "frequency": "DAILY", "points": 2, "rotation_order": [seed.child_id, seed.member_id]},
            headers=admin,
        ).json()
        today = local_today("America/Denver").date
        assignment = client.post(
            "/api/v1/chores/assignments",
            json={"chore_id": chore["id"], "member_id": seed.child_id, "due_date": today},
            headers=admin,
        ).json()

        listed = client.get(
            "/api/v1/chores/assignments", params={"today": True, "member_id": seed.child_id}, headers=admin
        ).json()
        match = [a for a in listed if a["id"] == assignment["id"]]
        assert match and match[0]["chore"]["title"] == "Feed fish"
        assert match[0]["member"]["name"] == "Kid"

        done = client.post(f"/api/v1/chores/assignments/{assignment['id']}/complete", headers=seed.auth("child"))
        assert done.status_code == 200
        assert done.json()["completed_by_id"] == seed.child_id
        again = client.post(f"/api/v1/chores/assignments/{assignment['id']}/complete", headers=seed.auth("child"))
        assert again.status_code == 400

    def test_delete_chore_removes_assignments(self, env):
        client, seed = env
        admin = seed.auth("admin")
        chore = client.post("/api/v1/chores", json={"title": "Rake", "frequency": "ONE_TIME"}, headers=admin).json()
        client.post(
            "/api/v1/chores/assignments",
            json={"chore_id": chore["id"], "member_id": seed.member_id, "due_date": "2030-10-01"},
            headers=admin,
        )
        assert client.delete(f"/api/v1/chores/{chore['id']}", headers=admin).status_code == 204
        remaining = client.get("/api/v1/chores/assignments", headers=admin).json()
        assert chore["id"] not in [a["chore_id"] for a in remaining]


class TestGrocery:
    def test_check_and_clear(self, env):
        client, seed = env
        headers = seed.auth("member")
        milk = client.post("/api/v1/grocery", json={"name": "Milk", "category": "Dairy"}, headers=headers).json()
        bread = client.post("/api/v1/grocery", json={"name": "Bread"}, headers=headers).json()
        assert milk["checked"] is False

        checked = client.patch(f"/api/v1/grocery/{milk['id']}", json={"checked": True}, headers=headers)
        assert checked.json()["checked"] is True

        cleared = client.delete("/api/v1/grocery", params={"checked": True}, headers=headers)
        assert cleared.status_code == 200
        assert cleared.json()["deleted"] >= 1
        ids = [i["id"] for i in client.get("/api/v1/grocery", headers=headers).json()]
        assert milk["id"] not in ids
        assert bread["id"] in ids


class TestMeals:
    def test_plan_slot_is_upserted(self, env):
        client, seed = env
        headers = seed.auth("member")
        first = client.post(
            "/api/v1/meals/plans", json={"date": "2030-06-01", "meal_type": "DINNER", "custom_title": "Pizza"}, headers=headers
        )
        assert first.status_code == 201
        second = client.post(
            "/api/v1/meals/plans", json={"date": "2030-06-01", "meal_type": "DINNER", "custom_title": "Soup"}, headers=headers
        )
        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]
        plans = client.get("/api/v1/meals/plans", params={"date": "2030-06-01"}, headers=headers).json()
        assert [p["custom_title"] for p in plans if p["meal_type"] == "DINNER"] == ["Soup"]

    def test_recipe_search_and_tag(self, env):
        client, seed = env
        headers = seed.auth("member")
        client.post(
            "/api/v1/meals/recipes",
            json={"title": "Green Curry", "ingredients": ["coconut milk"], "tags": ["Thai", "Spicy"]},
            headers=headers,
        )
        by_title = client.get("/api/v1/meals/recipes", params={"search": "curry"}, headers=headers).json()
        assert "Green Curry" in [r["title"] for r in by_title]
        by_tag = client.get("/api/v1/meals/recipes", params={"tag": "spicy"}, headers=headers).json()
        assert "Green Curry" in [r["title"] for r in by_tag]

    def test_deleting_recipe_keeps_plan_title(self, env):
        client, seed = env
        headers = seed.auth("member")
        recipe = client.post(
            "/api/v1/meals/recipes", json={"title": "Lasagna", "ingredients": ["pasta"]}, headers=headers
        ).json()
        plan = client.post(
            "/api/v1/meals/plans", json={"date": "2030-06-02", "meal_type": "LUNCH", "recipe_id": recipe["id"]}, headers=headers
        ).json()
        assert plan["recipe"]["title"] == "Lasagna"

        assert client.delete(f"/api/v1/meals/recipes/{recipe['id']}", headers=headers).status_code == 204
        plans = client.get("/api/v1/meals/plans", params={"date": "2030-06-02"}, headers=headers).json()
        kept = [p for p in plans if p["id"] == plan["id"]][0]
        assert kept["recipe_id"] is None
        assert kept["custom_title"] == "Lasagna"


class TestPets:
    def test_pending_tasks_follow_schedule(self, env):
        _client, seed = env
        data = seed.store.scoped(seed.h1)
        pet = data.insert(pets, name="Mochi", species="Cat")
        task = data.insert(pet_care_tasks, pet_id=pet["id"], type="FEEDING", title="Dinner", schedule={"interval_hours": 12})
        now = datetime.now(timezone.utc)

        assert task["id"] in [t["id"] for t in pending_care_tasks(data, now)]
        data.insert(pet_care_logs, task_id=task["id"], member_id=seed.admin_id, completed_at=now.isoformat(timespec="seconds"))
        assert task["id"] not in [t["id"] for t in pending_care_tasks(data, now)]
        later = now + timedelta(hours=13)
        assert task["id"] in [t["id"] for t in pending_care_tasks(data, later)]

    def test_pet_detail_and_cascade(self, env):
        client, seed = env
        headers = seed.auth("member")
        pet = client.post(
            "/api/v1/pets", json={"name": "Rover", "species": "Dog", "birthday": "2020-05-04"}, headers=headers
        ).json()
        assert pet["birthday"] == "2020-05-04"
        task = client.post(
            f"/api/v1/pets/{pet['id']}/tasks",
            json={"type": "MEDICATION", "title": "Heartworm", "dosage": "1 chew"},
            headers=headers,
        ).json()
        client.post(f"/api/v1/pets/tasks/{task['id']}/log", headers=headers)
        client.post(
            f"/api/v1/pets/{pet['id']}/health",
            json={"type": "VACCINE", "title": "Rabies", "date": "2030-02-01"},
            headers=headers,
        )

        detail = client.get(f"/api/v1/pets/{pet['id']}", headers=headers).json()
        assert [t["title"] for t in detail["care_tasks"]] == ["Heartworm"]
        assert [r["title"] for r in detail["health_records"]] == ["Rabies"]
        logs = client.get(f"/api/v1/pets/tasks/{task['id']}/logs", headers=headers).json()
        assert logs[0]["member"]["name"] == "Bob"

        assert client.delete(f"/api/v1/pets/{pet['id']}", headers=headers).status_code == 204
        data = seed.store.scoped(seed.h1)
        assert data.get(pet_care_tasks, task["id"]) is None
        assert data.count(pet_care_logs, pet_care_logs.c.task_id == task["id"]) == 0


class TestBudget:
    def test_spent_this_month(self, env):
        client, seed = env
        headers = seed.auth("member")
        category = client.post(
            "/api/v1/budget/categories", json={"name": "Dining", "monthly_limit": 300}, headers=headers
        ).json()
        this_month = local_today("America/Denver").date
        for amount in (12.25, 7.75):
            client.post(
                "/api/v1/budget/expenses",
                json={"amount": amount, "description": "Lunch", "date": this_month, "category_id": category["id"]},
                headers=headers,
            )
        client.post(
            "/api/v1/budget/expenses",
            json={"amount": 99, "description": "Old", "date": "2001-01-15", "category_id": category["id"]},
            headers=headers,
        )
        listed = client.get("/api/v1/budget/categories", headers=headers).json()
        dining = [c for c in listed if c["id"] == category["id"]][0]
        assert dining["spent_this_month"] == 20.0

        by_month = client.get(
            "/api/v1/budget/expenses", params={"month": "2001-01", "category_id": category["id"]}, headers=headers
        ).json()
        assert [e["amount"] for e in by_month] == [99]

    def test_category_with_expenses_cannot_be_deleted(self, env):
        client, seed = env
        headers = seed.auth("member")
        category = client.post("/api/v1/budget/categories", json={"name": "Gas"}, headers=headers).json()
        expense = client.post(
            "/api/v1/budget/expenses",
            json={"amount": 40, "description": "Fill up", "date": "2030-01-01", "category_id": category["id"]},
            headers=headers,
        ).json()
        assert client.delete(f"/api/v1/budget/categories/{category['id']}", headers=headers).status_code == 400
        assert client.delete(f"/api/v1/budget/expenses/{expense['id']}", headers=headers).status_code == 204
        assert client.delete(f"/api/v1/budget/categories/{category['id']}", headers=headers).status_code == 204

    def test_allowance_upsert_children_only(self, env):
        client, seed = env
        headers = seed.auth("admin")
        created = client.put(
            "/api/v1/budget/allowances",
            json={"member_id": seed.child_id, "amount": 5, "frequency": "WEEKLY"},
            headers=headers,
        )
        assert created.status_code == 200
        assert created.json()["balance"] == 0.0
        updated = client.put(
            "/api/v1/budget/allowances",
            json={"member_id": seed.child_id, "amount": 7, "frequency": "WEEKLY", "balance": 3.5},
            headers=headers,
        ).json()
        assert updated["id"] == created.json()["id"]
        assert updated["amount"] == 7
        assert updated["balance"] == 3.5

        adult = client.put(
            "/api/v1/budget/allowances",
            json={"member_id": seed.member_id, "amount": 5, "frequency": "WEEKLY"},
            headers=headers,
        )
        assert adult.status_code == 400


class TestVaultUpload:
    def test_upload_and_delete_document(self, env):
        client, seed = env
        headers = seed.auth("member")
        item = client.post(
            "/api/v1/vault", json={"title": "Passports", "content": "In the safe", "category": "Travel"}, headers=headers
        ).json()
        resp = client.post(
            "/api/v1/vault/upload",
            data={"vault_item_id": str(item["id"])},
            files={"file": ("scan.txt", b"hello", "text/plain")},
            headers=headers,
        )
        assert resp.status_code == 201
        document = resp.json()
        assert document["file_url"] == "data:text/plain;base64,aGVsbG8="
        assert document["uploaded_by_id"] == seed.member_id

        detail = client.get(f"/api/v1/vault/{item['id']}", headers=headers).json()
        assert [d["file_name"] for d in detail["documents"]] == ["scan.txt"]
        assert "file_url" not in detail["documents"][0]
        listed = client.get("/api/v1/vault", params={"category": "Travel"}, headers=headers).json()
        assert [i["document_count"] for i in listed if i["id"] == item["id"]] == [1]

        assert client.delete(f"/api/v1/vault/documents/{document['id']}", headers=headers).status_code == 204

    def test_oversized_upload_rejected(self, env):
        client, seed = env
        headers = seed.auth("member")
        item = client.post(
            "/api/v1/vault", json={"title": "Big", "content": "x", "category": "Misc"}, headers=headers
        ).json()
        resp = client.post(
            "/api/v1/vault/upload",
            data={"vault_item_id": str(item["id"])},
            files={"file": ("big.bin", b"\0" * (1024 * 1024 + 1), "application/octet-stream")},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "File exceeds the 1 MB upload limit."

    def test_empty_upload_rejected(self, env):
        client, seed = env
        headers = seed.auth("member")
        item = client.post(
            "/api/v1/vault", json={"title": "Empty", "content": "x", "category": "Misc"}, headers=headers
        ).json()
        resp = client.post(
            "/api/v1/vault/upload",
            data={"vault_item_id": str(item["id"])},
            files={"file": ("empty.txt", b"", "text/plain")},
            headers=headers,
        )
        assert resp.status_code == 400
