"""
tests/test_household_admin.py -- Household settings, members and invitations.

Covers:
  - GET /household returns members and kiosk_enabled
  - PUT /household updates name / location / timezone (MANAGE_SETTINGS)
  - Last-admin guards: the only admin cannot be demoted or removed
  - An admin cannot remove themselves
  - Role changes apply on the member's very next request
  - Removing a member clears their allowance, open assignments, rotation
    slots and pet care defaults
  - Invitations: duplicates and existing members rejected, withdraw, list
"""

from __future__ import annotations

import pytest

from auth.tokens import create_session_token
from core.errors import ValidationFailed
from household.tables import allowances, chore_assignments, chores, pet_care_tasks, pets


@pytest.fixture
def extra_member(env):
    """A throwaway MEMBER so destructive tests leave the seed intact."""
    _client, seed = env
    invitation = seed.store.create_invitation(seed.h1, "temp@example.com", "MEMBER", seed.admin_id)
    member_id = seed.store.accept_invitation(
        invitation, external_id="test:temp@example.com", email="temp@example.com", display_name="Temp"
    ).id
    token = create_session_token("test:temp@example.com", "temp@example.com", "Temp", expire_seconds=3600)
    yield member_id, {"Authorization": f"Bearer {token}"}
    seed.store.delete_member(member_id, seed.h1)


class TestSettings:
    def test_read(self, env):
        client, seed = env
        body = client.get("/api/v1/household", headers=seed.auth("child")).json()
        assert body["name"] == "The Smith Family"
        assert body["timezone"] == "America/Denver"
        assert {m["name"] for m in body["members"]} >= {"Alice", "Bob", "Kid"}
        assert "kiosk_enabled" in body

    def test_member_updates_settings(self, env):
        client, seed = env
        resp = client.put(
            "/api/v1/household", json={"location": "Boulder, CO"}, headers=seed.auth("member")
        )
        assert resp.status_code == 200
        assert resp.json()["location"] == "Boulder, CO"
        assert resp.json()["name"] == "The Smith Family"
        client.put("/api/v1/household", json={"location": "Denver, CO"}, headers=seed.auth("member"))

    def test_blank_name_rejected(self, env):
        client, seed = env
        resp = client.put("/api/v1/household", json={"name": ""}, headers=seed.auth("admin"))
        assert resp.status_code == 400


class TestMembers:
    def test_only_admin_cannot_be_demoted(self, env):
        client, seed = env
        resp = client.patch(
            f"/api/v1/household/members/{seed.admin_id}", json={"role": "MEMBER"}, headers=seed.auth("admin")
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "A household must keep at least one admin."
        assert seed.store.get_member(seed.admin_id, seed.h1).role == "ADMIN"

    def test_admin_cannot_remove_self(self, env):
        client, seed = env
        resp = client.delete(f"/api/v1/household/members/{seed.admin_id}", headers=seed.auth("admin"))
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "You cannot remove yourself from the household."

    def test_demote_allowed_with_second_admin(self, env, extra_member):
        client, seed = env
        member_id, _headers = extra_member
        promote = client.patch(
            f"/api/v1/household/members/{member_id}", json={"role": "ADMIN"}, headers=seed.auth("admin")
        )
        assert promote.status_code == 200
        assert promote.json()["role"] == "ADMIN"
        demote = client.patch(
            f"/api/v1/household/members/{member_id}", json={"role": "MEMBER"}, headers=seed.auth("admin")
        )
        assert demote.status_code == 200

    def test_role_change_applies_immediately(self, env, extra_member):
        client, seed = env
        member_id, headers = extra_member
        assert client.get("/api/v1/budget/categories", headers=headers).status_code == 200
        client.patch(f"/api/v1/household/members/{member_id}", json={"role": "CHILD"}, headers=seed.auth("admin"))
        assert client.get("/api/v1/budget/categories", headers=headers).status_code == 403

    def test_removed_member_loses_household(self, env, extra_member):
        client, seed = env
        member_id, headers = extra_member
        assert client.delete(f"/api/v1/household/members/{member_id}", headers=seed.auth("admin")).status_code == 204
        resp = client.get("/api/v1/household", headers=headers)
        assert resp.status_code == 409

    def test_removed_member_leaves_no_open_work(self, env, extra_member):
        client, seed = env
        member_id, _headers = extra_member
        data = seed.store.scoped(seed.h1)
        chore = data.insert(chores, title="Mop", frequency="WEEKLY", rotation_order=[member_id, seed.child_id])
        open_one = data.insert(chore_assignments, chore_id=chore["id"], member_id=member_id, due_date="2030-10-01")
        done_one = data.insert(
            chore_assignments,
            chore_id=chore["id"],
            member_id=member_id,
            due_date="2030-09-01",
            completed_at="2030-09-01T10:00:00+00:00",
            completed_by_id=member_id,
        )
        pet = data.insert(pets, name="Tom", species="Cat")
        task = data.insert(pet_care_tasks, pet_id=pet["id"], type="FEEDING", title="Dinner", default_member_id=member_id)
        data.insert(allowances, member_id=member_id, amount=5.0, frequency="WEEKLY")

        assert client.delete(f"/api/v1/household/members/{member_id}", headers=seed.auth("admin")).status_code == 204

        assert data.count(allowances, allowances.c.member_id == member_id) == 0
        assert data.get(chore_assignments, open_one["id"]) is None
        assert data.get(chore_assignments, done_one["id"])["completed_by_id"] == member_id
        assert data.get(chores, chore["id"])["rotation_order"] == [seed.child_id]
        assert data.get(pet_care_tasks, task["id"])["default_member_id"] is None

        assert resp.status_code == 409

    def test_update_name_and_color(self, env, extra_member):
        client, seed = env
        member_id, _headers = extra_member
        resp = client.patch(
            f"/api/v1/household/members/{member_id}",
            json={"name": "Tempest", "color": "#10B981"},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Tempest"
        assert resp.json()["color"] == "#10B981"


class TestInvitations:
    def test_invite_and_list(self, env):
        client, seed = env
        resp = client.post(
            "/api/v1/household/invitations",
            json={"email": "Cousin@Example.com", "role": "CHILD"},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["email"] == "cousin@example.com"
        assert body["role"] == "CHILD"
        assert body["status"] == "PENDING"
        listed = client.get("/api/v1/household/invitations", headers=seed.auth("member")).json()
        assert body["id"] in [i["id"] for i in listed]

    def test_duplicate_live_invitation_rejected(self, env):
        client, seed = env
        payload = {"email": "twice@example.com"}
        assert client.post("/api/v1/household/invitations", json=payload, headers=seed.auth("admin")).status_code == 201
        resp = client.post("/api/v1/household/invitations", json=payload, headers=seed.auth("admin"))
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "An invitation is already pending for this email."

    def test_store_rejects_second_live_invitation(self, env):
        _client, seed = env
        seed.store.create_invitation(seed.h1, "racer@example.com", "MEMBER", seed.admin_id)
        with pytest.raises(ValidationFailed, match="already pending"):
            seed.store.create_invitation(seed.h1, "Racer@Example.com", "CHILD", seed.admin_id)
        pending = [i for i in seed.store.list_invitations(seed.h1) if i.email == "racer@example.com"]
        assert len(pending) == 1

    def test_existing_member_rejected(self, env):
        client, seed = env
        resp = client.post(
            "/api/v1/household/invitations", json={"email": "BOB@example.com"}, headers=seed.auth("admin")
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "This person is already a member."

    def test_admin_role_not_invitable(self, env):
        client, seed = env
        resp = client.post(
            "/api/v1/household/invitations",
            json={"email": "boss@example.com", "role": "ADMIN"},
            headers=seed.auth("admin"),
        )
        assert resp.status_code == 400

    def test_withdraw(self, env):
        client, seed = env
        invitation = client.post(
            "/api/v1/household/invitations", json={"email": "gone@example.com"}, headers=seed.auth("admin")
        ).json()
        path = f"/api/v1/household/invitations/{invitation['id']}"
        assert client.delete(path, headers=seed.auth("admin")).status_code == 204
        assert client.delete(path, headers=seed.auth("admin")).status_code == 404
