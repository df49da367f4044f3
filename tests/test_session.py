"""
tests/test_session.py -- Session resolution, sign-in completion and onboarding.

Covers:
  - resolve_session: missing/invalid credential -> AuthError; unknown identity ->
    SignedInUser; known identity -> SessionIdentity read fresh from the store
  - Role changes apply on the next resolution
  - complete_sign_in: existing member, invitation acceptance (role + household,
    invitation ACCEPTED, no duplicate on the second sign-in), most recent live
    invitation wins, expired invitations ignored, no invitation -> None
  - Onboarding scenario through the API, including 409 + Location for
    household-scoped calls beforehand and 400 on a second attempt
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from auth.session import AuthError, OAuthProfile, SessionIdentity, SignedInUser, complete_sign_in, resolve_session
from auth.tokens import create_session_token
from household.store import HouseholdStore
from household.tables import invitations


@pytest.fixture
def store(request):
    s = HouseholdStore(db_url=f"sqlite:///file:test_session_{request.node.name}?mode=memory&cache=shared&uri=true")
    yield s
    s.close()


@pytest.fixture
def household(store):
    h, admin = store.create_household_with_admin(
        name="H", location=None, timezone_name="UTC", external_id="google:admin", email="admin@example.com", display_name="Admin"
    )
    return h, admin


def _profile(email: str, subject: str = "s1", provider: str = "google") -> OAuthProfile:
    return OAuthProfile(provider=provider, subject=subject, email=email, name=email.split("@")[0])


class TestResolveSession:
    def test_missing_credential(self, store):
        result = resolve_session(store, None)
        assert isinstance(result, AuthError)
        assert result.code == "unauthorized"

    def test_invalid_credential(self, store):
        assert isinstance(resolve_session(store, "garbage"), AuthError)

    def test_unknown_identity_is_signed_in_user(self, store):
        token = create_session_token("google:nobody", "nobody@example.com", "Nobody", expire_seconds=60)
        result = resolve_session(store, token)
        assert isinstance(result, SignedInUser)
        assert result.external_id == "google:nobody"

    def test_member_resolves_to_identity(self, store, household):
        h, admin = household
        token = create_session_token("google:admin", "admin@example.com", "Admin", expire_seconds=60)
        result = resolve_session(store, token)
        assert isinstance(result, SessionIdentity)
        assert result.member_id == admin.id
        assert result.household_id == h.id
        assert result.role == "ADMIN"
        assert result.display_name == "Admin"

    def test_role_change_applies_on_next_resolution(self, store, household):
        h, admin = household
        token = create_session_token("google:admin", "admin@example.com", "Admin", expire_seconds=60)
        store.update_member(admin.id, h.id, role="CHILD")
        assert resolve_session(store, token).role == "CHILD"


class TestCompleteSignIn:
    def test_existing_member_returned(self, store, household):
        _h, admin = household
        member = complete_sign_in(store, _profile("admin@example.com", subject="admin"))
        assert member.id == admin.id

    def test_no_invitation_returns_none(self, store, household):
        assert complete_sign_in(store, _profile("stranger@example.com")) is None

    def test_invitation_acceptance(self, store, household):
        h, admin = household
        invitation = store.create_invitation(h.id, "kid@example.com", "CHILD", admin.id)

        member = complete_sign_in(store, _profile("kid@example.com", subject="kid"))
        assert member is not None
        assert member.household_id == h.id
        assert member.role == "CHILD"
        [stored] = [i for i in store.list_invitations(h.id) if i.id == invitation.id]
        assert stored.status == "ACCEPTED"

        again = complete_sign_in(store, _profile("kid@example.com", subject="kid"))
        assert again.id == member.id
        assert len(store.list_members(h.id)) == 2

    def test_same_email_new_identity_without_new_invitation(self, store, household):
        h, admin = household
        store.create_invitation(h.id, "kid@example.com", "CHILD", admin.id)
        complete_sign_in(store, _profile("kid@example.com", subject="kid"))
        assert complete_sign_in(store, _profile("kid@example.com", subject="other")) is None
        assert len(store.list_members(h.id)) == 2

    def test_email_match_is_case_insensitive(self, store, household):
        h, admin = household
        store.create_invitation(h.id, "Kid@Example.com", "MEMBER", admin.id)
        member = complete_sign_in(store, _profile("kid@example.COM", subject="kid"))
        assert member is not None
        assert member.role == "MEMBER"

    def test_expired_invitation_ignored(self, store, household):
        h, admin = household
        invitation = store.create_invitation(h.id, "late@example.com", "MEMBER", admin.id)
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        with store.engine.begin() as conn:
            conn.execute(update(invitations).where(invitations.c.id == invitation.id).values(expires_at=past))
        assert complete_sign_in(store, _profile("late@example.com")) is None

    def test_most_recent_live_invitation_wins(self, store, household):
        h1, admin1 = household
        h2, admin2 = store.create_household_with_admin(
            name="H2", location=None, timezone_name="UTC", external_id="google:admin2", email="a2@example.com", display_name="A2"
        )
        store.create_invitation(h1.id, "both@example.com", "MEMBER", admin1.id)
        store.create_invitation(h2.id, "both@example.com", "CHILD", admin2.id)
        member = complete_sign_in(store, _profile("both@example.com", subject="both"))
        assert member.household_id == h2.id
        assert member.role == "CHILD"


class TestOnboardingScenario:
    def test_household_scoped_call_before_onboarding_is_409(self, env):
        client, seed = env
        resp = client.get("/api/v1/household", headers=seed.auth("newcomer"))
        assert resp.status_code == 409
        assert resp.headers["location"] == "/onboarding"
        assert resp.json()["error"]["code"] == "onboarding_required"

    def test_me_reports_onboarding_state(self, env):
        client, seed = env
        resp = client.get("/api/v1/auth/me", headers=seed.auth("newcomer"))
        assert resp.status_code == 200
        assert resp.json()["household_id"] is None

    def test_onboarding_creates_one_household_with_admin(self, env):
        client, seed = env
        headers = {"Authorization": "Bearer " + create_session_token("test:smith", "smith@example.com", "Pat Smith", expire_seconds=600)}
        resp = client.post("/api/v1/household", json={"name": "The Smith Family", "location": "Denver, CO"}, headers=headers)
        assert resp.status_code == 201
        body = resp.json()
        assert body["name"] == "The Smith Family"
        assert body["location"] == "Denver, CO"
        assert len(body["members"]) == 1
        assert body["members"][0]["role"] == "ADMIN"

        member = seed.store.get_member_by_external_id("test:smith")
        assert member.household_id == body["id"]

        again = client.post("/api/v1/household", json={"name": "Second"}, headers=headers)
        assert again.status_code == 400
        assert len(seed.store.list_members(body["id"])) == 1

    def test_onboarding_requires_name(self, env):
        client, _seed = env
        headers = {"Authorization": "Bearer " + create_session_token("test:noname", "nn@example.com", "NN", expire_seconds=600)}
        resp = client.post("/api/v1/household", json={"name": ""}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["message"].startswith("name:")
