"""
auth/session.py -- Session resolution and sign-in completion.

resolve_session() is the single function every household-scoped request goes
through. It maps (store, credential) to exactly one of three outcomes:

  AuthError        -- no credential, or one that fails signature/expiry checks
  SignedInUser     -- a valid federated identity with no Member row yet
                      (signed in, onboarding incomplete)
  SessionIdentity  -- a Member, read fresh from the store on this request

There is no cached role or household on the credential: a role change or
member removal applies to the very next request.

complete_sign_in() runs once per OAuth callback and decides whether the
identity already has a household, can join one through a pending invitation,
or must go through onboarding.

Layer rule: no imports from api/ or web/. household/ and core/ are allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.tokens import decode_session_token
from household.models import Member
from household.store import HouseholdStore

logger = logging.getLogger("homebase.auth")


@dataclass(frozen=True)
class AuthError:
    code: str
    message: str


@dataclass(frozen=True)
class SignedInUser:
    """Authenticated federated identity that has not joined a household."""

    external_id: str
    email: str
    name: str


@dataclass(frozen=True)
class SessionIdentity:
    """Who is acting, in which household, with which role."""

    member_id: int
    household_id: int
    role: str
    display_name: str
    color: str
    email: str
    external_id: str


@dataclass(frozen=True)
class OAuthProfile:
    """Verified profile extracted from an identity provider's token response."""

    provider: str
    subject: str
    email: str
    name: str
    avatar_url: str | None = None

    @property
    def external_id(self) -> str:
        return f"{self.provider}:{self.subject}"


def identity_from_member(member: Member) -> SessionIdentity:
    return SessionIdentity(
        member_id=member.id,
        household_id=member.household_id,
        role=member.role,
        display_name=member.name,
        color=member.color,
        email=member.email,
        external_id=member.external_id,
    )


def resolve_session(store: HouseholdStore, credential: str | None) -> SessionIdentity | SignedInUser | AuthError:
    """Resolve a raw session credential into the caller's identity."""
    if not credential:
        return AuthError("unauthorized", "Authentication required.")
    payload = decode_session_token(credential)
    if payload is None:
        return AuthError("unauthorized", "Session is invalid or has expired.")

    member = store.get_member_by_external_id(payload["sub"])
    if member is None:
        return SignedInUser(
            external_id=payload["sub"],
            email=payload["email"],
            name=payload.get("name") or payload["email"],
        )
    return identity_from_member(member)


def complete_sign_in(store: HouseholdStore, profile: OAuthProfile) -> Member | None:
    """Bind a freshly verified identity to a household, if one is waiting.

    1. A member already linked to this identity is returned as-is.
    2. Otherwise the most recent live invitation for the profile's e-mail is
       accepted: the member is created with the invitation's role and
       household and the invitation flips to ACCEPTED in one transaction.
    3. Otherwise None -- the caller sends the user to onboarding.
    """
    existing = store.get_member_by_external_id(profile.external_id)
    if existing is not None:
        return existing

    invitation = store.find_invitation_for_email(profile.email)
    if invitation is None:
        return None

    member = store.accept_invitation(
        invitation,
        external_id=profile.external_id,
        email=profile.email,
        display_name=profile.name or profile.email,
        avatar_url=profile.avatar_url,
    )
    if member is None:
        # Accepted concurrently by another callback for the same identity.
        return store.get_member_by_external_id(profile.external_id)
    logger.info(
        "Invitation %d accepted: member %d joined household %d as %s",
        invitation.id,
        member.id,
        member.household_id,
        member.role,
    )
    return member
