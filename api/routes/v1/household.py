"""
api/routes/v1/household.py -- Onboarding and household administration.

Routes:
  POST   /household                          -- onboarding: create household + ADMIN member
  GET    /household                          -- household details and members (any member)
  PUT    /household                          -- name / location / timezone (MANAGE_SETTINGS)
  PATCH  /household/members/{member_id}      -- role / name / color (MANAGE_MEMBERS)
  DELETE /household/members/{member_id}      -- remove a member (MANAGE_MEMBERS)
  GET    /household/invitations              -- list invitations (any member)
  POST   /household/invitations              -- invite by e-mail (MANAGE_INVITATIONS)
  DELETE /household/invitations/{id}         -- withdraw an invitation (MANAGE_INVITATIONS)

Last-admin guards: a household always keeps at least one ADMIN. Demoting or
removing the only admin is rejected with 400, and an admin cannot remove
themselves (they would lose access to the household they are managing).

The kiosk digest is never serialized; clients see only kiosk_enabled.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response
from sqlalchemy.exc import IntegrityError

from api.limiter import CREATE_LIMIT, limiter
from api.models import (
    HouseholdCreate,
    HouseholdOut,
    HouseholdUpdate,
    InvitationCreate,
    InvitationOut,
    MemberOut,
    MemberUpdate,
    validated,
)
from auth.dependencies import get_current_identity, get_signed_in_user, require
from auth.roles import Capability
from auth.session import SessionIdentity, SignedInUser
from core.errors import NotFound, ValidationFailed
from household.models import Household, Invitation, Member
from household.store import HouseholdStore

logger = logging.getLogger("homebase.api.household")

router = APIRouter()


def _member_out(member: Member) -> MemberOut:
    return MemberOut(
        id=member.id,
        name=member.name,
        email=member.email,
        color=member.color,
        role=member.role,
        avatar_url=member.avatar_url,
    )


def _household_out(household: Household, members: list[Member]) -> HouseholdOut:
    return HouseholdOut(
        id=household.id,
        name=household.name,
        location=household.location,
        timezone=household.timezone,
        kiosk_enabled=household.kiosk_token is not None,
        members=[_member_out(m) for m in members],
        created_at=household.created_at,
    )


def _invitation_out(invitation: Invitation) -> InvitationOut:
    return InvitationOut(
        id=invitation.id,
        email=invitation.email,
        role=invitation.role,
        status=invitation.status,
        invited_by_id=invitation.invited_by_id,
        expires_at=invitation.expires_at,
        created_at=invitation.created_at,
    )


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------


@limiter.limit(CREATE_LIMIT)
@router.post("/household", response_model=HouseholdOut, status_code=201)
def create_household(
    request: Request,
    payload: dict[str, Any] = Body(...),
    caller: SessionIdentity | SignedInUser = Depends(get_signed_in_user),
) -> HouseholdOut:
    """Create a household with the caller as its first ADMIN.

    Only a signed-in user without a household may call this. Household and
    admin member are written in one transaction.
    """
    if isinstance(caller, SessionIdentity):
        raise ValidationFailed("You already belong to a household.")
    body = validated(HouseholdCreate, payload)
    store: HouseholdStore = request.app.state.store
    try:
        household, admin = store.create_household_with_admin(
            name=body.name,
            location=body.location or None,
            timezone_name="UTC",
            external_id=caller.external_id,
            email=caller.email,
            display_name=caller.name,
        )
    except IntegrityError:
        # A concurrent request for the same identity won the race.
        raise ValidationFailed("You already belong to a household.")
    logger.info("Onboarding complete: %s created household %d", caller.external_id, household.id)
    return _household_out(household, [admin])


# ---------------------------------------------------------------------------
# Household settings
# ---------------------------------------------------------------------------


@router.get("/household", response_model=HouseholdOut)
def get_household(request: Request, identity: SessionIdentity = Depends(get_current_identity)) -> HouseholdOut:
    store: HouseholdStore = request.app.state.store
    household = store.get_household(identity.household_id)
    if household is None:
        raise NotFound("Household not found.")
    return _household_out(household, store.list_members(identity.household_id))


@router.put("/household", response_model=HouseholdOut)
def update_household(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(require(Capability.MANAGE_SETTINGS)),
) -> HouseholdOut:
    body = validated(HouseholdUpdate, payload)
    fields = body.model_dump(exclude_unset=True)
    if "name" in fields and fields["name"] is None:
        raise ValidationFailed("name: Household name cannot be empty")
    if "timezone" in fields and fields["timezone"] is None:
        fields.pop("timezone")
    store: HouseholdStore = request.app.state.store
    household = store.update_household(identity.household_id, **fields)
    if household is None:
        raise NotFound("Household not found.")
    return _household_out(household, store.list_members(identity.household_id))


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@router.patch("/household/members/{member_id}", response_model=MemberOut)
def update_member(
    request: Request,
    member_id: int,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(require(Capability.MANAGE_MEMBERS)),
) -> MemberOut:
    body = validated(MemberUpdate, payload)
    fields = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    store: HouseholdStore = request.app.state.store
    target = store.get_member(member_id, identity.household_id)
    if target is None:
        raise NotFound("Member not found.")
    if target.role == "ADMIN" and fields.get("role", "ADMIN") != "ADMIN":
        if store.count_admins(identity.household_id) <= 1:
            raise ValidationFailed("A household must keep at least one admin.")
    updated = store.update_member(member_id, identity.household_id, **fields)
    if updated is None:
        raise NotFound("Member not found.")
    if "role" in fields and fields["role"] != target.role:
        logger.info(
            "Member %d role changed %s -> %s by member %d",
            member_id,
            target.role,
            fields["role"],
            identity.member_id,
        )
    return _member_out(updated)


@router.delete("/household/members/{member_id}", status_code=204)
def remove_member(
    request: Request,
    member_id: int,
    identity: SessionIdentity = Depends(require(Capability.MANAGE_MEMBERS)),
) -> Response:
    store: HouseholdStore = request.app.state.store
    target = store.get_member(member_id, identity.household_id)
    if target is None:
        raise NotFound("Member not found.")
    if target.id == identity.member_id:
        raise ValidationFailed("You cannot remove yourself from the household.")
    if target.role == "ADMIN" and store.count_admins(identity.household_id) <= 1:
        raise ValidationFailed("A household must keep at least one admin.")
    store.delete_member(member_id, identity.household_id)
    logger.info("Member %d removed from household %d by member %d", member_id, identity.household_id, identity.member_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


@router.get("/household/invitations", response_model=list[InvitationOut])
def list_invitations(
    request: Request, identity: SessionIdentity = Depends(get_current_identity)
) -> list[InvitationOut]:
    store: HouseholdStore = request.app.state.store
    return [_invitation_out(i) for i in store.list_invitations(identity.household_id)]


@limiter.limit(CREATE_LIMIT)
@router.post("/household/invitations", response_model=InvitationOut, status_code=201)
def create_invitation(
    request: Request,
    payload: dict[str, Any] = Body(...),
    identity: SessionIdentity = Depends(require(Capability.MANAGE_INVITATIONS)),
) -> InvitationOut:
    """Invite an e-mail address to join with role MEMBER or CHILD.

    Rejected when the address already belongs to a member of this household
    or a live invitation for it is outstanding.
    """
    body = validated(InvitationCreate, payload)
    store: HouseholdStore = request.app.state.store
    if store.find_member_by_email(identity.household_id, body.email) is not None:
        raise ValidationFailed("This person is already a member.")
    invitation = store.create_invitation(
        household_id=identity.household_id,
        email=body.email,
        role=body.role,
        invited_by_id=identity.member_id,
    )
    logger.info(
        "Invitation %d created in household %d (role=%s) by member %d",
        invitation.id,
        identity.household_id,
        invitation.role,
        identity.member_id,
    )
    return _invitation_out(invitation)


@router.delete("/household/invitations/{invitation_id}", status_code=204)
def delete_invitation(
    request: Request,
    invitation_id: int,
    identity: SessionIdentity = Depends(require(Capability.MANAGE_INVITATIONS)),
) -> Response:
    store: HouseholdStore = request.app.state.store
    if not store.delete_invitation(invitation_id, identity.household_id):
        raise NotFound("Invitation not found.")
    return Response(status_code=204)
