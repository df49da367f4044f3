"""
api/routes/v1/auth.py -- Session identity REST endpoints.

Routes:
  GET  /api/v1/auth/providers   -- list enabled sign-in providers (public)
  GET  /api/v1/auth/me          -- resolved caller identity (valid session; household optional)
  POST /api/v1/auth/sign-out    -- clears the session cookies

Sign-in itself is browser-driven (OAuth redirect + callback) and lives in
web/routes.py. /auth/me is deliberately reachable before onboarding so the
client can tell "signed in, no household" from "not signed in".
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.models import MeResponse, OAuthProviderInfo
from auth.dependencies import get_signed_in_user
from auth.oauth import get_enabled_providers
from auth.session import SessionIdentity, SignedInUser
from auth.tokens import clear_session_cookies

router = APIRouter()


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured sign-in providers. Empty when none are set up."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]


@router.get("/auth/me", response_model=MeResponse)
def me(identity: SessionIdentity | SignedInUser = Depends(get_signed_in_user)) -> MeResponse:
    if isinstance(identity, SignedInUser):
        return MeResponse(
            external_id=identity.external_id,
            email=identity.email,
            name=identity.name,
            onboarding_required=True,
        )
    return MeResponse(
        external_id=identity.external_id,
        email=identity.email,
        name=identity.display_name,
        onboarding_required=False,
        member_id=identity.member_id,
        household_id=identity.household_id,
        role=identity.role,
        color=identity.color,
    )


@router.post("/auth/sign-out")
async def sign_out() -> JSONResponse:
    resp = JSONResponse(content={"message": "Signed out."})
    clear_session_cookies(resp)
    return resp
