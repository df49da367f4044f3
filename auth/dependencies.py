"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and role gating.

Session credentials are read in priority order:
  1. Session cookie (homebase_session, then __Secure-homebase_session).
  2. Authorization: Bearer <token> header -- API clients.

Dependency ladder, each wrapping the previous:
  try_get_session()       -- soft; returns whatever resolve_session() produced
  get_signed_in_user()    -- 401 unless the credential is valid (household optional)
  get_current_identity()  -- 401 if no identity, OnboardingRequired (409) if no household
  require(capability)     -- factory; 403 unless the role grants the capability

Kiosk requests use get_kiosk_scope() instead and never reach the ladder above.

All failures raise core.errors.AppError subclasses; api/main.py renders them.

Layer rule: no imports from web/ or cache/. fastapi is allowed because this
module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from urllib.parse import quote

from fastapi import Depends, Request

from auth.kiosk import KioskScope, authenticate_kiosk
from auth.roles import Capability, can
from auth.session import AuthError, SessionIdentity, SignedInUser, resolve_session
from auth.tokens import extract_session_credential
from core.errors import Forbidden, OnboardingRequired, Unauthenticated


def sign_in_location(request: Request) -> str:
    """The /sign-in URL that returns the visitor to this page, query string included."""
    target = request.url.path + (f"?{request.url.query}" if request.url.query else "")
    return f"/sign-in?next={quote(target, safe='/')}"


def try_get_session(request: Request) -> SessionIdentity | SignedInUser | AuthError:
    """Resolve the request's session credential. Never raises."""
    credential = extract_session_credential(request.cookies, request.headers)
    return resolve_session(request.app.state.store, credential)


def get_signed_in_user(request: Request) -> SessionIdentity | SignedInUser:
    """Require a valid credential; the caller may or may not have a household yet."""
    result = try_get_session(request)
    if isinstance(result, AuthError):
        raise Unauthenticated(result.message)
    return result


def get_current_identity(request: Request) -> SessionIdentity:
    """Require a member of a household.

    Use as a FastAPI dependency:
        @router.get("/chores")
        def list_chores(identity: SessionIdentity = Depends(get_current_identity)): ...
    """
    result = get_signed_in_user(request)
    if isinstance(result, SignedInUser):
        raise OnboardingRequired()
    return result


def require(capability: Capability):
    """Return a dependency that admits only roles granted `capability`.

        @router.post("/budget/categories")
        def create(identity: SessionIdentity = Depends(require(Capability.MANAGE_BUDGET))): ...
    """

    def _guard(identity: SessionIdentity = Depends(get_current_identity)) -> SessionIdentity:
        if not can(identity.role, capability):
            raise Forbidden()
        return identity

    return _guard


def get_kiosk_scope(request: Request, token: str | None = None) -> KioskScope:
    """Resolve ?token= into a KioskScope. 401 on missing or unknown token."""
    result = authenticate_kiosk(request.app.state.store, token)
    if isinstance(result, AuthError):
        raise Unauthenticated(result.message)
    return result
