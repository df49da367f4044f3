"""
web/routes.py -- Jinja2 template routes for the HomeBase web shell.

These routes serve server-rendered HTML. They share app.state with the API
routes (same household store) but return pages and redirects instead of JSON.

Route registration order: /sign-in/oauth/{provider} and
/sign-in/callback/{provider} are registered before GET /sign-in.

Routes:
  GET  /sign-in/oauth/{provider}      -- redirect to the provider
  GET  /sign-in/callback/{provider}   -- finish sign-in, set the session cookie
  GET  /sign-in                       -- provider buttons
  POST /sign-out                      -- clear session cookies
  GET  /onboarding                    -- create-a-household form
  POST /onboarding                    -- create household + ADMIN member
  GET  /                              -- household home (members, today's chores)

The sign-in redirect for anonymous visitors is done by the edge gate in
api/main.py; the pages here still check the session themselves because a
present credential may be expired or forged.
"""

import logging
from pathlib import Path
from typing import Optional

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import IntegrityError

from auth.dependencies import sign_in_location, try_get_session
from auth.oauth import get_enabled_providers, get_oauth_user_info
from auth.session import AuthError, SessionIdentity, SignedInUser, complete_sign_in
from auth.tokens import clear_session_cookies, create_session_token, set_session_cookie
from household.localtime import local_today
from household.store import HouseholdStore
from household.tables import chore_assignments, chores

logger = logging.getLogger("homebase.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Only messages from this table reach the template, never the raw ?error= value.
_ERROR_MESSAGES: dict[str, str] = {
    "oauth_failed": "Sign-in failed. Please try again.",
    "unverified_email": "Your provider did not confirm your e-mail address.",
    "unknown_provider": "That sign-in provider is not configured.",
}


def _safe_next(next_url: Optional[str]) -> Optional[str]:
    """Accept only server-relative paths as a post-sign-in target."""
    if next_url and next_url.startswith("/") and not next_url.startswith("//") and "\\" not in next_url:
        return next_url
    return None


def _sign_in_redirect(request: Request) -> RedirectResponse:
    return RedirectResponse(sign_in_location(request), status_code=302)


# ---------------------------------------------------------------------------
# Sign-in (OAuth)
# ---------------------------------------------------------------------------


@router.get("/sign-in/oauth/{provider}", response_class=HTMLResponse)
async def oauth_redirect(request: Request, provider: str) -> RedirectResponse:
    """Send the browser to the provider's authorization page.

    The provider name is checked against the configured list first, and the
    sanitized ?next= target is parked in the session for the callback.
    """
    enabled = {p["name"] for p in get_enabled_providers()}
    if provider not in enabled:
        return RedirectResponse("/sign-in?error=unknown_provider", status_code=302)

    next_url = _safe_next(request.query_params.get("next"))
    if next_url:
        request.session["next"] = next_url
    client = request.app.state.oauth.create_client(provider)
    redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/sign-in/callback/{provider}", response_class=HTMLResponse, name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Finish the provider round trip and issue the session cookie.

    Flow:
      1. Exchange the authorization code (authlib checks state via the session).
      2. Extract a verified-email profile.
      3. complete_sign_in(): existing member, or accept a live invitation.
      4. Issue the session JWT; go to ?next (or /) for members, /onboarding otherwise.
    """
    enabled = {p["name"] for p in get_enabled_providers()}
    if provider not in enabled:
        return RedirectResponse("/sign-in?error=unknown_provider", status_code=302)

    client = request.app.state.oauth.create_client(provider)
    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("OAuth token exchange failed for provider %r", provider)
        return RedirectResponse("/sign-in?error=oauth_failed", status_code=302)

    try:
        profile = await get_oauth_user_info(client, provider, token)
    except ValueError:
        logger.warning("Sign-in rejected: unverified or missing e-mail from %r", provider)
        return RedirectResponse("/sign-in?error=unverified_email", status_code=302)

    store: HouseholdStore = request.app.state.store
    member = complete_sign_in(store, profile)

    next_url = _safe_next(request.session.pop("next", None))
    target = (next_url or "/") if member is not None else "/onboarding"
    resp = RedirectResponse(target, status_code=302)
    set_session_cookie(resp, create_session_token(profile.external_id, profile.email, profile.name))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/sign-in", response_class=HTMLResponse)
def sign_in_page(request: Request) -> HTMLResponse:
    session = try_get_session(request)
    if isinstance(session, SessionIdentity):
        return RedirectResponse(_safe_next(request.query_params.get("next")) or "/", status_code=302)
    if isinstance(session, SignedInUser):
        return RedirectResponse("/onboarding", status_code=302)

    return templates.TemplateResponse(
        request,
        "sign_in.html",
        {
            "error_msg": _ERROR_MESSAGES.get(request.query_params.get("error", "")),
            "providers": get_enabled_providers(),
            "next": _safe_next(request.query_params.get("next")),
        },
    )


@router.post("/sign-out")
def sign_out(request: Request) -> RedirectResponse:
    resp = RedirectResponse("/sign-in", status_code=302)
    clear_session_cookies(resp)
    return resp


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------


@router.get("/onboarding", response_class=HTMLResponse)
def onboarding_form(request: Request) -> HTMLResponse:
    session = try_get_session(request)
    if isinstance(session, AuthError):
        return _sign_in_redirect(request)
    if isinstance(session, SessionIdentity):
        return RedirectResponse("/", status_code=302)
    return templates.TemplateResponse(request, "onboarding.html", {"user": session})


@router.post("/onboarding", response_class=HTMLResponse)
def onboarding_submit(
    request: Request,
    name: str = Form(""),
    location: str = Form(""),
) -> HTMLResponse:
    """Create the caller's household from the form. Mirrors POST /api/v1/household."""
    session = try_get_session(request)
    if isinstance(session, AuthError):
        return _sign_in_redirect(request)
    if isinstance(session, SessionIdentity):
        return RedirectResponse("/", status_code=302)

    name = name.strip()
    location = location.strip()
    if not name or len(name) > 100:
        return templates.TemplateResponse(
            request,
            "onboarding.html",
            {"user": session, "error_msg": "Household name must be 1-100 characters.", "location": location},
            status_code=400,
        )

    store: HouseholdStore = request.app.state.store
    try:
        household, _admin = store.create_household_with_admin(
            name=name,
            location=location[:200] or None,
            timezone_name="UTC",
            external_id=session.external_id,
            email=session.email,
            display_name=session.name,
        )
    except IntegrityError:
        return RedirectResponse("/", status_code=302)
    logger.info("Onboarding complete: %s created household %d", session.external_id, household.id)
    return RedirectResponse("/", status_code=302)


# ---------------------------------------------------------------------------
# Home
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    session = try_get_session(request)
    if isinstance(session, AuthError):
        return _sign_in_redirect(request)
    if isinstance(session, SignedInUser):
        return RedirectResponse("/onboarding", status_code=302)

    store: HouseholdStore = request.app.state.store
    household = store.get_household(session.household_id)
    today = local_today(household.timezone)
    data = store.scoped(session.household_id)
    titles = {c["id"]: c["title"] for c in data.list(chores)}
    due = [
        {"title": titles.get(a["chore_id"], "Chore"), "member_id": a["member_id"]}
        for a in data.list(
            chore_assignments,
            chore_assignments.c.due_date == today.date,
            chore_assignments.c.completed_at.is_(None),
        )
    ]
    return templates.TemplateResponse(
        request,
        "home.html",
        {
            "identity": session,
            "household": household,
            "members": store.list_members(session.household_id),
            "today": today.date,
            "due_chores": due,
        },
    )
