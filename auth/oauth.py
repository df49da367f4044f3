"""
auth/oauth.py -- Authlib OAuth/OIDC provider configuration.

Reads configuration from core.config.get_settings() at module load to decide
which providers are active. Only providers with both client ID and secret
configured get registered -- the sign-in page renders buttons from
get_enabled_providers().

Security notes:
  E-mail verification is mandatory. get_oauth_user_info() raises ValueError
  if the provider does not confirm the e-mail is verified. Invitations are
  matched by e-mail, so an unverified address could otherwise be used to
  claim someone else's invitation.

  The OAuth state parameter (CSRF protection) is handled by authlib via
  Starlette SessionMiddleware.

Supported providers:
  google -- Authorization code flow; OIDC discovery.
  oidc   -- Generic OIDC discovery (Okta, Azure AD, Keycloak, Authentik, etc.)

Layer rule: no imports from api/, web/, household/, or cache/.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.session import OAuthProfile
from core.config import get_settings

logger = logging.getLogger("homebase.auth.oauth")

oauth = OAuth()

_cfg = get_settings()

if _cfg.google_client_id and _cfg.google_client_secret:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google OAuth provider registered")

if _cfg.oidc_client_id and _cfg.oidc_client_secret and _cfg.oidc_discovery_url:
    oauth.register(
        name="oidc",
        client_id=_cfg.oidc_client_id,
        client_secret=_cfg.oidc_client_secret,
        server_metadata_url=_cfg.oidc_discovery_url,
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Generic OIDC provider registered (display name: %s)", _cfg.oidc_display_name)


def get_enabled_providers() -> list[dict]:
    """Return [{"name", "label"}] for every configured provider."""
    cfg = get_settings()
    providers: list[dict] = []
    if cfg.google_client_id and cfg.google_client_secret:
        providers.append({"name": "google", "label": "Google"})
    if cfg.oidc_client_id and cfg.oidc_client_secret and cfg.oidc_discovery_url:
        providers.append({"name": "oidc", "label": cfg.oidc_display_name})
    return providers


async def get_oauth_user_info(client, provider: str, token: dict) -> OAuthProfile:
    """Extract a verified profile from a provider token response.

    Both supported providers return an id_token whose claims authlib exposes
    as token["userinfo"]. The e-mail is only accepted when email_verified is
    True; providers that omit the claim are treated as unverified.

    Raises:
        ValueError: unknown provider, missing claims, or unverified e-mail.
    """
    if provider not in ("google", "oidc"):
        raise ValueError(f"Unknown OAuth provider: {provider!r}")

    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError(f"{provider} OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise ValueError(
            f"{provider} OAuth: email is not verified. "
            "The provider must confirm email ownership before sign-in is allowed."
        )

    email = userinfo.get("email")
    subject = userinfo.get("sub")
    if not email or not subject:
        raise ValueError(f"{provider} OAuth: missing email or sub claim in userinfo")

    return OAuthProfile(
        provider=provider,
        subject=str(subject),
        email=email,
        name=userinfo.get("name") or email.split("@")[0],
        avatar_url=userinfo.get("picture"),
    )
