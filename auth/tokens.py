"""
auth/tokens.py -- Session JWTs, kiosk secret generation, and the token hasher.

Security design decisions:
  Session JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and
       carry the federated identity (external_id as `sub`, email, name) and an
       expiry. They deliberately carry NO household or role: those are read
       fresh from the store on every request, so a demotion or removal takes
       effect on the next request. Verification returns None on any failure
       -- the session authenticator turns that into an AuthError.

  Kiosk secrets: secrets.token_hex(32) gives 256 bits of entropy. Brute-force
       is computationally infeasible, so a slow KDF buys nothing. We store
       HMAC-SHA256(SECRET_KEY, secret) so lookup is a single indexed equality
       and a leaked database alone cannot be used to forge or recover a
       token. The plaintext exists only in the issue response.

  SECRET_KEY: sourced from core.config.get_settings(). Rotating it signs out
       every session AND invalidates every kiosk link.

Layer rule: no imports from api/, web/, household/, or cache/. Import from
core/ is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# Every cookie name a session credential may arrive under, in lookup order.
# The __Secure- variant is what the cookie is called when SECURE_COOKIES=true.
SESSION_COOKIE_NAMES: tuple[str, ...] = (
    _settings.session_cookie_name,
    f"__Secure-{_settings.session_cookie_name}",
)


def session_cookie_name() -> str:
    """Return the cookie name this deployment writes the session under."""
    if _settings.secure_cookies:
        return f"__Secure-{_settings.session_cookie_name}"
    return _settings.session_cookie_name


# ---------------------------------------------------------------------------
# Session JWT encode / decode
# ---------------------------------------------------------------------------


def create_session_token(external_id: str, email: str, name: str, expire_seconds: int = 0) -> str:
    """Encode a signed session JWT for a federated identity.

    Args:
        external_id:    "<provider>:<subject>" -- stored as the `sub` claim.
        email:          Verified e-mail from the identity provider.
        name:           Display name from the identity provider.
        expire_seconds: Session duration. 0 (default) uses
                        Settings.session_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.session_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": external_id,
        "email": email,
        "name": name,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> dict | None:
    """Decode and verify a session JWT. Returns the payload or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub") or "email" not in payload:
        return None
    return payload


def extract_session_credential(cookies, headers) -> str | None:
    """Return the raw session credential from a request, or None.

    Cookies are checked first (in SESSION_COOKIE_NAMES order, first present
    wins), then an Authorization: Bearer header for API clients.
    """
    for name in SESSION_COOKIE_NAMES:
        value = cookies.get(name)
        if value:
            return value
    auth_header = headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:] or None
    return None


# ---------------------------------------------------------------------------
# Kiosk secret generation and hashing
# ---------------------------------------------------------------------------


def generate_kiosk_secret() -> str:
    """Return a new kiosk secret: 32 random bytes as 64 hex characters."""
    return secrets.token_hex(32)


def hash_token(secret: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, secret) as a 64-char hex string.

    Deterministic, so a presented token can be looked up by its digest.
    One-way, so the stored digest cannot be turned back into a usable token.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        secret.encode(),
        hashlib.sha256,
    ).hexdigest()


def digests_match(presented: str, stored: str | None) -> bool:
    """Constant-time comparison of two hex digests. None never matches."""
    if not stored:
        return False
    return hmac.compare_digest(presented.encode(), stored.encode())


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.session_expire_seconds
    response.set_cookie(
        session_cookie_name(),
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )


def clear_session_cookies(response) -> None:
    for name in SESSION_COOKIE_NAMES:
        response.delete_cookie(name)
