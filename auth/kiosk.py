"""
auth/kiosk.py -- Kiosk token issue, revoke, and request authentication.

A kiosk token is a session-less bearer secret scoped to one household, meant
for a wall-mounted display. Properties:
  - 256-bit random secret, returned to the admin exactly once
  - only HMAC-SHA256(SECRET_KEY, secret) is stored, on the household row
  - one active secret per household; issuing again replaces the old one
  - no expiry; revocation clears the digest

authenticate_kiosk() yields a KioskScope that identifies a household and
nothing else -- no member, no role. Writes that need attribution take the
household's first member by creation order (fallback_member). Budget, vault,
settings and invitation endpoints depend on a session identity and so are
unreachable with a kiosk token.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.roles import Capability, can
from auth.session import AuthError, SessionIdentity
from auth.tokens import digests_match, generate_kiosk_secret, hash_token
from core.errors import Forbidden, NotFound
from household.models import Member
from household.store import HouseholdStore

logger = logging.getLogger("homebase.kiosk")


@dataclass(frozen=True)
class KioskScope:
    household_id: int
    household_name: str
    timezone: str
    location: str | None


def issue_kiosk_token(store: HouseholdStore, identity: SessionIdentity) -> str:
    """Generate a kiosk secret for the caller's household and return the plaintext.

    Overwrites any previous digest, so an older kiosk link stops working at
    once. The plaintext is not recoverable after this call returns.
    """
    if not can(identity.role, Capability.MANAGE_KIOSK):
        raise Forbidden("Only household admins can manage kiosk links.")
    secret = generate_kiosk_secret()
    store.set_kiosk_digest(identity.household_id, hash_token(secret))
    logger.info("Kiosk token issued for household %d by member %d", identity.household_id, identity.member_id)
    return secret


def revoke_kiosk_token(store: HouseholdStore, identity: SessionIdentity) -> None:
    """Clear the caller's household kiosk digest. Revoking twice is a no-op."""
    if not can(identity.role, Capability.MANAGE_KIOSK):
        raise Forbidden("Only household admins can manage kiosk links.")
    store.set_kiosk_digest(identity.household_id, None)
    logger.info("Kiosk token revoked for household %d by member %d", identity.household_id, identity.member_id)


def authenticate_kiosk(store: HouseholdStore, token: str | None) -> KioskScope | AuthError:
    """Resolve a presented kiosk token into the household it is bound to."""
    if not token:
        return AuthError("unauthorized", "Token is required")
    digest = hash_token(token)
    household = store.get_household_by_kiosk_digest(digest)
    if household is None or not digests_match(digest, household.kiosk_token):
        logger.warning("Rejected kiosk token (no matching household)")
        return AuthError("unauthorized", "Invalid kiosk token")
    return KioskScope(
        household_id=household.id,
        household_name=household.name,
        timezone=household.timezone,
        location=household.location,
    )


def fallback_member(store: HouseholdStore, household_id: int) -> Member:
    """Return the member kiosk writes are attributed to when no one is signed in.

    Raises NotFound when the household has no members -- the action fails
    closed rather than writing an unattributed row.
    """
    member = store.first_member(household_id)
    if member is None:
        raise NotFound("Household has no members to attribute this action to.")
    return member
