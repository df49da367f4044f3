"""
household/models.py -- Domain dataclasses for the tenancy and identity entities.

Pattern: Data class (pure data container, zero logic). Stores and the auth
layer do the work. The per-feature records (chores, pets, expenses, ...) are
returned by household/scope.py as plain dicts; only the three entities the
access-control layer reasons about get dedicated types.

Layer rule: no imports from api/, web/, auth/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Household:
    """The tenant boundary. Every domain row belongs to exactly one household.

    kiosk_token holds the HMAC digest of the current kiosk secret, or None
    when no kiosk link is active. It is never serialized to API clients.
    """

    name: str
    id: int | None = None
    location: str | None = None
    timezone: str = "UTC"
    kiosk_token: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Member:
    """A person in exactly one household.

    external_id is "<provider>:<subject>" from the federated sign-in -- the
    stable key a session credential resolves through.
    """

    household_id: int
    external_id: str
    email: str
    name: str
    role: str  # "ADMIN" | "MEMBER" | "CHILD"
    id: int | None = None
    color: str = "#4F46E5"
    avatar_url: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Invitation:
    """An offer to join a household with a pre-assigned role.

    status moves PENDING -> ACCEPTED on a matching sign-in. A PENDING row
    past expires_at is dead; it is flipped to EXPIRED when a replacement
    invitation for the same (household, email) pair is created.
    """

    household_id: int
    email: str
    role: str
    invited_by_id: int
    expires_at: str  # ISO 8601
    id: int | None = None
    status: str = "PENDING"  # "PENDING" | "ACCEPTED" | "EXPIRED"
    created_at: str = ""
    updated_at: str = ""
