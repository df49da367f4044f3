"""
auth/roles.py -- Closed role set and the capability table consulted by the guard.

Roles are a tagged variant, not an ordered string: route code never compares
role names inline. It asks can(role, Capability.X), and the answer comes
from ROLE_CAPABILITIES below -- the single place where role policy lives.

Capability tiers:
  ADMIN  -- everything, including invitations, member management, kiosk links.
  MEMBER -- adult: budget, household settings, full vault access.
  CHILD  -- shared household features only (calendar, chores, grocery,
            messages, meals, pets, unrestricted vault items).

Layer rule: no imports from api/, web/, household/, or cache/.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    CHILD = "CHILD"


class Capability(str, Enum):
    MANAGE_BUDGET = "manage_budget"
    MANAGE_SETTINGS = "manage_settings"
    MANAGE_INVITATIONS = "manage_invitations"
    MANAGE_MEMBERS = "manage_members"
    MANAGE_KIOSK = "manage_kiosk"
    MANAGE_VAULT = "manage_vault"
    VIEW_RESTRICTED_VAULT = "view_restricted_vault"
    MODERATE_MESSAGES = "moderate_messages"


_ADULT = frozenset(
    {
        Capability.MANAGE_BUDGET,
        Capability.MANAGE_SETTINGS,
        Capability.MANAGE_VAULT,
        Capability.VIEW_RESTRICTED_VAULT,
    }
)

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.MEMBER: _ADULT,
    Role.CHILD: frozenset(),
}

# Roles an admin may hand out through an invitation. New admins are made by
# promoting an existing member, never by invitation.
INVITABLE_ROLES: frozenset[Role] = frozenset({Role.MEMBER, Role.CHILD})


def can(role: Role | str, capability: Capability) -> bool:
    """Return True if the role grants the capability.

    Unknown role strings (e.g. a stale value in an old row) grant nothing.
    """
    try:
        resolved = Role(role)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES[resolved]
