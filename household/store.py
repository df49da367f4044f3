"""
household/store.py -- SQLAlchemy-backed persistence for households, members,
invitations and kiosk digests.

Uses SQLAlchemy Core (not ORM) so the dataclasses in household/models.py stay
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. HouseholdStore is the repository for the
identity/tenancy entities; the _row_to_* functions are the mappers. Domain
tables (chores, pets, ...) are reached through scoped(), which returns a
TenantScope bound to one household.

Member lookups that come from a route (get_member, update_member, ...) always
take the caller's household_id. The only unscoped lookups are the ones the
authenticators need before a household is known: by external id (session)
and by kiosk digest (kiosk).

Multi-row writes (onboarding, invitation acceptance, invitation replacement,
member removal) run inside engine.begin() so they commit or roll back as one unit.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = HouseholdStore()                               # SQLite default
    store = HouseholdStore("postgresql://user:pw@host/db") # PostgreSQL
    household, admin = store.create_household_with_admin("The Smiths", None, "UTC", ...)
    scope = store.scoped(household.id)
    store.close()
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine, event, func, select, text
from sqlalchemy.engine import Engine

from core.config import get_settings
from core.errors import ValidationFailed
from household.models import Household, Invitation, Member
from household.scope import TenantScope, now_iso
from household.tables import (
    allowances,
    chore_assignments,
    chores,
    households,
    invitations,
    members,
    metadata,
    pet_care_tasks,
)

logger = logging.getLogger("homebase.household")

# Assigned round-robin as members join so calendar entries are distinguishable.
_MEMBER_COLORS = ["#4F46E5", "#059669", "#D97706", "#DC2626", "#7C3AED", "#0891B2", "#DB2777"]


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode. Set per-connection; SQLite PRAGMAs are not pooled."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _is_live(invitation: Invitation, now: datetime) -> bool:
    if invitation.status != "PENDING":
        return False
    expires = datetime.fromisoformat(invitation.expires_at)
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires > now


class HouseholdStore:
    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # Route handlers run in FastAPI's threadpool; a pooled connection
            # may be used from a different thread than the one that opened it.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def scoped(self, household_id: int) -> TenantScope:
        return TenantScope(self.engine, household_id)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar_one() == 1

    # ------------------------------------------------------------------
    # Households
    # ------------------------------------------------------------------

    def create_household_with_admin(
        self,
        name: str,
        location: str | None,
        timezone_name: str,
        external_id: str,
        email: str,
        display_name: str,
        avatar_url: str | None = None,
    ) -> tuple[Household, Member]:
        """Create a household and its first (ADMIN) member in one transaction.

        Raises sqlalchemy.exc.IntegrityError if external_id already belongs to
        a member -- the caller checks first, the unique index is the backstop.
        """
        now = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                households.insert().values(
                    name=name,
                    location=location,
                    timezone=timezone_name,
                    created_at=now,
                    updated_at=now,
                )
            )
            household_id = result.inserted_primary_key[0]
            result = conn.execute(
                members.insert().values(
                    household_id=household_id,
                    external_id=external_id,
                    email=_normalize_email(email),
                    name=display_name,
                    color=_MEMBER_COLORS[0],
                    avatar_url=avatar_url,
                    role="ADMIN",
                    created_at=now,
                    updated_at=now,
                )
            )
            member_id = result.inserted_primary_key[0]
            household_row = conn.execute(households.select().where(households.c.id == household_id)).fetchone()
            member_row = conn.execute(members.select().where(members.c.id == member_id)).fetchone()
        logger.info("Household %d created with admin member %d", household_id, member_id)
        return _row_to_household(household_row), _row_to_member(member_row)

    def get_household(self, household_id: int) -> Household | None:
        with self.engine.connect() as conn:
            row = conn.execute(households.select().where(households.c.id == household_id)).fetchone()
        return _row_to_household(row) if row is not None else None

    def update_household(self, household_id: int, **fields) -> Household | None:
        """Update any subset of name, location, timezone. Returns None if not found."""
        fields.pop("kiosk_token", None)
        fields["updated_at"] = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(households.update().where(households.c.id == household_id).values(**fields))
            if result.rowcount == 0:
                return None
            row = conn.execute(households.select().where(households.c.id == household_id)).fetchone()
        return _row_to_household(row)

    # ------------------------------------------------------------------
    # Kiosk digest
    # ------------------------------------------------------------------

    def set_kiosk_digest(self, household_id: int, digest: str | None) -> bool:
        """Overwrite (or clear, with None) the household's kiosk token digest."""
        with self.engine.begin() as conn:
            result = conn.execute(
                households.update()
                .where(households.c.id == household_id)
                .values(kiosk_token=digest, updated_at=now_iso())
            )
        return result.rowcount > 0

    def get_household_by_kiosk_digest(self, digest: str) -> Household | None:
        with self.engine.connect() as conn:
            row = conn.execute(households.select().where(households.c.kiosk_token == digest)).fetchone()
        return _row_to_household(row) if row is not None else None

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def get_member_by_external_id(self, external_id: str) -> Member | None:
        with self.engine.connect() as conn:
            row = conn.execute(members.select().where(members.c.external_id == external_id)).fetchone()
        return _row_to_member(row) if row is not None else None

    def get_member(self, member_id: int, household_id: int) -> Member | None:
        """Fetch a member by id within a household. Foreign members read as absent."""
        with self.engine.connect() as conn:
            row = conn.execute(
                members.select().where(members.c.id == member_id, members.c.household_id == household_id)
            ).fetchone()
        return _row_to_member(row) if row is not None else None

    def list_members(self, household_id: int) -> list[Member]:
        """Return the household's members in join order."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                members.select()
                .where(members.c.household_id == household_id)
                .order_by(members.c.created_at, members.c.id)
            ).fetchall()
        return [_row_to_member(r) for r in rows]

    def first_member(self, household_id: int) -> Member | None:
        """Return the earliest-created member, or None for an empty household."""
        with self.engine.connect() as conn:
            row = conn.execute(
                members.select()
                .where(members.c.household_id == household_id)
                .order_by(members.c.created_at, members.c.id)
                .limit(1)
            ).fetchone()
        return _row_to_member(row) if row is not None else None

    def member_summaries(self, household_id: int) -> dict[int, dict]:
        """Return {member_id: {"id", "name", "color"}} for embedding in list responses."""
        return {m.id: {"id": m.id, "name": m.name, "color": m.color} for m in self.list_members(household_id)}

    def find_member_by_email(self, household_id: int, email: str) -> Member | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                members.select().where(
                    members.c.household_id == household_id,
                    members.c.email == _normalize_email(email),
                )
            ).fetchone()
        return _row_to_member(row) if row is not None else None

    def count_admins(self, household_id: int) -> int:
        with self.engine.connect() as conn:
            return conn.execute(
                select(func.count())
                .select_from(members)
                .where(members.c.household_id == household_id, members.c.role == "ADMIN")
            ).scalar_one()

    def update_member(self, member_id: int, household_id: int, **fields) -> Member | None:
        """Update any subset of name, color, role. Returns None if absent/foreign."""
        fields["updated_at"] = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                members.update()
                .where(members.c.id == member_id, members.c.household_id == household_id)
                .values(**fields)
            )
            if result.rowcount == 0:
                return None
            row = conn.execute(members.select().where(members.c.id == member_id)).fetchone()
        return _row_to_member(row)

    def delete_member(self, member_id: int, household_id: int) -> bool:
        """Remove a member and everything that would keep assigning work to them.

        In the same transaction: their allowance and open chore assignments
        are deleted, they are dropped from every chore rotation, and pet care
        tasks defaulting to them lose the default. Completed assignments,
        expenses and events stay as history.
        """
        now = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                members.delete().where(members.c.id == member_id, members.c.household_id == household_id)
            )
            if result.rowcount == 0:
                return False
            conn.execute(
                allowances.delete().where(allowances.c.household_id == household_id, allowances.c.member_id == member_id)
            )
            conn.execute(
                chore_assignments.delete().where(
                    chore_assignments.c.household_id == household_id,
                    chore_assignments.c.member_id == member_id,
                    chore_assignments.c.completed_at.is_(None),
                )
            )
            conn.execute(
                pet_care_tasks.update()
                .where(pet_care_tasks.c.household_id == household_id, pet_care_tasks.c.default_member_id == member_id)
                .values(default_member_id=None, updated_at=now)
            )
            rotations = conn.execute(
                select(chores.c.id, chores.c.rotation_order).where(chores.c.household_id == household_id)
            ).fetchall()
            for chore_id, rotation in rotations:
                if rotation and member_id in rotation:
                    conn.execute(
                        chores.update()
                        .where(chores.c.id == chore_id)
                        .values(rotation_order=[m for m in rotation if m != member_id], updated_at=now)
                    )
        return True

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def create_invitation(self, household_id: int, email: str, role: str, invited_by_id: int) -> Invitation:
        """Create a PENDING invitation expiring after the configured number of days.

        Any PENDING invitation for the same (household, email) pair whose
        expiry has passed is flipped to EXPIRED in the same transaction, so
        at most one live invitation exists per pair. A live one that is still
        PENDING is checked for inside that transaction too, and raises
        ValidationFailed instead of inserting a second.
        """
        email = _normalize_email(email)
        now_dt = datetime.now(timezone.utc)
        now = now_dt.isoformat()
        expires_at = (now_dt + timedelta(days=get_settings().invitation_expire_days)).isoformat()
        with self.engine.begin() as conn:
            expired = conn.execute(
                invitations.update()
                .where(
                    invitations.c.household_id == household_id,
                    invitations.c.email == email,
                    invitations.c.status == "PENDING",
                    invitations.c.expires_at <= now,
                )
                .values(status="EXPIRED", updated_at=now)
            )
            live = conn.execute(
                select(invitations.c.id).where(
                    invitations.c.household_id == household_id,
                    invitations.c.email == email,
                    invitations.c.status == "PENDING",
                    invitations.c.expires_at > now,
                )
            ).first()
            if live is not None:
                raise ValidationFailed("An invitation is already pending for this email.")
            result = conn.execute(
                invitations.insert().values(
                    household_id=household_id,
                    email=email,
                    role=role,
                    invited_by_id=invited_by_id,
                    status="PENDING",
                    expires_at=expires_at,
                    created_at=now,
                    updated_at=now,
                )
            )
            row = conn.execute(
                invitations.select().where(invitations.c.id == result.inserted_primary_key[0])
            ).fetchone()
        if expired.rowcount:
            logger.info("Expired %d stale invitation(s) in household %d", expired.rowcount, household_id)
        return _row_to_invitation(row)

    def list_invitations(self, household_id: int) -> list[Invitation]:
        """Return the household's invitations, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                invitations.select()
                .where(invitations.c.household_id == household_id)
                .order_by(invitations.c.created_at.desc(), invitations.c.id.desc())
            ).fetchall()
        return [_row_to_invitation(r) for r in rows]

    def find_invitation_for_email(self, email: str) -> Invitation | None:
        """Return the most recently created live invitation for email across all households."""
        now = datetime.now(timezone.utc)
        with self.engine.connect() as conn:
            rows = conn.execute(
                invitations.select()
                .where(invitations.c.email == _normalize_email(email), invitations.c.status == "PENDING")
                .order_by(invitations.c.created_at.desc(), invitations.c.id.desc())
            ).fetchall()
        for row in rows:
            invitation = _row_to_invitation(row)
            if _is_live(invitation, now):
                return invitation
        return None

    def delete_invitation(self, invitation_id: int, household_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                invitations.delete().where(
                    invitations.c.id == invitation_id,
                    invitations.c.household_id == household_id,
                )
            )
        return result.rowcount > 0

    def accept_invitation(
        self,
        invitation: Invitation,
        external_id: str,
        email: str,
        display_name: str,
        avatar_url: str | None = None,
    ) -> Member | None:
        """Create the invited member and mark the invitation ACCEPTED atomically.

        The status flip is conditional on the row still being PENDING. If a
        concurrent sign-in accepted it first, the whole transaction is rolled
        back and None is returned.
        """
        now = now_iso()
        with self.engine.connect() as conn:
            trans = conn.begin()
            flipped = conn.execute(
                invitations.update()
                .where(invitations.c.id == invitation.id, invitations.c.status == "PENDING")
                .values(status="ACCEPTED", updated_at=now)
            )
            if flipped.rowcount == 0:
                trans.rollback()
                return None
            existing = conn.execute(
                select(func.count()).select_from(members).where(members.c.household_id == invitation.household_id)
            ).scalar_one()
            result = conn.execute(
                members.insert().values(
                    household_id=invitation.household_id,
                    external_id=external_id,
                    email=_normalize_email(email),
                    name=display_name,
                    color=_MEMBER_COLORS[existing % len(_MEMBER_COLORS)],
                    avatar_url=avatar_url,
                    role=invitation.role,
                    created_at=now,
                    updated_at=now,
                )
            )
            row = conn.execute(members.select().where(members.c.id == result.inserted_primary_key[0])).fetchone()
            trans.commit()
        return _row_to_member(row)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_household(row) -> Household:
    return Household(
        id=row.id,
        name=row.name,
        location=row.location,
        timezone=row.timezone or "UTC",
        kiosk_token=row.kiosk_token,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_member(row) -> Member:
    return Member(
        id=row.id,
        household_id=row.household_id,
        external_id=row.external_id,
        email=row.email,
        name=row.name,
        role=row.role,
        color=row.color,
        avatar_url=row.avatar_url,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_invitation(row) -> Invitation:
    return Invitation(
        id=row.id,
        household_id=row.household_id,
        email=row.email,
        role=row.role,
        invited_by_id=row.invited_by_id,
        status=row.status,
        expires_at=row.expires_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
