"""
household/scope.py -- Tenant-filtered data access for every domain table.

TenantScope is the only way route handlers read or write household data.
It is bound to one household id at construction and:
  - adds `household_id == <bound id>` to every SELECT, UPDATE and DELETE
  - stamps household_id on every INSERT, overriding anything the caller passed
  - re-fetches by (id, household) before update/delete, so a foreign or
    missing id is indistinguishable from the caller's point of view

require() turns "absent or foreign" into NotFound. Handlers never see a
Forbidden for someone else's record -- existence in another household is
not observable.

Usage:
    scope = store.scoped(identity.household_id)
    chore = scope.require(chores, chore_id, "Chore")
    row = scope.insert(grocery_items, name="Milk", added_by_id=identity.member_id)
    scope.update(grocery_items, row["id"], checked=True)

Layer rule: imports only core/ and household/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Table, func, select
from sqlalchemy.engine import Engine

from core.errors import NotFound


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TenantScope:
    def __init__(self, engine: Engine, household_id: int) -> None:
        self.engine = engine
        self.household_id = household_id

    def _owned(self, table: Table):
        return table.c.household_id == self.household_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self, table: Table, *criteria, order_by=(), limit: int | None = None) -> list[dict]:
        """Return every row of table in this household matching all criteria."""
        stmt = select(table).where(self._owned(table), *criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [dict(r._mapping) for r in rows]

    def first(self, table: Table, *criteria, order_by=()) -> dict | None:
        rows = self.list(table, *criteria, order_by=order_by, limit=1)
        return rows[0] if rows else None

    def get(self, table: Table, record_id: int) -> dict | None:
        return self.first(table, table.c.id == record_id)

    def require(self, table: Table, record_id: int, label: str = "Record") -> dict:
        """Fetch by id within this household or raise NotFound."""
        row = self.get(table, record_id)
        if row is None:
            raise NotFound(f"{label} not found.")
        return row

    def count(self, table: Table, *criteria) -> int:
        stmt = select(func.count()).select_from(table).where(self._owned(table), *criteria)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar_one()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, table: Table, **values: Any) -> dict:
        """Insert a row owned by this household and return it as stored."""
        now = now_iso()
        values["household_id"] = self.household_id
        values.setdefault("created_at", now)
        values["updated_at"] = now
        with self.engine.begin() as conn:
            result = conn.execute(table.insert().values(**values))
            new_id = result.inserted_primary_key[0]
            row = conn.execute(select(table).where(table.c.id == new_id)).fetchone()
        return dict(row._mapping)

    def update(self, table: Table, record_id: int, *criteria, **values: Any) -> dict | None:
        """Update a row in this household. Returns the new row, or None if absent/foreign.

        Extra criteria are part of the same UPDATE statement, so a guard such as
        `completed_at IS NULL` is checked and applied atomically. A row that
        exists but fails the guard also returns None.
        """
        values.pop("household_id", None)
        values["updated_at"] = now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                table.update().where(table.c.id == record_id, self._owned(table), *criteria).values(**values)
            )
            if result.rowcount == 0:
                return None
            row = conn.execute(select(table).where(table.c.id == record_id)).fetchone()
        return dict(row._mapping)

    def delete(self, table: Table, record_id: int) -> bool:
        """Delete a row in this household. Returns False if absent/foreign."""
        with self.engine.begin() as conn:
            result = conn.execute(table.delete().where(table.c.id == record_id, self._owned(table)))
        return result.rowcount > 0

    def delete_where(self, table: Table, *criteria) -> int:
        """Delete every row in this household matching criteria. Returns the count removed."""
        with self.engine.begin() as conn:
            result = conn.execute(table.delete().where(self._owned(table), *criteria))
        return result.rowcount

    def delete_with_children(self, table: Table, record_id: int, children=()) -> bool:
        """Delete a row and its dependent rows in one transaction.

        children is a sequence of (child_table, criterion) pairs, applied in
        order before the parent row goes. Each child delete is tenant-filtered
        like every other write. Returns False, deleting nothing, when the parent
        is absent or foreign.
        """
        with self.engine.begin() as conn:
            owned = conn.execute(
                select(table.c.id).where(table.c.id == record_id, self._owned(table))
            ).first()
            if owned is None:
                return False
            for child_table, criterion in children:
                conn.execute(child_table.delete().where(self._owned(child_table), criterion))
            conn.execute(table.delete().where(table.c.id == record_id, self._owned(table)))
        return True
