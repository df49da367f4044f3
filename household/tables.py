"""
household/tables.py -- SQLAlchemy Core schema for every HomeBase table.

Tenant rule: every domain table carries its own household_id column, even
where the owning household could be reached through a parent row (a chore
assignment through its chore, a pet-care log through its task and pet).
That keeps the isolation filter a single equality on every query instead
of a join that a future query could forget. household/scope.py relies on it.

Timestamps are ISO 8601 strings (UTC). Calendar dates (meal plans,
expenses, chore due dates) are YYYY-MM-DD strings in the household's
local calendar. Amounts are floats -- this is a family budget, not a ledger.

No FOREIGN KEY constraints: referential checks are done in code against
the caller's household (see household/scope.py) so a missing or foreign
parent produces NotFound rather than an IntegrityError.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()


def _tenant_columns() -> list[Column]:
    """Fresh id / household_id / timestamp columns for a domain table."""
    return [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("household_id", Integer, nullable=False, index=True),
        Column("created_at", String(32), nullable=False),
        Column("updated_at", String(32), nullable=False),
    ]


# ---------------------------------------------------------------------------
# Identity and tenancy
# ---------------------------------------------------------------------------

households = Table(
    "households",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("location", String(200)),
    Column("timezone", String(50), nullable=False, server_default="UTC"),
    # HMAC-SHA256 hex digest of the kiosk secret, never the secret itself.
    Column("kiosk_token", String(64), unique=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

members = Table(
    "members",
    metadata,
    *_tenant_columns(),
    Column("external_id", String(255), nullable=False, unique=True),  # "<provider>:<subject>"
    Column("email", String(255), nullable=False),
    Column("name", String(100), nullable=False),
    Column("color", String(7), nullable=False, server_default="#4F46E5"),
    Column("avatar_url", Text),
    Column("role", String(10), nullable=False, server_default="MEMBER"),
)

invitations = Table(
    "invitations",
    metadata,
    *_tenant_columns(),
    Column("email", String(255), nullable=False),
    Column("role", String(10), nullable=False, server_default="MEMBER"),
    Column("invited_by_id", Integer, nullable=False),
    Column("status", String(10), nullable=False, server_default="PENDING"),
    Column("expires_at", String(32), nullable=False),
)

# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

calendar_events = Table(
    "calendar_events",
    metadata,
    *_tenant_columns(),
    Column("title", String(200), nullable=False),
    Column("description", Text),
    Column("start_time", String(32), nullable=False),
    Column("end_time", String(32), nullable=False),
    Column("all_day", Boolean, nullable=False, server_default="0"),
    Column("recurrence", JSON),
    Column("member_id", Integer, nullable=False),
)

# ---------------------------------------------------------------------------
# Chores
# ---------------------------------------------------------------------------

chores = Table(
    "chores",
    metadata,
    *_tenant_columns(),
    Column("title", String(200), nullable=False),
    Column("description", Text),
    Column("frequency", String(10), nullable=False),
    Column("rotation_order", JSON),  # list of member ids
    Column("points", Integer),
)

chore_assignments = Table(
    "chore_assignments",
    metadata,
    *_tenant_columns(),
    Column("chore_id", Integer, nullable=False, index=True),
    Column("member_id", Integer, nullable=False),
    Column("due_date", String(10), nullable=False),
    Column("completed_at", String(32)),
    Column("completed_by_id", Integer),
)

# ---------------------------------------------------------------------------
# Meals
# ---------------------------------------------------------------------------

recipes = Table(
    "recipes",
    metadata,
    *_tenant_columns(),
    Column("title", String(200), nullable=False),
    Column("description", Text),
    Column("ingredients", JSON, nullable=False),
    Column("instructions", Text),
    Column("tags", JSON, nullable=False),
    Column("created_by_id", Integer, nullable=False),
)

meal_plans = Table(
    "meal_plans",
    metadata,
    *_tenant_columns(),
    Column("date", String(10), nullable=False),
    Column("meal_type", String(10), nullable=False),
    Column("recipe_id", Integer),
    Column("custom_title", String(200)),
    UniqueConstraint("household_id", "date", "meal_type", name="uq_meal_slot"),
)

# ---------------------------------------------------------------------------
# Grocery list and messages
# ---------------------------------------------------------------------------

grocery_items = Table(
    "grocery_items",
    metadata,
    *_tenant_columns(),
    Column("name", String(200), nullable=False),
    Column("quantity", String(50)),
    Column("category", String(100)),
    Column("checked", Boolean, nullable=False, server_default="0"),
    Column("added_by_id", Integer, nullable=False),
)

messages = Table(
    "messages",
    metadata,
    *_tenant_columns(),
    Column("content", Text, nullable=False),
    Column("type", String(20), nullable=False, server_default="NOTE"),
    Column("pinned", Boolean, nullable=False, server_default="0"),
    Column("author_id", Integer, nullable=False),
)

# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------

budget_categories = Table(
    "budget_categories",
    metadata,
    *_tenant_columns(),
    Column("name", String(100), nullable=False),
    Column("monthly_limit", Float),
    Column("color", String(7), nullable=False, server_default="#6B7280"),
)

expenses = Table(
    "expenses",
    metadata,
    *_tenant_columns(),
    Column("amount", Float, nullable=False),
    Column("description", String(500), nullable=False),
    Column("date", String(10), nullable=False),
    Column("category_id", Integer, nullable=False, index=True),
    Column("member_id", Integer, nullable=False),
)

allowances = Table(
    "allowances",
    metadata,
    *_tenant_columns(),
    Column("member_id", Integer, nullable=False, unique=True),
    Column("amount", Float, nullable=False),
    Column("frequency", String(10), nullable=False),
    Column("balance", Float, nullable=False, server_default="0"),
)

# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------

vault_items = Table(
    "vault_items",
    metadata,
    *_tenant_columns(),
    Column("title", String(200), nullable=False),
    Column("content", Text, nullable=False),
    Column("category", String(100), nullable=False),
    Column("restricted", Boolean, nullable=False, server_default="0"),
)

vault_documents = Table(
    "vault_documents",
    metadata,
    *_tenant_columns(),
    Column("vault_item_id", Integer, nullable=False, index=True),
    Column("file_name", String(255), nullable=False),
    Column("file_type", String(100), nullable=False),
    Column("file_url", Text, nullable=False),  # data: URL until object storage exists
    Column("uploaded_by_id", Integer, nullable=False),
)

# ---------------------------------------------------------------------------
# Pets
# ---------------------------------------------------------------------------

pets = Table(
    "pets",
    metadata,
    *_tenant_columns(),
    Column("name", String(100), nullable=False),
    Column("species", String(50), nullable=False),
    Column("breed", String(100)),
    Column("photo_url", Text),
    Column("birthday", String(10)),
    Column("weight", Float),
)

pet_care_tasks = Table(
    "pet_care_tasks",
    metadata,
    *_tenant_columns(),
    Column("pet_id", Integer, nullable=False, index=True),
    Column("type", String(20), nullable=False),
    Column("title", String(200), nullable=False),
    Column("schedule", JSON),  # {"interval_hours": N}
    Column("dosage", String(200)),
    Column("default_member_id", Integer),
)

pet_care_logs = Table(
    "pet_care_logs",
    metadata,
    *_tenant_columns(),
    Column("task_id", Integer, nullable=False, index=True),
    Column("member_id", Integer, nullable=False),
    Column("completed_at", String(32), nullable=False),
    Column("notes", Text),
    Column("duration_min", Integer),
)

pet_health_records = Table(
    "pet_health_records",
    metadata,
    *_tenant_columns(),
    Column("pet_id", Integer, nullable=False, index=True),
    Column("type", String(20), nullable=False),
    Column("title", String(200), nullable=False),
    Column("date", String(10), nullable=False),
    Column("notes", Text),
    Column("file_url", Text),
)
