"""
API request and response models for HomeBase REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in household/models.py,
which own the internal domain representation. Route handlers map between the two.

Request schemas never declare attribution fields (author, creator, member
who completed something). Unknown keys are ignored, so a client that sends
`author_id` or `member_id` on a create has it dropped; handlers stamp the
acting member instead.

Bodies are validated through parse_body(), which returns a tagged result
(Parsed | Invalid) rather than raising. validated() is the one-liner routes
use: it turns Invalid into a 400 with the first error message.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from core.errors import ValidationFailed

T = TypeVar("T")

_HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"
_EMAIL = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

Name = Annotated[str, Field(min_length=1, max_length=200)]
OptionalText = Optional[Annotated[str, Field(max_length=5000)]]


def as_utc(value: dt.datetime) -> dt.datetime:
    """Return value as an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def to_utc_iso(value: dt.datetime) -> str:
    """Normalize a datetime to an ISO 8601 UTC string with second precision."""
    return as_utc(value).isoformat(timespec="seconds")


# ---------------------------------------------------------------------------
# Tagged parse result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T


@dataclass(frozen=True)
class Invalid:
    message: str
    errors: list


def _first_error_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    msg = first["msg"]
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, ") :]
    loc = ".".join(str(part) for part in first["loc"] if not isinstance(part, int))
    # Discriminated unions report the tag name as the first loc element.
    if loc and first["type"] not in ("union_tag_invalid", "union_tag_not_found"):
        return f"{loc}: {msg}"
    return msg


def parse_body(schema: Any, payload: Any) -> Parsed | Invalid:
    """Validate payload against schema. Never raises on bad input."""
    try:
        if isinstance(schema, type) and issubclass(schema, BaseModel):
            return Parsed(schema.model_validate(payload))
        return Parsed(TypeAdapter(schema).validate_python(payload))
    except ValidationError as exc:
        return Invalid(message=_first_error_message(exc), errors=exc.errors(include_url=False))


def validated(schema: Any, payload: Any):
    """Return the parsed value or raise ValidationFailed (400) with the first error."""
    result = parse_body(schema, payload)
    if isinstance(result, Invalid):
        raise ValidationFailed(result.message)
    return result.value


class _Request(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Household, members, invitations
# ---------------------------------------------------------------------------


class HouseholdCreate(_Request):
    name: Annotated[str, Field(min_length=1, max_length=100)]
    location: Optional[Annotated[str, Field(max_length=200)]] = None


class HouseholdUpdate(_Request):
    name: Optional[Annotated[str, Field(min_length=1, max_length=100)]] = None
    location: Optional[Annotated[str, Field(max_length=200)]] = None
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {value}")
        return value


class MemberUpdate(_Request):
    name: Optional[Annotated[str, Field(min_length=1, max_length=100)]] = None
    color: Optional[Annotated[str, Field(pattern=_HEX_COLOR)]] = None
    role: Optional[Literal["ADMIN", "MEMBER", "CHILD"]] = None


class InvitationCreate(_Request):
    email: Annotated[str, Field(pattern=_EMAIL, max_length=255)]
    role: Literal["MEMBER", "CHILD"] = "MEMBER"


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


class CalendarEventCreate(_Request):
    title: Name
    description: OptionalText = None
    start_time: dt.datetime
    end_time: dt.datetime
    all_day: bool = False
    recurrence: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def check_order(self) -> "CalendarEventCreate":
        if as_utc(self.end_time) <= as_utc(self.start_time):
            raise ValueError("End time must be after start time")
        return self


class CalendarEventUpdate(_Request):
    title: Optional[Name] = None
    description: OptionalText = None
    start_time: Optional[dt.datetime] = None
    end_time: Optional[dt.datetime] = None
    all_day: Optional[bool] = None
    recurrence: Optional[dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Chores
# ---------------------------------------------------------------------------

ChoreFrequency = Literal["DAILY", "WEEKLY", "MONTHLY", "ONE_TIME"]


class ChoreCreate(_Request):
    title: Name
    description: OptionalText = None
    frequency: ChoreFrequency
    rotation_order: Optional[list[int]] = None
    points: Optional[Annotated[int, Field(ge=0)]] = None


class ChoreUpdate(_Request):
    title: Optional[Name] = None
    description: OptionalText = None
    frequency: Optional[ChoreFrequency] = None
    rotation_order: Optional[list[int]] = None
    points: Optional[Annotated[int, Field(ge=0)]] = None


class AssignmentCreate(_Request):
    chore_id: int
    member_id: int
    due_date: dt.date


# ---------------------------------------------------------------------------
# Meals
# ---------------------------------------------------------------------------

MealType = Literal["BREAKFAST", "LUNCH", "DINNER", "SNACK"]


class RecipeCreate(_Request):
    title: Name
    description: OptionalText = None
    ingredients: Annotated[list[str], Field(min_length=1)]
    instructions: OptionalText = None
    tags: list[str] = []


class RecipeUpdate(_Request):
    title: Optional[Name] = None
    description: OptionalText = None
    ingredients: Optional[Annotated[list[str], Field(min_length=1)]] = None
    instructions: OptionalText = None
    tags: Optional[list[str]] = None


class MealPlanCreate(_Request):
    date: dt.date
    meal_type: MealType
    recipe_id: Optional[int] = None
    custom_title: Optional[Name] = None

    @model_validator(mode="after")
    def check_target(self) -> "MealPlanCreate":
        if self.recipe_id is None and not self.custom_title:
            raise ValueError("Either a recipe or custom title is required")
        return self


class MealPlanUpdate(_Request):
    date: Optional[dt.date] = None
    meal_type: Optional[MealType] = None
    recipe_id: Optional[int] = None
    custom_title: Optional[Name] = None


# ---------------------------------------------------------------------------
# Grocery list and messages
# ---------------------------------------------------------------------------


class GroceryItemCreate(_Request):
    name: Name
    quantity: Optional[Annotated[str, Field(max_length=50)]] = None
    category: Optional[Annotated[str, Field(max_length=100)]] = None


class GroceryItemUpdate(_Request):
    name: Optional[Name] = None
    quantity: Optional[Annotated[str, Field(max_length=50)]] = None
    category: Optional[Annotated[str, Field(max_length=100)]] = None
    checked: Optional[bool] = None


MessageType = Literal["ANNOUNCEMENT", "NOTE", "DISCUSSION_TOPIC"]


class MessageCreate(_Request):
    content: Annotated[str, Field(min_length=1, max_length=5000)]
    type: MessageType = "NOTE"
    pinned: bool = False


class MessageUpdate(_Request):
    content: Optional[Annotated[str, Field(min_length=1, max_length=5000)]] = None
    type: Optional[MessageType] = None
    pinned: Optional[bool] = None


# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------


class BudgetCategoryCreate(_Request):
    name: Annotated[str, Field(min_length=1, max_length=100)]
    monthly_limit: Optional[Annotated[float, Field(ge=0)]] = None
    color: Annotated[str, Field(pattern=_HEX_COLOR)] = "#6B7280"


class BudgetCategoryUpdate(_Request):
    name: Optional[Annotated[str, Field(min_length=1, max_length=100)]] = None
    monthly_limit: Optional[Annotated[float, Field(ge=0)]] = None
    color: Optional[Annotated[str, Field(pattern=_HEX_COLOR)]] = None


class ExpenseCreate(_Request):
    amount: Annotated[float, Field(gt=0)]
    description: Annotated[str, Field(min_length=1, max_length=500)]
    date: dt.date
    category_id: int


class ExpenseUpdate(_Request):
    amount: Optional[Annotated[float, Field(gt=0)]] = None
    description: Optional[Annotated[str, Field(min_length=1, max_length=500)]] = None
    date: Optional[dt.date] = None
    category_id: Optional[int] = None


class AllowanceUpsert(_Request):
    member_id: int
    amount: Annotated[float, Field(ge=0)]
    frequency: Literal["WEEKLY", "BIWEEKLY", "MONTHLY"]
    balance: Optional[float] = None


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------


class VaultItemCreate(_Request):
    title: Name
    content: Annotated[str, Field(min_length=1, max_length=20000)]
    category: Annotated[str, Field(min_length=1, max_length=100)]
    restricted: bool = False


class VaultItemUpdate(_Request):
    title: Optional[Name] = None
    content: Optional[Annotated[str, Field(min_length=1, max_length=20000)]] = None
    category: Optional[Annotated[str, Field(min_length=1, max_length=100)]] = None
    restricted: Optional[bool] = None


# ---------------------------------------------------------------------------
# Pets
# ---------------------------------------------------------------------------

PetCareType = Literal["FEEDING", "WALK", "MEDICATION", "GROOMING", "VET"]


class PetCreate(_Request):
    name: Annotated[str, Field(min_length=1, max_length=100)]
    species: Annotated[str, Field(min_length=1, max_length=50)]
    breed: Optional[Annotated[str, Field(max_length=100)]] = None
    photo_url: Optional[str] = None
    birthday: Optional[dt.date] = None
    weight: Optional[Annotated[float, Field(gt=0)]] = None


class PetUpdate(_Request):
    name: Optional[Annotated[str, Field(min_length=1, max_length=100)]] = None
    species: Optional[Annotated[str, Field(min_length=1, max_length=50)]] = None
    breed: Optional[Annotated[str, Field(max_length=100)]] = None
    photo_url: Optional[str] = None
    birthday: Optional[dt.date] = None
    weight: Optional[Annotated[float, Field(gt=0)]] = None


class CareSchedule(_Request):
    interval_hours: Annotated[int, Field(gt=0, le=24 * 366)]


class PetCareTaskCreate(_Request):
    type: PetCareType
    title: Name
    schedule: Optional[CareSchedule] = None
    dosage: Optional[Annotated[str, Field(max_length=200)]] = None
    default_member_id: Optional[int] = None


class PetCareTaskUpdate(_Request):
    type: Optional[PetCareType] = None
    title: Optional[Name] = None
    schedule: Optional[CareSchedule] = None
    dosage: Optional[Annotated[str, Field(max_length=200)]] = None
    default_member_id: Optional[int] = None


class PetCareLogCreate(_Request):
    notes: OptionalText = None
    duration_min: Optional[Annotated[int, Field(ge=0, le=24 * 60)]] = None


class PetHealthRecordCreate(_Request):
    type: Literal["VACCINE", "VET_VISIT", "MEDICATION", "OTHER"]
    title: Name
    date: dt.date
    notes: OptionalText = None
    file_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Kiosk actions -- a discriminated union on "type"
# ---------------------------------------------------------------------------


class CompleteChoreAction(_Request):
    type: Literal["complete-chore"]
    assignment_id: int = Field(validation_alias=AliasChoices("assignment_id", "assignmentId"))


class LogPetCareAction(_Request):
    type: Literal["log-pet-care"]
    task_id: int = Field(validation_alias=AliasChoices("task_id", "taskId"))
    notes: OptionalText = None
    duration_min: Optional[Annotated[int, Field(ge=0, le=24 * 60)]] = Field(
        default=None, validation_alias=AliasChoices("duration_min", "durationMin")
    )


KioskAction = Annotated[Union[CompleteChoreAction, LogPetCareAction], Field(discriminator="type")]


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MemberOut(BaseModel):
    id: int
    name: str
    email: str
    color: str
    role: str
    avatar_url: Optional[str] = None


class HouseholdOut(BaseModel):
    id: int
    name: str
    location: Optional[str]
    timezone: str
    kiosk_enabled: bool
    members: list[MemberOut]
    created_at: str


class InvitationOut(BaseModel):
    id: int
    email: str
    role: str
    status: str
    invited_by_id: int
    expires_at: str
    created_at: str


class MeResponse(BaseModel):
    """Resolved caller identity. household_id is None until onboarding completes."""

    external_id: str
    email: str
    name: str
    onboarding_required: bool
    member_id: Optional[int] = None
    household_id: Optional[int] = None
    role: Optional[str] = None
    color: Optional[str] = None


class OAuthProviderInfo(BaseModel):
    name: str
    label: str


class KioskTokenResponse(BaseModel):
    token: str


class ErrorDetail(BaseModel):
    """Structured error information."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error envelope for all API error responses."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Liveness and dependency status."""

    status: Literal["ok", "degraded"] = "ok"
    version: str
    components: dict[str, str] = {}
