"""
Core Data Models for timesheetz

These models define the five record kinds that live in BOTH stores
(clients, client rates, timesheet entries, training budget entries and
vacation carryover) plus the read-only aggregates computed from them.

Every stored record carries:
- id: a surrogate key that is ONLY meaningful inside the store that issued it
- created_at / updated_at: UTC timestamps assigned by the writing store
- a natural key, which identifies the same record across stores

DESIGN DECISION: Divergence between stores is detected by comparing the
fields listed in COMPARE_FIELDS one by one. Surrogate ids, foreign ids and
timestamps are never part of the comparison since each store assigns its own.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, ClassVar, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
CENTS = Decimal("0.01")

# Columns that update_entry_fields() may touch
UPDATABLE_ENTRY_FIELDS = frozenset({
    "client_hours",
    "vacation_hours",
    "idle_hours",
    "training_hours",
    "holiday_hours",
    "sick_hours",
})


def is_iso_date(value: str) -> bool:
    """True if value is a calendar date in YYYY-MM-DD form."""
    try:
        datetime.strptime(value, DATE_FORMAT)
    except (TypeError, ValueError):
        return False
    return len(value) == 10


def to_money(value: Any) -> Decimal:
    """Normalize a float/str/Decimal amount to two decimal places."""
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


def utc_timestamp() -> str:
    """Current UTC time in the lexicographically sortable storage format."""
    return datetime.utcnow().strftime(TIMESTAMP_FORMAT)


# =============================================================================
# BASE - Shared by every synchronized record kind
# =============================================================================

class StoredRecord(BaseModel, ABC):
    """
    A row of one of the synchronized tables.

    Subclasses declare which business fields take part in
    cross-store comparison and how their natural key is formed.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    COMPARE_FIELDS: ClassVar[tuple[str, ...]] = ()

    id: Optional[int] = Field(
        default=None,
        description="Store-local surrogate id"
    )
    created_at: Optional[str] = Field(
        default=None,
        description="When the record was first written (UTC)"
    )
    updated_at: Optional[str] = Field(
        default=None,
        description="When the record was last written (UTC)"
    )

    @field_validator('created_at', 'updated_at', mode='before')
    @classmethod
    def stringify_timestamp(cls, v: Any) -> Optional[str]:
        """Drivers may hand back datetime objects for legacy columns."""
        if isinstance(v, datetime):
            return v.strftime(TIMESTAMP_FORMAT)
        return v

    @abstractmethod
    def natural_key(self) -> str:
        """Identity of this record across stores."""
        pass

    def differing_fields(self, other: "StoredRecord") -> list[str]:
        """Names of the comparable fields whose values differ from other."""
        return [
            name for name in self.COMPARE_FIELDS
            if getattr(self, name) != getattr(other, name)
        ]

    def same_content(self, other: "StoredRecord") -> bool:
        return not self.differing_fields(other)


def _validate_date(v: str) -> str:
    if not is_iso_date(v):
        raise ValueError(f"Invalid date '{v}', expected YYYY-MM-DD")
    return v


# =============================================================================
# SYNCHRONIZED RECORDS
# =============================================================================

class Client(StoredRecord):
    """A customer that hours are billed to. Natural key: name."""

    COMPARE_FIELDS: ClassVar[tuple[str, ...]] = ("name", "is_active")

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Unique client name"
    )
    is_active: bool = Field(
        default=True,
        description="Inactive clients are hidden from entry forms"
    )

    def natural_key(self) -> str:
        return self.name


class ClientRate(StoredRecord):
    """
    An hourly rate that applies from effective_date onwards.

    client_id is local to the store the rate was read from. Across
    stores a rate is identified by (client name, effective_date);
    natural_key() only returns the date part since the model does
    not carry the client name.
    """

    COMPARE_FIELDS: ClassVar[tuple[str, ...]] = ("hourly_rate", "effective_date", "notes")

    client_id: int = Field(
        ...,
        gt=0,
        description="Owning client (store-local id)"
    )
    hourly_rate: Decimal = Field(
        ...,
        ge=0,
        description="Hourly rate in EUR"
    )
    effective_date: str = Field(
        ...,
        description="First day the rate applies (YYYY-MM-DD)"
    )
    notes: str = Field(
        default="",
        max_length=1000,
    )

    @field_validator('hourly_rate', mode='before')
    @classmethod
    def normalize_rate(cls, v: Any) -> Decimal:
        return to_money(v)

    @field_validator('effective_date')
    @classmethod
    def validate_effective_date(cls, v: str) -> str:
        return _validate_date(v)

    @field_validator('notes', mode='before')
    @classmethod
    def null_notes(cls, v: Any) -> str:
        return v or ""

    def natural_key(self) -> str:
        return self.effective_date


class TimesheetEntry(StoredRecord):
    """One day of booked hours. Natural key: date."""

    COMPARE_FIELDS: ClassVar[tuple[str, ...]] = (
        "date",
        "client_name",
        "client_hours",
        "vacation_hours",
        "idle_hours",
        "training_hours",
        "sick_hours",
        "holiday_hours",
    )

    date: str = Field(
        ...,
        description="Day the hours were worked (YYYY-MM-DD)"
    )
    client_name: str = Field(
        default="",
        description="Client the client_hours are billed to"
    )
    client_hours: int = Field(default=0, ge=0)
    vacation_hours: int = Field(default=0, ge=0)
    idle_hours: int = Field(default=0, ge=0)
    training_hours: int = Field(default=0, ge=0)
    sick_hours: int = Field(default=0, ge=0)
    holiday_hours: int = Field(default=0, ge=0)

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: str) -> str:
        return _validate_date(v)

    @field_validator('client_name', mode='before')
    @classmethod
    def null_client_name(cls, v: Any) -> str:
        return v or ""

    @property
    def total_hours(self) -> int:
        """Sum of all hour buckets; never stored."""
        return (
            self.client_hours
            + self.vacation_hours
            + self.idle_hours
            + self.training_hours
            + self.sick_hours
            + self.holiday_hours
        )

    def natural_key(self) -> str:
        return self.date


class TrainingBudgetEntry(StoredRecord):
    """A training course and its cost. Natural key: (date, training_name)."""

    COMPARE_FIELDS: ClassVar[tuple[str, ...]] = (
        "date",
        "training_name",
        "hours",
        "cost_without_vat",
    )

    date: str = Field(..., description="Date of the training (YYYY-MM-DD)")
    training_name: str = Field(..., min_length=1, max_length=300)
    hours: int = Field(default=0, ge=0)
    cost_without_vat: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        description="Cost excluding VAT in EUR"
    )

    @field_validator('date')
    @classmethod
    def validate_date(cls, v: str) -> str:
        return _validate_date(v)

    @field_validator('cost_without_vat', mode='before')
    @classmethod
    def normalize_cost(cls, v: Any) -> Decimal:
        return to_money(v)

    def natural_key(self) -> str:
        return f"{self.date}|{self.training_name}"


class VacationCarryover(StoredRecord):
    """Vacation hours carried into a year. Natural key: year."""

    COMPARE_FIELDS: ClassVar[tuple[str, ...]] = (
        "year",
        "carryover_hours",
        "source_year",
        "notes",
    )

    year: int = Field(..., ge=1900, le=9999)
    carryover_hours: int = Field(default=0)
    source_year: int = Field(default=0, ge=0)
    notes: str = Field(default="", max_length=1000)

    @field_validator('notes', mode='before')
    @classmethod
    def null_notes(cls, v: Any) -> str:
        return v or ""

    def natural_key(self) -> str:
        return str(self.year)


# =============================================================================
# AGGREGATES - Computed views, never stored
# =============================================================================

class VacationSummary(BaseModel):
    """Vacation balance for one year."""

    year: int
    yearly_target: int = 0
    carryover_hours: int = 0
    used_hours: int = 0
    total_available: int = 0
    used_from_carryover: int = 0
    used_from_current: int = 0
    remaining_total: int = 0

    @classmethod
    def compute(
        cls,
        year: int,
        yearly_target: int,
        carryover_hours: int,
        used_hours: int,
    ) -> "VacationSummary":
        """Carryover hours are consumed before the current year's budget."""
        used_from_carryover = min(used_hours, carryover_hours)
        total_available = yearly_target + carryover_hours
        return cls(
            year=year,
            yearly_target=yearly_target,
            carryover_hours=carryover_hours,
            used_hours=used_hours,
            total_available=total_available,
            used_from_carryover=used_from_carryover,
            used_from_current=used_hours - used_from_carryover,
            remaining_total=total_available - used_hours,
        )


class ClientWithRates(BaseModel):
    """A client together with its full rate history, newest first."""

    client: Client
    rates: list[ClientRate] = Field(default_factory=list)


class EarningsEntry(BaseModel):
    """Earnings for one timesheet day, or one (client, rate) group in summaries."""

    date: str = ""
    client_name: str
    client_hours: int
    hourly_rate: Decimal
    earnings: Decimal


class EarningsOverview(BaseModel):
    """Earnings for a year (month=0) or a single month."""

    year: int
    month: int = Field(default=0, ge=0, le=12)
    total_hours: int = 0
    total_earnings: Decimal = Decimal("0.00")
    entries: list[EarningsEntry] = Field(default_factory=list)
