"""
Abstract Data Layer Interface

DESIGN DECISION: Every business operation goes through one abstract
interface, the DataLayer. Three implementations exist:
1. SQLiteDataLayer - the embedded local store
2. PostgresDataLayer - the remote relational store
3. DualDataLayer - both at once, local result authoritative

Callers never know which one they hold. Return values have a defined
empty form (empty list, 0, "") and everything else is signalled by one
of the StorageError subclasses at the bottom of this module.

Ids passed to and returned from a DataLayer are surrogate ids of the
store behind it. For the dual layer they are LOCAL ids.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from timesheetz.models.records import (
    Client,
    ClientRate,
    ClientWithRates,
    EarningsOverview,
    TimesheetEntry,
    TrainingBudgetEntry,
    VacationCarryover,
    VacationSummary,
)


class DataLayer(ABC):
    """
    Abstract interface for every timesheet, budget, client and rate operation.

    Any store implementation (SQLite, PostgreSQL, dual) must implement
    these methods.
    """

    #: Short label used in logs ("local", "remote", "dual")
    name: str = "store"

    async def __aenter__(self) -> "DataLayer":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # =========================================================================
    # Timesheet entries
    # =========================================================================

    @abstractmethod
    async def list_entries(self, year: int = 0, month: int = 0) -> list[TimesheetEntry]:
        """
        List timesheet entries ordered by date.

        Args:
            year: Restrict to this year; 0 returns every entry
            month: Restrict to this month of year; 0 means the whole year

        Returns:
            Matching entries, possibly empty

        Raises:
            StorageValidationError: If month is out of range or given without a year
        """
        pass

    @abstractmethod
    async def get_entry_by_date(self, date: str) -> TimesheetEntry:
        """
        Retrieve the entry for one day.

        Raises:
            StorageValidationError: If date is not YYYY-MM-DD
            NotFoundError: If no entry exists for that day
        """
        pass

    @abstractmethod
    async def get_entry_by_id(self, entry_id: int) -> TimesheetEntry:
        """Retrieve an entry by surrogate id. Raises NotFoundError."""
        pass

    @abstractmethod
    async def create_entry(self, entry: TimesheetEntry) -> TimesheetEntry:
        """
        Insert a new entry.

        Returns:
            The stored entry with id and timestamps filled in

        Raises:
            DuplicateError: If an entry for that date already exists
        """
        pass

    @abstractmethod
    async def update_entry(self, entry: TimesheetEntry) -> TimesheetEntry:
        """
        Replace the hours of the entry with the same date.

        Raises:
            NotFoundError: If no entry exists for entry.date
        """
        pass

    @abstractmethod
    async def update_entry_fields(self, entry_id: int, fields: dict[str, int]) -> None:
        """
        Update selected hour columns of one entry.

        Args:
            entry_id: Surrogate id of the entry
            fields: Column -> value; only hour columns are accepted

        Raises:
            StorageValidationError: Empty map or a column outside the allow-list
                (checked before any I/O)
            NotFoundError: If no entry has that id
        """
        pass

    @abstractmethod
    async def delete_entry_by_date(self, date: str) -> None:
        """Delete the entry for one day. Deleting a missing day is a no-op."""
        pass

    @abstractmethod
    async def delete_entry_by_id(self, entry_id: int) -> None:
        """Delete an entry by surrogate id. Deleting a missing id is a no-op."""
        pass

    @abstractmethod
    async def get_last_client_name(self) -> str:
        """Client of the most recent entry, or "" when there are none."""
        pass

    # =========================================================================
    # Derived timesheet views
    # =========================================================================

    @abstractmethod
    async def list_training_entries(self, year: int) -> list[TimesheetEntry]:
        """Entries of the year with training hours, newest first."""
        pass

    @abstractmethod
    async def list_vacation_entries(self, year: int) -> list[TimesheetEntry]:
        """Entries of the year with vacation hours."""
        pass

    @abstractmethod
    async def sum_vacation_hours(self, year: int) -> int:
        """Vacation hours booked in the year."""
        pass

    # =========================================================================
    # Vacation carryover
    # =========================================================================

    @abstractmethod
    async def get_carryover(self, year: int) -> VacationCarryover:
        """
        Carryover into the given year.

        Returns:
            The stored record, or a zero-hour record with
            source_year = year - 1 when none is stored
        """
        pass

    @abstractmethod
    async def set_carryover(self, carryover: VacationCarryover) -> VacationCarryover:
        """Insert or replace the carryover of carryover.year."""
        pass

    @abstractmethod
    async def delete_carryover(self, year: int) -> None:
        pass

    @abstractmethod
    async def get_vacation_summary(self, year: int) -> VacationSummary:
        """Target, carryover, used and remaining vacation hours of the year."""
        pass

    # =========================================================================
    # Training budget
    # =========================================================================

    @abstractmethod
    async def list_budget_entries(self, year: int) -> list[TrainingBudgetEntry]:
        """Training budget entries of the year, newest first."""
        pass

    @abstractmethod
    async def create_budget_entry(self, entry: TrainingBudgetEntry) -> TrainingBudgetEntry:
        pass

    @abstractmethod
    async def update_budget_entry(self, entry: TrainingBudgetEntry) -> TrainingBudgetEntry:
        """Update the entry with id entry.id. Raises NotFoundError."""
        pass

    @abstractmethod
    async def delete_budget_entry(self, entry_id: int) -> None:
        pass

    @abstractmethod
    async def get_budget_entry(self, entry_id: int) -> TrainingBudgetEntry:
        pass

    @abstractmethod
    async def get_budget_entry_by_date(self, date: str) -> TrainingBudgetEntry:
        """First budget entry on the given day. Raises NotFoundError."""
        pass

    # =========================================================================
    # Clients
    # =========================================================================

    @abstractmethod
    async def list_clients(self) -> list[Client]:
        """All clients ordered by name."""
        pass

    @abstractmethod
    async def list_active_clients(self) -> list[Client]:
        pass

    @abstractmethod
    async def get_client_by_id(self, client_id: int) -> Client:
        pass

    @abstractmethod
    async def get_client_by_name(self, name: str) -> Client:
        pass

    @abstractmethod
    async def create_client(self, client: Client) -> int:
        """
        Insert a client.

        Returns:
            The surrogate id assigned by the store

        Raises:
            DuplicateError: If a client with that name exists
        """
        pass

    @abstractmethod
    async def update_client(self, client: Client) -> None:
        """Rename or (de)activate the client with id client.id."""
        pass

    @abstractmethod
    async def delete_client(self, client_id: int) -> None:
        """Delete a client together with its rates. Raises NotFoundError."""
        pass

    @abstractmethod
    async def deactivate_client(self, client_id: int) -> None:
        pass

    # =========================================================================
    # Client rates
    # =========================================================================

    @abstractmethod
    async def list_rates(self, client_id: int) -> list[ClientRate]:
        """Rate history of a client, newest effective date first."""
        pass

    @abstractmethod
    async def get_rate_by_id(self, rate_id: int) -> ClientRate:
        pass

    @abstractmethod
    async def create_rate(self, rate: ClientRate) -> ClientRate:
        """
        Insert a rate for rate.client_id.

        Raises:
            NotFoundError: If the client does not exist
            DuplicateError: If the client already has a rate on that date
        """
        pass

    @abstractmethod
    async def update_rate(self, rate: ClientRate) -> None:
        pass

    @abstractmethod
    async def delete_rate(self, rate_id: int) -> None:
        pass

    @abstractmethod
    async def get_effective_rate(self, client_id: int, date: str) -> ClientRate:
        """
        Rate in force on a given day.

        Args:
            client_id: Owning client
            date: Day to price (YYYY-MM-DD)

        Returns:
            The rate with the latest effective_date <= date

        Raises:
            NotFoundError: If no rate starts on or before date
        """
        pass

    @abstractmethod
    async def get_effective_rate_by_client_name(self, name: str, date: str) -> Decimal:
        """
        Hourly rate of a client by name on a given day.

        Returns:
            The rate, or 0 when the client or a rate is missing
            ("no charge" default, not an error)
        """
        pass

    # =========================================================================
    # Earnings
    # =========================================================================

    @abstractmethod
    async def calculate_earnings(self, year: int) -> EarningsOverview:
        """Per-day earnings of the year."""
        pass

    @abstractmethod
    async def calculate_earnings_summary(self, year: int) -> EarningsOverview:
        """Earnings of the year grouped by client and rate."""
        pass

    @abstractmethod
    async def calculate_earnings_for_month(self, year: int, month: int) -> EarningsOverview:
        pass

    @abstractmethod
    async def get_client_with_rates(self, client_id: int) -> ClientWithRates:
        pass

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    async def ping(self) -> None:
        """
        Check the store is reachable.

        Raises:
            StoreUnavailableError: If it is not
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections. Safe to call more than once."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a record whose natural key already exists."""
    pass


class StorageValidationError(StorageError):
    """Input rejected before any I/O (bad field name, malformed id or date)."""
    pass


class StoreUnavailableError(StorageError):
    """Could not connect to or ping the storage backend."""
    pass


class PartialWriteError(StorageError):
    """
    A dual-mode write was applied to one store only.

    The stores diverge until the next reconciliation pass.
    """

    def __init__(self, operation: str, failed_store: str, error: BaseException, result: Any = None):
        self.operation = operation
        self.failed_store = failed_store
        self.error = error
        self.applied_store = "remote" if failed_store == "local" else "local"
        self.result = result
        super().__init__(
            f"{operation}: {failed_store} write failed, applied to "
            f"{self.applied_store} only: {error}"
        )


class DualStoreError(StorageError):
    """Both stores failed the same dual-mode operation."""

    def __init__(self, operation: str, local_error: BaseException, remote_error: BaseException):
        self.operation = operation
        self.local_error = local_error
        self.remote_error = remote_error
        super().__init__(
            f"{operation}: both local and remote failed: "
            f"local={local_error}, remote={remote_error}"
        )

    @property
    def is_not_found(self) -> bool:
        return isinstance(self.local_error, NotFoundError) and isinstance(
            self.remote_error, NotFoundError
        )

