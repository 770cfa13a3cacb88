"""
SQL Data Layer

DESIGN DECISION: Both stores speak the same SQL. Every query lives here,
written once with "?" placeholders; SQLiteDataLayer and PostgresDataLayer
only supply connection handling, placeholder style and error translation.
That keeps the two adapters literally identical in behaviour, which is
what the dual layer and the reconciliation engine rely on.

Rules every write follows:
1. One statement per write, or one transaction when a tombstone is recorded
2. updated_at is stamped on every write, created_at on every insert
3. Input is validated before any statement is sent

The raw row methods at the bottom (fetch_rows, insert_row, ...) bypass the
business rules and are used by the reconciliation engine only.
"""

import calendar
import re
from abc import abstractmethod
from decimal import Decimal
from typing import Any, Optional

from timesheetz.audit import get_logger
from timesheetz.models.records import (
    UPDATABLE_ENTRY_FIELDS,
    Client,
    ClientRate,
    ClientWithRates,
    EarningsOverview,
    TimesheetEntry,
    TrainingBudgetEntry,
    VacationCarryover,
    VacationSummary,
    is_iso_date,
    utc_timestamp,
)
from timesheetz.queries import EarningsCalculator
from timesheetz.storage.interface import (
    DataLayer,
    NotFoundError,
    StorageError,
    StorageValidationError,
    StoreUnavailableError,
)
from timesheetz.storage.schema import (
    TABLE_COLUMNS,
    TIMESTAMP_COLUMNS,
    TOMBSTONE_TABLE,
    check_identifiers,
    rate_key,
    writable_columns,
)


logger = get_logger(__name__)

Statement = tuple[str, tuple]

ENTRY_SELECT = (
    "SELECT id, date, client_name, client_hours, vacation_hours, idle_hours, "
    "training_hours, sick_hours, holiday_hours, created_at, updated_at FROM timesheet"
)
BUDGET_SELECT = (
    "SELECT id, date, training_name, hours, cost_without_vat, created_at, updated_at "
    "FROM training_budget"
)
CLIENT_SELECT = "SELECT id, name, is_active, created_at, updated_at FROM clients"
RATE_SELECT = (
    "SELECT id, client_id, hourly_rate, effective_date, notes, created_at, updated_at "
    "FROM client_rates"
)
CARRYOVER_SELECT = (
    "SELECT id, year, carryover_hours, source_year, notes, created_at, updated_at "
    "FROM vacation_carryover"
)

_STATEMENT_TARGET = re.compile(r"\b(?:FROM|INTO|UPDATE|TABLE)\s+(?:IF\s+NOT\s+EXISTS\s+)?(\w+)", re.I)


def describe_statement(sql: str) -> str:
    """Short 'verb table' label of a statement, used in error messages."""
    words = sql.split()
    verb = words[0].lower() if words else "query"
    match = _STATEMENT_TARGET.search(sql)
    return f"{verb} {match.group(1)}" if match else verb


def require_date(value: Any, what: str = "date") -> str:
    if not isinstance(value, str) or not is_iso_date(value):
        raise StorageValidationError(f"invalid {what} {value!r}, expected YYYY-MM-DD")
    return value


def require_id(value: Any, what: str = "id") -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise StorageValidationError(f"invalid {what} {value!r}, expected a positive integer")
    return value


def require_year(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1900 <= value <= 9999:
        raise StorageValidationError(f"invalid year {value!r}")
    return value


def validate_entry_fields(fields: dict[str, Any]) -> list[str]:
    """
    Check an update_entry_fields() map and return its columns in a fixed order.

    Raises:
        StorageValidationError: Empty map, unknown column or a bad value
    """
    if not fields:
        raise StorageValidationError("no valid fields to update")
    for name, value in fields.items():
        if name not in UPDATABLE_ENTRY_FIELDS:
            raise StorageValidationError(f"field {name} is not allowed for update")
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise StorageValidationError(f"field {name} must be a non-negative integer")
    return sorted(fields)


def date_range(year: int, month: int = 0) -> tuple[str, str]:
    """First and last day of a year, or of one month of it."""
    if month:
        last_day = calendar.monthrange(year, month)[1]
        return f"{year:04d}-{month:02d}-01", f"{year:04d}-{month:02d}-{last_day:02d}"
    return f"{year:04d}-01-01", f"{year:04d}-12-31"


class SQLDataLayer(DataLayer):
    """
    DataLayer implemented in portable SQL.

    Subclasses provide the five execution hooks and SCHEMA.
    """

    SCHEMA: list[str] = []

    def __init__(self, vacation_yearly_target: int = 0):
        self._vacation_yearly_target = vacation_yearly_target
        self._earnings = EarningsCalculator(self)

    # =========================================================================
    # Backend hooks
    # =========================================================================

    @abstractmethod
    async def _fetch(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Run a query and return its rows as dicts."""
        pass

    @abstractmethod
    async def _execute(self, sql: str, params: tuple = ()) -> int:
        """Run one statement in its own transaction; return the affected row count."""
        pass

    @abstractmethod
    async def _insert(self, sql: str, params: tuple = ()) -> int:
        """Run an INSERT and return the new row's id."""
        pass

    @abstractmethod
    async def _execute_batch(self, statements: list[Statement]) -> list[int]:
        """Run statements in one transaction; return each affected row count."""
        pass

    @abstractmethod
    async def _table_columns(self, table: str) -> set[str]:
        pass

    async def _fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict[str, Any]]:
        rows = await self._fetch(sql, params)
        return rows[0] if rows else None

    # =========================================================================
    # Schema
    # =========================================================================

    async def initialize(self) -> None:
        """
        Create missing tables and bring legacy tables up to date.

        Tables created before timestamps were tracked get created_at and
        updated_at columns; blank timestamps are backfilled so every row
        takes part in last-writer-wins comparison.
        """
        for statement in self.SCHEMA:
            await self._execute(statement)

        now = utc_timestamp()
        for table in TABLE_COLUMNS:
            existing = await self._table_columns(table)
            for column in TIMESTAMP_COLUMNS:
                if column not in existing:
                    logger.info("adding_timestamp_column", store=self.name, table=table, column=column)
                    await self._execute(
                        f"ALTER TABLE {table} ADD COLUMN {column} TEXT NOT NULL DEFAULT ''"
                    )
            await self._execute(
                f"UPDATE {table} SET created_at = ? WHERE created_at IS NULL OR created_at = ''",
                (now,),
            )
            await self._execute(
                f"UPDATE {table} SET updated_at = created_at "
                f"WHERE updated_at IS NULL OR updated_at = ''",
            )

    # =========================================================================
    # Tombstones
    # =========================================================================

    @staticmethod
    def _tombstone(table: str, key: str, deleted_at: str) -> Statement:
        """Statement recording (or advancing) the deletion of a natural key."""
        return (
            f"INSERT INTO {TOMBSTONE_TABLE} (table_name, natural_key, deleted_at) "
            f"VALUES (?, ?, ?) "
            f"ON CONFLICT (table_name, natural_key) DO UPDATE SET deleted_at = excluded.deleted_at "
            f"WHERE excluded.deleted_at > {TOMBSTONE_TABLE}.deleted_at",
            (table, key, deleted_at),
        )

    # =========================================================================
    # Timesheet entries
    # =========================================================================

    async def list_entries(self, year: int = 0, month: int = 0) -> list[TimesheetEntry]:
        if isinstance(month, bool) or not isinstance(month, int) or not 0 <= month <= 12:
            raise StorageValidationError(f"invalid month {month!r}")
        if not year:
            if month:
                raise StorageValidationError("month given without a year")
            rows = await self._fetch(f"{ENTRY_SELECT} ORDER BY date ASC")
        else:
            start, end = date_range(require_year(year), month)
            rows = await self._fetch(
                f"{ENTRY_SELECT} WHERE date BETWEEN ? AND ? ORDER BY date ASC",
                (start, end),
            )
        return [TimesheetEntry.model_validate(row) for row in rows]

    async def get_entry_by_date(self, date: str) -> TimesheetEntry:
        row = await self._fetch_one(f"{ENTRY_SELECT} WHERE date = ?", (require_date(date),))
        if row is None:
            raise NotFoundError(f"no entry found with date {date}")
        return TimesheetEntry.model_validate(row)

    async def get_entry_by_id(self, entry_id: int) -> TimesheetEntry:
        row = await self._fetch_one(f"{ENTRY_SELECT} WHERE id = ?", (require_id(entry_id),))
        if row is None:
            raise NotFoundError(f"no entry found with id {entry_id}")
        return TimesheetEntry.model_validate(row)

    async def create_entry(self, entry: TimesheetEntry) -> TimesheetEntry:
        now = utc_timestamp()
        new_id = await self._insert(
            "INSERT INTO timesheet (date, client_name, client_hours, vacation_hours, idle_hours, "
            "training_hours, sick_hours, holiday_hours, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                entry.date, entry.client_name, entry.client_hours, entry.vacation_hours,
                entry.idle_hours, entry.training_hours, entry.sick_hours, entry.holiday_hours,
                now, now,
            ),
        )
        return entry.model_copy(update={"id": new_id, "created_at": now, "updated_at": now})

    async def update_entry(self, entry: TimesheetEntry) -> TimesheetEntry:
        updated = await self._execute(
            "UPDATE timesheet SET client_name = ?, client_hours = ?, vacation_hours = ?, "
            "idle_hours = ?, training_hours = ?, holiday_hours = ?, sick_hours = ?, updated_at = ? "
            "WHERE date = ?",
            (
                entry.client_name, entry.client_hours, entry.vacation_hours, entry.idle_hours,
                entry.training_hours, entry.holiday_hours, entry.sick_hours, utc_timestamp(),
                entry.date,
            ),
        )
        if updated == 0:
            raise NotFoundError(f"no entry found with date {entry.date}")
        return await self.get_entry_by_date(entry.date)

    async def update_entry_fields(self, entry_id: int, fields: dict[str, int]) -> None:
        require_id(entry_id)
        columns = validate_entry_fields(fields)
        assignments = ", ".join(f"{column} = ?" for column in columns)
        updated = await self._execute(
            f"UPDATE timesheet SET {assignments}, updated_at = ? WHERE id = ?",
            tuple(fields[column] for column in columns) + (utc_timestamp(), entry_id),
        )
        if updated == 0:
            raise NotFoundError(f"no entry found with id {entry_id}")

    async def delete_entry_by_date(self, date: str) -> None:
        require_date(date)
        await self._execute_batch([
            ("DELETE FROM timesheet WHERE date = ?", (date,)),
            self._tombstone("timesheet", date, utc_timestamp()),
        ])

    async def delete_entry_by_id(self, entry_id: int) -> None:
        row = await self._fetch_one("SELECT date FROM timesheet WHERE id = ?", (require_id(entry_id),))
        if row is None:
            return
        await self._execute_batch([
            ("DELETE FROM timesheet WHERE id = ?", (entry_id,)),
            self._tombstone("timesheet", row["date"], utc_timestamp()),
        ])

    async def get_last_client_name(self) -> str:
        row = await self._fetch_one("SELECT client_name FROM timesheet ORDER BY date DESC LIMIT 1")
        if row is None:
            return ""
        return row["client_name"] or ""

    # =========================================================================
    # Derived timesheet views
    # =========================================================================

    async def list_training_entries(self, year: int) -> list[TimesheetEntry]:
        start, end = date_range(require_year(year))
        rows = await self._fetch(
            f"{ENTRY_SELECT} WHERE date BETWEEN ? AND ? AND training_hours > 0 ORDER BY date DESC",
            (start, end),
        )
        return [TimesheetEntry.model_validate(row) for row in rows]

    async def list_vacation_entries(self, year: int) -> list[TimesheetEntry]:
        start, end = date_range(require_year(year))
        rows = await self._fetch(
            f"{ENTRY_SELECT} WHERE date BETWEEN ? AND ? AND vacation_hours > 0 ORDER BY date ASC",
            (start, end),
        )
        return [TimesheetEntry.model_validate(row) for row in rows]

    async def sum_vacation_hours(self, year: int) -> int:
        start, end = date_range(require_year(year))
        row = await self._fetch_one(
            "SELECT COALESCE(SUM(vacation_hours), 0) AS total FROM timesheet "
            "WHERE date BETWEEN ? AND ?",
            (start, end),
        )
        return int(row["total"]) if row else 0

    # =========================================================================
    # Vacation carryover
    # =========================================================================

    async def get_carryover(self, year: int) -> VacationCarryover:
        row = await self._fetch_one(f"{CARRYOVER_SELECT} WHERE year = ?", (require_year(year),))
        if row is None:
            return VacationCarryover(year=year, carryover_hours=0, source_year=year - 1)
        return VacationCarryover.model_validate(row)

    async def set_carryover(self, carryover: VacationCarryover) -> VacationCarryover:
        now = utc_timestamp()
        await self._execute(
            "INSERT INTO vacation_carryover "
            "(year, carryover_hours, source_year, notes, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (year) DO UPDATE SET carryover_hours = excluded.carryover_hours, "
            "source_year = excluded.source_year, notes = excluded.notes, "
            "updated_at = excluded.updated_at",
            (
                carryover.year, carryover.carryover_hours, carryover.source_year,
                carryover.notes, now, now,
            ),
        )
        return await self.get_carryover(carryover.year)

    async def delete_carryover(self, year: int) -> None:
        require_year(year)
        await self._execute_batch([
            ("DELETE FROM vacation_carryover WHERE year = ?", (year,)),
            self._tombstone("vacation_carryover", str(year), utc_timestamp()),
        ])

    async def get_vacation_summary(self, year: int) -> VacationSummary:
        carryover = await self.get_carryover(year)
        used = await self.sum_vacation_hours(year)
        return VacationSummary.compute(
            year=year,
            yearly_target=self._vacation_yearly_target,
            carryover_hours=carryover.carryover_hours,
            used_hours=used,
        )

    # =========================================================================
    # Training budget
    # =========================================================================

    async def list_budget_entries(self, year: int) -> list[TrainingBudgetEntry]:
        start, end = date_range(require_year(year))
        rows = await self._fetch(
            f"{BUDGET_SELECT} WHERE date BETWEEN ? AND ? ORDER BY date DESC, id DESC",
            (start, end),
        )
        return [TrainingBudgetEntry.model_validate(row) for row in rows]

    async def create_budget_entry(self, entry: TrainingBudgetEntry) -> TrainingBudgetEntry:
        now = utc_timestamp()
        new_id = await self._insert(
            "INSERT INTO training_budget "
            "(date, training_name, hours, cost_without_vat, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (entry.date, entry.training_name, entry.hours, entry.cost_without_vat, now, now),
        )
        return entry.model_copy(update={"id": new_id, "created_at": now, "updated_at": now})

    async def update_budget_entry(self, entry: TrainingBudgetEntry) -> TrainingBudgetEntry:
        current = await self.get_budget_entry(require_id(entry.id, "budget entry id"))
        now = utc_timestamp()
        statements: list[Statement] = [(
            "UPDATE training_budget SET date = ?, training_name = ?, hours = ?, "
            "cost_without_vat = ?, updated_at = ? WHERE id = ?",
            (entry.date, entry.training_name, entry.hours, entry.cost_without_vat, now, entry.id),
        )]
        if current.natural_key() != entry.natural_key():
            statements.append(self._tombstone("training_budget", current.natural_key(), now))
        await self._execute_batch(statements)
        return await self.get_budget_entry(entry.id)

    async def delete_budget_entry(self, entry_id: int) -> None:
        row = await self._fetch_one(
            f"{BUDGET_SELECT} WHERE id = ?", (require_id(entry_id, "budget entry id"),)
        )
        if row is None:
            return
        entry = TrainingBudgetEntry.model_validate(row)
        await self._execute_batch([
            ("DELETE FROM training_budget WHERE id = ?", (entry_id,)),
            self._tombstone("training_budget", entry.natural_key(), utc_timestamp()),
        ])

    async def get_budget_entry(self, entry_id: int) -> TrainingBudgetEntry:
        row = await self._fetch_one(
            f"{BUDGET_SELECT} WHERE id = ?", (require_id(entry_id, "budget entry id"),)
        )
        if row is None:
            raise NotFoundError(f"no training budget entry with id {entry_id}")
        return TrainingBudgetEntry.model_validate(row)

    async def get_budget_entry_by_date(self, date: str) -> TrainingBudgetEntry:
        row = await self._fetch_one(
            f"{BUDGET_SELECT} WHERE date = ? ORDER BY id ASC LIMIT 1", (require_date(date),)
        )
        if row is None:
            raise NotFoundError(f"no training budget entry on {date}")
        return TrainingBudgetEntry.model_validate(row)

    # =========================================================================
    # Clients
    # =========================================================================

    async def list_clients(self) -> list[Client]:
        rows = await self._fetch(f"{CLIENT_SELECT} ORDER BY name ASC")
        return [Client.model_validate(row) for row in rows]

    async def list_active_clients(self) -> list[Client]:
        rows = await self._fetch(f"{CLIENT_SELECT} WHERE is_active = 1 ORDER BY name ASC")
        return [Client.model_validate(row) for row in rows]

    async def get_client_by_id(self, client_id: int) -> Client:
        row = await self._fetch_one(f"{CLIENT_SELECT} WHERE id = ?", (require_id(client_id, "client id"),))
        if row is None:
            raise NotFoundError(f"client not found: id {client_id}")
        return Client.model_validate(row)

    async def get_client_by_name(self, name: str) -> Client:
        row = await self._fetch_one(f"{CLIENT_SELECT} WHERE name = ?", (name,))
        if row is None:
            raise NotFoundError(f"client not found: {name!r}")
        return Client.model_validate(row)

    async def create_client(self, client: Client) -> int:
        now = utc_timestamp()
        return await self._insert(
            "INSERT INTO clients (name, is_active, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (client.name, int(client.is_active), now, now),
        )

    async def update_client(self, client: Client) -> None:
        current = await self.get_client_by_id(require_id(client.id, "client id"))
        now = utc_timestamp()
        statements: list[Statement] = [(
            "UPDATE clients SET name = ?, is_active = ?, updated_at = ? WHERE id = ?",
            (client.name, int(client.is_active), now, client.id),
        )]
        if current.name != client.name:
            # Rates are keyed by client name; a rename retires their old keys too
            # and re-stamps the rates so they outrank tombstones left on the new keys
            statements.append(self._tombstone("clients", current.name, now))
            for rate in await self.list_rates(client.id):
                statements.append(
                    self._tombstone("client_rates", rate_key(current.name, rate.effective_date), now)
                )
            statements.append((
                "UPDATE client_rates SET updated_at = ? WHERE client_id = ?",
                (now, client.id),
            ))
        await self._execute_batch(statements)

    async def delete_client(self, client_id: int) -> None:
        client = await self.get_client_by_id(client_id)
        rates = await self.list_rates(client_id)
        now = utc_timestamp()
        statements: list[Statement] = [
            ("DELETE FROM client_rates WHERE client_id = ?", (client_id,)),
            ("DELETE FROM clients WHERE id = ?", (client_id,)),
            self._tombstone("clients", client.name, now),
        ]
        statements.extend(
            self._tombstone("client_rates", rate_key(client.name, rate.effective_date), now)
            for rate in rates
        )
        await self._execute_batch(statements)

    async def deactivate_client(self, client_id: int) -> None:
        updated = await self._execute(
            "UPDATE clients SET is_active = 0, updated_at = ? WHERE id = ?",
            (utc_timestamp(), require_id(client_id, "client id")),
        )
        if updated == 0:
            raise NotFoundError(f"client not found: id {client_id}")

    # =========================================================================
    # Client rates
    # =========================================================================

    async def list_rates(self, client_id: int) -> list[ClientRate]:
        rows = await self._fetch(
            f"{RATE_SELECT} WHERE client_id = ? ORDER BY effective_date DESC, created_at DESC",
            (require_id(client_id, "client id"),),
        )
        return [ClientRate.model_validate(row) for row in rows]

    async def get_rate_by_id(self, rate_id: int) -> ClientRate:
        row = await self._fetch_one(f"{RATE_SELECT} WHERE id = ?", (require_id(rate_id, "rate id"),))
        if row is None:
            raise NotFoundError(f"client rate not found: id {rate_id}")
        return ClientRate.model_validate(row)

    async def create_rate(self, rate: ClientRate) -> ClientRate:
        await self.get_client_by_id(rate.client_id)
        now = utc_timestamp()
        new_id = await self._insert(
            "INSERT INTO client_rates "
            "(client_id, hourly_rate, effective_date, notes, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (rate.client_id, rate.hourly_rate, rate.effective_date, rate.notes, now, now),
        )
        return rate.model_copy(update={"id": new_id, "created_at": now, "updated_at": now})

    async def update_rate(self, rate: ClientRate) -> None:
        current = await self.get_rate_by_id(require_id(rate.id, "rate id"))
        now = utc_timestamp()
        statements: list[Statement] = [(
            "UPDATE client_rates SET hourly_rate = ?, effective_date = ?, notes = ?, updated_at = ? "
            "WHERE id = ?",
            (rate.hourly_rate, rate.effective_date, rate.notes, now, rate.id),
        )]
        if current.effective_date != rate.effective_date:
            client = await self.get_client_by_id(current.client_id)
            statements.append(
                self._tombstone("client_rates", rate_key(client.name, current.effective_date), now)
            )
        await self._execute_batch(statements)

    async def delete_rate(self, rate_id: int) -> None:
        rate = await self.get_rate_by_id(rate_id)
        client = await self.get_client_by_id(rate.client_id)
        await self._execute_batch([
            ("DELETE FROM client_rates WHERE id = ?", (rate_id,)),
            self._tombstone("client_rates", rate_key(client.name, rate.effective_date), utc_timestamp()),
        ])

    async def get_effective_rate(self, client_id: int, date: str) -> ClientRate:
        row = await self._fetch_one(
            f"{RATE_SELECT} WHERE client_id = ? AND effective_date <= ? "
            "ORDER BY effective_date DESC, created_at DESC LIMIT 1",
            (require_id(client_id, "client id"), require_date(date)),
        )
        if row is None:
            raise NotFoundError(f"no rate found for client {client_id} on date {date}")
        return ClientRate.model_validate(row)

    async def get_effective_rate_by_client_name(self, name: str, date: str) -> Decimal:
        try:
            client = await self.get_client_by_name(name)
            rate = await self.get_effective_rate(client.id, date)
        except NotFoundError:
            return Decimal("0.00")
        return rate.hourly_rate

    # =========================================================================
    # Earnings
    # =========================================================================

    async def calculate_earnings(self, year: int) -> EarningsOverview:
        return await self._earnings.for_year(require_year(year))

    async def calculate_earnings_summary(self, year: int) -> EarningsOverview:
        return await self._earnings.summary_for_year(require_year(year))

    async def calculate_earnings_for_month(self, year: int, month: int) -> EarningsOverview:
        if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
            raise StorageValidationError(f"invalid month {month!r}")
        return await self._earnings.for_month(require_year(year), month)

    async def get_client_with_rates(self, client_id: int) -> ClientWithRates:
        client = await self.get_client_by_id(client_id)
        return ClientWithRates(client=client, rates=await self.list_rates(client_id))

    # =========================================================================
    # Liveness
    # =========================================================================

    async def ping(self) -> None:
        try:
            await self._fetch("SELECT 1 AS ok")
        except StoreUnavailableError:
            raise
        except StorageError as e:
            raise StoreUnavailableError(f"{self.name} store did not answer ping: {e}") from e

    # =========================================================================
    # Raw rows - reconciliation engine only
    # =========================================================================

    async def fetch_rows(self, table: str) -> list[dict[str, Any]]:
        """Every row of a synchronized table with id, business columns and timestamps."""
        check_identifiers(table, ())
        columns = ", ".join(("id",) + writable_columns(table))
        return await self._fetch(f"SELECT {columns} FROM {table} ORDER BY id ASC")

    async def insert_row(self, table: str, values: dict[str, Any]) -> int:
        """Insert a row exactly as given, timestamps included."""
        check_identifiers(table, values)
        columns = list(values)
        placeholders = ", ".join("?" for _ in columns)
        return await self._insert(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(values[c] for c in columns),
        )

    async def update_row(self, table: str, row_id: int, values: dict[str, Any]) -> int:
        check_identifiers(table, values)
        require_id(row_id)
        columns = list(values)
        assignments = ", ".join(f"{c} = ?" for c in columns)
        return await self._execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?",
            tuple(values[c] for c in columns) + (row_id,),
        )

    async def delete_row(self, table: str, row_id: int) -> int:
        check_identifiers(table, ())
        return await self._execute(f"DELETE FROM {table} WHERE id = ?", (require_id(row_id),))

    async def fetch_tombstones(self, table: str) -> dict[str, str]:
        """Natural key -> deleted_at for one synchronized table."""
        check_identifiers(table, ())
        rows = await self._fetch(
            f"SELECT natural_key, deleted_at FROM {TOMBSTONE_TABLE} WHERE table_name = ?",
            (table,),
        )
        return {row["natural_key"]: row["deleted_at"] for row in rows}

    async def put_tombstone(self, table: str, key: str, deleted_at: str) -> None:
        check_identifiers(table, ())
        sql, params = self._tombstone(table, key, deleted_at)
        await self._execute(sql, params)
