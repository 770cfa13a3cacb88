"""
Tests for the SQL data layer, run against SQLite.

Both adapters share every query, so these cover the business rules of
the remote store as well.
"""

from decimal import Decimal

import aiosqlite
import pytest

from timesheetz.models import (
    Client,
    ClientRate,
    TimesheetEntry,
    TrainingBudgetEntry,
    VacationCarryover,
)
from timesheetz.storage import (
    DuplicateError,
    NotFoundError,
    SQLiteDataLayer,
    StorageValidationError,
    StoreUnavailableError,
)
from timesheetz.storage.sql import date_range, describe_statement


async def add_client_with_rates(store, name="Acme", rates=()):
    client_id = await store.create_client(Client(name=name))
    for effective_date, amount in rates:
        await store.create_rate(ClientRate(client_id=client_id, hourly_rate=amount, effective_date=effective_date))
    return client_id


class TestHelpers:
    """Tests for SQL helper functions."""

    def test_date_range_year(self):
        assert date_range(2024) == ("2024-01-01", "2024-12-31")

    def test_date_range_leap_february(self):
        assert date_range(2024, 2) == ("2024-02-01", "2024-02-29")

    def test_describe_statement(self):
        assert describe_statement("INSERT INTO clients (name) VALUES (?)") == "insert clients"
        assert describe_statement("SELECT id FROM timesheet WHERE date = ?") == "select timesheet"


class TestTimesheetEntries:
    """Tests for timesheet CRUD."""

    async def test_create_and_read_back(self, local_store):
        created = await local_store.create_entry(
            TimesheetEntry(date="2024-03-04", client_name="Acme", client_hours=8)
        )
        assert created.id is not None
        assert created.created_at == created.updated_at

        by_date = await local_store.get_entry_by_date("2024-03-04")
        by_id = await local_store.get_entry_by_id(created.id)
        assert by_date == by_id
        assert by_date.client_hours == 8

    async def test_duplicate_date(self, local_store):
        await local_store.create_entry(TimesheetEntry(date="2024-03-04"))
        with pytest.raises(DuplicateError):
            await local_store.create_entry(TimesheetEntry(date="2024-03-04"))

    async def test_missing_entry(self, local_store):
        with pytest.raises(NotFoundError):
            await local_store.get_entry_by_date("2024-03-04")

    async def test_update_entry_stamps_updated_at(self, local_store):
        created = await local_store.create_entry(TimesheetEntry(date="2024-03-04", client_hours=8))
        updated = await local_store.update_entry(
            TimesheetEntry(date="2024-03-04", client_hours=6, sick_hours=2)
        )
        assert updated.client_hours == 6
        assert updated.sick_hours == 2
        assert updated.created_at == created.created_at
        assert updated.updated_at >= created.updated_at

    async def test_update_missing_entry(self, local_store):
        with pytest.raises(NotFoundError):
            await local_store.update_entry(TimesheetEntry(date="2024-03-04"))

    async def test_update_entry_fields(self, local_store):
        created = await local_store.create_entry(TimesheetEntry(date="2024-03-04", client_hours=8))
        await local_store.update_entry_fields(created.id, {"client_hours": 4, "holiday_hours": 4})
        entry = await local_store.get_entry_by_id(created.id)
        assert (entry.client_hours, entry.holiday_hours) == (4, 4)

    async def test_update_entry_fields_allow_list(self, local_store):
        created = await local_store.create_entry(TimesheetEntry(date="2024-03-04"))
        with pytest.raises(StorageValidationError, match="field date is not allowed for update"):
            await local_store.update_entry_fields(created.id, {"date": "2024-03-05"})
        with pytest.raises(StorageValidationError, match="no valid fields to update"):
            await local_store.update_entry_fields(created.id, {})

    async def test_list_entries_by_month(self, local_store):
        for date in ("2024-01-31", "2024-02-01", "2024-02-29", "2024-03-01"):
            await local_store.create_entry(TimesheetEntry(date=date))
        february = await local_store.list_entries(2024, 2)
        assert [e.date for e in february] == ["2024-02-01", "2024-02-29"]
        assert len(await local_store.list_entries()) == 4

    async def test_list_entries_rejects_bad_month(self, local_store):
        with pytest.raises(StorageValidationError):
            await local_store.list_entries(2024, 13)

    async def test_delete_is_idempotent(self, local_store):
        await local_store.create_entry(TimesheetEntry(date="2024-03-04"))
        await local_store.delete_entry_by_date("2024-03-04")
        await local_store.delete_entry_by_date("2024-03-04")
        assert await local_store.list_entries(2024) == []

    async def test_delete_records_tombstone(self, local_store):
        created = await local_store.create_entry(TimesheetEntry(date="2024-03-04"))
        await local_store.delete_entry_by_id(created.id)
        tombstones = await local_store.fetch_tombstones("timesheet")
        assert list(tombstones) == ["2024-03-04"]

    async def test_last_client_name(self, local_store):
        assert await local_store.get_last_client_name() == ""
        await local_store.create_entry(TimesheetEntry(date="2024-03-05", client_name="Beta"))
        await local_store.create_entry(TimesheetEntry(date="2024-03-04", client_name="Acme"))
        assert await local_store.get_last_client_name() == "Beta"

    async def test_invalid_date_rejected_before_io(self, local_store):
        with pytest.raises(StorageValidationError, match="expected YYYY-MM-DD"):
            await local_store.get_entry_by_date("04/03/2024")


class TestDerivedViews:
    """Tests for training, vacation and carryover views."""

    async def test_training_and_vacation_views(self, local_store):
        await local_store.create_entry(TimesheetEntry(date="2024-01-10", training_hours=8))
        await local_store.create_entry(TimesheetEntry(date="2024-02-10", training_hours=4))
        await local_store.create_entry(TimesheetEntry(date="2024-03-10", vacation_hours=8))
        await local_store.create_entry(TimesheetEntry(date="2024-04-10", vacation_hours=4))

        training = await local_store.list_training_entries(2024)
        assert [e.date for e in training] == ["2024-02-10", "2024-01-10"]
        vacation = await local_store.list_vacation_entries(2024)
        assert [e.date for e in vacation] == ["2024-03-10", "2024-04-10"]
        assert await local_store.sum_vacation_hours(2024) == 12
        assert await local_store.sum_vacation_hours(2023) == 0

    async def test_carryover_default(self, local_store):
        carryover = await local_store.get_carryover(2024)
        assert carryover.carryover_hours == 0
        assert carryover.source_year == 2023
        assert carryover.id is None

    async def test_carryover_upsert(self, local_store):
        await local_store.set_carryover(VacationCarryover(year=2024, carryover_hours=16, source_year=2023))
        updated = await local_store.set_carryover(
            VacationCarryover(year=2024, carryover_hours=24, source_year=2023, notes="corrected")
        )
        assert updated.carryover_hours == 24
        assert updated.notes == "corrected"

    async def test_vacation_summary(self, tmp_path):
        store = await SQLiteDataLayer(tmp_path / "v.db", vacation_yearly_target=200).connect()
        try:
            await store.set_carryover(VacationCarryover(year=2024, carryover_hours=16, source_year=2023))
            await store.create_entry(TimesheetEntry(date="2024-03-10", vacation_hours=24))
            summary = await store.get_vacation_summary(2024)
        finally:
            await store.close()
        assert summary.total_available == 216
        assert summary.used_from_carryover == 16
        assert summary.remaining_total == 192


class TestTrainingBudget:
    """Tests for training budget entries."""

    async def test_crud(self, local_store):
        created = await local_store.create_budget_entry(
            TrainingBudgetEntry(date="2024-05-01", training_name="Go course", hours=16, cost_without_vat="499.50")
        )
        assert (await local_store.get_budget_entry(created.id)).cost_without_vat == Decimal("499.50")
        assert (await local_store.get_budget_entry_by_date("2024-05-01")).id == created.id

        updated = await local_store.update_budget_entry(created.model_copy(update={"hours": 20}))
        assert updated.hours == 20
        assert len(await local_store.list_budget_entries(2024)) == 1

        await local_store.delete_budget_entry(created.id)
        assert await local_store.list_budget_entries(2024) == []

    async def test_rename_tombstones_old_key(self, local_store):
        created = await local_store.create_budget_entry(
            TrainingBudgetEntry(date="2024-05-01", training_name="Go course")
        )
        await local_store.update_budget_entry(created.model_copy(update={"training_name": "Rust course"}))
        assert "2024-05-01|Go course" in await local_store.fetch_tombstones("training_budget")


class TestClientsAndRates:
    """Tests for clients and their rate history."""

    async def test_client_crud(self, local_store):
        client_id = await local_store.create_client(Client(name="Acme"))
        await local_store.create_client(Client(name="Beta"))
        await local_store.deactivate_client(client_id)
        assert [c.name for c in await local_store.list_active_clients()] == ["Beta"]
        assert [c.name for c in await local_store.list_clients()] == ["Acme", "Beta"]

    async def test_duplicate_client(self, local_store):
        await local_store.create_client(Client(name="Acme"))
        with pytest.raises(DuplicateError):
            await local_store.create_client(Client(name="Acme"))

    async def test_update_and_delete_missing_client(self, local_store):
        with pytest.raises(NotFoundError):
            await local_store.update_client(Client(id=99, name="Ghost"))
        with pytest.raises(NotFoundError):
            await local_store.delete_client(99)

    async def test_delete_client_removes_rates(self, local_store):
        client_id = await add_client_with_rates(local_store, rates=[("2024-01-01", 50)])
        await local_store.delete_client(client_id)
        tombstones = await local_store.fetch_tombstones("client_rates")
        assert "Acme|2024-01-01" in tombstones
        assert await local_store.fetch_rows("client_rates") == []

    async def test_rename_client_tombstones_rate_keys(self, local_store):
        client_id = await add_client_with_rates(local_store, rates=[("2024-01-01", 50)])
        await local_store.update_client(Client(id=client_id, name="Acme BV"))
        assert "Acme" in await local_store.fetch_tombstones("clients")
        assert "Acme|2024-01-01" in await local_store.fetch_tombstones("client_rates")
        assert (await local_store.get_client_by_id(client_id)).name == "Acme BV"

    async def test_rate_for_unknown_client(self, local_store):
        with pytest.raises(NotFoundError):
            await local_store.create_rate(ClientRate(client_id=42, hourly_rate=50, effective_date="2024-01-01"))

    async def test_update_and_delete_rate(self, local_store):
        client_id = await add_client_with_rates(local_store, rates=[("2024-01-01", 50)])
        rate = (await local_store.list_rates(client_id))[0]
        await local_store.update_rate(rate.model_copy(update={"hourly_rate": Decimal("55.00")}))
        assert (await local_store.get_rate_by_id(rate.id)).hourly_rate == Decimal("55.00")
        await local_store.delete_rate(rate.id)
        with pytest.raises(NotFoundError):
            await local_store.get_rate_by_id(rate.id)

    async def test_client_with_rates(self, local_store):
        client_id = await add_client_with_rates(
            local_store, rates=[("2024-01-01", 50), ("2024-06-01", 60)]
        )
        result = await local_store.get_client_with_rates(client_id)
        assert result.client.name == "Acme"
        assert [r.effective_date for r in result.rates] == ["2024-06-01", "2024-01-01"]


class TestRateEffectivity:
    """Tests for picking the rate in force on a date."""

    @pytest.fixture
    async def client_id(self, local_store):
        return await add_client_with_rates(
            local_store,
            rates=[("2024-01-01", 50), ("2024-06-01", 60), ("2024-12-01", 70)],
        )

    async def test_rate_between_changes(self, local_store, client_id):
        rate = await local_store.get_effective_rate(client_id, "2024-08-01")
        assert rate.hourly_rate == Decimal("60.00")

    async def test_rate_on_boundary(self, local_store, client_id):
        rate = await local_store.get_effective_rate(client_id, "2024-06-01")
        assert rate.hourly_rate == Decimal("60.00")

    async def test_no_rate_before_first(self, local_store, client_id):
        with pytest.raises(NotFoundError):
            await local_store.get_effective_rate(client_id, "2023-12-31")

    async def test_rate_by_name_defaults_to_zero(self, local_store, client_id):
        assert await local_store.get_effective_rate_by_client_name("Acme", "2023-12-31") == Decimal("0.00")
        assert await local_store.get_effective_rate_by_client_name("Nobody", "2024-08-01") == Decimal("0.00")
        assert await local_store.get_effective_rate_by_client_name("Acme", "2024-12-24") == Decimal("70.00")


class TestEarnings:
    """Tests for earnings computed from hours and rates."""

    @pytest.fixture
    async def booked(self, local_store):
        await add_client_with_rates(local_store, rates=[("2024-01-01", 100)])
        for date, hours in (("2024-01-15", 8), ("2024-02-15", 10), ("2024-03-15", 5)):
            await local_store.create_entry(TimesheetEntry(date=date, client_name="Acme", client_hours=hours))
        await local_store.create_entry(TimesheetEntry(date="2024-03-16", vacation_hours=8))
        return local_store

    async def test_yearly_earnings(self, booked):
        overview = await booked.calculate_earnings(2024)
        assert overview.total_hours == 23
        assert overview.total_earnings == Decimal("2300.00")
        assert len(overview.entries) == 3
        assert all(e.hourly_rate == Decimal("100.00") for e in overview.entries)

    async def test_monthly_earnings(self, booked):
        overview = await booked.calculate_earnings_for_month(2024, 2)
        assert overview.month == 2
        assert overview.total_hours == 10
        assert overview.total_earnings == Decimal("1000.00")

    async def test_summary_groups_by_rate(self, booked):
        client = await booked.get_client_by_name("Acme")
        await booked.create_rate(ClientRate(client_id=client.id, hourly_rate=120, effective_date="2024-03-01"))
        summary = await booked.calculate_earnings_summary(2024)
        assert [(e.client_name, e.hourly_rate, e.client_hours) for e in summary.entries] == [
            ("Acme", Decimal("100.00"), 18),
            ("Acme", Decimal("120.00"), 5),
        ]
        assert summary.total_earnings == Decimal("2400.00")


class TestLifecycle:
    """Tests for connecting, schema upgrades and ping."""

    async def test_ping(self, local_store):
        await local_store.ping()

    async def test_not_connected(self, offline_store):
        with pytest.raises(StoreUnavailableError):
            await offline_store.list_clients()
        with pytest.raises(StoreUnavailableError):
            await offline_store.ping()

    async def test_reopen_keeps_data(self, tmp_path):
        store = await SQLiteDataLayer(tmp_path / "ts.db").connect()
        await store.create_client(Client(name="Acme"))
        await store.close()

        async with await SQLiteDataLayer(tmp_path / "ts.db").connect() as reopened:
            assert [c.name for c in await reopened.list_clients()] == ["Acme"]

    async def test_legacy_table_gets_timestamps(self, tmp_path):
        path = tmp_path / "legacy.db"
        async with aiosqlite.connect(path) as conn:
            await conn.execute("CREATE TABLE clients (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL UNIQUE, is_active INTEGER NOT NULL DEFAULT 1)")
            await conn.execute("INSERT INTO clients (name) VALUES ('Old client')")
            await conn.commit()

        async with await SQLiteDataLayer(path).connect() as store:
            rows = await store.fetch_rows("clients")
        assert rows[0]["created_at"] != ""
        assert rows[0]["updated_at"] == rows[0]["created_at"]

    async def test_raw_api_rejects_unknown_columns(self, local_store):
        with pytest.raises(StorageValidationError, match="unknown column"):
            await local_store.insert_row("clients", {"name": "x", "secret": 1})
        with pytest.raises(StorageValidationError, match="unknown table"):
            await local_store.fetch_rows("users")
