"""
Tests for the PostgreSQL adapter that need no server.

Query behaviour is shared with SQLite and covered in test_storage.py.
"""

from decimal import Decimal

import asyncpg
import pytest

from timesheetz.storage import (
    DuplicateError,
    PostgresDataLayer,
    StorageError,
    StoreUnavailableError,
)
from timesheetz.storage.remote import parse_row_count, to_numbered


class TestPlaceholders:
    """Tests for "?" to "$n" rewriting."""

    def test_numbers_in_order(self):
        sql = "UPDATE timesheet SET client_hours = ?, updated_at = ? WHERE id = ?"
        assert to_numbered(sql) == "UPDATE timesheet SET client_hours = $1, updated_at = $2 WHERE id = $3"

    def test_no_placeholders(self):
        assert to_numbered("SELECT 1 AS ok") == "SELECT 1 AS ok"


class TestRowCounts:
    """Tests for command status parsing."""

    @pytest.mark.parametrize("status,expected", [
        ("UPDATE 3", 3),
        ("INSERT 0 1", 1),
        ("DELETE 0", 0),
        ("CREATE TABLE", 0),
        ("", 0),
    ])
    def test_parse_row_count(self, status, expected):
        assert parse_row_count(status) == expected


class TestErrorMapping:
    """Tests for translating driver errors."""

    def setup_method(self):
        self.store = PostgresDataLayer("postgresql://u:p@localhost/ts")

    def test_unique_violation(self):
        error = self.store._translate(
            asyncpg.UniqueViolationError("duplicate key"), "INSERT INTO clients (name) VALUES (?)"
        )
        assert isinstance(error, DuplicateError)
        assert str(error).startswith("remote store: insert clients")

    def test_connection_lost(self):
        error = self.store._translate(ConnectionResetError("reset"), "SELECT 1 AS ok")
        assert isinstance(error, StoreUnavailableError)

    def test_other_errors(self):
        error = self.store._translate(asyncpg.PostgresError("boom"), "DELETE FROM timesheet WHERE id = ?")
        assert type(error) is StorageError
        assert "delete timesheet" in str(error)

    def test_adapt_params(self):
        assert PostgresDataLayer._adapt_params([True, 1.5, "x", Decimal("2.00")]) == (
            1, Decimal("1.5"), "x", Decimal("2.00"),
        )


class TestConnection:
    """Tests for connecting without a reachable server."""

    async def test_not_connected(self):
        store = PostgresDataLayer("postgresql://u:p@localhost/ts")
        with pytest.raises(StoreUnavailableError, match="not connected"):
            await store.list_clients()

    async def test_unreachable_server(self):
        store = PostgresDataLayer("postgresql://u:p@127.0.0.1:1/ts", connect_attempts=1, command_timeout=2)
        with pytest.raises(StoreUnavailableError, match="cannot connect"):
            await store.connect()

    async def test_close_without_connect(self):
        await PostgresDataLayer("postgresql://u:p@localhost/ts").close()
