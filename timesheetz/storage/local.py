"""
SQLite Data Layer

The local store: one SQLite file opened through aiosqlite.

DESIGN DECISION: A single connection is shared by all callers and every
statement runs under an asyncio.Lock. SQLite allows one writer at a time
anyway, and the lock keeps a multi-statement transaction from being
committed halfway by an unrelated call.
"""

import asyncio
import sqlite3
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import aiosqlite
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from timesheetz.audit import get_logger
from timesheetz.storage.interface import (
    DuplicateError,
    StorageError,
    StoreUnavailableError,
)
from timesheetz.storage.schema import SQLITE_SCHEMA
from timesheetz.storage.sql import SQLDataLayer, Statement, describe_statement


logger = get_logger(__name__)

MEMORY = ":memory:"


class SQLiteDataLayer(SQLDataLayer):
    """
    DataLayer backed by a local SQLite database file.

    Usage:
        store = await SQLiteDataLayer(path).connect()
        entries = await store.list_entries(2024)
        await store.close()
    """

    name = "local"
    SCHEMA = SQLITE_SCHEMA

    def __init__(
        self,
        path: Union[str, Path],
        vacation_yearly_target: int = 0,
        connect_attempts: int = 3,
    ):
        super().__init__(vacation_yearly_target=vacation_yearly_target)
        self._path = str(path)
        self._connect_attempts = connect_attempts
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._path

    async def connect(self) -> "SQLiteDataLayer":
        """
        Open the database file (creating it and its tables if needed).

        Raises:
            StoreUnavailableError: If the file cannot be opened
        """
        if self._conn is not None:
            return self

        opener = retry(
            stop=stop_after_attempt(self._connect_attempts),
            wait=wait_exponential(multiplier=0.1, max=1),
            retry=retry_if_exception_type(sqlite3.OperationalError),
            reraise=True,
        )(self._open)
        try:
            self._conn = await opener()
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailableError(f"local store: cannot open {self._path}: {e}") from e

        await self.initialize()
        logger.info("store_connected", store=self.name, path=self._path)
        return self

    async def _open(self) -> aiosqlite.Connection:
        if self._path != MEMORY:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(self._path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")
        await conn.execute("PRAGMA synchronous = NORMAL")
        await conn.execute("PRAGMA busy_timeout = 5000")
        return conn

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()
        logger.info("store_closed", store=self.name)

    # =========================================================================
    # Backend hooks
    # =========================================================================

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreUnavailableError("local store is not connected")
        return self._conn

    async def _fetch(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        conn = self._connection()
        async with self._lock:
            try:
                async with conn.execute(sql, self._adapt_params(params)) as cursor:
                    rows = await cursor.fetchall()
            except sqlite3.Error as e:
                raise self._translate(e, sql) from e
        return [dict(row) for row in rows]

    async def _execute(self, sql: str, params: tuple = ()) -> int:
        return (await self._execute_batch([(sql, params)]))[0]

    async def _insert(self, sql: str, params: tuple = ()) -> int:
        conn = self._connection()
        async with self._lock:
            try:
                cursor = await conn.execute(sql, self._adapt_params(params))
                new_id = cursor.lastrowid
                await cursor.close()
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                raise self._translate(e, sql) from e
        return new_id

    async def _execute_batch(self, statements: list[Statement]) -> list[int]:
        conn = self._connection()
        counts: list[int] = []
        async with self._lock:
            current = ""
            try:
                for sql, params in statements:
                    current = sql
                    cursor = await conn.execute(sql, self._adapt_params(params))
                    counts.append(cursor.rowcount)
                    await cursor.close()
                await conn.commit()
            except sqlite3.Error as e:
                await conn.rollback()
                raise self._translate(e, current) from e
        return counts

    async def _table_columns(self, table: str) -> set[str]:
        rows = await self._fetch(f"PRAGMA table_info({table})")
        return {row["name"] for row in rows}

    @staticmethod
    def _adapt_params(params: Iterable[Any]) -> tuple:
        """sqlite3 has no Decimal or bool adapters; store them as REAL and INTEGER."""
        adapted = []
        for p in params:
            if isinstance(p, bool):
                p = int(p)
            elif isinstance(p, Decimal):
                p = float(p)
            adapted.append(p)
        return tuple(adapted)

    def _translate(self, error: sqlite3.Error, sql: str) -> StorageError:
        context = f"{self.name} store: {describe_statement(sql)}"
        message = str(error)
        if isinstance(error, sqlite3.IntegrityError) and "UNIQUE" in message.upper():
            return DuplicateError(f"{context}: {message}")
        if isinstance(error, sqlite3.OperationalError) and (
            "unable to open" in message or "locked" in message or "disk I/O" in message
        ):
            return StoreUnavailableError(f"{context}: {message}")
        return StorageError(f"{context}: {message}")
