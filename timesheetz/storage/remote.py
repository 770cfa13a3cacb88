"""
PostgreSQL Data Layer

The remote store, reached through an asyncpg connection pool.

Queries are shared with the local store and written with "?" placeholders;
they are rewritten to asyncpg's numbered "$n" form just before execution.
"""

import asyncio
import itertools
import re
from decimal import Decimal
from typing import Any, Iterable, Optional

import asyncpg
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from timesheetz.audit import get_logger
from timesheetz.storage.interface import (
    DuplicateError,
    StorageError,
    StoreUnavailableError,
)
from timesheetz.storage.schema import POSTGRES_SCHEMA
from timesheetz.storage.sql import SQLDataLayer, Statement, describe_statement


logger = get_logger(__name__)

_PLACEHOLDER = re.compile(r"\?")

# Errors that mean "the server is not there", as opposed to a bad statement
CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.InterfaceError,
    asyncpg.PostgresConnectionError,
    asyncpg.CannotConnectNowError,
)


def to_numbered(sql: str) -> str:
    """Rewrite "?" placeholders as $1, $2, ... in order of appearance."""
    counter = itertools.count(1)
    return _PLACEHOLDER.sub(lambda _: f"${next(counter)}", sql)


def parse_row_count(status: str) -> int:
    """Affected rows from a command status such as 'UPDATE 3' or 'INSERT 0 1'."""
    parts = status.split() if status else []
    if parts and parts[-1].isdigit():
        return int(parts[-1])
    return 0


class PostgresDataLayer(SQLDataLayer):
    """
    DataLayer backed by a PostgreSQL database.

    Usage:
        store = await PostgresDataLayer(dsn).connect()
        clients = await store.list_clients()
        await store.close()
    """

    name = "remote"
    SCHEMA = POSTGRES_SCHEMA

    def __init__(
        self,
        dsn: str,
        vacation_yearly_target: int = 0,
        min_size: int = 1,
        max_size: int = 5,
        command_timeout: float = 30.0,
        connect_attempts: int = 3,
    ):
        super().__init__(vacation_yearly_target=vacation_yearly_target)
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._command_timeout = command_timeout
        self._connect_attempts = connect_attempts
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> "PostgresDataLayer":
        """
        Create the connection pool and the tables.

        Connecting is retried with exponential backoff.

        Raises:
            StoreUnavailableError: If the server stays unreachable
        """
        if self._pool is not None:
            return self

        opener = retry(
            stop=stop_after_attempt(self._connect_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(CONNECTION_ERRORS),
            reraise=True,
        )(self._create_pool)
        try:
            self._pool = await opener()
        except CONNECTION_ERRORS as e:
            raise StoreUnavailableError(f"remote store: cannot connect: {e}") from e
        except asyncpg.PostgresError as e:
            raise StoreUnavailableError(f"remote store: connection rejected: {e}") from e

        await self.initialize()
        logger.info("store_connected", store=self.name)
        return self

    async def _create_pool(self) -> asyncpg.Pool:
        return await asyncpg.create_pool(
            self._dsn,
            min_size=self._min_size,
            max_size=self._max_size,
            command_timeout=self._command_timeout,
        )

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info("store_closed", store=self.name)

    # =========================================================================
    # Backend hooks
    # =========================================================================

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise StoreUnavailableError("remote store is not connected")
        return self._pool

    async def _fetch(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        pool = self._require_pool()
        try:
            records = await pool.fetch(to_numbered(sql), *self._adapt_params(params))
        except (asyncpg.PostgresError, *CONNECTION_ERRORS) as e:
            raise self._translate(e, sql) from e
        return [dict(record) for record in records]

    async def _execute(self, sql: str, params: tuple = ()) -> int:
        pool = self._require_pool()
        try:
            status = await pool.execute(to_numbered(sql), *self._adapt_params(params))
        except (asyncpg.PostgresError, *CONNECTION_ERRORS) as e:
            raise self._translate(e, sql) from e
        return parse_row_count(status)

    async def _insert(self, sql: str, params: tuple = ()) -> int:
        pool = self._require_pool()
        try:
            return await pool.fetchval(
                to_numbered(f"{sql} RETURNING id"), *self._adapt_params(params)
            )
        except (asyncpg.PostgresError, *CONNECTION_ERRORS) as e:
            raise self._translate(e, sql) from e

    async def _execute_batch(self, statements: list[Statement]) -> list[int]:
        pool = self._require_pool()
        counts: list[int] = []
        current = ""
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    for sql, params in statements:
                        current = sql
                        status = await conn.execute(to_numbered(sql), *self._adapt_params(params))
                        counts.append(parse_row_count(status))
        except (asyncpg.PostgresError, *CONNECTION_ERRORS) as e:
            raise self._translate(e, current) from e
        return counts

    async def _table_columns(self, table: str) -> set[str]:
        rows = await self._fetch(
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema = current_schema() AND table_name = ?",
            (table,),
        )
        return {row["column_name"] for row in rows}

    @staticmethod
    def _adapt_params(params: Iterable[Any]) -> tuple:
        """asyncpg is strict about types: bools become INTEGER, floats become NUMERIC."""
        adapted = []
        for p in params:
            if isinstance(p, bool):
                p = int(p)
            elif isinstance(p, float):
                p = Decimal(repr(p))
            adapted.append(p)
        return tuple(adapted)

    def _translate(self, error: BaseException, sql: str) -> StorageError:
        context = f"{self.name} store: {describe_statement(sql)}"
        if isinstance(error, asyncpg.UniqueViolationError):
            return DuplicateError(f"{context}: {error}")
        if isinstance(error, CONNECTION_ERRORS):
            return StoreUnavailableError(f"{context}: {error}")
        return StorageError(f"{context}: {error}")
