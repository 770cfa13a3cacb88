"""
Reconciliation Engine

DESIGN DECISION: The two stores are reconciled table by table with
last-writer-wins on updated_at. For each table:
1. Snapshot the rows and tombstones of both stores
2. Match rows across stores by natural key (see identity.py)
3. Push phase (local -> remote), then pull phase (remote -> local):
   a. apply the source's tombstones to older target rows
   b. insert rows the target lacks, timestamps unchanged
   c. overwrite target rows whose updated_at is strictly older

Equal timestamps are left alone, so a pass over converged stores writes
nothing. A failing or slow table is recorded in the pass statistics and
the remaining tables still run; it is retried on the next pass.

Only one pass runs at a time. The background loop and run_sync_once()
share one asyncio.Lock; business CRUD does not take it.
"""

import asyncio
import time
from datetime import datetime
from typing import Optional

from timesheetz.audit import AuditLogger, create_correlation_id, get_logger
from timesheetz.models.sync import SyncDirection, SyncStats, TableSyncResult
from timesheetz.storage.interface import StorageError
from timesheetz.storage.sql import SQLDataLayer
from timesheetz.sync.identity import IdentityResolver, Row
from timesheetz.sync.tables import SYNC_TABLES, SyncTable


logger = get_logger(__name__)

LOCAL = "local"
REMOTE = "remote"


class ReconciliationError(StorageError):
    """A reconciliation pass that had to succeed did not."""

    def __init__(self, message: str, stats: Optional[SyncStats] = None):
        super().__init__(message)
        self.stats = stats


class _TableSnapshot:
    """Rows and tombstones of one table on both sides, kept current during a pass."""

    def __init__(self, table: SyncTable, resolver: IdentityResolver):
        self.table = table
        self.resolver = resolver
        self.rows: dict[str, dict[str, Row]] = {}
        self.tombstones: dict[str, dict[str, str]] = {}
        self.orphans: dict[str, int] = {}

    def load(self, side: str, rows: list[Row], tombstones: dict[str, str]) -> None:
        self.rows[side] = self.resolver.index(self.table, side, rows)
        self.tombstones[side] = dict(tombstones)
        self.orphans[side] = len(rows) - len(self.rows[side])


class SyncService:
    """
    Keeps the local and the remote store converged.

    Usage:
        service = SyncService(local, remote)
        stats = await service.run_sync_once()
        service.start_background_sync(60)
        ...
        await service.stop_background_sync()
    """

    def __init__(
        self,
        local: SQLDataLayer,
        remote: SQLDataLayer,
        audit: Optional[AuditLogger] = None,
        table_timeout: float = 120.0,
        tables: tuple[SyncTable, ...] = SYNC_TABLES,
    ):
        self._stores: dict[str, SQLDataLayer] = {LOCAL: local, REMOTE: remote}
        self._audit = audit or AuditLogger()
        self._table_timeout = table_timeout
        self._tables = tables
        self._lock = asyncio.Lock()
        self._stop: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._last_stats: Optional[SyncStats] = None

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def is_running(self) -> bool:
        """True while the background loop is active."""
        return self._task is not None and not self._task.done()

    @property
    def last_sync_time(self) -> Optional[datetime]:
        if self._last_stats is None:
            return None
        return self._last_stats.finished_at

    def get_last_sync_stats(self) -> Optional[SyncStats]:
        return self._last_stats

    # =========================================================================
    # On-demand passes
    # =========================================================================

    async def run_sync_once(
        self,
        direction: SyncDirection = SyncDirection.BIDIRECTIONAL,
    ) -> SyncStats:
        """
        Run one reconciliation pass, waiting for any pass already in progress.

        Table failures do not raise; they are listed in the returned stats.
        """
        async with self._lock:
            return await self._run_pass(direction)

    async def initial_migration(self) -> SyncStats:
        """
        Copy everything the local store has to an empty or stale remote store.

        Raises:
            ReconciliationError: If any table failed to push
        """
        stats = await self.run_sync_once(SyncDirection.PUSH)
        if stats.errors:
            raise ReconciliationError(
                f"initial migration failed: {'; '.join(stats.errors)}", stats
            )
        return stats

    # =========================================================================
    # Background loop
    # =========================================================================

    def start_background_sync(self, interval: float) -> None:
        """
        Run one pass now and then one every `interval` seconds.

        Must be called from a running event loop. Calling it while the
        loop is already active does nothing.
        """
        if interval <= 0:
            raise ValueError(f"sync interval must be positive, got {interval}")
        if self.is_running:
            logger.warning("background_sync_already_running")
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._loop(interval, self._stop))
        logger.info("background_sync_started", interval_seconds=interval)

    async def stop_background_sync(self) -> None:
        """Stop the background loop; a pass in progress is allowed to finish."""
        if self._task is None:
            return
        async with self._lock:
            self._stop.set()
        task, self._task = self._task, None
        await task
        logger.info("background_sync_stopped")

    async def _loop(self, interval: float, stop: asyncio.Event) -> None:
        while not stop.is_set():
            async with self._lock:
                if stop.is_set():
                    break
                try:
                    await self._run_pass(SyncDirection.BIDIRECTIONAL)
                except Exception:
                    # The loop outlives any single pass
                    logger.exception("background_sync_pass_failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    # =========================================================================
    # Pass
    # =========================================================================

    async def _run_pass(self, direction: SyncDirection) -> SyncStats:
        stats = SyncStats(direction=direction, correlation_id=create_correlation_id())
        self._audit.log_sync_started(direction.value, stats.correlation_id)

        for table in self._tables:
            result = TableSyncResult(table=table.name)
            started = time.monotonic()
            try:
                await asyncio.wait_for(
                    self._sync_table(table, direction, result, stats),
                    timeout=self._table_timeout,
                )
            except asyncio.TimeoutError:
                result.error = f"timed out after {self._table_timeout:g}s"
            except Exception as e:
                # Table isolation boundary: record and move on
                result.error = str(e) or type(e).__name__
            result.duration_seconds = time.monotonic() - started

            if result.error is not None:
                self._audit.log_table_sync_failed(table.name, result.error, stats.correlation_id)
            else:
                logger.debug(
                    "table_synced",
                    table=table.name,
                    pushed=result.pushed,
                    pulled=result.pulled,
                    deleted=result.deleted,
                    skipped=result.skipped,
                )
            stats.record_table(result)

        stats.finish()
        self._last_stats = stats
        self._audit.log_sync_completed(stats)
        return stats

    async def _sync_table(
        self,
        table: SyncTable,
        direction: SyncDirection,
        result: TableSyncResult,
        stats: SyncStats,
    ) -> None:
        resolver = IdentityResolver()
        if table.client_ref or table.name == "clients":
            for side, store in self._stores.items():
                resolver.load_clients(side, await store.fetch_rows("clients"))

        snapshot = _TableSnapshot(table, resolver)
        for side, store in self._stores.items():
            snapshot.load(
                side,
                await store.fetch_rows(table.name),
                await store.fetch_tombstones(table.name),
            )

        if direction.pushes:
            await self._copy(snapshot, LOCAL, REMOTE, result, stats)
        if direction.pulls:
            await self._copy(snapshot, REMOTE, LOCAL, result, stats)

    async def _copy(
        self,
        snapshot: _TableSnapshot,
        source: str,
        target: str,
        result: TableSyncResult,
        stats: SyncStats,
    ) -> None:
        """One phase: make `target` reflect every newer change of `source`."""
        table = snapshot.table
        store = self._stores[target]
        target_rows = snapshot.rows[target]
        target_tombstones = snapshot.tombstones[target]

        source_rows = snapshot.rows[source]
        for key, deleted_at in sorted(snapshot.tombstones[source].items()):
            row = target_rows.get(key)
            live = source_rows.get(key)
            # A key re-occupied on the source after its deletion is updated, not deleted
            reoccupied = live is not None and live["updated_at"] > deleted_at
            if row is not None and not reoccupied and deleted_at >= row["updated_at"]:
                await store.delete_row(table.name, row["id"])
                del target_rows[key]
                if table.name == "clients":
                    snapshot.resolver.forget_client(target, key)
                result.deleted += 1
                self._count_write(result, target)
                self._audit.log_tombstone_applied(table.name, target, key, stats.correlation_id)
            if deleted_at > target_tombstones.get(key, ""):
                await store.put_tombstone(table.name, key, deleted_at)
                target_tombstones[key] = deleted_at

        result.skipped += snapshot.orphans[source]
        for key, row in snapshot.rows[source].items():
            existing = target_rows.get(key)
            if existing is not None and row["updated_at"] <= existing["updated_at"]:
                continue
            if existing is None and target_tombstones.get(key, "") >= row["updated_at"]:
                # Deleted on the target after this version was written
                result.skipped += 1
                continue

            values = snapshot.resolver.translate(table, row, source, target)
            if values is None:
                result.skipped += 1
                continue

            if existing is None:
                new_id = await store.insert_row(table.name, values)
                target_rows[key] = {**values, "id": new_id}
                if table.name == "clients":
                    snapshot.resolver.remember_client(target, key, new_id)
            else:
                values.pop("created_at")
                await store.update_row(table.name, existing["id"], values)
                target_rows[key] = {**existing, **values}
            self._count_write(result, target)

    @staticmethod
    def _count_write(result: TableSyncResult, target: str) -> None:
        if target == REMOTE:
            result.pushed += 1
        else:
            result.pulled += 1
