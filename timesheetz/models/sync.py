"""
Reconciliation Models

Results of a reconciliation pass between the local and the remote store.
A pass never raises for a single broken table: the failure is recorded
on that table's TableSyncResult and the remaining tables still run.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SyncDirection(str, Enum):
    """Which phases a reconciliation pass runs."""
    BIDIRECTIONAL = "bidirectional"  # Push, then pull
    PUSH = "push"                    # Local -> remote only (initial migration)
    PULL = "pull"                    # Remote -> local only

    @property
    def pushes(self) -> bool:
        return self in (SyncDirection.BIDIRECTIONAL, SyncDirection.PUSH)

    @property
    def pulls(self) -> bool:
        return self in (SyncDirection.BIDIRECTIONAL, SyncDirection.PULL)


class TableSyncResult(BaseModel):
    """Outcome of reconciling one table."""

    table: str
    pushed: int = Field(default=0, ge=0, description="Records written to the remote store")
    pulled: int = Field(default=0, ge=0, description="Records written to the local store")
    deleted: int = Field(default=0, ge=0, description="Records removed because of a tombstone")
    skipped: int = Field(default=0, ge=0, description="Records held back, e.g. rates without a client")
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None


class SyncStats(BaseModel):
    """
    Statistics of one reconciliation pass.

    tables_processed only counts tables that finished without error.
    Deletions are included in records_pushed/records_pulled and are
    reported separately in records_deleted.
    """

    direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    correlation_id: Optional[UUID] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    tables_processed: int = 0
    records_pushed: int = 0
    records_pulled: int = 0
    records_deleted: int = 0
    errors: list[str] = Field(default_factory=list)
    tables: list[TableSyncResult] = Field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def record_table(self, result: TableSyncResult) -> None:
        """Fold one table's outcome into the pass totals."""
        self.tables.append(result)
        # Work applied before a failure stays applied, so it is counted
        self.records_pushed += result.pushed
        self.records_pulled += result.pulled
        self.records_deleted += result.deleted
        if result.error is not None:
            self.errors.append(f"Error syncing {result.table}: {result.error}")
        else:
            self.tables_processed += 1

    def finish(self) -> None:
        self.finished_at = datetime.utcnow()

    def summary(self) -> str:
        """Human-readable report, one line per fact."""
        lines = [
            f"Sync ({self.direction.value}) finished in {self.duration_seconds:.2f}s",
            f"  Tables processed: {self.tables_processed}",
            f"  Records pushed:   {self.records_pushed}",
            f"  Records pulled:   {self.records_pulled}",
            f"  Records deleted:  {self.records_deleted}",
        ]
        if self.errors:
            lines.append(f"  Errors ({self.error_count}):")
            lines.extend(f"    - {error}" for error in self.errors)
        return "\n".join(lines)
