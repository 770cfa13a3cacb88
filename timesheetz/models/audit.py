"""
Audit Models for timesheetz

Everything that makes the two stores disagree is recorded as an audit event:
- reads that returned different data from each store
- writes that only one store accepted
- reconciliation passes and the tables they failed on

DESIGN DECISION: Divergence is an observation, not an error. These events
are logged at warning level and never change the result a caller gets.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Dual mode reads
    READ_DIVERGENCE = "read_divergence"
    STORE_READ_FAILED = "store_read_failed"

    # Dual mode writes
    PARTIAL_WRITE = "partial_write"
    WRITE_FAILED = "write_failed"
    WRITE_DIVERGENCE = "write_divergence"

    # Reconciliation
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    TABLE_SYNC_FAILED = "table_sync_failed"
    TOMBSTONE_APPLIED = "tombstone_applied"

    # Store lifecycle
    STORE_UNAVAILABLE = "store_unavailable"
    FALLBACK_TO_LOCAL = "fallback_to_local"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every divergence, partial failure and sync pass creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which operation and record is this about?
    operation: Optional[str] = Field(
        default=None,
        description="Data layer operation or sync table"
    )
    store: Optional[str] = Field(
        default=None,
        description="'local', 'remote' or None when both are involved"
    )
    entity_key: Optional[str] = Field(
        default=None,
        description="Natural key of the record, when known"
    )

    # Correlation - all events of one sync pass share an id
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "operation": self.operation,
            "store": self.store,
            "entity_key": self.entity_key,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.partial_write("create_entry", "remote", err)
        event = AuditEventBuilder.sync_started("push", correlation_id)
    """

    @staticmethod
    def read_divergence(
        operation: str,
        differences: list[str],
        entity_key: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.READ_DIVERGENCE,
            severity=AuditSeverity.WARNING,
            operation=operation,
            entity_key=entity_key,
            description=f"{operation}: local and remote results differ",
            details={"differences": differences[:50]},
        )

    @staticmethod
    def store_read_failed(
        operation: str,
        store: str,
        error: BaseException,
    ) -> AuditEvent:
        fallback = "remote" if store == "local" else "local"
        return AuditEvent(
            event_type=AuditEventType.STORE_READ_FAILED,
            severity=AuditSeverity.WARNING,
            operation=operation,
            store=store,
            description=f"{operation}: {store} read failed, using {fallback}",
            error_message=str(error),
        )

    @staticmethod
    def partial_write(
        operation: str,
        failed_store: str,
        error: BaseException,
        entity_key: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTIAL_WRITE,
            severity=AuditSeverity.WARNING,
            operation=operation,
            store=failed_store,
            entity_key=entity_key,
            description=f"{operation}: {failed_store} write failed, stores diverge until next sync",
            error_message=str(error),
        )

    @staticmethod
    def write_failed(
        operation: str,
        local_error: BaseException,
        remote_error: BaseException,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            operation=operation,
            description=f"{operation}: both stores rejected the write",
            details={"local_error": str(local_error), "remote_error": str(remote_error)},
        )

    @staticmethod
    def write_divergence(
        operation: str,
        entity_key: str,
        differences: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_DIVERGENCE,
            severity=AuditSeverity.WARNING,
            operation=operation,
            entity_key=entity_key,
            description=f"{operation}: stores differ after write",
            details={"differences": differences},
        )

    @staticmethod
    def sync_started(direction: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            correlation_id=correlation_id,
            description=f"Reconciliation pass started ({direction})",
            details={"direction": direction},
        )

    @staticmethod
    def sync_completed(
        correlation_id: Optional[UUID],
        direction: str,
        tables_processed: int,
        pushed: int,
        pulled: int,
        deleted: int,
        errors: list[str],
        duration_seconds: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            severity=AuditSeverity.WARNING if errors else AuditSeverity.INFO,
            correlation_id=correlation_id,
            description=(
                f"Reconciliation pass finished: {pushed} pushed, "
                f"{pulled} pulled, {len(errors)} errors"
            ),
            details={
                "direction": direction,
                "tables_processed": tables_processed,
                "records_pushed": pushed,
                "records_pulled": pulled,
                "records_deleted": deleted,
                "errors": errors,
                "duration_seconds": round(duration_seconds, 3),
            },
        )

    @staticmethod
    def table_sync_failed(
        table: str,
        error: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TABLE_SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            operation=table,
            correlation_id=correlation_id,
            description=f"Error syncing {table}",
            error_message=error,
        )

    @staticmethod
    def tombstone_applied(
        table: str,
        store: str,
        entity_key: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOMBSTONE_APPLIED,
            operation=table,
            store=store,
            entity_key=entity_key,
            correlation_id=correlation_id,
            description=f"Deleted {table} record {entity_key} from {store} store",
        )

    @staticmethod
    def store_unavailable(store: str, error: BaseException) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_UNAVAILABLE,
            severity=AuditSeverity.ERROR,
            store=store,
            description=f"The {store} store could not be reached",
            error_message=str(error),
        )

    @staticmethod
    def fallback_to_local(requested_mode: str, error: BaseException) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FALLBACK_TO_LOCAL,
            severity=AuditSeverity.WARNING,
            store="remote",
            description=f"Data mode '{requested_mode}' unavailable, falling back to local",
            error_message=str(error),
        )
