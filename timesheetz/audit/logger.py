"""
Audit Logger

DESIGN DECISION: Every divergence between the two stores is logged.
This provides:
1. Visibility of partial writes while the remote store is unreachable
2. A trace of what each reconciliation pass changed
3. Debugging capability when the stores disagree

The audit logger:
- Never raises; a broken log sink must not fail a data operation
- Keeps a bounded in-memory history that status views and tests can inspect
- Supports correlation IDs to group the events of one sync pass
"""

import logging
import sys
from collections import deque
from pathlib import Path
from typing import Optional
from uuid import UUID, uuid4

import structlog

from timesheetz.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


# Configure structlog for local logging
structlog.configure(
    processors=[*_PROCESSORS, structlog.processors.JSONRenderer()],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=False,
)


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_file: Optional[Path] = None,
) -> None:
    """
    Route structlog output through the standard library handlers.

    Called once by entry points (the CLI); library code only ever
    asks for loggers.
    """
    handler: logging.Handler
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[*_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str):
    return structlog.get_logger(name)


class AuditLogger:
    """
    Central audit logging service for the data layer and sync engine.

    Logs events both to:
    1. Structured local log (for debugging)
    2. A bounded in-memory history (for status views and tests)
    """

    def __init__(self, max_history: int = 500):
        """
        Initialize audit logger.

        Args:
            max_history: How many recent events to keep in memory.
                    0 disables the history.
        """
        self._logger = structlog.get_logger("timesheetz.audit")
        self.history: deque[AuditEvent] = deque(maxlen=max_history or None)
        self._keep_history = max_history > 0

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        log_dict = event.to_log_dict()

        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except (OSError, ValueError) as e:
            # Log sink broken (closed file, full disk); keep the event in memory
            sys.stderr.write(f"audit logging failed: {e}\n")

        if self._keep_history:
            self.history.append(event)

    def events_of(self, event_type) -> list[AuditEvent]:
        """Recent events of one type, oldest first."""
        return [e for e in self.history if e.event_type == event_type]

    def log_read_divergence(
        self,
        operation: str,
        differences: list[str],
        entity_key: Optional[str] = None,
    ) -> None:
        """Log that local and remote reads disagree."""
        self.log(AuditEventBuilder.read_divergence(operation, differences, entity_key))

    def log_store_read_failed(self, operation: str, store: str, error: BaseException) -> None:
        self.log(AuditEventBuilder.store_read_failed(operation, store, error))

    def log_partial_write(
        self,
        operation: str,
        failed_store: str,
        error: BaseException,
        entity_key: Optional[str] = None,
    ) -> None:
        """Log a write that only one store accepted."""
        self.log(AuditEventBuilder.partial_write(operation, failed_store, error, entity_key))

    def log_write_failed(
        self,
        operation: str,
        local_error: BaseException,
        remote_error: BaseException,
    ) -> None:
        self.log(AuditEventBuilder.write_failed(operation, local_error, remote_error))

    def log_write_divergence(self, operation: str, entity_key: str, differences: list[str]) -> None:
        self.log(AuditEventBuilder.write_divergence(operation, entity_key, differences))

    def log_sync_started(self, direction: str, correlation_id: UUID) -> None:
        self.log(AuditEventBuilder.sync_started(direction, correlation_id))

    def log_sync_completed(self, stats) -> None:
        """Log the totals of a finished SyncStats."""
        self.log(AuditEventBuilder.sync_completed(
            correlation_id=stats.correlation_id,
            direction=stats.direction.value,
            tables_processed=stats.tables_processed,
            pushed=stats.records_pushed,
            pulled=stats.records_pulled,
            deleted=stats.records_deleted,
            errors=list(stats.errors),
            duration_seconds=stats.duration_seconds,
        ))

    def log_table_sync_failed(
        self,
        table: str,
        error: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.table_sync_failed(table, error, correlation_id))

    def log_tombstone_applied(
        self,
        table: str,
        store: str,
        entity_key: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.tombstone_applied(table, store, entity_key, correlation_id))

    def log_store_unavailable(self, store: str, error: BaseException) -> None:
        self.log(AuditEventBuilder.store_unavailable(store, error))

    def log_fallback_to_local(self, requested_mode: str, error: BaseException) -> None:
        self.log(AuditEventBuilder.fallback_to_local(requested_mode, error))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a reconciliation pass and pass it
    to every event the pass emits.
    """
    return uuid4()
