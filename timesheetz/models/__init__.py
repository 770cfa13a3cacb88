"""
Data Models Package

This package contains all Pydantic models used by timesheetz.
Both stores read and write records through these schemas.
"""

from timesheetz.models.records import (
    UPDATABLE_ENTRY_FIELDS,
    Client,
    ClientRate,
    ClientWithRates,
    EarningsEntry,
    EarningsOverview,
    StoredRecord,
    TimesheetEntry,
    TrainingBudgetEntry,
    VacationCarryover,
    VacationSummary,
    is_iso_date,
    to_money,
    utc_timestamp,
)
from timesheetz.models.sync import (
    SyncDirection,
    SyncStats,
    TableSyncResult,
)
from timesheetz.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Stored records
    "Client",
    "ClientRate",
    "StoredRecord",
    "TimesheetEntry",
    "TrainingBudgetEntry",
    "VacationCarryover",
    # Aggregates
    "ClientWithRates",
    "EarningsEntry",
    "EarningsOverview",
    "VacationSummary",
    # Helpers
    "UPDATABLE_ENTRY_FIELDS",
    "is_iso_date",
    "to_money",
    "utc_timestamp",
    # Sync models
    "SyncDirection",
    "SyncStats",
    "TableSyncResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
