"""Reconciliation between the local and the remote store."""

from timesheetz.sync.engine import ReconciliationError, SyncService
from timesheetz.sync.identity import IdentityResolver
from timesheetz.sync.tables import SYNC_TABLES, SyncTable, sync_table

__all__ = [
    "IdentityResolver",
    "ReconciliationError",
    "SYNC_TABLES",
    "SyncService",
    "SyncTable",
    "sync_table",
]
