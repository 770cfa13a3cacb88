"""
Storage package.

One abstract DataLayer with SQLite, PostgreSQL and dual-store
implementations, and the factory that picks one from settings.
"""

from timesheetz.storage.interface import (
    DataLayer,
    DualStoreError,
    DuplicateError,
    NotFoundError,
    PartialWriteError,
    StorageError,
    StorageValidationError,
    StoreUnavailableError,
)
from timesheetz.storage.sql import SQLDataLayer
from timesheetz.storage.local import SQLiteDataLayer
from timesheetz.storage.remote import PostgresDataLayer
from timesheetz.storage.dual import DualDataLayer, compare_results
from timesheetz.storage.factory import DataLayerBundle, build_data_layer

__all__ = [
    # Interface
    "DataLayer",
    "SQLDataLayer",
    # Implementations
    "DualDataLayer",
    "PostgresDataLayer",
    "SQLiteDataLayer",
    # Construction
    "DataLayerBundle",
    "build_data_layer",
    "compare_results",
    # Exceptions
    "DualStoreError",
    "DuplicateError",
    "NotFoundError",
    "PartialWriteError",
    "StorageError",
    "StorageValidationError",
    "StoreUnavailableError",
]
