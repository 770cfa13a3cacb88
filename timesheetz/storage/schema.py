"""
Table definitions shared by the local and the remote store.

Both stores carry the same five synchronized tables plus sync_tombstones,
which records business deletes so reconciliation can propagate them.
Timestamps are TEXT in both dialects ("YYYY-MM-DD HH:MM:SS.ffffff", UTC)
so they compare identically everywhere.
"""

from timesheetz.storage.interface import StorageValidationError


TOMBSTONE_TABLE = "sync_tombstones"

# Business columns per synchronized table (id and timestamps excluded)
TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    "clients": ("name", "is_active"),
    "client_rates": ("client_id", "hourly_rate", "effective_date", "notes"),
    "timesheet": (
        "date",
        "client_name",
        "client_hours",
        "vacation_hours",
        "idle_hours",
        "training_hours",
        "sick_hours",
        "holiday_hours",
    ),
    "training_budget": ("date", "training_name", "hours", "cost_without_vat"),
    "vacation_carryover": ("year", "carryover_hours", "source_year", "notes"),
}

TIMESTAMP_COLUMNS = ("created_at", "updated_at")


def writable_columns(table: str) -> tuple[str, ...]:
    return TABLE_COLUMNS[table] + TIMESTAMP_COLUMNS


def check_identifiers(table: str, columns) -> None:
    """Reject any table or column name that is not part of the schema."""
    if table not in TABLE_COLUMNS:
        raise StorageValidationError(f"unknown table: {table!r}")
    allowed = set(writable_columns(table))
    unknown = [c for c in columns if c not in allowed]
    if unknown:
        raise StorageValidationError(f"unknown column(s) for {table}: {', '.join(unknown)}")


SQLITE_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS clients (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS client_rates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        client_id INTEGER NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
        hourly_rate REAL NOT NULL,
        effective_date TEXT NOT NULL,
        notes TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT '',
        UNIQUE (client_id, effective_date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS timesheet (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        date TEXT NOT NULL UNIQUE,
        client_name TEXT NOT NULL DEFAULT '',
        client_hours INTEGER NOT NULL DEFAULT 0,
        vacation_hours INTEGER NOT NULL DEFAULT 0,
        idle_hours INTEGER NOT NULL DEFAULT 0,
        training_hours INTEGER NOT NULL DEFAULT 0,
        sick_hours INTEGER NOT NULL DEFAULT 0,
        holiday_hours INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS training_budget (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        date TEXT NOT NULL,
        training_name TEXT NOT NULL,
        hours INTEGER NOT NULL DEFAULT 0,
        cost_without_vat REAL NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT '',
        UNIQUE (date, training_name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vacation_carryover (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        year INTEGER NOT NULL UNIQUE,
        carryover_hours INTEGER NOT NULL DEFAULT 0,
        source_year INTEGER NOT NULL DEFAULT 0,
        notes TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT ''
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TOMBSTONE_TABLE} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        table_name TEXT NOT NULL,
        natural_key TEXT NOT NULL,
        deleted_at TEXT NOT NULL,
        UNIQUE (table_name, natural_key)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_client_rates_client ON client_rates (client_id)",
    "CREATE INDEX IF NOT EXISTS idx_training_budget_date ON training_budget (date)",
]


POSTGRES_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS clients (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS client_rates (
        id SERIAL PRIMARY KEY,
        client_id INTEGER NOT NULL REFERENCES clients(id) ON DELETE CASCADE,
        hourly_rate DECIMAL(10,2) NOT NULL,
        effective_date TEXT NOT NULL,
        notes TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT '',
        UNIQUE (client_id, effective_date)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS timesheet (
        id SERIAL PRIMARY KEY,
        date TEXT NOT NULL UNIQUE,
        client_name TEXT NOT NULL DEFAULT '',
        client_hours INTEGER NOT NULL DEFAULT 0,
        vacation_hours INTEGER NOT NULL DEFAULT 0,
        idle_hours INTEGER NOT NULL DEFAULT 0,
        training_hours INTEGER NOT NULL DEFAULT 0,
        sick_hours INTEGER NOT NULL DEFAULT 0,
        holiday_hours INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS training_budget (
        id SERIAL PRIMARY KEY,
        date TEXT NOT NULL,
        training_name TEXT NOT NULL,
        hours INTEGER NOT NULL DEFAULT 0,
        cost_without_vat DECIMAL(10,2) NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT '',
        UNIQUE (date, training_name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vacation_carryover (
        id SERIAL PRIMARY KEY,
        year INTEGER NOT NULL UNIQUE,
        carryover_hours INTEGER NOT NULL DEFAULT 0,
        source_year INTEGER NOT NULL DEFAULT 0,
        notes TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL DEFAULT ''
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {TOMBSTONE_TABLE} (
        id SERIAL PRIMARY KEY,
        table_name TEXT NOT NULL,
        natural_key TEXT NOT NULL,
        deleted_at TEXT NOT NULL,
        UNIQUE (table_name, natural_key)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_client_rates_client ON client_rates (client_id)",
    "CREATE INDEX IF NOT EXISTS idx_training_budget_date ON training_budget (date)",
]


KEY_SEPARATOR = "|"


def rate_key(client_name: str, effective_date: str) -> str:
    """Natural key of a client rate across stores."""
    return f"{client_name}{KEY_SEPARATOR}{effective_date}"
