"""
Synchronized table declarations.

Order matters: clients are reconciled before client_rates so a rate's
owning client already exists on the target when the rate is copied.
"""

from dataclasses import dataclass

from timesheetz.storage.schema import TABLE_COLUMNS


@dataclass(frozen=True)
class SyncTable:
    """
    How one table is matched across the two stores.

    Attributes:
        name: Table name, identical in both stores
        key_columns: Columns forming the natural key
        client_ref: client_id refers to clients and is translated by name;
            it is replaced by the client name inside the natural key
        money_columns: Columns normalized to two decimals when copied
    """

    name: str
    key_columns: tuple[str, ...]
    client_ref: bool = False
    money_columns: tuple[str, ...] = ()

    @property
    def columns(self) -> tuple[str, ...]:
        """Business columns (no id, no timestamps)."""
        return TABLE_COLUMNS[self.name]


SYNC_TABLES: tuple[SyncTable, ...] = (
    SyncTable("clients", key_columns=("name",)),
    SyncTable(
        "client_rates",
        key_columns=("client_id", "effective_date"),
        client_ref=True,
        money_columns=("hourly_rate",),
    ),
    SyncTable("timesheet", key_columns=("date",)),
    SyncTable(
        "training_budget",
        key_columns=("date", "training_name"),
        money_columns=("cost_without_vat",),
    ),
    SyncTable("vacation_carryover", key_columns=("year",)),
)


def sync_table(name: str) -> SyncTable:
    for table in SYNC_TABLES:
        if table.name == name:
            return table
    raise KeyError(name)
