"""
Identity Resolver

DESIGN DECISION: Surrogate ids are private to each store. Records are
matched across stores by natural key only:
- clients:            name
- client_rates:       client name + effective_date
- timesheet:          date
- training_budget:    date + training_name
- vacation_carryover: year

Keys are the same strings the stores use for their tombstones, so a
deletion recorded on one side finds the live row on the other.
"""

from typing import Any, Optional

from timesheetz.models.records import to_money
from timesheetz.storage.schema import KEY_SEPARATOR, TIMESTAMP_COLUMNS
from timesheetz.sync.tables import SyncTable

Row = dict[str, Any]


class IdentityResolver:
    """Natural key <-> surrogate id mapping for both sides of a pass."""

    def __init__(self):
        self._names_by_id: dict[str, dict[int, str]] = {}
        self._ids_by_name: dict[str, dict[str, int]] = {}

    def load_clients(self, side: str, rows: list[Row]) -> None:
        """Remember the client id <-> name mapping of one store."""
        self._names_by_id[side] = {row["id"]: row["name"] for row in rows}
        self._ids_by_name[side] = {row["name"]: row["id"] for row in rows}

    def remember_client(self, side: str, name: str, client_id: int) -> None:
        self._names_by_id.setdefault(side, {})[client_id] = name
        self._ids_by_name.setdefault(side, {})[name] = client_id

    def forget_client(self, side: str, name: str) -> None:
        client_id = self._ids_by_name.get(side, {}).pop(name, None)
        if client_id is not None:
            self._names_by_id[side].pop(client_id, None)

    def client_name_for(self, side: str, client_id: int) -> Optional[str]:
        return self._names_by_id.get(side, {}).get(client_id)

    def client_id_for(self, side: str, name: str) -> Optional[int]:
        return self._ids_by_name.get(side, {}).get(name)

    def key_of(self, table: SyncTable, side: str, row: Row) -> Optional[str]:
        """
        Natural key of a row, or None for a rate whose client is unknown.
        """
        parts = []
        for column in table.key_columns:
            value = row[column]
            if table.client_ref and column == "client_id":
                value = self.client_name_for(side, value)
                if value is None:
                    return None
            parts.append(str(value))
        return KEY_SEPARATOR.join(parts)

    def index(self, table: SyncTable, side: str, rows: list[Row]) -> dict[str, Row]:
        """Natural key -> row; orphaned rows are left out."""
        indexed: dict[str, Row] = {}
        for row in rows:
            key = self.key_of(table, side, row)
            if key is not None:
                indexed[key] = row
        return indexed

    def translate(self, table: SyncTable, row: Row, source: str, target: str) -> Optional[Row]:
        """
        Copy of a source row ready to be written to the target store.

        Business columns and both timestamps are carried over; the id is
        not. Returns None when the owning client does not exist on the
        target yet.
        """
        values = {column: row[column] for column in table.columns + TIMESTAMP_COLUMNS}
        if table.client_ref:
            name = self.client_name_for(source, row["client_id"])
            target_id = self.client_id_for(target, name) if name is not None else None
            if target_id is None:
                return None
            values["client_id"] = target_id
        for column in table.money_columns:
            values[column] = to_money(values[column])
        return values
