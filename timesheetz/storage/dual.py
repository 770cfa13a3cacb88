"""
Dual Data Layer

DESIGN DECISION: In dual mode every operation goes to BOTH stores and the
local store is authoritative:
1. Reads run on both stores; if both answer, results are compared field by
   field and any difference is logged, then the local result is returned
2. If one store fails, the other store's answer is used and the failure logged
3. Writes run on both stores; if only one accepts, the stores diverge until
   the next reconciliation pass, the partial write is logged and the caller
   gets a PartialWriteError carrying the applied result
4. A remote-only failure can be downgraded to a logged warning
   (raise_on_partial_write=False); a local-only failure always raises,
   since the remote result carries no usable local id

Ids handed to this layer are LOCAL ids. Operations addressed by id look the
record up locally first and reach the remote copy through its natural key,
since the two stores number their rows independently.
"""

import asyncio
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel

from timesheetz.audit import AuditLogger, get_logger
from timesheetz.models.records import (
    Client,
    ClientRate,
    ClientWithRates,
    EarningsOverview,
    StoredRecord,
    TimesheetEntry,
    TrainingBudgetEntry,
    VacationCarryover,
    VacationSummary,
)
from timesheetz.storage.interface import (
    DataLayer,
    DualStoreError,
    DuplicateError,
    NotFoundError,
    PartialWriteError,
    StorageError,
    StorageValidationError,
)
from timesheetz.storage.sql import require_id, validate_entry_fields


logger = get_logger(__name__)

LOCAL = "local"
REMOTE = "remote"


# =============================================================================
# RESULT COMPARISON
# =============================================================================

def compare_results(local: Any, remote: Any, path: str = "") -> list[str]:
    """
    Describe every difference between a local and a remote result.

    Stored records are compared on their COMPARE_FIELDS only, lists of
    records are matched by natural key, other models field by field.
    """
    prefix = f"{path}." if path else ""
    if isinstance(local, StoredRecord) and isinstance(remote, StoredRecord):
        return [
            f"{prefix}{name}: local={getattr(local, name)!r} remote={getattr(remote, name)!r}"
            for name in local.differing_fields(remote)
        ]
    if isinstance(local, list) and isinstance(remote, list):
        return _compare_lists(local, remote, path)
    if isinstance(local, BaseModel) and isinstance(remote, BaseModel):
        differences: list[str] = []
        for name in type(local).model_fields:
            differences.extend(
                compare_results(getattr(local, name), getattr(remote, name), f"{prefix}{name}")
            )
        return differences
    if local != remote:
        return [f"{path or 'value'}: local={local!r} remote={remote!r}"]
    return []


def _compare_lists(local: list, remote: list, path: str) -> list[str]:
    label = path or "items"
    if local and all(isinstance(item, StoredRecord) for item in local + remote):
        local_by_key = {item.natural_key(): item for item in local}
        remote_by_key = {item.natural_key(): item for item in remote}
        differences = [f"{label}[{key}]: missing on remote" for key in local_by_key.keys() - remote_by_key.keys()]
        differences += [f"{label}[{key}]: missing on local" for key in remote_by_key.keys() - local_by_key.keys()]
        for key in sorted(local_by_key.keys() & remote_by_key.keys()):
            differences.extend(compare_results(local_by_key[key], remote_by_key[key], f"{label}[{key}]"))
        return sorted(differences)
    if len(local) != len(remote):
        return [f"{label}: count mismatch local={len(local)} remote={len(remote)}"]
    differences = []
    for index, (a, b) in enumerate(zip(local, remote)):
        differences.extend(compare_results(a, b, f"{label}[{index}]"))
    return differences


def _store_error(result: Any) -> Optional[StorageError]:
    """Split a gather() result into value or storage failure; re-raise anything else."""
    if isinstance(result, StorageError):
        return result
    if isinstance(result, BaseException):
        raise result
    return None


# Failures that describe the request rather than the store
_REQUEST_ERRORS = (NotFoundError, DuplicateError, StorageValidationError)


def _raise_both(operation: str, local_error: StorageError, remote_error: StorageError) -> None:
    # Both stores rejected the request for the same reason: surface it as is
    for kind in _REQUEST_ERRORS:
        if isinstance(local_error, kind) and isinstance(remote_error, kind):
            raise local_error
    raise DualStoreError(operation, local_error, remote_error) from local_error


class DualDataLayer(DataLayer):
    """
    Mirrors every operation onto a local and a remote DataLayer.

    Attributes:
        partial_failures: Number of writes that only one store accepted
        last_partial_failure: The most recent of those, for status views
    """

    name = "dual"

    def __init__(
        self,
        local: DataLayer,
        remote: DataLayer,
        audit: Optional[AuditLogger] = None,
        raise_on_partial_write: bool = True,
        verify_writes: bool = True,
    ):
        self._local = local
        self._remote = remote
        self._audit = audit or AuditLogger()
        self._raise_on_partial_write = raise_on_partial_write
        self._verify_writes = verify_writes
        self.partial_failures = 0
        self.last_partial_failure: Optional[PartialWriteError] = None

    @property
    def local(self) -> DataLayer:
        return self._local

    @property
    def remote(self) -> DataLayer:
        return self._remote

    # =========================================================================
    # Fan-out helpers
    # =========================================================================

    async def _read(self, operation: str, local_call: Awaitable, remote_call: Awaitable) -> Any:
        local_result, remote_result = await asyncio.gather(
            local_call, remote_call, return_exceptions=True
        )
        local_error = _store_error(local_result)
        remote_error = _store_error(remote_result)

        if local_error is None and remote_error is None:
            differences = compare_results(local_result, remote_result)
            if differences:
                self._audit.log_read_divergence(operation, differences)
            return local_result
        if local_error is None:
            self._audit.log_store_read_failed(operation, REMOTE, remote_error)
            return local_result
        if remote_error is None:
            self._audit.log_store_read_failed(operation, LOCAL, local_error)
            return remote_result
        _raise_both(operation, local_error, remote_error)

    async def _read_via_local(
        self,
        operation: str,
        local_call: Awaitable,
        remote_lookup: Callable[[Any], Awaitable],
    ) -> Any:
        """Read addressed by a local id: the remote copy is found from the local record."""
        local_result = await local_call
        try:
            remote_result = await remote_lookup(local_result)
        except StorageError as e:
            self._audit.log_store_read_failed(operation, REMOTE, e)
            return local_result
        differences = compare_results(local_result, remote_result)
        if differences:
            self._audit.log_read_divergence(operation, differences)
        return local_result

    async def _write(
        self,
        operation: str,
        local_call: Awaitable,
        remote_call: Awaitable,
        entity_key: Optional[str] = None,
    ) -> Any:
        local_result, remote_result = await asyncio.gather(
            local_call, remote_call, return_exceptions=True
        )
        local_error = _store_error(local_result)
        remote_error = _store_error(remote_result)

        if local_error is None and remote_error is None:
            logger.debug("dual_write_succeeded", operation=operation, entity_key=entity_key)
            return local_result
        if local_error is not None and remote_error is not None:
            self._audit.log_write_failed(operation, local_error, remote_error)
            _raise_both(operation, local_error, remote_error)

        if local_error is not None:
            failed_store, error, result = LOCAL, local_error, remote_result
        else:
            failed_store, error, result = REMOTE, remote_error, local_result

        self.partial_failures += 1
        self.last_partial_failure = PartialWriteError(operation, failed_store, error, result)
        self._audit.log_partial_write(operation, failed_store, error, entity_key)
        if failed_store == LOCAL or self._raise_on_partial_write:
            raise self.last_partial_failure from error
        return result

    async def _verify_entry(self, operation: str, date: str) -> None:
        """Read an entry back from both stores after a write and log any difference."""
        if not self._verify_writes:
            return
        local_entry, remote_entry = await asyncio.gather(
            self._local.get_entry_by_date(date),
            self._remote.get_entry_by_date(date),
            return_exceptions=True,
        )
        if _store_error(local_entry) or _store_error(remote_entry):
            return
        differences = compare_results(local_entry, remote_entry)
        if differences:
            self._audit.log_write_divergence(operation, date, differences)

    @staticmethod
    async def _ignore_missing(call: Awaitable) -> None:
        """Deleting something the remote store never had leaves both stores in agreement."""
        try:
            await call
        except NotFoundError:
            return

    # =========================================================================
    # Remote id resolution (local id -> natural key -> remote id)
    # =========================================================================

    async def _remote_entry_id(self, date: str) -> int:
        return (await self._remote.get_entry_by_date(date)).id

    async def _remote_client_id(self, client_name: str) -> int:
        return (await self._remote.get_client_by_name(client_name)).id

    async def _remote_budget_entry(self, entry: TrainingBudgetEntry) -> TrainingBudgetEntry:
        year = int(entry.date[:4])
        for candidate in await self._remote.list_budget_entries(year):
            if candidate.natural_key() == entry.natural_key():
                return candidate
        raise NotFoundError(f"remote store: no training budget entry {entry.natural_key()}")

    async def _remote_rate(self, client_name: str, effective_date: str) -> ClientRate:
        remote_client_id = await self._remote_client_id(client_name)
        for candidate in await self._remote.list_rates(remote_client_id):
            if candidate.effective_date == effective_date:
                return candidate
        raise NotFoundError(f"remote store: no rate for {client_name} on {effective_date}")

    # =========================================================================
    # Timesheet entries
    # =========================================================================

    async def list_entries(self, year: int = 0, month: int = 0) -> list[TimesheetEntry]:
        return await self._read(
            "list_entries",
            self._local.list_entries(year, month),
            self._remote.list_entries(year, month),
        )

    async def get_entry_by_date(self, date: str) -> TimesheetEntry:
        return await self._read(
            "get_entry_by_date",
            self._local.get_entry_by_date(date),
            self._remote.get_entry_by_date(date),
        )

    async def get_entry_by_id(self, entry_id: int) -> TimesheetEntry:
        return await self._read_via_local(
            "get_entry_by_id",
            self._local.get_entry_by_id(entry_id),
            lambda entry: self._remote.get_entry_by_date(entry.date),
        )

    async def create_entry(self, entry: TimesheetEntry) -> TimesheetEntry:
        created = await self._write(
            "create_entry",
            self._local.create_entry(entry),
            self._remote.create_entry(entry),
            entity_key=entry.date,
        )
        await self._verify_entry("create_entry", entry.date)
        return created

    async def update_entry(self, entry: TimesheetEntry) -> TimesheetEntry:
        updated = await self._write(
            "update_entry",
            self._local.update_entry(entry),
            self._remote.update_entry(entry),
            entity_key=entry.date,
        )
        await self._verify_entry("update_entry", entry.date)
        return updated

    async def update_entry_fields(self, entry_id: int, fields: dict[str, int]) -> None:
        require_id(entry_id)
        validate_entry_fields(fields)
        entry = await self._local.get_entry_by_id(entry_id)

        async def remote_update() -> None:
            await self._remote.update_entry_fields(await self._remote_entry_id(entry.date), fields)

        await self._write(
            "update_entry_fields",
            self._local.update_entry_fields(entry_id, fields),
            remote_update(),
            entity_key=entry.date,
        )

    async def delete_entry_by_date(self, date: str) -> None:
        await self._write(
            "delete_entry_by_date",
            self._local.delete_entry_by_date(date),
            self._remote.delete_entry_by_date(date),
            entity_key=date,
        )

    async def delete_entry_by_id(self, entry_id: int) -> None:
        try:
            entry = await self._local.get_entry_by_id(entry_id)
        except NotFoundError:
            return
        await self._write(
            "delete_entry_by_id",
            self._local.delete_entry_by_id(entry_id),
            self._remote.delete_entry_by_date(entry.date),
            entity_key=entry.date,
        )

    async def get_last_client_name(self) -> str:
        return await self._read(
            "get_last_client_name",
            self._local.get_last_client_name(),
            self._remote.get_last_client_name(),
        )

    # =========================================================================
    # Derived timesheet views
    # =========================================================================

    async def list_training_entries(self, year: int) -> list[TimesheetEntry]:
        return await self._read(
            "list_training_entries",
            self._local.list_training_entries(year),
            self._remote.list_training_entries(year),
        )

    async def list_vacation_entries(self, year: int) -> list[TimesheetEntry]:
        return await self._read(
            "list_vacation_entries",
            self._local.list_vacation_entries(year),
            self._remote.list_vacation_entries(year),
        )

    async def sum_vacation_hours(self, year: int) -> int:
        return await self._read(
            "sum_vacation_hours",
            self._local.sum_vacation_hours(year),
            self._remote.sum_vacation_hours(year),
        )

    # =========================================================================
    # Vacation carryover
    # =========================================================================

    async def get_carryover(self, year: int) -> VacationCarryover:
        return await self._read(
            "get_carryover",
            self._local.get_carryover(year),
            self._remote.get_carryover(year),
        )

    async def set_carryover(self, carryover: VacationCarryover) -> VacationCarryover:
        return await self._write(
            "set_carryover",
            self._local.set_carryover(carryover),
            self._remote.set_carryover(carryover),
            entity_key=str(carryover.year),
        )

    async def delete_carryover(self, year: int) -> None:
        await self._write(
            "delete_carryover",
            self._local.delete_carryover(year),
            self._remote.delete_carryover(year),
            entity_key=str(year),
        )

    async def get_vacation_summary(self, year: int) -> VacationSummary:
        return await self._read(
            "get_vacation_summary",
            self._local.get_vacation_summary(year),
            self._remote.get_vacation_summary(year),
        )

    # =========================================================================
    # Training budget
    # =========================================================================

    async def list_budget_entries(self, year: int) -> list[TrainingBudgetEntry]:
        return await self._read(
            "list_budget_entries",
            self._local.list_budget_entries(year),
            self._remote.list_budget_entries(year),
        )

    async def create_budget_entry(self, entry: TrainingBudgetEntry) -> TrainingBudgetEntry:
        return await self._write(
            "create_budget_entry",
            self._local.create_budget_entry(entry),
            self._remote.create_budget_entry(entry),
            entity_key=entry.natural_key(),
        )

    async def update_budget_entry(self, entry: TrainingBudgetEntry) -> TrainingBudgetEntry:
        current = await self._local.get_budget_entry(require_id(entry.id, "budget entry id"))

        async def remote_update() -> TrainingBudgetEntry:
            remote_entry = await self._remote_budget_entry(current)
            return await self._remote.update_budget_entry(
                entry.model_copy(update={"id": remote_entry.id})
            )

        return await self._write(
            "update_budget_entry",
            self._local.update_budget_entry(entry),
            remote_update(),
            entity_key=current.natural_key(),
        )

    async def delete_budget_entry(self, entry_id: int) -> None:
        try:
            current = await self._local.get_budget_entry(entry_id)
        except NotFoundError:
            return

        async def remote_delete() -> None:
            remote_entry = await self._remote_budget_entry(current)
            await self._remote.delete_budget_entry(remote_entry.id)

        await self._write(
            "delete_budget_entry",
            self._local.delete_budget_entry(entry_id),
            self._ignore_missing(remote_delete()),
            entity_key=current.natural_key(),
        )

    async def get_budget_entry(self, entry_id: int) -> TrainingBudgetEntry:
        return await self._read_via_local(
            "get_budget_entry",
            self._local.get_budget_entry(entry_id),
            self._remote_budget_entry,
        )

    async def get_budget_entry_by_date(self, date: str) -> TrainingBudgetEntry:
        return await self._read(
            "get_budget_entry_by_date",
            self._local.get_budget_entry_by_date(date),
            self._remote.get_budget_entry_by_date(date),
        )

    # =========================================================================
    # Clients
    # =========================================================================

    async def list_clients(self) -> list[Client]:
        return await self._read(
            "list_clients",
            self._local.list_clients(),
            self._remote.list_clients(),
        )

    async def list_active_clients(self) -> list[Client]:
        return await self._read(
            "list_active_clients",
            self._local.list_active_clients(),
            self._remote.list_active_clients(),
        )

    async def get_client_by_id(self, client_id: int) -> Client:
        return await self._read_via_local(
            "get_client_by_id",
            self._local.get_client_by_id(client_id),
            lambda client: self._remote.get_client_by_name(client.name),
        )

    async def get_client_by_name(self, name: str) -> Client:
        return await self._read(
            "get_client_by_name",
            self._local.get_client_by_name(name),
            self._remote.get_client_by_name(name),
        )

    async def create_client(self, client: Client) -> int:
        return await self._write(
            "create_client",
            self._local.create_client(client),
            self._remote.create_client(client),
            entity_key=client.name,
        )

    async def update_client(self, client: Client) -> None:
        current = await self._local.get_client_by_id(require_id(client.id, "client id"))

        async def remote_update() -> None:
            remote_id = await self._remote_client_id(current.name)
            await self._remote.update_client(client.model_copy(update={"id": remote_id}))

        await self._write(
            "update_client",
            self._local.update_client(client),
            remote_update(),
            entity_key=current.name,
        )

    async def delete_client(self, client_id: int) -> None:
        current = await self._local.get_client_by_id(client_id)

        async def remote_delete() -> None:
            await self._remote.delete_client(await self._remote_client_id(current.name))

        await self._write(
            "delete_client",
            self._local.delete_client(client_id),
            self._ignore_missing(remote_delete()),
            entity_key=current.name,
        )

    async def deactivate_client(self, client_id: int) -> None:
        current = await self._local.get_client_by_id(client_id)

        async def remote_deactivate() -> None:
            await self._remote.deactivate_client(await self._remote_client_id(current.name))

        await self._write(
            "deactivate_client",
            self._local.deactivate_client(client_id),
            remote_deactivate(),
            entity_key=current.name,
        )

    # =========================================================================
    # Client rates
    # =========================================================================

    async def list_rates(self, client_id: int) -> list[ClientRate]:
        client = await self._local.get_client_by_id(client_id)

        async def remote_rates(local_rates: list[ClientRate]) -> list[ClientRate]:
            return await self._remote.list_rates(await self._remote_client_id(client.name))

        return await self._read_via_local(
            "list_rates",
            self._local.list_rates(client_id),
            remote_rates,
        )

    async def get_rate_by_id(self, rate_id: int) -> ClientRate:
        async def remote_rate(rate: ClientRate) -> ClientRate:
            client = await self._local.get_client_by_id(rate.client_id)
            return await self._remote_rate(client.name, rate.effective_date)

        return await self._read_via_local(
            "get_rate_by_id",
            self._local.get_rate_by_id(rate_id),
            remote_rate,
        )

    async def create_rate(self, rate: ClientRate) -> ClientRate:
        client = await self._local.get_client_by_id(rate.client_id)

        async def remote_create() -> ClientRate:
            remote_client_id = await self._remote_client_id(client.name)
            return await self._remote.create_rate(rate.model_copy(update={"client_id": remote_client_id}))

        return await self._write(
            "create_rate",
            self._local.create_rate(rate),
            remote_create(),
            entity_key=f"{client.name}|{rate.effective_date}",
        )

    async def update_rate(self, rate: ClientRate) -> None:
        current = await self._local.get_rate_by_id(require_id(rate.id, "rate id"))
        client = await self._local.get_client_by_id(current.client_id)

        async def remote_update() -> None:
            remote_rate = await self._remote_rate(client.name, current.effective_date)
            await self._remote.update_rate(
                rate.model_copy(update={"id": remote_rate.id, "client_id": remote_rate.client_id})
            )

        await self._write(
            "update_rate",
            self._local.update_rate(rate),
            remote_update(),
            entity_key=f"{client.name}|{current.effective_date}",
        )

    async def delete_rate(self, rate_id: int) -> None:
        current = await self._local.get_rate_by_id(rate_id)
        client = await self._local.get_client_by_id(current.client_id)

        async def remote_delete() -> None:
            remote_rate = await self._remote_rate(client.name, current.effective_date)
            await self._remote.delete_rate(remote_rate.id)

        await self._write(
            "delete_rate",
            self._local.delete_rate(rate_id),
            self._ignore_missing(remote_delete()),
            entity_key=f"{client.name}|{current.effective_date}",
        )

    async def get_effective_rate(self, client_id: int, date: str) -> ClientRate:
        client = await self._local.get_client_by_id(client_id)

        async def remote_rate(local_rate: ClientRate) -> ClientRate:
            remote_client_id = await self._remote_client_id(client.name)
            return await self._remote.get_effective_rate(remote_client_id, date)

        return await self._read_via_local(
            "get_effective_rate",
            self._local.get_effective_rate(client_id, date),
            remote_rate,
        )

    async def get_effective_rate_by_client_name(self, name: str, date: str) -> Decimal:
        return await self._read(
            "get_effective_rate_by_client_name",
            self._local.get_effective_rate_by_client_name(name, date),
            self._remote.get_effective_rate_by_client_name(name, date),
        )

    # =========================================================================
    # Earnings
    # =========================================================================

    async def calculate_earnings(self, year: int) -> EarningsOverview:
        return await self._read(
            "calculate_earnings",
            self._local.calculate_earnings(year),
            self._remote.calculate_earnings(year),
        )

    async def calculate_earnings_summary(self, year: int) -> EarningsOverview:
        return await self._read(
            "calculate_earnings_summary",
            self._local.calculate_earnings_summary(year),
            self._remote.calculate_earnings_summary(year),
        )

    async def calculate_earnings_for_month(self, year: int, month: int) -> EarningsOverview:
        return await self._read(
            "calculate_earnings_for_month",
            self._local.calculate_earnings_for_month(year, month),
            self._remote.calculate_earnings_for_month(year, month),
        )

    async def get_client_with_rates(self, client_id: int) -> ClientWithRates:
        client = await self._local.get_client_by_id(client_id)

        async def remote_client(local_result: ClientWithRates) -> ClientWithRates:
            return await self._remote.get_client_with_rates(await self._remote_client_id(client.name))

        return await self._read_via_local(
            "get_client_with_rates",
            self._local.get_client_with_rates(client_id),
            remote_client,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def ping(self) -> None:
        """Succeeds while at least one store answers."""
        local_result, remote_result = await asyncio.gather(
            self._local.ping(), self._remote.ping(), return_exceptions=True
        )
        local_error = _store_error(local_result)
        remote_error = _store_error(remote_result)
        if local_error is not None and remote_error is not None:
            raise DualStoreError("ping", local_error, remote_error) from local_error
        if local_error is not None:
            self._audit.log_store_unavailable(LOCAL, local_error)
        if remote_error is not None:
            self._audit.log_store_unavailable(REMOTE, remote_error)

    async def close(self) -> None:
        await asyncio.gather(self._local.close(), self._remote.close())
