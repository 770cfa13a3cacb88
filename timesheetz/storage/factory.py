"""
Data layer construction from settings.

The configured mode picks the implementation:
- local:  SQLite only
- remote: PostgreSQL only
- dual:   both, behind a DualDataLayer

If the remote store cannot be reached at startup, the application keeps
working on the local store alone and says so in the audit log.
"""

from dataclasses import dataclass
from typing import Optional

from timesheetz.audit import AuditLogger, get_logger
from timesheetz.config import DataMode, Settings
from timesheetz.storage.dual import DualDataLayer
from timesheetz.storage.interface import DataLayer, StoreUnavailableError
from timesheetz.storage.local import SQLiteDataLayer
from timesheetz.storage.remote import PostgresDataLayer


logger = get_logger(__name__)


@dataclass
class DataLayerBundle:
    """
    The layer callers should use, plus the concrete stores behind it.

    `local` and `remote` are what the reconciliation engine works on;
    `remote` is None whenever only the local store is open.
    """

    layer: DataLayer
    local: Optional[SQLiteDataLayer]
    remote: Optional[PostgresDataLayer]
    mode: DataMode

    @property
    def can_sync(self) -> bool:
        return self.local is not None and self.remote is not None

    async def close(self) -> None:
        await self.layer.close()


async def open_local(settings: Settings) -> SQLiteDataLayer:
    database = settings.database
    return await SQLiteDataLayer(
        database.database_path,
        vacation_yearly_target=settings.hours.vacation_yearly_target,
        connect_attempts=database.connect_attempts,
    ).connect()


async def open_remote(settings: Settings) -> PostgresDataLayer:
    database = settings.database
    return await PostgresDataLayer(
        database.postgres_url,
        vacation_yearly_target=settings.hours.vacation_yearly_target,
        min_size=database.pool_min_size,
        max_size=database.pool_max_size,
        command_timeout=database.command_timeout_seconds,
        connect_attempts=database.connect_attempts,
    ).connect()


async def build_data_layer(
    settings: Settings,
    audit: Optional[AuditLogger] = None,
) -> DataLayerBundle:
    """
    Open the stores the configured mode asks for.

    Returns:
        DataLayerBundle whose mode is the mode actually in effect

    Raises:
        StoreUnavailableError: If the local store itself cannot be opened
    """
    audit = audit or AuditLogger()
    requested = settings.database.data_mode

    remote: Optional[PostgresDataLayer] = None
    if requested != DataMode.LOCAL:
        try:
            remote = await open_remote(settings)
        except StoreUnavailableError as e:
            audit.log_fallback_to_local(requested.value, e)

    if remote is None:
        local = await open_local(settings)
        logger.info("data_layer_ready", mode=DataMode.LOCAL.value, requested=requested.value)
        return DataLayerBundle(layer=local, local=local, remote=None, mode=DataMode.LOCAL)

    if requested == DataMode.REMOTE:
        logger.info("data_layer_ready", mode=requested.value)
        return DataLayerBundle(layer=remote, local=None, remote=remote, mode=requested)

    try:
        local = await open_local(settings)
    except StoreUnavailableError:
        await remote.close()
        raise

    layer = DualDataLayer(
        local,
        remote,
        audit=audit,
        raise_on_partial_write=settings.database.raise_on_partial_write,
        verify_writes=settings.database.verify_dual_writes,
    )
    logger.info("data_layer_ready", mode=requested.value)
    return DataLayerBundle(layer=layer, local=local, remote=remote, mode=requested)
