"""
Command line entry point.

    timesheetz run
    timesheetz sync [--direction bidirectional|push|pull]
    timesheetz migrate
    timesheetz ping
    timesheetz status

Every command reads its configuration from the environment (see
timesheetz.config) and exits non-zero when something failed.

`sync` and `migrate` always open both stores, whatever data mode is set;
they only need TIMESHEETZ_POSTGRES_URL. `run` opens the configured data
layer and keeps the background sync going until it is interrupted.
"""

import argparse
import asyncio
import signal
import sys
from typing import Optional

from timesheetz.audit import AuditLogger, configure_logging, get_logger
from timesheetz.config import Settings, get_settings, validate_all_settings
from timesheetz.models.sync import SyncDirection
from timesheetz.storage import DataLayerBundle, StorageError, build_data_layer
from timesheetz.storage.factory import open_local, open_remote
from timesheetz.sync import ReconciliationError, SyncService


logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timesheetz",
        description="Keep the local and the remote timesheet databases in step.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("run", help="Open the data layer and sync in the background")

    sync = commands.add_parser("sync", help="Run one reconciliation pass")
    sync.add_argument(
        "--direction",
        choices=[d.value for d in SyncDirection],
        default=SyncDirection.BIDIRECTIONAL.value,
    )

    commands.add_parser("migrate", help="Copy the local database to the remote one")
    commands.add_parser("ping", help="Check that the configured stores answer")
    commands.add_parser("status", help="Show the effective configuration")
    return parser


# =============================================================================
# ONE-SHOT SYNC
# =============================================================================

async def _open_sync_service(audit: AuditLogger):
    """Open both stores regardless of the configured data mode."""
    settings = get_settings()
    if not settings.database.postgres_url:
        print("Sync needs TIMESHEETZ_POSTGRES_URL.", file=sys.stderr)
        return None, None

    local = await open_local(settings)
    try:
        remote = await open_remote(settings)
    except StorageError:
        await local.close()
        raise

    service = SyncService(
        local,
        remote,
        audit=audit,
        table_timeout=settings.sync.table_timeout_seconds,
    )
    return (local, remote), service


async def _close_stores(stores) -> None:
    await asyncio.gather(*(store.close() for store in stores))


async def run_sync(direction: SyncDirection) -> int:
    audit = AuditLogger()
    stores, service = await _open_sync_service(audit)
    if service is None:
        return EXIT_FAILED
    try:
        stats = await service.run_sync_once(direction)
    finally:
        await _close_stores(stores)
    print(stats.summary())
    return EXIT_OK if stats.succeeded else EXIT_FAILED


async def run_migrate() -> int:
    audit = AuditLogger()
    stores, service = await _open_sync_service(audit)
    if service is None:
        return EXIT_FAILED
    try:
        stats = await service.initial_migration()
    except ReconciliationError as e:
        if e.stats is not None:
            print(e.stats.summary())
        print(str(e), file=sys.stderr)
        return EXIT_FAILED
    finally:
        await _close_stores(stores)
    print(stats.summary())
    return EXIT_OK


# =============================================================================
# LONG-RUNNING SERVICE
# =============================================================================

def start_scheduled_sync(
    bundle: DataLayerBundle,
    settings: Settings,
    audit: AuditLogger,
) -> Optional[SyncService]:
    """Start the background loop when it is enabled and both stores are open."""
    if not settings.sync.enabled:
        logger.info("background_sync_disabled")
        return None
    if not bundle.can_sync:
        logger.info("background_sync_unavailable", mode=bundle.mode.value)
        return None
    service = SyncService(
        bundle.local,
        bundle.remote,
        audit=audit,
        table_timeout=settings.sync.table_timeout_seconds,
    )
    service.start_background_sync(settings.sync.interval_seconds)
    return service


async def serve(stop: asyncio.Event, audit: Optional[AuditLogger] = None) -> int:
    """Hold the data layer open, syncing in the background, until `stop` is set."""
    settings = get_settings()
    audit = audit or AuditLogger()
    bundle = await build_data_layer(settings, audit=audit)
    service = start_scheduled_sync(bundle, settings, audit)
    try:
        await stop.wait()
    finally:
        if service is not None:
            await service.stop_background_sync()
        await bundle.close()
    return EXIT_OK


async def run_service() -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows loops; Ctrl+C still interrupts asyncio.run
            logger.debug("signal_handler_unsupported", signal=sig.name)
    print("Running; press Ctrl+C to stop.", file=sys.stderr)
    return await serve(stop)


# =============================================================================
# CHECKS
# =============================================================================

async def run_ping() -> int:
    bundle = await build_data_layer(get_settings())
    try:
        await bundle.layer.ping()
    finally:
        await bundle.close()
    print(f"OK ({bundle.mode.value})")
    return EXIT_OK


def run_status() -> int:
    results = validate_all_settings()
    failed = False
    for group, valid in results.items():
        if group.endswith("_error"):
            continue
        if valid:
            print(f"{group}: ok")
        else:
            failed = True
            print(f"{group}: INVALID - {results[f'{group}_error']}")

    if not failed:
        settings = get_settings()
        database = settings.database
        print(f"mode: {database.data_mode.value}")
        print(f"local database: {database.database_path}")
        print(f"remote database: {'configured' if database.postgres_url else 'not configured'}")
        print(f"background sync: {'on' if settings.sync.enabled else 'off'} "
              f"every {settings.sync.interval_seconds:g}s")
        hours = settings.hours
        print(f"yearly targets: vacation {hours.vacation_yearly_target}h, "
              f"training {hours.training_yearly_target}h")
    return EXIT_FAILED if failed else EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        log_settings = get_settings().logging
        configure_logging(log_settings.level, log_settings.json_output, log_settings.file)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_USAGE

    if args.command == "status":
        return run_status()

    try:
        if args.command == "run":
            return asyncio.run(run_service())
        if args.command == "sync":
            return asyncio.run(run_sync(SyncDirection(args.direction)))
        if args.command == "migrate":
            return asyncio.run(run_migrate())
        return asyncio.run(run_ping())
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_USAGE
    except StorageError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"{args.command} failed: {e}", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
