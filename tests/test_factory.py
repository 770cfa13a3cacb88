"""Tests for data layer construction and the command line."""

import asyncio

import pytest

from timesheetz.cli import main, serve, start_scheduled_sync
from timesheetz.config import DataMode, get_settings
from timesheetz.models import AuditEventType, Client
from timesheetz.storage import DataLayerBundle, DualDataLayer, SQLiteDataLayer, build_data_layer


UNREACHABLE = "postgresql://u:p@127.0.0.1:1/timesheetz"


@pytest.fixture
def local_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TIMESHEETZ_SQLITE_PATH", str(tmp_path / "data" / "timesheet.db"))
    monkeypatch.setenv("TIMESHEETZ_CONNECT_ATTEMPTS", "1")
    monkeypatch.setenv("TIMESHEETZ_LOG_FILE", str(tmp_path / "timesheetz.log"))
    get_settings.cache_clear()


@pytest.fixture
def dual_bundle(local_store, remote_store, audit):
    return DataLayerBundle(
        layer=DualDataLayer(local_store, remote_store, audit=audit),
        local=local_store,
        remote=remote_store,
        mode=DataMode.DUAL,
    )


class TestBuildDataLayer:
    """Tests for picking the store(s) from settings."""

    async def test_local_mode(self, local_env, tmp_path):
        bundle = await build_data_layer(get_settings())
        try:
            assert bundle.mode == DataMode.LOCAL
            assert isinstance(bundle.layer, SQLiteDataLayer)
            assert bundle.remote is None
            assert not bundle.can_sync
            assert (tmp_path / "data" / "timesheet.db").exists()
        finally:
            await bundle.close()

    async def test_dual_falls_back_to_local(self, local_env, monkeypatch, audit):
        monkeypatch.setenv("TIMESHEETZ_DATA_MODE", "dual")
        monkeypatch.setenv("TIMESHEETZ_POSTGRES_URL", UNREACHABLE)
        get_settings.cache_clear()

        bundle = await build_data_layer(get_settings(), audit=audit)
        try:
            assert bundle.mode == DataMode.LOCAL
            assert isinstance(bundle.layer, SQLiteDataLayer)
        finally:
            await bundle.close()
        event = audit.events_of(AuditEventType.FALLBACK_TO_LOCAL)[0]
        assert "dual" in event.description


class TestScheduledSync:
    """Tests for the background sync started by the long-running service."""

    async def test_runs_on_both_stores(self, dual_bundle, remote_store, local_store, audit, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_SYNC_INTERVAL_SECONDS", "1")
        get_settings.cache_clear()
        await local_store.create_client(Client(name="Acme"))

        service = start_scheduled_sync(dual_bundle, get_settings(), audit)
        assert service is not None and service.is_running

        async def first_pass():
            while not audit.events_of(AuditEventType.SYNC_COMPLETED):
                await asyncio.sleep(0.01)

        await asyncio.wait_for(first_pass(), timeout=5)
        await service.stop_background_sync()

        assert service.is_running is False
        assert (await remote_store.get_client_by_name("Acme")).name == "Acme"

    async def test_disabled(self, dual_bundle, audit, monkeypatch):
        monkeypatch.setenv("TIMESHEETZ_SYNC_ENABLED", "false")
        get_settings.cache_clear()
        assert start_scheduled_sync(dual_bundle, get_settings(), audit) is None

    async def test_needs_both_stores(self, local_store, audit):
        bundle = DataLayerBundle(layer=local_store, local=local_store, remote=None, mode=DataMode.LOCAL)
        assert start_scheduled_sync(bundle, get_settings(), audit) is None

    async def test_serve_until_stopped(self, local_env, audit):
        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, stop.set)
        assert await asyncio.wait_for(serve(stop, audit=audit), timeout=5) == 0


class TestCommandLine:
    """Tests for the timesheetz command."""

    def test_status(self, local_env, capsys):
        assert main(["status"]) == 0
        out = capsys.readouterr().out
        assert "database: ok" in out
        assert "mode: local" in out
        assert "remote database: not configured" in out

    def test_status_reports_invalid_settings(self, local_env, monkeypatch, capsys):
        monkeypatch.setenv("TIMESHEETZ_DATA_MODE", "remote")
        get_settings.cache_clear()
        assert main(["status"]) == 1
        assert "database: INVALID" in capsys.readouterr().out

    def test_ping_local(self, local_env, capsys):
        assert main(["ping"]) == 0
        assert "OK (local)" in capsys.readouterr().out

    def test_sync_needs_postgres_url(self, local_env, capsys):
        assert main(["sync"]) == 1
        assert "Sync needs TIMESHEETZ_POSTGRES_URL" in capsys.readouterr().err

    def test_sync_in_local_mode_uses_both_stores(self, local_env, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv("TIMESHEETZ_POSTGRES_URL", UNREACHABLE)
        get_settings.cache_clear()
        remote_path = tmp_path / "remote.db"

        async def open_sqlite_remote(settings):
            return await SQLiteDataLayer(remote_path).connect()

        monkeypatch.setattr("timesheetz.cli.open_remote", open_sqlite_remote)

        async def seed():
            store = await SQLiteDataLayer(get_settings().database.database_path).connect()
            await store.create_client(Client(name="Acme"))
            await store.close()

        async def remote_clients():
            store = await SQLiteDataLayer(remote_path).connect()
            try:
                return [c.name for c in await store.list_clients()]
            finally:
                await store.close()

        asyncio.run(seed())
        assert get_settings().database.data_mode == DataMode.LOCAL

        assert main(["sync", "--direction", "push"]) == 0
        assert "Records pushed:   1" in capsys.readouterr().out
        assert asyncio.run(remote_clients()) == ["Acme"]

    def test_sync_in_local_mode_reports_unreachable_remote(self, local_env, monkeypatch, capsys):
        monkeypatch.setenv("TIMESHEETZ_POSTGRES_URL", UNREACHABLE)
        get_settings.cache_clear()
        assert main(["sync"]) == 1
        assert "sync failed" in capsys.readouterr().err

    def test_unknown_direction(self, local_env):
        with pytest.raises(SystemExit):
            main(["sync", "--direction", "sideways"])
