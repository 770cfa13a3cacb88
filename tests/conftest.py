"""
Shared fixtures.

Two independent SQLite files stand in for the local and the remote store;
they run the same SQL the PostgreSQL adapter runs.
"""

import pytest

from timesheetz.audit import AuditLogger
from timesheetz.config import get_settings
from timesheetz.storage import SQLiteDataLayer


class RemoteSQLiteDataLayer(SQLiteDataLayer):
    """A second SQLite store that reports itself as the remote one."""

    name = "remote"


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    """Isolate every test from the developer's environment and .env file."""
    for name in ("TIMESHEETZ_DATA_MODE", "TIMESHEETZ_POSTGRES_URL", "TIMESHEETZ_DEVELOPMENT_MODE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def audit():
    return AuditLogger()


@pytest.fixture
async def local_store(tmp_path):
    store = await SQLiteDataLayer(tmp_path / "local.db").connect()
    yield store
    await store.close()


@pytest.fixture
async def remote_store(tmp_path):
    store = await RemoteSQLiteDataLayer(tmp_path / "remote.db").connect()
    yield store
    await store.close()


@pytest.fixture
def offline_store(tmp_path):
    """A store that was never connected: every call fails as unavailable."""
    return RemoteSQLiteDataLayer(tmp_path / "offline.db")
