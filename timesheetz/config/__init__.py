"""Configuration package."""

from timesheetz.config.settings import (
    DatabaseSettings,
    DataMode,
    HoursSettings,
    LoggingSettings,
    Settings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "DatabaseSettings",
    "DataMode",
    "HoursSettings",
    "LoggingSettings",
    "Settings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
