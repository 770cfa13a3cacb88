"""Tests for audit logging."""

import json
import logging

import structlog

from timesheetz.audit import AuditLogger, configure_logging, create_correlation_id, get_logger
from timesheetz.models import AuditEventType, SyncDirection, SyncStats, TableSyncResult


class TestAuditLogger:
    """Tests for the in-memory history and event helpers."""

    def test_history_keeps_recent_events(self):
        audit = AuditLogger(max_history=2)
        for operation in ("list_entries", "list_clients", "list_rates"):
            audit.log_read_divergence(operation, ["x"])
        assert [e.operation for e in audit.history] == ["list_clients", "list_rates"]

    def test_history_can_be_disabled(self):
        audit = AuditLogger(max_history=0)
        audit.log_store_unavailable("remote", ConnectionError("refused"))
        assert list(audit.history) == []

    def test_events_of(self):
        audit = AuditLogger()
        audit.log_partial_write("create_client", "remote", ConnectionError("refused"), "Acme")
        audit.log_write_failed("create_client", ConnectionError("a"), ConnectionError("b"))
        partial = audit.events_of(AuditEventType.PARTIAL_WRITE)
        assert len(partial) == 1
        assert partial[0].entity_key == "Acme"
        assert audit.events_of(AuditEventType.WRITE_FAILED)[0].details == {
            "local_error": "a",
            "remote_error": "b",
        }

    def test_sync_completed_from_stats(self):
        audit = AuditLogger()
        stats = SyncStats(direction=SyncDirection.PUSH, correlation_id=create_correlation_id())
        stats.record_table(TableSyncResult(table="clients", pushed=2))
        stats.finish()

        audit.log_sync_completed(stats)

        event = audit.events_of(AuditEventType.SYNC_COMPLETED)[0]
        assert event.correlation_id == stats.correlation_id
        assert event.details["records_pushed"] == 2
        assert event.details["direction"] == "push"

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()


class TestConfigureLogging:
    """Tests for routing structured logs."""

    def test_json_lines_to_file(self, tmp_path):
        log_file = tmp_path / "logs" / "timesheetz.log"
        configure_logging("INFO", json_output=True, log_file=log_file)
        try:
            AuditLogger().log_fallback_to_local("dual", ConnectionError("refused"))
        finally:
            for handler in logging.getLogger().handlers:
                handler.flush()

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "audit_event"
        assert record["event_type"] == "fallback_to_local"
        assert record["level"] == "warning"

    def test_level_filters_info(self, tmp_path):
        log_file = tmp_path / "timesheetz.log"
        configure_logging("WARNING", json_output=False, log_file=log_file)
        AuditLogger().log_tombstone_applied("timesheet", "remote", "2024-01-15")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert log_file.read_text(encoding="utf-8") == ""

    def test_early_loggers_follow_reconfiguration(self, tmp_path):
        early = get_logger("timesheetz.tests.early")
        configure_logging("INFO", json_output=True, log_file=tmp_path / "first.log")
        early.info("early_event")

        log_file = tmp_path / "second.log"
        configure_logging("INFO", json_output=False, log_file=log_file)
        early.info("late_event", marker=1)
        for handler in logging.getLogger().handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert "late_event" in line
        assert not line.startswith("{")
        assert structlog.get_config()["cache_logger_on_first_use"] is False
