"""Tests for structured logging configuration."""

import json
import logging
from types import SimpleNamespace

from server.logging_config import JSONFormatter, configure_logging


def _record(**extra):
    record = logging.LogRecord("core.db", logging.WARNING, __file__, 10, "Slow query detected: %sms", (1500,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "core.db"
        assert entry["message"] == "Slow query detected: 1500ms"
        assert entry["timestamp"].endswith("Z")

    def test_extra_fields_included(self):
        entry = json.loads(JSONFormatter().format(_record(sql="SELECT 1", params=[1], request_id="abc")))
        assert entry["sql"] == "SELECT 1"
        assert entry["params"] == [1]
        assert entry["request_id"] == "abc"

    def test_timestamp_and_source_come_from_record(self):
        record = _record()
        record.created = 1700000000.25
        entry = json.loads(JSONFormatter().format(record))
        assert entry["timestamp"] == "2023-11-14T22:13:20.250Z"
        assert entry["source"] == f"{record.module}:{record.funcName}:10"

    def test_audit_entry_included(self):
        entry = json.loads(JSONFormatter().format(_record(audit={"action": "LOGIN_SUCCESS", "user_id": 3})))
        assert entry["audit"] == {"action": "LOGIN_SUCCESS", "user_id": 3}

    def test_unknown_extras_ignored(self):
        entry = json.loads(JSONFormatter().format(_record(password="hunter2")))
        assert "password" not in entry

    def test_non_serializable_values(self):
        entry = json.loads(JSONFormatter().format(_record(pool_stats={"since": object()})))
        assert isinstance(entry["pool_stats"]["since"], str)


class TestConfigureLogging:
    def test_installs_handlers_on_package_loggers(self, tmp_path):
        settings = SimpleNamespace(log_level="debug", log_format="text", log_file=str(tmp_path / "api.log"))
        handlers = configure_logging(settings)
        try:
            assert len(handlers) == 2
            for name in ("core", "server"):
                logger = logging.getLogger(name)
                assert logger.level == logging.DEBUG
                assert logger.handlers == handlers
            assert isinstance(handlers[1].formatter, JSONFormatter)
        finally:
            for handler in handlers:
                handler.close()
            for name in ("core", "server"):
                logging.getLogger(name).handlers = []
