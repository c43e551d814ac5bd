"""Tests for app.core.logging_config."""

from __future__ import annotations

import json
import logging

import pytest

from app.core.logging_config import JSONFormatter, configure_logging


def _record(msg="hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("app.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "app.test"
        assert entry["message"] == "hello"
        assert "timestamp" in entry

    def test_context_fields_included(self):
        entry = json.loads(
            JSONFormatter().format(_record(milestone_id="m-1", operation="reorder"))
        )
        assert entry["milestone_id"] == "m-1"
        assert entry["operation"] == "reorder"
        assert "user_id" not in entry

    def test_exception_included(self):
        try:
            raise ValueError("broken")
        except ValueError:
            import sys

            record = logging.LogRecord(
                "app.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )
        entry = json.loads(JSONFormatter().format(record))
        assert "ValueError: broken" in entry["exception"]


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestConfigureLogging:
    def test_production_uses_json(self, restore_root):
        configure_logging("production", "WARNING")
        assert len(restore_root.handlers) == 1
        assert isinstance(restore_root.handlers[0].formatter, JSONFormatter)
        assert restore_root.level == logging.WARNING

    def test_development_is_plain(self, restore_root):
        configure_logging("development", "DEBUG")
        assert not isinstance(restore_root.handlers[0].formatter, JSONFormatter)
        assert restore_root.level == logging.DEBUG

    def test_noisy_loggers_quieted(self, restore_root):
        configure_logging("production")
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, restore_root):
        configure_logging("production", "chatty")
        assert restore_root.level == logging.INFO
