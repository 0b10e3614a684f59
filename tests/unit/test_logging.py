"""Tests for structlog configuration and run-scoped log context."""

from __future__ import annotations

import logging

import pytest
import structlog

from rules_index.utils.logging import configure_logging, get_logger, indexing_log_context


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    structlog.contextvars.clear_contextvars()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


class TestConfigureLogging:
    def test_root_logger_is_bridged(self) -> None:
        configure_logging(log_level="debug")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_chatty_libraries_are_quietened(self) -> None:
        configure_logging(log_level="INFO")
        assert logging.getLogger("aiosqlite").level == logging.WARNING

    def test_json_output(self, capsys: pytest.CaptureFixture) -> None:
        configure_logging(json_output=True)
        structlog.get_logger().info("json_event", pages=3)
        out = capsys.readouterr().out
        assert '"event": "json_event"' in out
        assert '"pages": 3' in out

    def test_get_logger_configures_on_first_use(self) -> None:
        structlog.reset_defaults()
        get_logger("rules_index.test")
        assert structlog.is_configured()


class TestIndexingLogContext:
    def test_binds_and_unbinds_run_keys(self) -> None:
        with indexing_log_context("source-1", "document"):
            assert structlog.contextvars.get_contextvars() == {"source_id": "source-1", "origin": "document"}
        assert structlog.contextvars.get_contextvars() == {}
