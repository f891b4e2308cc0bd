"""Unit tests for the logging abstraction."""

from __future__ import annotations

import json
import logging

from webview_comm.correlation import correlation_context
from webview_comm.logging_abstraction import CommLogger, HumanReadableFormatter, JSONFormatter, get_logger


def make_record(message: str = "hello %s", args: tuple[object, ...] = ("world",), extra=None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="webview_comm.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=42,
        msg=message,
        args=args,
        exc_info=None,
    )
    if extra is not None:
        record.extra_data = extra
    return record


class TestJSONFormatter:
    """Tests for JSON log output."""

    def test_json_contains_message_and_context(self):
        """Test that the JSON line carries message, level and structured context."""
        record = make_record(extra={"endpoint": "host", "request_id": "r-1"})

        with correlation_context("abc123"):
            data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "hello world"
        assert data["level"] == "WARNING"
        assert data["correlation_id"] == "abc123"
        assert data["endpoint"] == "host"
        assert data["context"] == {"request_id": "r-1"}

    def test_json_without_context(self):
        """Test that records without extra data omit the context key."""
        data = json.loads(JSONFormatter().format(make_record()))
        assert "context" not in data
        assert data["endpoint"] is None
        assert data["location"].startswith("test_logging_abstraction:")
        assert data["correlation_id"] is None


class TestHumanReadableFormatter:
    """Tests for human-readable log output."""

    def test_includes_short_correlation_id_and_context(self):
        """Test that the line shows the first 8 id characters and key=value context."""
        record = make_record(extra={"endpoint": "ui", "command": "sort"})

        with correlation_context("0123456789abcdef"):
            line = HumanReadableFormatter().format(record)

        assert "[01234567]" in line
        assert "hello world" in line
        assert "WARNING (ui)" in line
        assert line.endswith("| command=sort")

    def test_placeholder_without_correlation_id(self):
        """Test that a dashed placeholder is shown outside any context."""
        line = HumanReadableFormatter().format(make_record())
        assert "[--------]" in line


class TestCommLogger:
    """Tests for the CommLogger wrapper."""

    def test_get_logger_returns_wrapper(self):
        """Test that get_logger() wraps the stdlib logger of the same name."""
        logger = get_logger("webview_comm.tests.wrapper")
        assert isinstance(logger, CommLogger)
        assert logger.logger is logging.getLogger("webview_comm.tests.wrapper")

    def test_handlers_not_duplicated(self):
        """Test that creating the same logger twice does not add handlers twice."""
        first = get_logger("webview_comm.tests.dupes")
        count = len(first.handlers)
        second = get_logger("webview_comm.tests.dupes")
        assert len(second.handlers) == count

    def test_extra_is_attached_to_record(self, caplog):
        """Test that extra context reaches the record as extra_data."""
        logger = get_logger("webview_comm.tests.extra")
        with caplog.at_level(logging.INFO, logger="webview_comm.tests.extra"):
            logger.info("Sent %s", "PING", extra={"endpoint": "host"})

        record = caplog.records[-1]
        assert record.getMessage() == "Sent PING"
        assert record.extra_data == {"endpoint": "host"}
        # Caller's location, not the wrapper's
        assert record.module == "test_logging_abstraction"

    def test_exception_logs_traceback(self, caplog):
        """Test that exception() records exc_info."""
        logger = get_logger("webview_comm.tests.exc")
        with caplog.at_level(logging.ERROR, logger="webview_comm.tests.exc"):
            try:
                raise ValueError("bad")
            except ValueError:
                logger.exception("Handler raised", extra={"command": "sort"})

        record = caplog.records[-1]
        assert record.exc_info is not None
        assert record.extra_data == {"command": "sort"}

    def test_set_level_filters_records(self, caplog):
        """Test that records below the logger level are not emitted."""
        logger = get_logger("webview_comm.tests.level")
        logger.set_level(logging.WARNING)
        with caplog.at_level(logging.WARNING, logger="webview_comm.tests.level"):
            logger.info("Retransmitting")
            logger.warning("Delivery failed")

        assert [r.getMessage() for r in caplog.records] == ["Delivery failed"]

    def test_json_file_output(self, tmp_path):
        """Test that json format writes JSON lines to the configured file."""
        path = tmp_path / "logs" / "comm.jsonl"
        logger = CommLogger("webview_comm.tests.jsonfile", log_format="json", json_file=path)

        logger.warning("Peer degraded", extra={"missed": 3})
        for handler in logger.handlers:
            handler.flush()

        line = path.read_text().strip().splitlines()[-1]
        data = json.loads(line)
        assert data["message"] == "Peer degraded"
        assert data["context"] == {"missed": 3}
