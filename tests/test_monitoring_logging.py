"""Tests for logging setup."""

import json
import logging
import sys
from pathlib import Path

import pytest
from twitter_list_rss.config import MonitoringConfig
from twitter_list_rss.monitoring.logging import JSONFormatter, setup_logging, setup_structured_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg: str, *args, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="twitter_list_rss.test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


class TestJSONFormatter:
    def test_formats_basic_message(self) -> None:
        data = json.loads(JSONFormatter().format(_record("polled %d tweets", 3)))
        assert data["message"] == "polled 3 tweets"
        assert data["level"] == "INFO"
        assert data["logger"] == "twitter_list_rss.test"
        assert "ts" in data

    def test_formats_exception(self) -> None:
        try:
            raise ValueError("quota gone")
        except ValueError:
            record = _record("boom", exc_info=sys.exc_info())
        data = json.loads(JSONFormatter().format(record))
        assert data["error"] == "ValueError"
        assert "quota gone" in data["exception"]

    def test_lifts_endpoint_out_of_extra_data(self) -> None:
        record = _record("rate limit")
        record.extra_data = {"endpoint": "/lists/:id/tweets", "remaining": 0}
        data = json.loads(JSONFormatter().format(record))
        assert data["endpoint"] == "/lists/:id/tweets"
        assert data["data"] == {"remaining": 0}
        assert record.extra_data["endpoint"] == "/lists/:id/tweets"

    def test_omits_data_when_only_promoted_fields(self) -> None:
        record = _record("polled")
        record.extra_data = {"list_id": "123"}
        data = json.loads(JSONFormatter().format(record))
        assert data["list_id"] == "123"
        assert "data" not in data


class TestSetup:
    def test_structured_logging_writes_json_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "app.log"
        setup_structured_logging(log_file=log_file, level=logging.DEBUG)
        logging.getLogger("twitter_list_rss.test").info("hello %s", "file")
        for handler in logging.getLogger().handlers:
            handler.flush()
        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["message"] == "hello file"

    def test_setup_logging_structured(self, tmp_path: Path) -> None:
        setup_logging(MonitoringConfig(structured_logging=True, log_file=str(tmp_path / "app.log")))
        root = logging.getLogger()
        assert all(isinstance(h.formatter, JSONFormatter) for h in root.handlers)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_setup_logging_plain_with_level(self) -> None:
        setup_logging(MonitoringConfig(log_level="debug"))
        assert logging.getLogger().level == logging.DEBUG
        assert not any(isinstance(h.formatter, JSONFormatter) for h in logging.getLogger().handlers)
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_setup_logging_unknown_level_defaults_to_info(self) -> None:
        setup_logging(MonitoringConfig(log_level="chatty"))
        assert logging.getLogger().level == logging.INFO
