"""Unit tests for structured logging."""

import json
import logging
import sys

import pytest

from portraitdex_core.observability.logging import (
    NOISY_LOGGERS,
    JsonFormatter,
    configure_logging,
)


def make_record(level=logging.INFO, msg="Fetch run finished: success", args=(), exc_info=None):
    return logging.LogRecord(
        name="portraitdex_core.domain.services.reconciliation",
        level=level,
        pathname="reconciliation.py",
        lineno=42,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


class TestJsonFormatter:
    """Tests for JSON log formatting."""

    def test_format_basic_log_record(self):
        output = json.loads(JsonFormatter(service_name="portraitdex-worker").format(make_record()))

        assert output["level"] == "INFO"
        assert output["message"] == "Fetch run finished: success"
        assert output["service"] == "portraitdex-worker"
        assert output["logger"] == "portraitdex_core.domain.services.reconciliation"
        assert "source" not in output

    def test_warnings_carry_source_location(self):
        output = json.loads(JsonFormatter().format(make_record(level=logging.WARNING)))

        assert output["source"]["line"] == 42

    def test_format_log_with_extra_fields(self):
        record = make_record()
        record.portrait_id = 7
        record.unserializable = object()

        output = json.loads(JsonFormatter().format(record))

        assert output["portrait_id"] == 7
        assert isinstance(output["unserializable"], str)

    def test_format_log_with_exception(self):
        try:
            raise ValueError("bad hash")
        except ValueError:
            record = make_record(level=logging.ERROR, exc_info=sys.exc_info())

        output = json.loads(JsonFormatter().format(record))

        assert "ValueError: bad hash" in output["exception"]

    def test_format_log_with_message_args(self):
        record = make_record(msg="Checking %d ids", args=(5,))

        assert json.loads(JsonFormatter().format(record))["message"] == "Checking 5 ids"


class TestConfigureLogging:
    """Tests for root logger setup."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_configure_logging_sets_level(self):
        configure_logging(level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG

    def test_configure_logging_json_format(self):
        configure_logging(json_format=True, service_name="portraitdex")

        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, JsonFormatter)
        assert handler.formatter.service_name == "portraitdex"

    def test_configure_logging_plain_format(self):
        configure_logging(json_format=False)

        assert not isinstance(logging.getLogger().handlers[0].formatter, JsonFormatter)

    def test_http_client_loggers_are_quieted(self):
        configure_logging(level="DEBUG")

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING
