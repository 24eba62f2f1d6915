# tests/unit/logging/test_unit_logging.py — v1
"""Tests for logging/ — context variables, formatters, rotation."""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler

import pytest

from sitepipe.logging.context import (
    clear_context,
    get_context,
    set_execution_context,
    set_stage_context,
)
from sitepipe.logging.handlers import create_rotating_handler, parse_size
from sitepipe.logging.logger import JsonFormatter, TextFormatter, get_logger, setup_logging


def _record(msg="Hello", exc_info=None):
    return logging.LogRecord(
        name="test", level=logging.INFO, pathname="", lineno=0,
        msg=msg, args=(), exc_info=exc_info,
    )


class TestContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_empty_by_default(self):
        assert get_context().as_dict() == {}

    def test_execution_and_stage(self):
        set_execution_context("7", commit="abc123")
        set_stage_context("Build", attempt=1)
        assert get_context().as_dict() == {
            "execution_id": "7", "commit": "abc123", "stage": "Build", "attempt": 1,
        }

    def test_clear(self):
        set_execution_context("7")
        clear_context()
        assert get_context().execution_id is None


class TestJsonFormatter:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Hello"
        assert "context" not in parsed

    def test_format_with_context(self):
        set_execution_context("12", commit="deadbeef")
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["context"]["execution_id"] == "12"
        assert parsed["context"]["commit"] == "deadbeef"

    def test_extra_data(self):
        record = _record()
        record.data = {"sequence": 3}
        assert json.loads(JsonFormatter().format(record))["data"] == {"sequence": 3}

    def test_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record(exc_info=sys.exc_info())
        parsed = json.loads(JsonFormatter().format(record))
        assert parsed["exc_type"] == "RuntimeError"
        assert "RuntimeError: boom" in parsed["exception"]


class TestTextFormatter:
    def teardown_method(self):
        clear_context()

    def test_includes_execution_and_stage(self):
        set_execution_context("4")
        set_stage_context("Deploy")
        line = TextFormatter().format(_record("published"))
        assert "[exec 4/Deploy]" in line
        assert line.endswith("- published")


class TestSetup:
    def teardown_method(self):
        logging.getLogger("sitepipe").handlers.clear()

    def test_get_logger_namespace(self):
        assert get_logger("orchestrator").name == "sitepipe.orchestrator"

    def test_setup_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "sitepipe.log"
        setup_logging(level="DEBUG", log_format="text", log_file=str(log_file))
        root = logging.getLogger("sitepipe")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert isinstance(root.handlers[0].formatter, TextFormatter)
        assert log_file.parent.is_dir()

    def test_setup_twice_does_not_duplicate(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger("sitepipe").handlers) == 1


class TestHandlers:
    @pytest.mark.parametrize(
        "text,expected",
        [("10MB", 10 * 1024**2), ("512kb", 512 * 1024), ("2 GB", 2 * 1024**3), ("100", 100)],
    )
    def test_parse_size(self, text, expected):
        assert parse_size(text) == expected

    def test_parse_size_invalid(self):
        with pytest.raises(ValueError):
            parse_size("ten megs")

    def test_rotating_handler(self, tmp_path):
        handler = create_rotating_handler(str(tmp_path / "a" / "b.log"), "1KB", 3)
        try:
            assert isinstance(handler, RotatingFileHandler)
            assert handler.maxBytes == 1024
            assert handler.backupCount == 3
        finally:
            handler.close()
