"""
Tests for nockgate_core.logging_config.
"""

from __future__ import annotations

import json
import logging
import sys

import pytest

from nockgate_core.logging_config import (
    Base58MaskFilter,
    _HumanFormatter,
    _JSONFormatter,
    setup_logging,
    short,
)

KEY = "7Hd3kQ9xWm2LpR5tYv8NcB4gZs6JfA1uEoK3rTqXyPw"   # 43-char base58 public key


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg="hello %s", args=("world",), level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord("nockgate_test", level, __file__, 1, msg, args, exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_formatter(self):
        obj = json.loads(_JSONFormatter().format(_record()))
        assert obj["level"] == "INFO"
        assert obj["logger"] == "nockgate_test"
        assert obj["msg"] == "hello world"
        assert obj["ts"].endswith("+00:00")
        assert "exception" not in obj
        assert "swap_id" not in obj

    def test_json_context_fields(self):
        obj = json.loads(_JSONFormatter().format(_record(swap_id="swap-1", step="draft")))
        assert obj["swap_id"] == "swap-1"
        assert obj["step"] == "draft"
        assert "action" not in obj

    def test_json_formatter_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            rec = _record(exc_info=sys.exc_info())
        obj = json.loads(_JSONFormatter().format(rec))
        assert "ValueError: boom" in obj["exception"]

    def test_human_formatter_colour(self):
        line = _HumanFormatter().format(_record(level=logging.WARNING))
        assert line.split(" ", 1)[1].startswith("\033[33m[WARNING]")
        assert "nockgate_test: hello world" in line

    def test_human_formatter_plain_with_context(self):
        line = _HumanFormatter(colour=False).format(_record(action="send"))
        assert "\033[" not in line
        assert line.endswith("nockgate_test: hello world (action=send)")


class TestMasking:
    def test_short(self):
        assert short("abc") == "abc"
        assert short("A" * 44) == "AAAAAAAA…"
        assert short("abcdefghij", keep=4) == "abcd…"

    def test_long_base58_runs_masked(self):
        rec = _record("key %s sig %s", (KEY, "5" * 88))
        assert Base58MaskFilter().filter(rec) is True
        assert rec.getMessage() == f"key {KEY[:8]}… sig 55555555…"

    def test_short_tokens_untouched(self):
        rec = _record("note 2VqVfirst1 nonce %s", ("a1b2c3d4e5f6",))
        Base58MaskFilter().filter(rec)
        assert rec.args == ("a1b2c3d4e5f6",)
        assert rec.getMessage() == "note 2VqVfirst1 nonce a1b2c3d4e5f6"


class TestSetupLogging:
    def test_console_json(self, restore_root_logger):
        setup_logging(level="debug", fmt="json")
        root = restore_root_logger
        assert root.level == logging.DEBUG
        [handler] = root.handlers
        assert isinstance(handler.formatter, _JSONFormatter)
        assert any(isinstance(f, Base58MaskFilter) for f in handler.filters)
        assert logging.getLogger("aiohttp.access").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        setup_logging(level="chatty")
        assert restore_root_logger.level == logging.INFO
        assert isinstance(restore_root_logger.handlers[0].formatter, _HumanFormatter)

    def test_log_file_is_json_and_masked(self, restore_root_logger, tmp_path):
        path = tmp_path / "logs" / "gw.log"
        setup_logging(level="INFO", fmt="human", log_file=str(path))
        logging.getLogger("nockgate_test").info(
            "accepted %s", KEY, extra={"swap_id": "swap-9"},
        )
        for h in restore_root_logger.handlers:
            h.flush()
        [line] = path.read_text().splitlines()
        obj = json.loads(line)
        assert obj["msg"] == f"accepted {KEY[:8]}…"
        assert obj["swap_id"] == "swap-9"
        assert KEY not in line
