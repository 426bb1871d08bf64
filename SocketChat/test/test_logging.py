"""
Tests for logging setup and the LogTimer helper.
"""

import json
import logging

import pytest

from SocketChat.core.logging import JsonFormatter, LogConfig, LoggingManager
from SocketChat.core.logging.utils import LogTimer


@pytest.fixture
def manager():
    root = logging.getLogger()
    level = root.level
    mgr = LoggingManager()
    yield mgr
    mgr.configure(LogConfig(level="WARNING", console_output=False, file_output=False))
    root.setLevel(level)


def test_file_output(manager, tmp_path):
    manager.configure(LogConfig(level="INFO", log_dir=str(tmp_path), console_output=False))
    logging.getLogger("SocketChat.test").info("hello %s", "file")
    logging.getLogger("SocketChat.test").error("broken")
    for handler in logging.getLogger().handlers:
        handler.flush()

    main_log = (tmp_path / "socketchat.log").read_text(encoding="utf-8")
    error_log = (tmp_path / "socketchat_errors.log").read_text(encoding="utf-8")
    assert "hello file" in main_log
    assert "broken" in error_log
    assert "hello file" not in error_log


def test_reconfigure_replaces_handlers(manager, tmp_path):
    root = logging.getLogger()
    before = len(root.handlers)

    manager.configure(LogConfig(log_dir=str(tmp_path), console_output=False))
    manager.configure(LogConfig(log_dir=str(tmp_path), console_output=False))

    assert len(root.handlers) == before + 2


def test_component_levels(manager):
    manager.configure(LogConfig(console_output=False, file_output=False,
                                component_levels={"websockets": "ERROR"}))
    assert logging.getLogger("websockets").level == logging.ERROR


def test_json_formatter():
    record = logging.LogRecord("SocketChat.x", logging.INFO, __file__, 10, "user %s", ("alice",), None)
    data = json.loads(JsonFormatter().format(record))
    assert data["message"] == "user alice"
    assert data["level"] == "INFO"
    assert data["logger"] == "SocketChat.x"


def test_log_timer(caplog):
    logger = logging.getLogger("SocketChat.test.timer")
    with caplog.at_level(logging.DEBUG, logger="SocketChat.test.timer"):
        with LogTimer("persist", logger) as timer:
            pass
        with pytest.raises(ValueError):
            with LogTimer("explode", logger):
                raise ValueError("nope")

    assert timer.duration is not None and timer.duration >= 0
    assert "Operation 'persist' completed" in caplog.text
    assert "Operation 'explode' failed" in caplog.text
