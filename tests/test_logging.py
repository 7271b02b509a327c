import logging
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath("src"))

from supplylist_automation.logging import get_logger, resolve_level


@pytest.fixture
def fresh_name(request):
    name = f"test.{request.node.name}"
    yield name
    logger = logging.getLogger(f"supplylist.{name}")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.mark.parametrize(
    "raw,expected",
    [("debug", logging.DEBUG), (" WARN ", logging.WARNING), ("fatal", logging.CRITICAL), ("loud", logging.INFO), (None, logging.INFO), (15, 15)],
)
def test_resolve_level(raw, expected):
    assert resolve_level(raw) == expected


def test_logger_is_configured_once(fresh_name, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.delenv("LOG_FILE", raising=False)
    logger = get_logger(fresh_name)
    again = get_logger(fresh_name)
    assert logger is again
    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG
    assert logger.propagate is False
    assert logger.name == f"supplylist.{fresh_name}"


def test_log_file_receives_records(fresh_name, tmp_path, monkeypatch):
    path = tmp_path / "run.log"
    monkeypatch.setenv("LOG_FILE", str(path))
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    logger = get_logger(fresh_name)
    logger.info("hello file")
    for handler in logger.handlers:
        handler.flush()
    text = path.read_text(encoding="utf-8")
    assert f"[supplylist.{fresh_name}] INFO: hello file" in text


def test_unwritable_log_file_falls_back_to_stderr(fresh_name, tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "missing-dir" / "run.log"))
    logger = get_logger(fresh_name)
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.StreamHandler)
