"""Tests for logging setup."""

import json
import logging
import sys

import pytest
from rich.logging import RichHandler

from avi_session import AviError, setup_logging
from avi_session.logging_config import JsonFormatter


@pytest.fixture
def package_logger():
    logger = logging.getLogger("avi_session")
    saved = (logger.level, list(logger.handlers))
    yield logger
    logger.setLevel(saved[0])
    logger.handlers = saved[1]


def test_rich_console_by_default(package_logger):
    logger = setup_logging("debug")

    assert logger is package_logger
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], RichHandler)


def test_json_format_with_log_file(package_logger, tmp_path):
    log_file = tmp_path / "avi.log"

    logger = setup_logging("INFO", log_file=str(log_file), json_format=True)

    assert len(logger.handlers) == 2
    assert all(isinstance(h.formatter, JsonFormatter) for h in logger.handlers)
    for handler in logger.handlers:
        handler.close()


def test_repeated_setup_replaces_handlers(package_logger):
    setup_logging("INFO")
    logger = setup_logging("WARNING", json_format=True)

    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, JsonFormatter)


def test_json_formatter_includes_error_context():
    try:
        raise AviError("GET", "https://c/api/x", http_status_code=400, message="bad")
    except AviError:
        record = logging.getLogger("avi_session.test").makeRecord(
            "avi_session.test", logging.ERROR, __file__, 1, "request failed", None,
            exc_info=sys.exc_info(),
        )

    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "request failed"
    assert data["exception_type"] == "AviError"
    assert data["error_context"]["http_status_code"] == 400
