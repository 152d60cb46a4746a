from __future__ import annotations

import logging

from crm_import.logging.init import (
    APP_LOGGER_NAME,
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    set_debug,
    setup_logging,
)


def test_setup_logging_idempotent():
    first = setup_logging()
    second = setup_logging()
    assert first is second
    assert first.name == APP_LOGGER_NAME
    assert len(first.handlers) == 1
    assert first.propagate is False


def test_labels(capsys):
    logger = setup_logging()
    logger.info("hello")
    logger.warning("careful")
    logger.error("broken")
    log_summary("kind=offers rows=0")
    out = capsys.readouterr().out.splitlines()
    assert out == ["INFO hello", "WARN careful", "ERROR broken", "SUMMARY kind=offers rows=0"]


def test_module_loggers_propagate_to_app_logger(capsys):
    setup_logging()
    logging.getLogger("crm_import.services.offers").warning("sheet skipped")
    assert capsys.readouterr().out.strip() == "WARN sheet skipped"


def test_debug_hidden_until_enabled(capsys):
    logger = get_logger()
    logger.debug("hidden")
    assert capsys.readouterr().out == ""
    set_debug()
    logger.debug("visible")
    out = capsys.readouterr().out
    assert "DEBUG debug mode enabled" in out
    assert "DEBUG visible" in out


def test_error_with_exc_info_includes_traceback():
    fmt = LabeledFormatter()
    try:
        raise ValueError("boom")
    except ValueError:
        import sys

        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
    text = fmt.format(record)
    assert text.startswith("ERROR failed")
    assert "ValueError: boom" in text


def test_summary_level_label():
    record = logging.LogRecord("x", SUMMARY_LEVEL, __file__, 1, "done", None, None)
    assert LabeledFormatter().format(record) == "SUMMARY done"
