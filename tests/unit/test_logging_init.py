from __future__ import annotations

import logging

from sharepoint_sync.logging.init import (
    LOGGER_NAME,
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    setup_logging,
)


def test_setup_logging_creates_logger_with_labeled_formatter() -> None:
    logger = setup_logging()
    assert logger.name == LOGGER_NAME == "sharepoint_sync"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_setup_logging_is_idempotent_and_updates_level() -> None:
    first = setup_logging()
    second = setup_logging(debug=True)
    assert first is second
    assert len(second.handlers) == 1
    assert second.level == logging.DEBUG
    assert second.handlers[0].level == logging.DEBUG


def test_labeled_prefixes(capsys) -> None:
    setup_logging()
    child = logging.getLogger("sharepoint_sync.services.reconcile")
    child.info("hello")
    child.warning("careful")
    child.error("broken")
    log_summary("worksheets=1/1")
    out = capsys.readouterr().out.splitlines()
    assert out == ["INFO hello", "WARN careful", "ERROR broken", "SUMMARY worksheets=1/1"]


def test_debug_hidden_unless_enabled(capsys) -> None:
    setup_logging()
    get_logger().debug("quiet")
    assert capsys.readouterr().out == ""


def test_summary_level_label() -> None:
    record = logging.LogRecord(LOGGER_NAME, SUMMARY_LEVEL, __file__, 1, "x=1", None, None)
    assert LabeledFormatter().format(record) == "SUMMARY x=1"
