"""Tests for Rich logging setup."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from rich.logging import RichHandler

from opqueue.core.console import setup_logging


@pytest.fixture(autouse=True)
def restore_package_logger() -> Iterator[None]:
    logger = logging.getLogger("opqueue")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    logger.handlers[:], logger.level, logger.propagate = saved


def test_setup_logging_installs_single_rich_handler() -> None:
    logger = setup_logging("warning")
    setup_logging("warning")
    assert logger.name == "opqueue"
    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], RichHandler)
    assert logger.propagate is False


def test_verbose_forces_debug() -> None:
    assert setup_logging("ERROR", verbose=True).level == logging.DEBUG


def test_unknown_level_falls_back_to_info() -> None:
    assert setup_logging("chatty").level == logging.INFO


def test_module_loggers_inherit_level() -> None:
    setup_logging("WARNING")
    assert logging.getLogger("opqueue.core.queue").getEffectiveLevel() == logging.WARNING


def test_level_defaults_to_config(isolate_config: Path) -> None:
    isolate_config.write_text('log_level = "DEBUG"\n', encoding="utf-8")
    assert setup_logging().level == logging.DEBUG
