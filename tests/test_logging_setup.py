# tests/test_logging_setup.py

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from taskflow.logging_setup import _ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.fixture()
def restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("taskflow.cli.commands", logging.INFO, True),
        ("taskflow.connectors.console_connector", logging.DEBUG, True),
        ("taskflow.tasks.task_store", logging.INFO, False),
        ("taskflow.tasks.task_store", logging.WARNING, True),
        ("taskflow.tasks.task_controller", logging.INFO, False),
        ("taskflow.tasks.task_controller", logging.ERROR, True),
        ("taskflow.llm.client", logging.INFO, False),
        ("openai._base_client", logging.WARNING, True),
        ("httpx", logging.INFO, False),
        ("py.warnings", logging.WARNING, False),
        ("asyncio", logging.ERROR, True),
    ],
)
def test_console_filter(name: str, level: int, shown: bool) -> None:
    assert _ConsoleNoiseFilter().filter(_record(name, level)) is shown


def test_setup_logging_writes_app_log_file(tmp_path: Path, restore_root_logging: None) -> None:
    log_file = setup_logging(log_dir=tmp_path / "logs", app_name="tf-test")

    logging.getLogger("taskflow.tasks.task_store").debug("store detail")
    for h in logging.getLogger().handlers:
        h.flush()

    assert log_file == tmp_path / "logs" / "tf-test.log"
    assert "store detail" in log_file.read_text(encoding="utf-8")
