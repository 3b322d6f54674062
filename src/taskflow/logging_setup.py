# src/taskflow/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path


# App loggers whose INFO lines repeat what the command reply already prints.
_QUIET_APP_LOGGERS = (
    "taskflow.tasks.task_store",
    "taskflow.tasks.task_controller",
    "taskflow.llm.client",
)

# Third-party loggers worth a WARNING on the console (timeouts, retries).
_CHATTY_THIRD_PARTY = ("openai", "httpx")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable while the REPL prompt is active.

    Full detail always goes to the log file; this filter only applies to stderr.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name == "taskflow" or name.startswith("taskflow."):
            if name.startswith(_QUIET_APP_LOGGERS):
                return record.levelno >= logging.WARNING
            return True

        if name.startswith(_CHATTY_THIRD_PARTY):
            return record.levelno >= logging.WARNING

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskflow",
    app_name: str = "taskflow",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Route logs to stderr (filtered) and to `<log_dir>/<app_name>.log` (everything at file_level).

    Replaces any handlers already on the root logger. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{app_name}.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    # httpcore logs every connection step at DEBUG; the file does not need it.
    logging.getLogger("httpcore").setLevel(logging.INFO)

    logging.captureWarnings(True)
    return log_file
