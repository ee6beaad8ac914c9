"""Process-wide logging: console plus a daily rotated ``hub.log``."""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "hub.log"

_HANDLER_MARKER = "_automation_hub_handler"


def configure_logging(logs_dir: Path | None, level: str = "INFO") -> None:
    """Install console and file handlers on the root logger once per process.

    Rotated files are named ``hub.log.YYYY-MM-DD``; deleting old ones is left
    to the retention pass.
    """

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    setattr(console_handler, _HANDLER_MARKER, True)
    root.addHandler(console_handler)

    if logs_dir is None:
        return
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            logs_dir / LOG_FILE_NAME,
            when="midnight",
            utc=True,
            encoding="utf-8",
        )
    except OSError as error:
        root.warning("File logging disabled, cannot open %s: %s", logs_dir, error)
        return
    file_handler.setFormatter(formatter)
    setattr(file_handler, _HANDLER_MARKER, True)
    root.addHandler(file_handler)
