"""
Logging setup shared by the server and the subscriber client.

- Console output always, one line per record.
- With LOG_DIR set, daily-rotated info.log (INFO+) and error.log (ERROR+).
"""
from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from topicast.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# (file name, minimum level, days kept)
_FILE_TARGETS = (
    ("info.log", logging.INFO, 14),
    ("error.log", logging.ERROR, 30),
)


def log_level(settings: Settings) -> int:
    if settings.DEBUG:
        return logging.DEBUG
    return getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)


def setup_logging(settings: Settings) -> None:
    level = log_level(settings)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)
    if settings.LOG_DIR:
        _add_file_handlers(root, Path(settings.LOG_DIR).expanduser())
    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(level)


def _add_file_handlers(root: logging.Logger, log_dir: Path) -> None:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        # Console logging still works; file logging is skipped.
        logging.getLogger("topicast.log").exception("Failed to create log directory: %s", log_dir)
        return

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    existing = {
        Path(h.baseFilename)
        for h in root.handlers
        if isinstance(h, TimedRotatingFileHandler)
    }
    for name, level, keep_days in _FILE_TARGETS:
        path = (log_dir / name).resolve()
        if path in existing:
            continue
        handler = TimedRotatingFileHandler(
            path, when="midnight", backupCount=keep_days, encoding="utf-8"
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)
