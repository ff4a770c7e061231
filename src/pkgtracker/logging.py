"""Structured JSON logging for pkgtracker.

Each completion step logs with ``extra={"package": ..., "packager": ...,
"step": ...}``; those fields become top-level keys of a JSONL entry in
.pkgtracker/pkgtracker.log (rotated at 5MB, 3 backups).
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOGGER_NAME = "pkgtracker"
LOG_FILENAME = "pkgtracker.log"

_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3
_setup_lock = threading.Lock()

# ``extra=`` attributes promoted to top-level keys, in output order.
_CONTEXT_FIELDS = ("package", "packager", "step", "duration_ms", "error")


class _JsonFormatter(logging.Formatter):
    """One JSON object per line; context fields that are absent or None are omitted."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(
            (name, value) for name in _CONTEXT_FIELDS if (value := getattr(record, name, None)) is not None
        )
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["exception"] = f"{type(exc).__name__}: {exc}"
        return json.dumps(entry, default=str)


def _tracker_handler(logger: logging.Logger) -> RotatingFileHandler | None:
    for h in logger.handlers:
        if isinstance(h, RotatingFileHandler):
            return h
    return None


def setup_logging(tracker_dir: Path, *, level: int = logging.INFO) -> logging.Logger:
    """Attach the JSONL handler for *tracker_dir* to the ``pkgtracker`` logger.

    Repeated calls for the same directory are no-ops; a call for another
    directory moves the handler there. Module loggers propagate into it.
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_path = os.path.abspath(str(tracker_dir / LOG_FILENAME))

    with _setup_lock:
        existing = _tracker_handler(logger)
        if existing is not None:
            if existing.baseFilename == log_path:
                logger.setLevel(level)
                return logger
            logger.removeHandler(existing)
            existing.close()

        handler = RotatingFileHandler(log_path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT)
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger
