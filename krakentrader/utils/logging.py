"""Structured logging utilities."""

from __future__ import annotations

import enum
import json
import logging
import os
from datetime import datetime
from decimal import Decimal
from logging.handlers import RotatingFileHandler
from typing import Any


def get_logger(name: str = "krakentrader") -> logging.Logger:
    """Return a logger configured to emit JSON formatted messages.

    If the environment variable ``LOG_FILE`` is set, logs are also written to a
    rotating file handler with size and backup limits controlled by
    ``LOG_MAX_BYTES`` and ``LOG_BACKUP_COUNT``. The console handler always
    emits plain JSON lines suitable for log ingestion.
    """

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level, logging.INFO))

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(stream_handler)

    log_path = os.getenv("LOG_FILE")
    if log_path:
        directory = os.path.dirname(log_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        max_bytes = int(os.getenv("LOG_MAX_BYTES", "10485760"))  # 10 MB
        backup_count = int(os.getenv("LOG_BACKUP_COUNT", "5"))
        file_handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(file_handler)

    return logger


def json_default(o: Any):
    """JSON serializer for decimals, datetimes, enums and sets."""
    if isinstance(o, Decimal):
        # keep full precision, prices must not round-trip through float
        return format(o, "f")
    if isinstance(o, datetime):
        return o.isoformat()
    if isinstance(o, enum.Enum):
        return o.value
    if isinstance(o, (set, frozenset)):
        return sorted(o)
    return str(o)


def log_json(logger: logging.Logger, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
    """Emit a structured JSON log entry."""

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **kwargs}
    logger.log(level, json.dumps(payload, default=json_default))


__all__ = ["get_logger", "log_json", "json_default"]
