"""
Logging helpers shared by the randomcut engines.

Environment variables:
  RANDOMCUT_LOG_LEVEL=DEBUG|INFO|WARNING|ERROR (default WARNING)
  RANDOMCUT_JSON_LOGS=1 to emit JSON lines instead of plain text
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _make_stream_handler(level: int, json_logs: bool) -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    if json_logs:
        handler.setFormatter(_JsonFormatter())
    else:
        fmt = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
        handler.setFormatter(logging.Formatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Create or retrieve a logger below the ``randomcut`` namespace.
    The package root logger gets a single stdout handler the first time it is
    requested; module loggers propagate to it.
    Args:
        name: Dotted module name. None returns the package root logger.
    Returns:
        Configured logging.Logger.
    """
    root = logging.getLogger("randomcut")
    if not root.handlers:
        level_name = os.environ.get("RANDOMCUT_LOG_LEVEL", "WARNING").upper()
        level = getattr(logging, level_name, logging.WARNING)
        json_logs = os.environ.get("RANDOMCUT_JSON_LOGS", "0") == "1"
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_make_stream_handler(level, json_logs))

    if not name or name == "randomcut":
        return root
    if not name.startswith("randomcut."):
        name = f"randomcut.{name}"
    return logging.getLogger(name)
