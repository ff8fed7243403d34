"""Structured logging for devui.

The dashboard owns the terminal while a session runs, so log records never go
to stdout or stderr. They are written as JSON lines to a file instead.

Primary API:
  - setup_logging / get_logger / ExtraAdapter
  - log_error / log_context
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from devui.config.settings import DEFAULT_LOG_FILE


class JSONFormatter(logging.Formatter):
    """Format log records into JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "extra_fields"):
            entry.update(record.extra_fields)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def _coerce_log_file(log_file: Optional[Union[str, Path]]) -> Path:
    """Resolve log file path and ensure parent exists."""
    path = DEFAULT_LOG_FILE if log_file is None else Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def setup_logging(
    log_file: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
) -> Path:
    """Point the root logger at a JSON-lines file and return its path."""
    resolved = _coerce_log_file(log_file)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    file_handler = logging.FileHandler(resolved, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(JSONFormatter())
    root.addHandler(file_handler)
    return resolved


def get_logger(name: str = __name__) -> logging.Logger:
    """Get logger by name."""
    return logging.getLogger(name)


class ExtraAdapter(logging.LoggerAdapter):
    """Logger adapter that accepts extra kwargs as structured fields."""

    def process(self, msg, kwargs):
        extra = dict(self.extra)

        if "extra" in kwargs:
            raw_extra = kwargs.pop("extra")
            if isinstance(raw_extra, dict):
                extra.update(raw_extra)

        known_keys = {"exc_info", "stack_info", "stacklevel"}
        for key in list(kwargs.keys()):
            if key not in known_keys:
                extra[key] = kwargs.pop(key)

        kwargs["extra"] = {"extra_fields": extra}
        return msg, kwargs


def log_error(logger: logging.LoggerAdapter, error: Exception, context: Optional[Dict[str, Any]] = None):
    """Log error plus optional context."""
    logger.error(f"{type(error).__name__}: {error}", exc_info=error, **(context or {}))


@contextmanager
def log_context(logger: logging.LoggerAdapter, title: str) -> Iterator[None]:
    """Context manager that logs section start/end and exceptions."""
    logger.info(f"[START] {title}")
    try:
        yield
        logger.info(f"[END] {title}")
    except Exception:
        logger.exception(f"[FAIL] {title}")
        raise
