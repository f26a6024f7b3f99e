"""
Structured JSON Logging.

Every component receives a ``StructuredLogger`` through its constructor.
Records are written as one JSON object per line to stdout and to a
rotating file, so a verification run can be followed by ``event`` key:
``SESSION_HYDRATED`` → ``PROFILE_CREATE`` → ``ONBOARDING_REDIRECT``.

Record layout::

    {"timestamp": "...", "level": "INFO", "logger": "services",
     "event": "SESSION_HYDRATED", "message": "...",
     "task": "profile-load:user-1", "context": {"user_id": "user-1"}}

``event`` and ``task`` are omitted when absent; any other ``extra`` field
lands under ``context``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, TextIO

if TYPE_CHECKING:
    from authflow.config import AppConfig

# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Render a ``LogRecord`` as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }

        context = {
            key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS
        }
        event = context.pop("event", None)
        if event is not None:
            entry["event"] = str(event)
        entry["message"] = record.getMessage()

        task_name = _current_task_name()
        if task_name is not None:
            entry["task"] = task_name
        if context:
            entry["context"] = context

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False, default=str)


def _current_task_name() -> Optional[str]:
    try:
        task = asyncio.current_task()
    except RuntimeError:
        return None
    return task.get_name() if task is not None else None


class StructuredLogger:
    """Injectable wrapper around a JSON-configured ``logging.Logger``.

    Usage::

        log = StructuredLogger(name="services")
        log.info("Session hydrated for %s", user_id, extra={"event": "SESSION_HYDRATED"})

    Parameters
    ----------
    name:
        Name of the underlying ``logging.Logger``.  Handlers are attached
        once per name; a second instance with the same name reuses them.
    level:
        Explicit level; defaults to ``LOG_LEVEL`` from the configuration.
    stream:
        Console stream; ``sys.stdout`` when omitted.
    log_file:
        Rotating log file; defaults to ``LOG_FILE``.  An unwritable path
        degrades to console-only logging.
    config:
        Settings to read defaults from; the cached ``get_config()`` when
        omitted.
    """

    def __init__(
        self,
        name: str = "authflow",
        level: Optional[int] = None,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        config: Optional["AppConfig"] = None,
    ) -> None:
        if config is None:
            # Deferred: config imports the models package, which must not
            # depend on logging at import time.
            from authflow.config import get_config

            config = get_config()

        self._logger: logging.Logger = logging.getLogger(name)
        resolved_level = level if level is not None else _parse_level(config.LOG_LEVEL)
        self._logger.setLevel(resolved_level)

        if not self._logger.handlers:
            formatter = JSONFormatter()
            console = logging.StreamHandler(stream or sys.stdout)
            console.setFormatter(formatter)
            console.setLevel(resolved_level)
            self._logger.addHandler(console)

            target = log_file or config.LOG_FILE
            try:
                rotating = _rotating_file_handler(
                    target, config.LOG_MAX_BYTES, config.LOG_BACKUP_COUNT,
                )
            except OSError as exc:
                self._logger.warning(
                    "Cannot open log file %s (%s); logging to console only.", target, exc,
                    extra={"event": "LOG_FILE_UNAVAILABLE"},
                )
            else:
                rotating.setFormatter(formatter)
                rotating.setLevel(resolved_level)
                self._logger.addHandler(rotating)

    @property
    def logger(self) -> logging.Logger:
        """The wrapped ``logging.Logger``."""
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _rotating_file_handler(log_file: str, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )


def get_logger(name: str = "authflow") -> StructuredLogger:
    """Return a ``StructuredLogger`` for *name* using the cached configuration."""
    return StructuredLogger(name=name)
