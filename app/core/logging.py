"""Centralized logging configuration with JSON-formatted extras."""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from app.services.optimizer.state_store import JobStateStore


class JSONExtrasFormatter(logging.Formatter):
    """Formatter that outputs a readable log line with extras as JSON.

    Output format:
        2024-01-15 10:30:45 | INFO | app.module | Message {"key": "value"}
    """

    RESERVED_ATTRS = frozenset(
        {
            "args",
            "asctime",
            "created",
            "exc_info",
            "exc_text",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "message",
            "module",
            "msecs",
            "msg",
            "name",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "taskName",
            "thread",
            "threadName",
        }
    )

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        timestamp = self.formatTime(record, self.datefmt)
        base = f"{timestamp} | {record.levelname:<8} | {record.name} | {record.message}"

        extras = {
            k: v
            for k, v in record.__dict__.items()
            if k not in self.RESERVED_ATTRS and not k.startswith("_")
        }

        if extras:
            try:
                extras_str = json.dumps(extras, default=str, ensure_ascii=False)
                base = f"{base} {extras_str}"
            except (TypeError, ValueError):
                pass

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            base = f"{base}\n{record.exc_text}"

        return base


def setup_logging(level: int = logging.INFO) -> None:
    """Configure the root 'app' logger with console output and JSON extras."""
    logger = logging.getLogger("app")
    logger.setLevel(level)

    # Avoid adding duplicate handlers if called multiple times
    if logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        JSONExtrasFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    )

    logger.addHandler(handler)
    logger.propagate = False


class JobLogger:
    """Log sink for one job run.

    Every line lands in the job's own log inside the state store. Silent runs
    (bulk mode) emit to the module logger at DEBUG so they stay out of the
    activity stream but still carry the target id.
    """

    def __init__(
        self,
        logger: logging.Logger,
        store: JobStateStore,
        *,
        silent: bool = False,
    ) -> None:
        self._logger = logger
        self._store = store
        self.silent = silent
        self.target_id: str | None = None

    def bind(self, target_id: str) -> None:
        """Attach subsequent lines to a target."""
        self.target_id = target_id

    def info(self, message: str, **extra: Any) -> None:
        self._emit(logging.INFO, message, extra)

    def warning(self, message: str, **extra: Any) -> None:
        self._emit(logging.WARNING, message, extra)

    def error(self, message: str, **extra: Any) -> None:
        self._emit(logging.ERROR, message, extra)

    def _emit(self, level: int, message: str, extra: dict[str, Any]) -> None:
        if self.target_id is not None:
            self._store.append_log(self.target_id, message)
        if self.silent and level < logging.WARNING:
            level = logging.DEBUG
        self._logger.log(
            level,
            message,
            extra={"target_id": self.target_id, "silent": self.silent, **extra},
        )
