"""Logging abstraction layer for antz-discovery.

Every module logs through an ``AntzLogger`` obtained from ``get_logger``.
Handlers live on the package logger only, so one ``configure_logging`` call
(from the CLI, or lazily on first use) decides where JSON and human-readable
records go and at which level, and child loggers simply propagate.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast

from typing_extensions import override

__all__ = [
    "FINE",
    "AntzLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "configure_logging",
    "get_logger",
]

# ANT tooling calls its most verbose level "fine"; it is plain DEBUG here.
FINE = logging.DEBUG

_configure_lock = threading.Lock()
_configured = {"done": False}


def _context_of(record: logging.LogRecord) -> Mapping[str, object] | None:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return cast("Mapping[str, object]", extra_data)
    return None


class JSONFormatter(logging.Formatter):
    """One JSON object per record, suitable for log shipping."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        from antz_discovery.correlation import get_correlation_id

        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _context_of(record)
        if context:
            log_data["context"] = dict(context)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Terminal format: time, level, origin, short correlation id, message, context."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        from antz_discovery.correlation import get_correlation_id

        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"
        formatted = super().format(record)

        context = _context_of(record)
        if context:
            formatted = f"{formatted} | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return formatted


def _human_handler(human_output: str) -> logging.Handler:
    if human_output == "stdout":
        return logging.StreamHandler(sys.stdout)
    if human_output == "stderr":
        return logging.StreamHandler(sys.stderr)
    try:
        human_path = Path(human_output)
        human_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(human_path, mode="a")
    except OSError as e:
        print(f"Warning: Failed to create human log file {human_output}: {e}", file=sys.stderr)
        return logging.StreamHandler(sys.stderr)


def configure_logging(
    level: int | None = None,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> logging.Logger:
    """(Re)install handlers on the package logger.

    Args:
        level: Log level; defaults to DEBUG when ANTZ_DEBUG is set, else INFO
        log_format: "json", "human" or "both"
        json_file: Destination of JSON records (None disables JSON output)
        human_output: "stdout", "stderr" or a file path

    Returns:
        The configured package logger

    """
    from antz_discovery.const import (
        ANTZ_DEBUG,
        ANTZ_LOG_FORMAT,
        ANTZ_LOG_HUMAN_OUTPUT,
        ANTZ_LOG_JSON_FILE,
        ANTZ_LOG_NAME,
    )

    if level is None:
        level = logging.DEBUG if ANTZ_DEBUG else logging.INFO
    log_format = log_format or ANTZ_LOG_FORMAT
    json_file = json_file or ANTZ_LOG_JSON_FILE
    human_output = human_output or ANTZ_LOG_HUMAN_OUTPUT

    root = logging.getLogger(ANTZ_LOG_NAME)
    with _configure_lock:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        if log_format in ("json", "both") and json_file:
            try:
                json_path = Path(json_file)
                json_path.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(json_path, mode="a")
            except OSError as e:
                print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)
            else:
                json_handler.setFormatter(JSONFormatter())
                root.addHandler(json_handler)

        if log_format in ("human", "both") or not root.handlers:
            human_handler = _human_handler(human_output)
            human_handler.setFormatter(HumanReadableFormatter())
            root.addHandler(human_handler)

        root.setLevel(level)
        root.propagate = False
        _configured["done"] = True
    return root


class AntzLogger:
    """Thin structured-logging facade over a stdlib logger.

    Adds a ``fine`` level alias and an ``extra`` mapping rendered as
    key/value context by both formatters.
    """

    def __init__(self, name: str) -> None:
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        extra_payload = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=extra_payload, stacklevel=3)

    def fine(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(FINE, msg, *args, extra=extra)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the active exception's traceback."""
        log_extra = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=log_extra, stacklevel=2)

    def is_enabled_for(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)


def get_logger(name: str) -> AntzLogger:
    """Return an ``AntzLogger`` for ``name``, configuring defaults on first use."""
    if not _configured["done"]:
        configure_logging()
    return AntzLogger(name)
