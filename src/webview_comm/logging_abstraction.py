"""Structured logging for both ends of a webview channel.

Every logger writes human-readable lines, JSON lines, or both. Each line
carries the active correlation id (the request being handled, when there is
one) and the ``extra={...}`` context of the call. Log lines from the host and
the UI endpoint of one process interleave, so the ``endpoint`` key of the
context is lifted out and shown next to the level.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing_extensions import override

from webview_comm import const
from webview_comm.correlation import get_correlation_id

__all__ = [
    "CommLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "get_logger",
]

_NO_CORRELATION = "[--------]"


def _record_context(record: logging.LogRecord) -> dict[str, object]:
    context = getattr(record, "extra_data", None)
    if isinstance(context, Mapping):
        return {str(k): v for k, v in context.items()}
    return {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``endpoint`` is promoted to a top-level key."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        context = _record_context(record)
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "endpoint": context.pop("endpoint", None),
            "location": f"{record.module}:{record.lineno}",
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``time LEVEL (endpoint) [module:line] [corr-id] > message | k=v ...``"""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s%(endpoint_tag)s [%(module)s:%(lineno)d] "
            "%(correlation_tag)s > %(message)s",
            datefmt="%H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        context = _record_context(record)
        endpoint = context.pop("endpoint", None)
        correlation_id = get_correlation_id()
        record.endpoint_tag = f" ({endpoint})" if endpoint else ""
        record.correlation_tag = f"[{correlation_id[:8]}]" if correlation_id else _NO_CORRELATION

        line = super().format(record)
        if context:
            line += " | " + " ".join(f"{k}={v}" for k, v in context.items())
        return line


def _open_handler(target: str) -> logging.Handler:
    """Stream handler for "stdout"/"stderr", otherwise an appending file handler."""
    if target == "stdout":
        return logging.StreamHandler(sys.stdout)
    if target == "stderr":
        return logging.StreamHandler(sys.stderr)
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a", encoding="utf-8")


class CommLogger:
    """Thin wrapper over a stdlib logger that accepts structured ``extra`` context.

    Handlers are attached once per logger name, so calling get_logger() for the
    same module again reuses them.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stderr",
    ) -> None:
        """Create the wrapper.

        Args:
            name: Logger name (typically the module name)
            log_format: "json", "human", or "both"
            json_file: Destination of JSON lines (JSON output is off without it)
            human_output: "stdout", "stderr", or a file path

        """
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.log_format: str = log_format

        self.logger.setLevel(logging.DEBUG if const.WEBVIEW_COMM_DEBUG else logging.INFO)
        if not self.logger.handlers:
            self._attach_handlers(json_file, human_output)

    def _attach_handlers(self, json_file: str | Path | None, human_output: str | None) -> None:
        wanted: list[tuple[str, logging.Formatter]] = []
        if self.log_format in ("json", "both") and json_file:
            wanted.append((str(json_file), JSONFormatter()))
        if self.log_format in ("human", "both"):
            wanted.append((human_output or "stderr", HumanReadableFormatter()))

        for target, formatter in wanted:
            try:
                handler = _open_handler(target)
            except OSError as e:
                # Fall back to stderr
                print(f"Warning: cannot open log output {target}: {e}", file=sys.stderr)
                handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def _log(self, level: int, msg: str, args: tuple[object, ...], extra: Mapping[str, object] | None) -> None:
        if not self.logger.isEnabledFor(level):
            return
        payload = {"extra_data": dict(extra)} if extra else None
        # stacklevel 3 attributes the record to the caller of debug()/info()/...
        self.logger.log(level, msg, *args, extra=payload, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, args, extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, args, extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, args, extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, args, extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the traceback of the exception being handled."""
        payload = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=payload, stacklevel=2)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> CommLogger:
    """Get a CommLogger configured from the WEBVIEW_COMM_LOG_* environment variables.

    Explicit arguments override the environment.
    """
    return CommLogger(
        name=name,
        log_format=log_format or const.WEBVIEW_COMM_LOG_FORMAT,
        json_file=json_file or const.WEBVIEW_COMM_LOG_JSON_FILE,
        human_output=human_output or const.WEBVIEW_COMM_LOG_HUMAN_OUTPUT,
    )
