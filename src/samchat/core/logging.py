# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for Samchat.

Provides:
- JSON formatter for unattended runs (machine-parseable)
- Standard formatter for terminals (human-readable)
- Correlation IDs tying together the requests of one refresh cycle
- Sanitized logging of gateway requests
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for correlation ID (async-safe, copied into spawned tasks)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Get the current correlation ID, or None if not set."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id.set(correlation_id)


def generate_correlation_id() -> str:
    """Generate a new unique correlation ID."""
    return str(uuid.uuid4())


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
) -> Generator[str, None, None]:
    """Context manager for correlation ID scope.

    Args:
        correlation_id: Optional correlation ID to use. If None, generates a new one.

    Yields:
        The correlation ID being used.

    Example:
        with correlation_context() as cid:
            logger.info("Refreshing")  # Will include cid
    """
    cid = correlation_id or generate_correlation_id()
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


def _request_fields(record: logging.LogRecord) -> dict[str, Any] | None:
    """Gateway request fields attached by RequestLogger, if any."""
    extra = getattr(record, "extra_data", None)
    if isinstance(extra, dict) and "operation" in extra:
        return extra
    return None


class JSONFormatter(logging.Formatter):
    """JSON log formatter, one object per line.

    Records from RequestLogger carry their operation, outcome, duration and
    sanitized arguments under ``request``; any other structured data goes
    under ``extra``. The refresh cycle's correlation ID is included when set.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        request = _request_fields(record)
        if request is not None:
            log_data["request"] = {key: value for key, value in request.items() if value is not None}
        elif hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        if record.levelno >= logging.WARNING:
            log_data["source"] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable formatter.

    Prefixes the short correlation ID and suffixes the sanitized arguments of
    gateway requests, e.g. ``[1a2b3c4d] Request: GetMessages "alice.os:bob.os"``.
    Level names are coloured on a TTY.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    DIM = "\033[90m"
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def _dim(self, text: str) -> str:
        return f"{self.DIM}{text}{self.RESET}" if self.use_colors else text

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the untouched record
        record = logging.makeLogRecord(record.__dict__)
        message = record.getMessage()
        record.args = None

        correlation_id = get_correlation_id()
        if correlation_id:
            message = self._dim(f"[{correlation_id[:8]}]") + " " + message

        request = _request_fields(record)
        if request is not None and request.get("arguments") is not None:
            message += " " + self._dim(json.dumps(request["arguments"], default=str))

        record.msg = message
        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Configure the root logger for a Samchat process.

    Args:
        level: Log level; defaults to ``SAMCHAT_LOG_LEVEL``
        json_format: Use JSON format (auto-detect if None)
        log_file: Optional file to additionally write JSON logs to

    Environment variables:
        SAMCHAT_LOG_LEVEL: Default log level
        SAMCHAT_LOG_FORMAT: "json" or "text" (auto-detect if unset)
        SAMCHAT_LOG_FILE: Log file path
    """
    from .config import get_config

    config = get_config()

    if level is None:
        level = config.log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        format_env = config.log_format.lower()
        if format_env == "json":
            json_format = True
        elif format_env == "text":
            json_format = False
        else:
            json_format = not sys.stderr.isatty()

    log_file = config.log_file if log_file is None else log_file

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StandardFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    # Noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


class RequestLogger:
    """Logger for gateway requests.

    Logs the operation name with sanitized arguments so message bodies and
    file contents never end up verbatim in logs.
    """

    MAX_STRING = 200

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("samchat.requests")

    def log_request(
        self,
        operation: str,
        arguments: Any,
        level: int = logging.DEBUG,
    ) -> None:
        """Log an outgoing request."""
        self.logger.log(
            level,
            f"Request: {operation}",
            extra={
                "extra_data": {
                    "operation": operation,
                    "arguments": self._sanitize(arguments),
                }
            },
        )

    def log_result(
        self,
        operation: str,
        outcome: str,
        duration_ms: float | None = None,
        level: int = logging.DEBUG,
    ) -> None:
        """Log the outcome of a request ("ok", "err", "transport", "decode")."""
        msg = f"Result: {operation} -> {outcome}"
        if duration_ms is not None:
            msg += f" ({duration_ms:.1f}ms)"

        self.logger.log(
            level,
            msg,
            extra={
                "extra_data": {
                    "operation": operation,
                    "outcome": outcome,
                    "duration_ms": duration_ms,
                }
            },
        )

    def _sanitize(self, data: Any) -> Any:
        """Recursively replace byte payloads and truncate long strings."""
        if isinstance(data, (bytes, bytearray)):
            return f"<{len(data)} bytes>"
        if isinstance(data, dict):
            return {key: self._sanitize(value) for key, value in data.items()}
        if isinstance(data, (list, tuple)):
            if len(data) > 16 and all(isinstance(item, int) for item in data):
                return f"<{len(data)} bytes>"
            return [self._sanitize(item) for item in data]
        if isinstance(data, str) and len(data) > self.MAX_STRING:
            return data[: self.MAX_STRING] + "..."
        return data


# Default request logger
request_logger = RequestLogger()
