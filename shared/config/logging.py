"""
Structured logging for the chat gateway.

Loggers obtained through get_logger() accept keyword arguments as structured
fields:

    logger.info("Participant joined", connection_id=12, name="alice")

Production renders one JSON object per line; development renders colored
single-line output. Every record carries the connection id of the session
task that emitted it.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

# Third-party loggers and the level they are capped at
_QUIET_LOGGERS: dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}

_LEVEL_COLORS: dict[str, str] = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
_RESET = "\033[0m"
_DIM = "\033[2m"


def _record_connection_id(record: logging.LogRecord) -> str | None:
    connection_id = getattr(record, "connection_id", None)
    if not connection_id or connection_id == "-":
        return None
    return connection_id


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        connection_id = _record_connection_id(record)
        if connection_id:
            entry["connection_id"] = connection_id

        fields = getattr(record, "extra_data", None)
        if fields:
            entry["data"] = fields

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            entry["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Colored single-line output for a terminal."""

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelname, _RESET)
        clock = datetime.now().strftime("%H:%M:%S")

        parts = [f"{color}[{clock}] {record.levelname:8}{_RESET}"]
        connection_id = _record_connection_id(record)
        if connection_id:
            parts.append(f"{_DIM}[conn {connection_id}]{_RESET}")
        parts.append(f"{record.name}: {record.getMessage()}")
        line = " ".join(parts)

        fields = getattr(record, "extra_data", None)
        if fields:
            line += " (" + " | ".join(f"{k}={v}" for k, v in fields.items()) + ")"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods accept arbitrary keyword arguments.

    Keywords that are not standard logging parameters are collected into
    ``record.extra_data``.
    """

    def _log(
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **fields: Any,
    ) -> None:
        merged = dict(extra) if extra else {}
        merged["extra_data"] = fields or None
        # One extra frame: report the caller, not this override
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=merged,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def _build_formatter() -> logging.Formatter:
    if settings.environment == "production":
        return StructuredFormatter()
    return DevelopmentFormatter()


def setup_logging() -> None:
    """
    Configure the root logger. Call once at startup.

    DEBUG when settings.debug is on, INFO otherwise.
    """
    from shared.infrastructure.correlation import ConnectionIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(ConnectionIdFilter())
    handler.setFormatter(_build_formatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> StructuredLogger:
    """
    Return the structured logger for ``name``.

    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)  # type: ignore[return-value]


chat_gateway_logger = get_logger("chat_gateway")

# Connection lifecycle audit trail
security_audit_logger = get_logger("security.audit")


def audit_ws_connection(
    event_type: str,
    endpoint: str,
    connection_id: int | None = None,
    display_name: str | None = None,
    origin: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Record a WebSocket lifecycle event on the audit logger.

    Args:
        event_type: CONNECT, DISCONNECT, CONNECT_REJECTED, ...
        endpoint: WebSocket endpoint path.
        connection_id: Server-assigned connection id.
        display_name: Participant's display name, once known.
        origin: Origin header, if the client sent one.
        reason: Why the event happened, mostly for rejections.
        **extra: Further fields to attach.
    """
    fields = {
        "connection_id": connection_id,
        "display_name": display_name,
        "origin": origin,
        "reason": reason,
    }
    security_audit_logger.info(
        "ws_audit %s",
        event_type,
        event_type=event_type,
        endpoint=endpoint,
        **{k: v for k, v in fields.items() if v is not None},
        **extra,
    )
