"""Console logging for processes embedding the engine.

One line per record: UTC timestamp, level, logger, correlation id, the event
name, then any ``extra`` fields as ``key=value`` pairs.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from teamchat_rbac.settings import Settings

_CORRELATION_ID: ContextVar[str | None] = ContextVar(
    "teamchat_rbac_correlation_id",
    default=None,
)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "correlation_id",
    "taskName",
}

_CONFIGURED_FLAG = "_teamchat_rbac_configured"


class ConsoleLogFormatter(logging.Formatter):
    """Single-line console output.

        2025-11-27T02:57:00.302Z INFO  teamchat_rbac.features.rbac.store [cid=1234abcd]
        rbac.role.create.success role_id=0191... position=4
    """

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-5s %(name)s [cid=%(correlation_id)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=UTC).strftime(datefmt or self.datefmt)
        return f"{stamp}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        record.correlation_id = getattr(record, "correlation_id", None) or _CORRELATION_ID.get() or "-"
        extras = [
            f"{key}={_render(value)}"
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        ]
        return " ".join([super().format(record), *extras])


def setup_logging(settings: Settings) -> None:
    """Install the console handler on the root logger (once) and apply the level.

    SQLAlchemy and aiosqlite loggers propagate to the root so their output
    shares the format.
    """

    root_logger = logging.getLogger()
    level = getattr(logging, settings.logging_level.upper(), logging.INFO)
    root_logger.setLevel(level)
    if getattr(root_logger, _CONFIGURED_FLAG, False):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(ConsoleLogFormatter())
    root_logger.handlers = [handler]
    for name in ("sqlalchemy", "aiosqlite"):
        library_logger = logging.getLogger(name)
        library_logger.handlers.clear()
        library_logger.propagate = True
    setattr(root_logger, _CONFIGURED_FLAG, True)


def bind_request_context(correlation_id: str | None) -> None:
    _CORRELATION_ID.set(correlation_id)


def clear_request_context() -> None:
    _CORRELATION_ID.set(None)


def log_context(**fields: Any) -> dict[str, Any]:
    """``extra`` payload with unset fields dropped and ids rendered as strings."""

    return {
        key: str(value) if isinstance(value, UUID) else value
        for key, value in fields.items()
        if value is not None
    }


def _render(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(str(item) for item in value)
    return str(value)


__all__ = [
    "ConsoleLogFormatter",
    "bind_request_context",
    "clear_request_context",
    "log_context",
    "setup_logging",
]
