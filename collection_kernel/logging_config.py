"""
Structured JSON logging for the collection kernel.

Every ledger event is one JSON line.  Operation-scoped fields (the
correlation id, the facade operation, and the person and cycle it targets)
are bound once by ``CollectionLedger`` and stamped onto every line logged
inside that operation.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Iterator, TextIO
from uuid import UUID

_LOGGER_PREFIX = "collection_kernel"

CONTEXT_FIELDS = ("correlation_id", "operation", "person_id", "cycle_id")

_context: ContextVar[dict[str, str]] = ContextVar("collection_log_context", default={})


class LogContext:
    """Operation-scoped log fields, safe across threads and tasks."""

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Add fields for the duration of the block; None values are skipped.

        Raises:
            TypeError: a field outside CONTEXT_FIELDS.
        """
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        merged = dict(_context.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        token = _context.set(merged)
        try:
            yield
        finally:
            _context.reset(token)


_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, bound context, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            # Kernel errors keep their context (cycle_id, requested...) as attributes.
            for key, value in vars(exc).items():
                if not key.startswith("_"):
                    payload[f"exc_{key}"] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the collection_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def _owned_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if isinstance(h.formatter, StructuredFormatter)]


def configure_logging(*, level: int | str = logging.INFO, stream: TextIO | None = None) -> None:
    """
    Send collection_kernel logs to ``stream`` (stderr by default) as JSON.

    Calling it again only updates the level.
    """
    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    if _owned_handlers(root):
        return
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)


def reset_logging() -> None:
    """Detach the JSON handlers and restore the default level."""
    root = logging.getLogger(_LOGGER_PREFIX)
    for handler in _owned_handlers(root):
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)
    root.propagate = True
